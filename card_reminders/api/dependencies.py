"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from card_reminders.infrastructure.clients.push import FirebasePushGateway
from card_reminders.infrastructure.database.session import SessionLocal
from card_reminders.infrastructure.database.store import NotificationStore
from card_reminders.services.orchestrator import ReminderOrchestrator


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_store() -> NotificationStore:
    """Provide the relational store facade"""
    return NotificationStore(SessionLocal)


def get_push_gateway() -> FirebasePushGateway:
    """
    Provide the push gateway.

    Raises ConfigurationError when credentials are missing; the app maps it to 500.
    """
    return FirebasePushGateway.from_settings()


def get_orchestrator(
    store: NotificationStore = Depends(get_store),
    gateway: FirebasePushGateway = Depends(get_push_gateway),
) -> ReminderOrchestrator:
    """Provide a run orchestrator wired to the store and gateway"""
    return ReminderOrchestrator(store, gateway)
