"""GET /v1/reminders/run - execute one reminder run"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request

from card_reminders.api.v1.schemas import RunResponse
from card_reminders.api.dependencies import get_orchestrator, get_request_id
from card_reminders.domain.exceptions import DataStoreError
from card_reminders.services.orchestrator import ReminderOrchestrator

router = APIRouter()


@router.get("/reminders/run", response_model=RunResponse)
async def run_reminders(
    request: Request,
    orchestrator: ReminderOrchestrator = Depends(get_orchestrator),
):
    """
    Run the reminder routine for the current time slot.

    Called by an external scheduler once per slot. Individual user failures
    do not fail the request; they are reported in the counts.
    """
    request_id = get_request_id(request)

    try:
        summary = await orchestrator.run(run_id=request_id)
    except DataStoreError as e:
        logging.error(f"Could not enumerate users for slot: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Data store unavailable")

    message = (
        "Notification routine complete"
        if summary.users_considered
        else "No users to notify at this time"
    )
    return RunResponse(
        run_id=summary.run_id,
        slot=summary.slot,
        users_considered=summary.users_considered,
        users_processed=summary.users_processed,
        users_skipped=summary.users_skipped,
        users_failed=summary.users_failed,
        reminders_sent=summary.reminders_sent,
        history_entries=summary.history_entries,
        tokens_deleted=summary.tokens_deleted,
        message=message,
    )
