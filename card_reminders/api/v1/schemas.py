"""Pydantic schemas for API responses"""

from pydantic import BaseModel


class RunResponse(BaseModel):
    """Response for GET /v1/reminders/run"""

    run_id: str
    slot: str
    users_considered: int
    users_processed: int
    users_skipped: int
    users_failed: int
    reminders_sent: int
    history_entries: int
    tokens_deleted: int
    message: str
