from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class AttendanceWebhookStatus(StrEnum):
    ping = "ping"
    ignored_missing_transcript_id = "ignored_missing_transcript_id"
    transcript_not_ready = "transcript_not_ready"
    no_rows = "no_rows"
    appended = "appended"


class AttendanceRowResponse(BaseModel):
    person: str
    attended: bool
    confidence: float
    reason: str


class AttendanceWebhookResponse(BaseModel):
    status: AttendanceWebhookStatus
    transcript_id: str | None = None
    title: str | None = None
    rows_appended: int = 0
    rows: list[AttendanceRowResponse] = Field(default_factory=list)
    received_at: datetime


class WebhookVerificationResponse(BaseModel):
    status: str = "ok"
