import hashlib
import hmac
import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from fastapi import HTTPException, status

from app.core.config import Settings
from app.schemas.attendance import (
    AttendanceRowResponse,
    AttendanceWebhookResponse,
    AttendanceWebhookStatus,
)
from app.services.attendance_models import AttendanceRow, MeetingAnalytics
from app.services.attendance_resolver import resolve_attendance
from app.services.fireflies_api_client import (
    FirefliesApiClient,
    FirefliesApiError,
    FirefliesTranscriptNotReadyError,
)
from app.services.google_sheets_client import GoogleSheetsClient, GoogleSheetsError

logger = logging.getLogger(__name__)

TRANSCRIPT_ID_PATHS = (
    "transcript_id",
    "transcriptId",
    "data.transcript_id",
    "data.transcriptId",
    "meetingId",
    "data.meetingId",
)


class AttendanceService:
    def __init__(
        self,
        settings: Settings,
        fireflies_client: FirefliesApiClient | None = None,
        sheets_client: GoogleSheetsClient | None = None,
    ) -> None:
        self.settings = settings
        self.fireflies_client = fireflies_client or self._create_fireflies_client()
        self.sheets_client = sheets_client or self._create_sheets_client()

    def process_webhook(
        self,
        payload: Mapping[str, Any],
        shared_secret: str | None,
        raw_body: bytes | None = None,
        signature: str | None = None,
    ) -> AttendanceWebhookResponse:
        self._validate_auth(
            shared_secret=shared_secret,
            raw_body=raw_body,
            signature=signature,
        )
        received_at = datetime.now(UTC)

        if payload.get("type") == "ping":
            return AttendanceWebhookResponse(
                status=AttendanceWebhookStatus.ping,
                received_at=received_at,
            )

        transcript_id = self._extract_first_string(payload, paths=TRANSCRIPT_ID_PATHS)
        if not transcript_id:
            return AttendanceWebhookResponse(
                status=AttendanceWebhookStatus.ignored_missing_transcript_id,
                received_at=received_at,
            )

        try:
            transcript = self._fetch_transcript_analytics(transcript_id)
        except FirefliesTranscriptNotReadyError as exc:
            logger.info(
                "Transcript not ready transcript_id=%s detail=%s",
                transcript_id,
                exc,
            )
            return AttendanceWebhookResponse(
                status=AttendanceWebhookStatus.transcript_not_ready,
                transcript_id=transcript_id,
                received_at=received_at,
            )
        except FirefliesApiError as exc:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Unable to fetch transcript analytics from Fireflies.",
            ) from exc

        meeting = MeetingAnalytics.from_transcript(transcript, transcript_id=transcript_id)
        rows = resolve_attendance(
            meeting.speaker_metrics,
            meeting.participants,
            self.settings.thresholds(),
        )
        if not rows:
            return AttendanceWebhookResponse(
                status=AttendanceWebhookStatus.no_rows,
                transcript_id=transcript_id,
                title=meeting.title or None,
                received_at=received_at,
            )

        values = build_sheet_values(
            rows,
            meeting=meeting,
            transcript_id=transcript_id,
            logged_at=received_at,
        )
        rows_appended = self._append_rows(values)
        return AttendanceWebhookResponse(
            status=AttendanceWebhookStatus.appended,
            transcript_id=transcript_id,
            title=meeting.title or None,
            rows_appended=rows_appended,
            rows=[AttendanceRowResponse(**row.to_dict()) for row in rows],
            received_at=received_at,
        )

    def _validate_auth(
        self,
        shared_secret: str | None,
        raw_body: bytes | None,
        signature: str | None,
    ) -> None:
        expected_secret = self.settings.fireflies_webhook_secret
        if not expected_secret:
            return

        if raw_body and signature and self._is_valid_hmac_signature(
            payload=raw_body,
            signature=signature,
            secret=expected_secret,
        ):
            return
        if shared_secret and hmac.compare_digest(
            shared_secret.encode("utf-8"),
            expected_secret.encode("utf-8"),
        ):
            return
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature.",
        )

    def _is_valid_hmac_signature(self, payload: bytes, signature: str, secret: str) -> bool:
        provided_signature = signature.strip()
        if not provided_signature:
            return False
        if provided_signature.startswith("sha256="):
            provided_signature = provided_signature.split("=", maxsplit=1)[1].strip()

        computed_signature = hmac.new(
            key=secret.encode("utf-8"),
            msg=payload,
            digestmod=hashlib.sha256,
        ).hexdigest()

        return hmac.compare_digest(
            computed_signature.encode("utf-8"),
            provided_signature.encode("utf-8"),
        )

    def _fetch_transcript_analytics(self, transcript_id: str) -> dict[str, Any]:
        if not self.fireflies_client:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="FIREFLIES_API_KEY is not configured.",
            )
        return self.fireflies_client.fetch_transcript_analytics(transcript_id)

    def _append_rows(self, values: list[list[Any]]) -> int:
        if not self.sheets_client:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Google Sheets destination is not configured.",
            )
        try:
            return self.sheets_client.append_rows(values)
        except GoogleSheetsError as exc:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Unable to append attendance rows to Google Sheets.",
            ) from exc

    def _create_fireflies_client(self) -> FirefliesApiClient | None:
        if not self.settings.fireflies_api_key:
            return None
        return FirefliesApiClient(
            api_url=self.settings.fireflies_api_url,
            api_key=self.settings.fireflies_api_key,
            timeout_seconds=self.settings.fireflies_api_timeout_seconds,
            user_agent=self.settings.fireflies_api_user_agent,
        )

    def _create_sheets_client(self) -> GoogleSheetsClient | None:
        if not self.settings.sheet_id:
            return None
        if not (self.settings.google_client_email and self.settings.google_private_key):
            return None
        return GoogleSheetsClient(
            spreadsheet_id=self.settings.sheet_id,
            sheet_tab=self.settings.sheet_tab,
            client_email=self.settings.google_client_email,
            private_key=self.settings.google_private_key,
            timeout_seconds=self.settings.google_sheets_api_timeout_seconds,
            api_base_url=self.settings.google_sheets_api_url,
            oauth_token_url=self.settings.google_oauth_token_url,
        )

    def _extract_first_string(
        self,
        payload: Mapping[str, Any],
        paths: tuple[str, ...],
    ) -> str | None:
        for path in paths:
            value = self._extract_path(payload, path)
            text = self._to_text(value)
            if text:
                return text
        return None

    def _extract_path(self, payload: Mapping[str, Any], path: str) -> Any:
        value: Any = payload
        for segment in path.split("."):
            if not isinstance(value, Mapping):
                return None
            if segment not in value:
                return None
            value = value[segment]
        return value

    def _to_text(self, value: Any) -> str | None:
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, str):
            cleaned = value.strip()
            return cleaned or None
        if isinstance(value, int):
            return str(value)
        return None


def build_sheet_values(
    rows: list[AttendanceRow],
    *,
    meeting: MeetingAnalytics,
    transcript_id: str,
    logged_at: datetime,
) -> list[list[Any]]:
    logged_at_text = logged_at.astimezone(UTC).isoformat(timespec="milliseconds").replace(
        "+00:00",
        "Z",
    )
    return [
        [
            logged_at_text,
            transcript_id,
            row.person,
            "TRUE" if row.attended else "FALSE",
            f"{row.confidence:.2f}",
            row.reason,
            meeting.title,
            meeting.date,
            meeting.duration if meeting.duration is not None else "",
            meeting.transcript_url,
        ]
        for row in rows
    ]
