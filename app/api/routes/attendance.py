import json
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool

from app.core.config import get_settings
from app.schemas.attendance import AttendanceWebhookResponse, WebhookVerificationResponse
from app.services.attendance_service import AttendanceService

router = APIRouter(prefix="/attendance", tags=["attendance"])
logger = logging.getLogger(__name__)


@router.get(
    "/webhooks/fireflies",
    response_model=WebhookVerificationResponse,
)
def verify_fireflies_webhook() -> WebhookVerificationResponse:
    return WebhookVerificationResponse()


@router.post(
    "/webhooks/fireflies",
    response_model=AttendanceWebhookResponse,
)
async def receive_fireflies_webhook(request: Request) -> AttendanceWebhookResponse:
    payload, raw_body = await _load_payload_and_raw_body(request)
    logger.info(
        "Webhook received provider=fireflies path=%s has_signature=%s",
        str(request.url.path),
        bool(request.headers.get("x-hub-signature")),
    )
    settings = get_settings()
    service = AttendanceService(settings)
    try:
        response = await run_in_threadpool(
            service.process_webhook,
            payload=payload,
            shared_secret=_extract_shared_secret(request),
            raw_body=raw_body,
            signature=request.headers.get("x-hub-signature"),
        )
    except HTTPException as exc:
        logger.warning(
            "Webhook rejected provider=fireflies path=%s status_code=%s detail=%s",
            str(request.url.path),
            exc.status_code,
            exc.detail,
        )
        raise
    except Exception:
        logger.exception(
            "Webhook processing failed provider=fireflies path=%s",
            str(request.url.path),
        )
        raise

    logger.info(
        "Webhook processed provider=fireflies path=%s status=%s transcript_id=%s rows_appended=%s",
        str(request.url.path),
        response.status.value,
        response.transcript_id,
        response.rows_appended,
    )
    return response


def _extract_shared_secret(request: Request) -> str | None:
    x_webhook_secret = request.headers.get("x-webhook-secret")
    if x_webhook_secret:
        return x_webhook_secret.strip()

    authorization = request.headers.get("authorization")
    if not authorization:
        return None

    auth_scheme, _, auth_token = authorization.partition(" ")
    if auth_scheme.lower() != "bearer":
        return None

    token = auth_token.strip()
    return token or None


async def _load_payload_and_raw_body(request: Request) -> tuple[dict[str, Any], bytes]:
    raw_body = await request.body()
    try:
        parsed_payload = json.loads(raw_body or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Request body must be valid JSON.",
        ) from exc

    if not isinstance(parsed_payload, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Request body must be a JSON object.",
        )

    return parsed_payload, raw_body
