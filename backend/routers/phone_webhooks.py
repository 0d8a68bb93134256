"""
Phone Webhook Router

Inbound SMS notifications pushed by providers.

Endpoints:
- POST /api/phone/webhook - Generic provider webhook
- POST /api/phone/webhook/gogetsms - GoGetSMS webhook
- GET /api/phone/webhook/gogetsms/health - GoGetSMS webhook health

Webhooks always answer 200, including on internal errors, so providers
do not retry-storm the endpoint. Errors are logged and sent to Sentry.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from sentry_integration import capture_exception
from services.phone_store import PhoneStore
from services.webhook_ingest import WebhookIngestService
from routers.phone import get_phone_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/phone/webhook", tags=["Phone Webhooks"])


def get_webhook_service(store: PhoneStore = Depends(get_phone_store)) -> WebhookIngestService:
    return WebhookIngestService(store)


async def _payload(request: Request) -> Dict[str, Any]:
    """JSON or form body as a dict; anything else is an empty payload."""
    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        body = await request.json()
        return body if isinstance(body, dict) else {}
    form = await request.form()
    return dict(form)


def _acknowledge_failure(source: str, e: Exception) -> Dict[str, Any]:
    logger.error(f"{source} webhook processing failed: {e}", exc_info=True)
    capture_exception(e, webhook=source)
    return {"status": "error", "message": "Error processing webhook, but acknowledged"}


@router.post("")
async def generic_webhook(
    request: Request,
    service: WebhookIngestService = Depends(get_webhook_service)
):
    """Generic SMS webhook."""
    try:
        payload = await _payload(request)
        return await service.ingest_generic(payload)
    except Exception as e:
        return _acknowledge_failure("generic", e)


@router.post("/gogetsms")
async def gogetsms_webhook(
    request: Request,
    service: WebhookIngestService = Depends(get_webhook_service)
):
    """
    GoGetSMS SMS webhook.

    Expected payload: {id, phone, text, sender, date}.
    """
    try:
        payload = await _payload(request)
        logger.info(f"GoGetSMS webhook received (activation {payload.get('id')})")
        return await service.ingest_gogetsms(payload)
    except Exception as e:
        return _acknowledge_failure("gogetsms", e)


@router.get("/gogetsms/health")
async def gogetsms_webhook_health():
    return {
        "status": "success",
        "message": "GoGetSMS webhook endpoint is healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
