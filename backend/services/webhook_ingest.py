"""
Webhook Ingest Service

Stores SMS pushed by providers. Both entry points acknowledge every
request (the routers always answer 200) so a provider never retry-storms
a failing endpoint; problems are logged instead.

De-duplication differs between the two paths:
- generic webhook: (phone_number_id, sender, message), same as sync
- GoGetSMS webhook: (phone_number_id, sender, message, received_at)

The GoGetSMS rule means a message re-sent with another timestamp is
stored twice; kept as-is until the intended behaviour is confirmed.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Any

from logging_config import mask_phone
from sms_rental.normalizer import extract_code, parse_timestamp, pick
from sms_rental.schema import MessageSource, ProviderName, SmsMessage

logger = logging.getLogger(__name__)

DEFAULT_SENDER = "Unknown"


def _ack(status: str, message: str, **data) -> Dict[str, Any]:
    body = {"status": status, "message": message}
    if data:
        body["data"] = data
    return body


class WebhookIngestService:
    """Turns webhook payloads into phone_messages rows."""

    def __init__(self, store):
        self.store = store

    async def ingest_generic(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        phone = pick(payload, "phone_number", "phone", "number")
        text = pick(payload, "message", "text", "sms")
        if not phone or not text:
            logger.warning(f"Generic webhook ignored, missing phone or text: keys={sorted(payload.keys())}")
            return _ack("ignored", "Webhook received without phone number or message")

        row = await self.store.get_by_phone_number(str(phone))
        if not row:
            logger.info(f"Generic webhook for unknown number {mask_phone(str(phone))}")
            return _ack("success", "Phone number not found in database")

        message = SmsMessage(
            sender=str(pick(payload, "sender", "from", default=DEFAULT_SENDER)),
            message=str(text),
            received_at=parse_timestamp(pick(payload, "received_at", "date")),
            code=extract_code(str(text)),
        )
        if message.dedup_key() in await self.store.existing_message_keys(row["id"]):
            return _ack("success", "Message already processed")

        await self.store.insert_messages(row["id"], [message], source=MessageSource.WEBHOOK.value)
        logger.info(f"Webhook message stored for {mask_phone(row['phone_number'])}")
        return _ack("success", "Webhook received", phoneNumberId=row["id"])

    async def ingest_gogetsms(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        activation_id = payload.get("id")
        phone = payload.get("phone")
        text = payload.get("text")
        if not activation_id or not phone or not text:
            logger.warning("GoGetSMS webhook ignored - missing required fields")
            return _ack("ignored", "Invalid webhook payload - missing required fields")

        row = await self.store.get_by_phone_number(str(phone))
        if not row or row.get("provider") != ProviderName.GOGETSMS.value:
            logger.info(f"GoGetSMS webhook for unknown number {mask_phone(str(phone))}")
            return _ack("success", "Phone number not found in database")

        received_at = parse_timestamp(payload.get("date")) if payload.get("date") else datetime.now(timezone.utc)
        sender = str(payload.get("sender") or DEFAULT_SENDER)
        if await self.store.message_exists(row["id"], sender, str(text), received_at=received_at):
            return _ack("success", "Message already processed")

        message = SmsMessage(sender=sender, message=str(text), received_at=received_at, code=extract_code(str(text)))
        await self.store.insert_messages(row["id"], [message], source=MessageSource.WEBHOOK.value)
        logger.info(f"GoGetSMS webhook message stored for {mask_phone(row['phone_number'])} (activation {activation_id})")
        return _ack("success", "Webhook processed successfully", phoneNumberId=row["id"])
