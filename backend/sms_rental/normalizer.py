"""
Response-shape decoding and message normalization.

Providers return message lists in several envelopes. The decoder first
classifies the payload into exactly one ResponseShape, then maps its entries;
a payload matching no known shape raises ResponseShapeError instead of
quietly yielding an empty list.

Shapes:
    BARE_ARRAY       [ {...}, ... ]
    DATA_ARRAY       {"data": [ {...}, ... ]}
    MESSAGES_ARRAY   {"messages": [ {...}, ... ]}
    VALUES_OBJECT    {"values": {"<id>": {...}, ...}}   (may also be a list)
    SMS_LIST         {"data": {"SmsList": [...], "OtherSms": [...]}}
"""

import re
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import ResponseShapeError
from .schema import SmsMessage

logger = logging.getLogger(__name__)


class ResponseShape(str, Enum):
    BARE_ARRAY = "bare_array"
    DATA_ARRAY = "data_array"
    MESSAGES_ARRAY = "messages_array"
    VALUES_OBJECT = "values_object"
    SMS_LIST = "sms_list"


SENDER_FIELDS = ("messageSender", "sender", "phoneFrom", "phone_from", "from")
TEXT_FIELDS = ("messageText", "message", "text", "sms", "body")
DATE_FIELDS = ("messageDate", "receivedAt", "received_at", "date", "created_at")

ENVELOPE_KEYS = ("messages", "data", "values")

DEFAULT_SENDER = "Unknown"

CODE_PATTERNS = [
    re.compile(r"\b(\d{4,8})\b"),
    re.compile(r"code[:\s]*(\d{4,8})", re.IGNORECASE),
    re.compile(r"(\d{4,8})"),
]

PLAIN_DATETIME_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M", "%d.%m.%Y %H:%M:%S")


# ==================== PRIMITIVES ====================

def pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """First non-empty value among keys."""
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return default


def extract_code(text: Optional[str]) -> Optional[str]:
    """Pull a 4-8 digit verification code out of a message body."""
    if not text:
        return None
    for pattern in CODE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def parse_timestamp(value: Any) -> datetime:
    """
    Parse the timestamp formats providers emit into an aware UTC datetime.

    Accepts ISO-8601 (with or without 'Z'), unix seconds or milliseconds
    (int, float or numeric string) and "YYYY-MM-DD HH:MM:SS". Missing or
    unparseable values fall back to the current time.
    """
    if value in (None, ""):
        return datetime.now(timezone.utc)

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    if isinstance(value, (int, float)) or (isinstance(value, str) and re.fullmatch(r"\d+(\.\d+)?", value.strip())):
        number = float(value)
        # Values this large are milliseconds
        if number > 1e11:
            number = number / 1000
        return datetime.fromtimestamp(number, tz=timezone.utc)

    text = str(value).strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    except ValueError:
        pass

    for fmt in PLAIN_DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue

    logger.warning(f"Unparseable provider timestamp {text!r}, using current time")
    return datetime.now(timezone.utc)


# ==================== SHAPE DETECTION ====================

def detect_shape(payload: Any, provider: Optional[str] = None) -> ResponseShape:
    """Classify a message-list payload. Raises ResponseShapeError."""
    if isinstance(payload, list):
        return ResponseShape.BARE_ARRAY

    if isinstance(payload, dict):
        if isinstance(payload.get("messages"), list):
            return ResponseShape.MESSAGES_ARRAY
        data = payload.get("data")
        if isinstance(data, list):
            return ResponseShape.DATA_ARRAY
        if isinstance(data, dict) and ("SmsList" in data or "OtherSms" in data):
            return ResponseShape.SMS_LIST
        if isinstance(payload.get("values"), (dict, list)):
            return ResponseShape.VALUES_OBJECT

    keys = sorted(payload.keys()) if isinstance(payload, dict) else None
    logger.error(f"Unrecognized message payload from {provider or 'provider'}: type={type(payload).__name__} keys={keys}")
    raise ResponseShapeError(
        f"Unrecognized message payload ({type(payload).__name__})",
        provider=provider,
        payload=payload,
    )


def _entries(payload: Any, shape: ResponseShape) -> List[Any]:
    if shape == ResponseShape.BARE_ARRAY:
        return list(payload)
    if shape == ResponseShape.MESSAGES_ARRAY:
        return list(payload["messages"])
    if shape == ResponseShape.DATA_ARRAY:
        return list(payload["data"])
    if shape == ResponseShape.SMS_LIST:
        data = payload["data"]
        return list(data.get("SmsList") or []) + list(data.get("OtherSms") or [])
    values = payload["values"]
    return list(values.values()) if isinstance(values, dict) else list(values)


# ==================== MESSAGE MAPPING ====================

def normalize_message(entry: Any, provider: Optional[str] = None, default_sender: str = DEFAULT_SENDER) -> SmsMessage:
    """Map one raw message entry onto SmsMessage."""
    if not isinstance(entry, dict):
        raise ResponseShapeError(
            f"Message entry is {type(entry).__name__}, expected object",
            provider=provider,
            payload=entry,
        )

    if not any(key in entry for key in TEXT_FIELDS):
        raise ResponseShapeError(
            f"Message entry has none of {', '.join(TEXT_FIELDS)}",
            provider=provider,
            payload=entry,
        )

    text = str(pick(entry, *TEXT_FIELDS, default=""))
    return SmsMessage(
        sender=str(pick(entry, *SENDER_FIELDS, default=default_sender)),
        message=text,
        received_at=parse_timestamp(pick(entry, *DATE_FIELDS)),
        code=extract_code(text),
    )


def is_empty_envelope(payload: Any) -> bool:
    """True for an empty list or an envelope whose message keys are all empty."""
    if isinstance(payload, list):
        return not payload
    if not isinstance(payload, dict):
        return False
    present = [payload[key] for key in ENVELOPE_KEYS if key in payload]
    return bool(present) and not any(present)


def decode_messages(payload: Any, provider: Optional[str] = None, default_sender: str = DEFAULT_SENDER) -> List[SmsMessage]:
    """
    Decode any supported message-list payload into SmsMessage objects.

    Object entries without a text field are skipped; the rest of the list
    is kept.
    """
    shape = detect_shape(payload, provider)
    messages = []
    for entry in _entries(payload, shape):
        if isinstance(entry, dict) and not any(key in entry for key in TEXT_FIELDS):
            logger.debug(f"Skipping {provider or 'provider'} entry without text: keys={sorted(entry.keys())}")
            continue
        messages.append(normalize_message(entry, provider, default_sender))
    # Entries with an empty body carry nothing to store
    messages = [m for m in messages if m.message]
    logger.debug(f"Decoded {len(messages)} message(s) from {provider or 'provider'} ({shape.value})")
    return messages


def decode_values_map(payload: Any, provider: Optional[str] = None) -> List[Tuple[str, Any]]:
    """
    Decode a {"values": {...}} listing into (key, entry) pairs.

    Used for rental lists keyed by rent id. A list-valued "values" yields
    positional keys.
    """
    shape = detect_shape(payload, provider)
    if shape != ResponseShape.VALUES_OBJECT:
        raise ResponseShapeError(
            f"Expected a values object, got {shape.value}",
            provider=provider,
            payload=payload,
        )
    values = payload["values"]
    if isinstance(values, dict):
        return [(str(k), v) for k, v in values.items()]
    return [(str(i), v) for i, v in enumerate(values)]


def as_float(value: Any) -> Optional[float]:
    """Numeric provider field as float, None when absent or malformed."""
    try:
        return float(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None
