# app/services/normalizer.py
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from app.errors import InvalidPayloadError
from app.models.notification import (
    DEFAULT_BODY,
    DEFAULT_CATEGORY,
    DEFAULT_TITLE,
    DirectPayload,
    NotificationEvent,
    WebhookPayload,
)

NOTIFICATIONS_TABLE = "notifications"
INSERT_EVENT = "INSERT"


def _first(*values):
    """Primer valor "presente" (ni None ni cadena vacía)."""
    for v in values:
        if v is not None and v != "":
            return v
    return None


def _as_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _as_mapping(value: Any) -> dict:
    return dict(value) if isinstance(value, Mapping) else {}


def extract_event_id(body: Any) -> Optional[str]:
    """id del evento: record.id (webhook) o id (llamada directa)."""
    if not isinstance(body, Mapping):
        return None
    record = body.get("record")
    if isinstance(record, Mapping) and record.get("id") is not None:
        return str(record["id"])
    return _as_str(body.get("id"))


def _decode_webhook(body: Mapping) -> Optional[NotificationEvent]:
    if not isinstance(body.get("record"), Mapping):
        return None
    if body.get("table") != NOTIFICATIONS_TABLE and body.get("type") != INSERT_EVENT:
        return None

    try:
        payload = WebhookPayload.model_validate(body)
    except ValidationError as e:
        raise InvalidPayloadError(f"Invalid webhook payload: {e}") from e

    record = payload.record
    if not record.user_id:
        raise InvalidPayloadError("Invalid webhook payload: record.user_id is missing")

    return NotificationEvent(
        id=_as_str(record.id),
        user_id=_as_str(record.user_id),
        title=record.title if record.title is not None else DEFAULT_TITLE,
        body=record.body if record.body is not None else DEFAULT_BODY,
        type=record.type if record.type is not None else DEFAULT_CATEGORY,
        sub_type=_first(record.sub_type),
        related_id=_first(record.related_id),
        data=_as_mapping(record.data),
    )


def _decode_direct(body: Mapping) -> Optional[NotificationEvent]:
    if not (body.get("userId") or body.get("user_id")):
        return None

    try:
        payload = DirectPayload.model_validate(body)
    except ValidationError as e:
        raise InvalidPayloadError(f"Invalid direct payload: {e}") from e

    return NotificationEvent(
        id=_as_str(payload.id),
        user_id=_as_str(_first(payload.userId, payload.user_id)),
        title=payload.title if payload.title is not None else DEFAULT_TITLE,
        body=payload.body if payload.body is not None else DEFAULT_BODY,
        type=payload.type if payload.type is not None else DEFAULT_CATEGORY,
        sub_type=_first(payload.subType, payload.sub_type),
        related_id=_first(payload.relatedId, payload.related_id),
        data=_as_mapping(payload.data),
    )


def normalize_payload(body: Any) -> NotificationEvent:
    """
    Decodifica el evento entrante en una NotificationEvent canónica.
    Orden: webhook de la tabla notifications -> llamada directa -> error.
    """
    if not isinstance(body, Mapping):
        raise InvalidPayloadError("Invalid payload format")

    event = _decode_webhook(body)
    if event is None:
        event = _decode_direct(body)
    if event is None:
        raise InvalidPayloadError("Invalid payload format")
    return event
