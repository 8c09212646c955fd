# app/models/delivery.py
from datetime import datetime, timezone
from typing import List, Optional
from pydantic import BaseModel, Field

from app.models.device import DeviceEndpoint


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class DeliveryOutcome(BaseModel):
    endpoint: DeviceEndpoint
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    should_prune: bool = False

    def to_result(self) -> "DeliveryResult":
        return DeliveryResult(
            token=self.endpoint.short_token(),
            success=self.success,
            messageId=self.message_id,
            error=self.error,
        )


class DeliveryResult(BaseModel):
    """Lo que se devuelve al cliente por cada dispositivo (token truncado)."""
    token: str
    success: bool
    messageId: Optional[str] = None
    error: Optional[str] = None


class DispatchResponse(BaseModel):
    success: bool
    sent: Optional[int] = None
    total: Optional[int] = None
    results: Optional[List[DeliveryResult]] = None
    skipped: Optional[bool] = None
    message: Optional[str] = None
    error: Optional[str] = None
    timestamp: str = Field(default_factory=_now_iso)

    def to_json(self) -> dict:
        return self.model_dump(exclude_none=True)
