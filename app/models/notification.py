# app/models/notification.py
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_TITLE = "Notification"
DEFAULT_BODY = ""
DEFAULT_CATEGORY = "system"


class NotificationEvent(BaseModel):
    """Notificación canónica, salida del normalizador."""
    id: Optional[str] = None
    user_id: str
    title: str = DEFAULT_TITLE
    body: str = DEFAULT_BODY
    type: str = DEFAULT_CATEGORY      # message | booking | system | job | ...
    sub_type: Optional[str] = None
    related_id: Optional[Any] = None
    data: Dict[str, Any] = Field(default_factory=dict)


# ===== formas entrantes =====

class NotificationRecord(BaseModel):
    """Fila de la tabla notifications tal como llega en el webhook."""
    model_config = ConfigDict(extra="ignore")

    id: Optional[Any] = None
    user_id: Optional[Any] = None
    title: Optional[str] = None
    body: Optional[str] = None
    type: Optional[str] = None
    sub_type: Optional[str] = None
    related_id: Optional[Any] = None
    data: Optional[Any] = None


class WebhookPayload(BaseModel):
    """
    Forma (a): cambio en la base de datos.
      { "table": "notifications", "type": "INSERT", "record": {...} }
    """
    model_config = ConfigDict(extra="ignore")

    table: Optional[str] = None
    type: Optional[str] = None
    record: NotificationRecord


class DirectPayload(BaseModel):
    """
    Forma (b): llamada directa. Acepta camelCase y snake_case;
    si vienen los dos, gana camelCase.
    """
    model_config = ConfigDict(extra="ignore")

    id: Optional[Any] = None
    userId: Optional[Any] = None
    user_id: Optional[Any] = None
    title: Optional[str] = None
    body: Optional[str] = None
    type: Optional[str] = None
    subType: Optional[str] = None
    sub_type: Optional[str] = None
    relatedId: Optional[Any] = None
    related_id: Optional[Any] = None
    data: Optional[Any] = None
