# app/api/notifications.py
import logging

from fastapi import APIRouter, Depends, Request

from app.errors import ConfigurationError, InvalidPayloadError
from app.infra.servicebus_consumer import consumer_status
from app.services.notification_handler import NotificationHandler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


def get_notification_handler(request: Request) -> NotificationHandler:
    handler = getattr(request.app.state, "notification_handler", None)
    if handler is None:
        raise ConfigurationError("El servicio de notificaciones no está inicializado")
    return handler


@router.post("/send")
async def send_notification(
    request: Request,
    handler: NotificationHandler = Depends(get_notification_handler),
):
    """
    Envía un push a todos los dispositivos del usuario.
    Acepta el webhook de la tabla notifications:
      { "table": "notifications", "type": "INSERT", "record": {...} }
    o una llamada directa:
      { "userId": "...", "title": "...", "body": "...", "type": "message", ... }
    Los errores fatales los convierte en 500 el handler de main.py.
    """
    logger.info("📩 send-notification invocado")
    try:
        body = await request.json()
    except ValueError as e:
        raise InvalidPayloadError("Invalid JSON payload") from e

    result = await handler.process_notification(body)
    return result.to_json()


# =========================
# 🔎 Diagnóstico del consumer de Service Bus
# =========================
@router.get("/debug/consumer-status")
async def debug_consumer_status():
    """
    Devuelve el estado del consumer de Service Bus:
    - startedAt: cuándo arrancó
    - lastMessageAt: último mensaje procesado
    - lastError: último error visto (si hubo)
    - queue: nombre de la cola
    - hasConnectionString: si hay conn string configurado
    """
    return consumer_status()
