# app/infra/servicebus_consumer.py
import asyncio
import json
import logging
from datetime import datetime, timezone

from azure.servicebus.aio import ServiceBusClient
from azure.servicebus import TransportType

from app.errors import InvalidPayloadError

logger = logging.getLogger(__name__)

# estado para /notifications/debug/consumer-status
_status = {
    "startedAt": None,
    "lastMessageAt": None,
    "lastError": None,
    "queue": None,
    "hasConnectionString": False,
}


def consumer_status() -> dict:
    return dict(_status)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def decode_message_body(msg) -> dict:
    """El body de Service Bus llega como iterable de bytes."""
    try:
        body_bytes = b"".join(part for part in msg.body)
        return json.loads(body_bytes.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise InvalidPayloadError("Invalid JSON payload") from e


async def handle_message(receiver, msg, handler):
    """
    - OK                  -> complete
    - payload inválido    -> dead-letter (reintentar no lo arregla)
    - cualquier otro error -> no se completa: Service Bus lo reentrega
      (o DLQ por MaxDeliveryCount); el DedupGuard absorbe repeticiones.
    """
    try:
        payload = decode_message_body(msg)
        result = await handler.process_notification(payload)
    except InvalidPayloadError as e:
        logger.error("[consumer] ❗ Payload inválido, a dead-letter: %s", e)
        _status["lastError"] = str(e)
        await receiver.dead_letter_message(
            msg, reason="InvalidPayload", error_description=str(e)[:1024]
        )
        return
    except Exception as e:
        logger.exception("[consumer] ❗ Error procesando mensaje: %s", e)
        _status["lastError"] = str(e)
        return

    await receiver.complete_message(msg)
    _status["lastMessageAt"] = _now()
    logger.info("[consumer] ✅ Mensaje completado (sent=%s, skipped=%s)", result.sent, result.skipped)


async def consume_notifications(handler, conn_str: str, queue_name: str, backoff: int = 5):
    """
    Consumer asíncrono de Azure Service Bus:
      - AMQP sobre WebSocket (443) para funcionar en App Service.
      - Cada mensaje es un evento de notificación (mismas formas que el POST).
      - Reconecta con backoff si se cae.
    """
    _status["queue"] = queue_name
    _status["hasConnectionString"] = bool(conn_str)
    if not conn_str:
        logger.warning("Falta AZURE_SERVICE_BUS_CONNECTION_STRING. No se consumirá la cola.")
        return

    _status["startedAt"] = _now()

    while True:
        try:
            logger.info("[consumer] ⚙️ Conectando a Service Bus (cola: %s)", queue_name)
            async with ServiceBusClient.from_connection_string(
                conn_str,
                transport_type=TransportType.AmqpOverWebsocket,
            ) as sb_client:
                receiver = sb_client.get_queue_receiver(queue_name=queue_name, max_wait_time=20)
                async with receiver:
                    logger.info("[consumer] ✅ Escuchando cola: %s", queue_name)
                    while True:
                        messages = await receiver.receive_messages(
                            max_message_count=10,
                            max_wait_time=10,
                        )
                        if not messages:
                            await asyncio.sleep(0.5)
                            continue
                        for msg in messages:
                            await handle_message(receiver, msg, handler)

            await asyncio.sleep(1)

        except asyncio.CancelledError:
            logger.info("[consumer] detenido")
            raise
        except Exception as e:
            logger.warning("[consumer] 🔁 Error de conexión, reintento en %ss -> %s", backoff, e)
            _status["lastError"] = str(e)
            await asyncio.sleep(backoff)
