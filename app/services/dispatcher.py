# app/services/dispatcher.py
import asyncio
import json
import logging
import re
from typing import Any, Dict, List

import httpx

from app.errors import EndpointSendError
from app.infra.table_client import EndpointRegistry
from app.models.delivery import DeliveryOutcome
from app.models.device import DeviceEndpoint
from app.models.notification import NotificationEvent
from app.models.service_account import AccessCredential

logger = logging.getLogger(__name__)

FCM_SEND_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"
CLICK_ACTION = "FLUTTER_NOTIFICATION_CLICK"

CHANNELS = {
    "message": "messages_channel",
    "booking": "bookings_channel",
    "job": "jobs_channel",
    "system": "system_channel",
}
DEFAULT_CHANNEL = "default_channel"

# errores que significan "este token ya no sirve"
TOKEN_ERROR_RE = re.compile(
    r"not_registered|invalidregistration|unregistered|registration-token-not-found|not_found"
)

# tope para el data libre (FCM rechaza mensajes > 4 KB)
MAX_DATA_KEYS = 50
MAX_DATA_BYTES = 3072

ERROR_DETAIL_LEN = 100


def get_channel_id(category: str) -> str:
    return CHANNELS.get(category, DEFAULT_CHANNEL)


def _to_fcm_string(value: Any) -> str:
    # None va como "null", igual que JSON.stringify(null)
    if value is None or isinstance(value, (dict, list, tuple)):
        try:
            return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError):
            return str(value)
    if isinstance(value, bool):
        # igual que String(true) en el cliente
        return "true" if value else "false"
    return str(value)


def _cap_free_data(data: Dict[str, Any]) -> Dict[str, str]:
    capped: Dict[str, str] = {}
    used = 0
    for key, value in data.items():
        text = _to_fcm_string(value)
        size = len(str(key).encode("utf-8")) + len(text.encode("utf-8"))
        if len(capped) >= MAX_DATA_KEYS or used + size > MAX_DATA_BYTES:
            logger.warning("data demasiado grande: se descarta la clave %r", key)
            continue
        capped[str(key)] = text
        used += size
    return capped


def build_data_map(event: NotificationEvent) -> Dict[str, str]:
    """Mapa data de FCM: todos los valores tienen que ser string."""
    safe_data = {
        "type": event.type,
        "subType": event.sub_type or "",
        "relatedId": "" if event.related_id is None else _to_fcm_string(event.related_id),
        "click_action": CLICK_ACTION,
    }
    safe_data.update(_cap_free_data(event.data))
    return safe_data


def build_message(event: NotificationEvent, token: str) -> dict:
    return {
        "message": {
            "token": token,
            "notification": {
                "title": event.title,
                "body": event.body,
            },
            "data": build_data_map(event),
            "android": {
                "priority": "high",
                "notification": {
                    "channel_id": get_channel_id(event.type),
                    "sound": "default",
                },
            },
            "apns": {
                "payload": {
                    "aps": {
                        "sound": "default",
                        "badge": 1,
                    },
                },
            },
        }
    }


def is_token_error(response_text: str) -> bool:
    """
    ¿El error de FCM dice que el token está muerto?
    Si el body no es JSON no se puede saber -> False (mejor no borrar).
    """
    try:
        parsed = json.loads(response_text)
    except ValueError:
        logger.info("⚠️ Could not parse FCM response JSON; not removing token")
        return False

    error = parsed.get("error") if isinstance(parsed, dict) else None
    if not isinstance(error, dict):
        return False

    err_msg = str(error.get("message") or "").lower()
    logger.info("📥 FCM parsed error message: %s", error.get("message"))
    return bool(TOKEN_ERROR_RE.search(err_msg)) or error.get("code") == 404


class FanOutDispatcher:
    """
    Envía la notificación a todos los dispositivos a la vez.
    Cada envío es independiente: un fallo (o timeout) sólo afecta
    a su propio DeliveryOutcome.
    """

    def __init__(self, http_client: httpx.AsyncClient, registry: EndpointRegistry, project_id: str):
        self._http = http_client
        self._registry = registry
        self._send_url = FCM_SEND_URL.format(project_id=project_id)

    async def dispatch(
        self,
        event: NotificationEvent,
        endpoints: List[DeviceEndpoint],
        credential: AccessCredential,
    ) -> List[DeliveryOutcome]:
        if not endpoints:
            return []
        total = len(endpoints)
        logger.info("📤 About to send to %d token(s)", total)
        return list(
            await asyncio.gather(
                *(
                    self._deliver(event, ep, credential, idx, total)
                    for idx, ep in enumerate(endpoints, start=1)
                )
            )
        )

    async def _deliver(
        self,
        event: NotificationEvent,
        endpoint: DeviceEndpoint,
        credential: AccessCredential,
        idx: int,
        total: int,
    ) -> DeliveryOutcome:
        logger.info(
            "📤 [%d/%d] Sending to %s token: %s...",
            idx, total, endpoint.device_type, endpoint.short_token(),
        )
        try:
            message_id = await self._send(event, endpoint, credential)
        except EndpointSendError as e:
            outcome = DeliveryOutcome(
                endpoint=endpoint,
                success=False,
                error=e.body[:ERROR_DETAIL_LEN] or str(e),
                should_prune=is_token_error(e.body),
            )
        except Exception as e:  # red, timeout, JSON raro: sólo afecta a este endpoint
            logger.error("❌ Exception sending to %s...: %s", endpoint.short_token(), e)
            return DeliveryOutcome(
                endpoint=endpoint, success=False, error=str(e)[:ERROR_DETAIL_LEN] or type(e).__name__
            )
        else:
            logger.info("✅ FCM Success! Message: %s", message_id)
            return DeliveryOutcome(endpoint=endpoint, success=True, message_id=message_id)

        logger.error("❌ FCM error for token %s", endpoint.short_token())
        if outcome.should_prune:
            await self._prune(endpoint)
        else:
            logger.info("⚠️ FCM error was not token-related; not removing token")
        return outcome

    async def _send(
        self,
        event: NotificationEvent,
        endpoint: DeviceEndpoint,
        credential: AccessCredential,
    ) -> str:
        response = await self._http.post(
            self._send_url,
            json=build_message(event, endpoint.token),
            headers={"Authorization": f"Bearer {credential.access_token}"},
        )
        response_text = response.text
        logger.debug("📥 FCM Response (%s): %s", response.status_code, response_text[:200])

        if not response.is_success:
            raise EndpointSendError(response.status_code, response_text)
        return response.json().get("name")

    async def _prune(self, endpoint: DeviceEndpoint):
        logger.info("🗑️ Removing invalid token %s...", endpoint.short_token())
        try:
            await self._registry.delete_by_token(endpoint.token)
        except Exception as e:
            # un token muerto que queda sólo cuesta un envío de más
            logger.error("No se pudo borrar el token %s...: %s", endpoint.short_token(), e)
