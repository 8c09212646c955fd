# app/services/endpoint_resolver.py
import logging
from typing import List

from app.infra.table_client import EndpointRegistry
from app.models.device import DeviceEndpoint

logger = logging.getLogger(__name__)


class EndpointResolver:
    def __init__(self, registry: EndpointRegistry):
        self._registry = registry

    async def resolve(self, user_id: str) -> List[DeviceEndpoint]:
        """
        Dispositivos registrados del usuario. Lista vacía = sin dispositivos
        (no es error). Un fallo de lectura sube como RegistryError.
        """
        endpoints = await self._registry.list_endpoints(user_id)
        if not endpoints:
            logger.info("⚠️ No FCM tokens for user: %s", user_id)
            return []

        for idx, ep in enumerate(endpoints, start=1):
            logger.debug("  Token %d: %s... (%s)", idx, ep.token[:30], ep.device_type)

        # sólo diagnóstico: los duplicados se envían igual
        unique = len({ep.token for ep in endpoints})
        logger.info("📱 Found %d FCM token(s), unique: %d", len(endpoints), unique)
        if unique != len(endpoints):
            logger.warning("⚠️ DUPLICATE TOKENS DETECTED for user %s", user_id)
        return endpoints
