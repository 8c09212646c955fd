# app/services/notification_handler.py
import logging
from typing import Any

from app.infra.oauth_client import TokenExchanger
from app.models.delivery import DispatchResponse
from app.models.service_account import ServiceAccountKey
from app.services.dedup import DedupGuard
from app.services.dispatcher import FanOutDispatcher
from app.services.endpoint_resolver import EndpointResolver
from app.services.normalizer import extract_event_id, normalize_payload

logger = logging.getLogger(__name__)


class NotificationHandler:
    """
    Procesa UN evento de notificación de punta a punta:
      dedup -> normalizar -> resolver dispositivos -> access token
      -> fan-out -> marcar como procesado.
    Los errores fatales (payload, firma, token, lectura de tokens) suben;
    los fallos por dispositivo quedan en los results.
    """

    def __init__(
        self,
        service_account: ServiceAccountKey,
        dedup: DedupGuard,
        resolver: EndpointResolver,
        token_exchanger: TokenExchanger,
        dispatcher: FanOutDispatcher,
    ):
        self.service_account = service_account
        self.dedup = dedup
        self.resolver = resolver
        self.token_exchanger = token_exchanger
        self.dispatcher = dispatcher

    async def process_notification(self, body: Any) -> DispatchResponse:
        event_id = extract_event_id(body)

        claim = await self.dedup.try_claim(event_id)
        if claim.already_processed:
            return DispatchResponse(success=True, skipped=True)

        event = normalize_payload(body)
        logger.info(
            '📋 Payload: User=%s, Title="%s", Type=%s', event.user_id, event.title, event.type
        )

        endpoints = await self.resolver.resolve(event.user_id)
        if not endpoints:
            await self.dedup.mark_processed(event_id)
            return DispatchResponse(success=True, sent=0, message="No devices registered")

        logger.info("🔐 Getting OAuth2 access token...")
        credential = await self.token_exchanger.fetch_access_token(self.service_account)
        logger.info("✅ Access token obtained")

        outcomes = await self.dispatcher.dispatch(event, endpoints, credential)
        sent = sum(1 for o in outcomes if o.success)
        logger.info("📊 Results: %d/%d sent successfully", sent, len(endpoints))

        await self.dedup.mark_processed(event_id)
        return DispatchResponse(
            success=True,
            sent=sent,
            total=len(endpoints),
            results=[o.to_result() for o in outcomes],
        )
