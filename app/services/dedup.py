# app/services/dedup.py
import logging
from dataclasses import dataclass
from typing import Optional

from app.errors import RegistryError
from app.infra.table_client import DedupLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClaimResult:
    already_processed: bool


class DedupGuard:
    """
    Idempotencia frente a triggers "at-least-once".
    No hay lock claim->commit: dos entregas simultáneas del mismo
    evento pueden pasar las dos (riesgo aceptado).
    """

    def __init__(self, ledger: DedupLedger):
        self._ledger = ledger

    async def try_claim(self, event_id: Optional[str]) -> ClaimResult:
        if not event_id:
            return ClaimResult(already_processed=False)
        try:
            processed = await self._ledger.is_processed(event_id)
        except RegistryError as e:
            # si el ledger no responde, se envía igual
            logger.warning("No se pudo consultar el ledger para %s: %s", event_id, e)
            return ClaimResult(already_processed=False)

        if processed:
            logger.info("⛔ Notification already processed: %s", event_id)
        return ClaimResult(already_processed=processed)

    async def mark_processed(self, event_id: Optional[str]):
        if not event_id:
            return
        try:
            await self._ledger.mark_processed(event_id)
        except RegistryError as e:
            logger.error("No se pudo marcar %s como procesada: %s", event_id, e)
