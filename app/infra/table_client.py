# app/infra/table_client.py
import logging
from datetime import datetime, timezone
from typing import List

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.data.tables import UpdateMode
from azure.data.tables.aio import TableClient

from app.errors import RegistryError
from app.models.device import DeviceEndpoint

logger = logging.getLogger(__name__)

LEDGER_PARTITION = "notifications"


def get_table_client(conn_str: str, table_name: str) -> TableClient:
    if not conn_str:
        raise RegistryError("AZURE_STORAGE_CONNECTION_STRING no está configurada")
    return TableClient.from_connection_string(conn_str=conn_str, table_name=table_name)


class EndpointRegistry:
    """
    Tabla de tokens FCM.
      PartitionKey = user_id, RowKey = id del registro,
      token, device_type
    Un mismo token puede estar en varias filas (registro duplicado).
    """

    def __init__(self, table_client: TableClient):
        self._table = table_client

    async def list_endpoints(self, user_id: str) -> List[DeviceEndpoint]:
        try:
            entities = self._table.query_entities(
                query_filter="PartitionKey eq @user_id",
                parameters={"user_id": user_id},
                select=["PartitionKey", "token", "device_type"],
            )
            return [
                DeviceEndpoint(
                    token=e["token"],
                    device_type=e.get("device_type") or "unknown",
                    user_id=e["PartitionKey"],
                )
                async for e in entities
                if e.get("token")
            ]
        except AzureError as e:
            raise RegistryError(f"Error leyendo tokens de {user_id}: {e}") from e

    async def delete_by_token(self, token: str) -> int:
        """Borra TODAS las filas con ese token. Devuelve cuántas borró."""
        deleted = 0
        try:
            entities = self._table.query_entities(
                query_filter="token eq @token",
                parameters={"token": token},
                select=["PartitionKey", "RowKey"],
            )
            async for e in entities:
                await self._table.delete_entity(
                    partition_key=e["PartitionKey"], row_key=e["RowKey"]
                )
                deleted += 1
        except AzureError as e:
            raise RegistryError(f"Error borrando token {token[:20]}...: {e}") from e
        return deleted

    async def close(self):
        await self._table.close()


class DedupLedger:
    """
    Tabla de eventos ya procesados.
      PartitionKey = "notifications", RowKey = event_id,
      processed, processedAt
    """

    def __init__(self, table_client: TableClient):
        self._table = table_client

    async def is_processed(self, event_id: str) -> bool:
        try:
            entity = await self._table.get_entity(
                partition_key=LEDGER_PARTITION, row_key=event_id
            )
        except ResourceNotFoundError:
            return False
        except AzureError as e:
            raise RegistryError(f"Error leyendo el ledger ({event_id}): {e}") from e
        return bool(entity.get("processed"))

    async def mark_processed(self, event_id: str):
        entity = {
            "PartitionKey": LEDGER_PARTITION,
            "RowKey": event_id,
            "processed": True,
            "processedAt": datetime.now(timezone.utc).isoformat(),
        }
        try:
            await self._table.upsert_entity(entity=entity, mode=UpdateMode.MERGE)
        except AzureError as e:
            raise RegistryError(f"Error escribiendo el ledger ({event_id}): {e}") from e

    async def close(self):
        await self._table.close()
