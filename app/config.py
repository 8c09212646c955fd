# app/config.py
import json
import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, ValidationError

from app.errors import ConfigurationError
from app.models.service_account import ServiceAccountKey


class Settings(BaseModel):
    storage_connection_string: str
    service_account: ServiceAccountKey
    tokens_table: str = "fcmtokens"
    processed_table: str = "processednotifications"
    send_timeout: float = 10.0
    servicebus_connection_string: Optional[str] = None
    servicebus_queue: str = "notifications-queue"


def _required(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ConfigurationError(f"{name} no está configurada")
    return value


def load_service_account(raw: str) -> ServiceAccountKey:
    """
    Parsea el JSON de la cuenta de servicio de Firebase
    (client_email, private_key, project_id, token_uri opcional).
    """
    try:
        document = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"FIREBASE_SERVICE_ACCOUNT no es JSON válido: {e}") from e
    if not isinstance(document, dict):
        raise ConfigurationError("FIREBASE_SERVICE_ACCOUNT debe ser un objeto JSON")

    try:
        return ServiceAccountKey.model_validate(document)
    except ValidationError as e:
        missing = ", ".join(str(err["loc"][0]) for err in e.errors())
        raise ConfigurationError(
            f"FIREBASE_SERVICE_ACCOUNT incompleta ({missing})"
        ) from e


def load_settings() -> Settings:
    """Lee todas las variables de entorno. Falta algo requerido -> ConfigurationError."""
    conn_str = _required("AZURE_STORAGE_CONNECTION_STRING")
    service_account = load_service_account(_required("FIREBASE_SERVICE_ACCOUNT"))

    try:
        send_timeout = float(os.getenv("FCM_SEND_TIMEOUT", "10"))
    except ValueError as e:
        raise ConfigurationError("FCM_SEND_TIMEOUT debe ser un número") from e

    return Settings(
        storage_connection_string=conn_str,
        service_account=service_account,
        tokens_table=os.getenv("FCM_TOKENS_TABLE", "fcmtokens"),
        processed_table=os.getenv("PROCESSED_EVENTS_TABLE", "processednotifications"),
        send_timeout=send_timeout,
        servicebus_connection_string=os.getenv("AZURE_SERVICE_BUS_CONNECTION_STRING") or None,
        servicebus_queue=os.getenv("AZURE_SERVICE_BUS_QUEUE_NAME", "notifications-queue"),
    )


@lru_cache
def get_settings() -> Settings:
    """Configuración de todo el proceso, leída una sola vez."""
    return load_settings()
