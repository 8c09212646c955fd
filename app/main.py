# app/main.py
import os
from dotenv import load_dotenv

# 1) cargar variables de entorno del .env
load_dotenv()

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.notifications import router as notifications_router
from app.config import Settings, get_settings
from app.errors import PushDispatchError
from app.infra.oauth_client import TokenExchanger
from app.infra.servicebus_consumer import consume_notifications
from app.infra.table_client import DedupLedger, EndpointRegistry, get_table_client
from app.models.delivery import DispatchResponse
from app.services.dedup import DedupGuard
from app.services.dispatcher import FanOutDispatcher
from app.services.endpoint_resolver import EndpointResolver
from app.services.notification_handler import NotificationHandler

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def build_notification_handler(
    settings: Settings,
    http_client: httpx.AsyncClient,
    registry: EndpointRegistry,
    ledger: DedupLedger,
) -> NotificationHandler:
    return NotificationHandler(
        service_account=settings.service_account,
        dedup=DedupGuard(ledger),
        resolver=EndpointResolver(registry),
        token_exchanger=TokenExchanger(http_client),
        dispatcher=FanOutDispatcher(http_client, registry, settings.service_account.project_id),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # falta de configuración = el servicio no arranca
    settings = get_settings()
    logger.info("🔑 Configuración cargada (proyecto FCM: %s)", settings.service_account.project_id)

    http_client = httpx.AsyncClient(timeout=settings.send_timeout)
    registry = EndpointRegistry(
        get_table_client(settings.storage_connection_string, settings.tokens_table)
    )
    ledger = DedupLedger(
        get_table_client(settings.storage_connection_string, settings.processed_table)
    )
    handler = build_notification_handler(settings, http_client, registry, ledger)
    app.state.notification_handler = handler

    # lanzar el consumer de Service Bus en background (si hay conn string)
    consumer_task = None
    if settings.servicebus_connection_string:
        consumer_task = asyncio.create_task(
            consume_notifications(
                handler,
                settings.servicebus_connection_string,
                settings.servicebus_queue,
            )
        )

    yield

    if consumer_task is not None:
        consumer_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await consumer_task
    await registry.close()
    await ledger.close()
    await http_client.aclose()


app = FastAPI(title="Push Dispatch Service", lifespan=lifespan)

# 2) CORS abierto (la app móvil y el panel web llaman directo)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 3) Rutas REST
app.include_router(notifications_router)


@app.exception_handler(PushDispatchError)
async def push_dispatch_error_handler(request: Request, exc: PushDispatchError):
    logger.error("❌ %s: %s", type(exc).__name__, exc)
    return JSONResponse(
        status_code=500,
        content=DispatchResponse(success=False, error=str(exc)).to_json(),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("❌ Error no controlado: %s", exc)
    return JSONResponse(
        status_code=500,
        content=DispatchResponse(success=False, error=str(exc)).to_json(),
    )


@app.get("/health")
async def health():
    return {"ok": True}
