"""FastAPI application entrypoint for the webhook chat relay."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.routers import relay, webhook
from app.services.relay_broker import RelayBroker

# ── Logging setup ────────────────────────────────────────────────────
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger(__name__)


def _make_broker() -> RelayBroker:
    return RelayBroker(
        settings.history_size,
        send_timeout=settings.send_timeout,
        outbox_size=settings.outbox_size,
        greeting=settings.greeting,
    )


def create_app(broker: RelayBroker | None = None) -> FastAPI:
    broker = broker or _make_broker()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Webhook chat relay ready (history size %d)", settings.history_size)
        logger.info("Workflow engines should POST to %s", settings.webhook_receiver_url)
        yield
        # Shutdown: drop every subscriber, history is memory-only
        await app.state.broker.close_all()

    app = FastAPI(
        title="Webhook Chat Relay",
        description="Relays workflow webhook replies to connected chat clients",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.broker = broker

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Mount routers
    app.include_router(webhook.router, prefix="/api", tags=["webhook"])
    app.include_router(relay.router, tags=["relay"])
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
