"""FastAPI application and process entry point."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from .config import RelaySettings
from .market import PriceRelay

logger = logging.getLogger(__name__)

HEALTH_MESSAGE = "Price Feed Backend is running."


def _log_unhandled(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    """Loop-wide handler: log stray task failures and keep running."""
    exc = context.get("exception")
    logger.error("Unhandled exception: %s", context.get("message", "unknown"), exc_info=exc)


def create_app(settings: RelaySettings | None = None, relay: PriceRelay | None = None) -> FastAPI:
    """Create the app. The relay is started and shut down with the app's lifespan.

    Passing `relay` lets callers inject a pre-built relay without globals.
    """
    settings = settings or RelaySettings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        asyncio.get_running_loop().set_exception_handler(_log_unhandled)
        price_relay = relay or PriceRelay.from_settings(settings)
        app.state.relay = price_relay
        await price_relay.start()
        try:
            yield
        finally:
            await price_relay.shutdown()

    app = FastAPI(title="Price Feed Relay", lifespan=lifespan)

    @app.get("/", response_class=PlainTextResponse)
    async def health() -> str:
        return HEALTH_MESSAGE

    return app


def main() -> None:
    """Run the relay under uvicorn; SIGINT/SIGTERM shut it down cleanly with exit status 0."""
    load_dotenv()
    settings = RelaySettings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting server on port %d", settings.port)
    uvicorn.run(
        create_app(settings),
        host="0.0.0.0",
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
