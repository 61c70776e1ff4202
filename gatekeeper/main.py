"""Main FastAPI application for Gatekeeper."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from gatekeeper.config import LOG_LEVEL
from gatekeeper.errors import register_exception_handlers
from gatekeeper.routers import health, otp
from gatekeeper.services.mailer import SmtpOtpMailer
from gatekeeper.services.otp import OtpService
from gatekeeper.services.restrictions import RestrictionGuard
from gatekeeper.services.throttle import RequestThrottle
from gatekeeper.store import create_store

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    store = create_store()
    app.state.store = store
    app.state.throttle = RequestThrottle(store)
    app.state.otp_service = OtpService(
        store,
        SmtpOtpMailer(),
        guard=RestrictionGuard(store),
    )
    logger.info("Gatekeeper started")
    try:
        yield
    finally:
        await store.close()
        logger.info("Gatekeeper stopped")


app = FastAPI(
    title="Gatekeeper API",
    description="Request throttling and one-time-code protection for identity endpoints",
    version=health.VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

register_exception_handlers(app)
app.include_router(health.router)
app.include_router(otp.router)


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import os

    import uvicorn

    uvicorn.run(
        "gatekeeper.main:app",
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", "8000")),
        reload=os.getenv("API_RELOAD", "false").lower() == "true",
        log_level=LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
