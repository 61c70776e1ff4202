"""
Health check endpoint.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from gatekeeper.dependencies import Store
from gatekeeper.models import HealthResponse
from gatekeeper.rate_limit import DEFAULT, rate_limit

VERSION = "0.1.0"

router = APIRouter(prefix="/api", tags=["health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    operation_id="getHealth",
    summary="Health check",
    dependencies=[Depends(rate_limit(DEFAULT))],
)
async def get_health(store: Store) -> HealthResponse:
    store_ok = await store.ping()
    return HealthResponse(
        status="ok" if store_ok else "degraded",
        version=VERSION,
        timestamp=datetime.now(timezone.utc),
        store="ok" if store_ok else "unavailable",
    )
