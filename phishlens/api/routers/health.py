"""Health check endpoint for service monitoring."""

import time
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter

from phishlens import __version__

router = APIRouter(tags=["health"])

# Track start time for uptime calculation
_start_time = time.time()


@router.get("/health")
async def health() -> dict[str, Any]:
    """Simple liveness check."""
    return {
        "status": "ok",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
        "uptime_seconds": round(time.time() - _start_time, 1),
    }
