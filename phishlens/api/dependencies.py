"""FastAPI dependencies."""

import logging

from phishlens.config import settings
from phishlens.orchestration.factory import create_orchestrator
from phishlens.orchestration.orchestrator import AnalysisOrchestrator

logger = logging.getLogger(__name__)

# One orchestrator per process, shared by every request
_orchestrator: dict[str, AnalysisOrchestrator] = {}


def get_orchestrator() -> AnalysisOrchestrator:
    """Get the process-wide orchestrator dependency."""
    if "default" not in _orchestrator:
        _orchestrator["default"] = create_orchestrator(settings)
    return _orchestrator["default"]


def start_cache_maintenance() -> None:
    """Sweep expired cache entries in the background."""
    orchestrator = get_orchestrator()
    for provider in orchestrator.providers.configured().values():
        cache = getattr(provider, "cache", None)
        if cache is not None:
            # providers share one backend, sweeping through one manager is enough
            cache.start_background_cleanup(settings.cache_cleanup_interval)
            break


async def close_orchestrator() -> None:
    orchestrator = _orchestrator.pop("default", None)
    if orchestrator is None:
        return
    for provider in orchestrator.providers.configured().values():
        cache = getattr(provider, "cache", None)
        if cache is not None:
            await cache.stop_background_cleanup()
    await orchestrator.aclose()
    logger.info("Orchestrator closed")
