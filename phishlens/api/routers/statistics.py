"""Statistics and maintenance endpoints."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from phishlens.api.dependencies import get_orchestrator
from phishlens.api.schemas import ConfigurationUpdate
from phishlens.exceptions import ConfigurationError
from phishlens.orchestration.orchestrator import AnalysisOrchestrator

router = APIRouter(tags=["statistics"])


@router.get("/statistics")
async def get_statistics(
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Rolling analysis statistics plus scoring statistics."""
    return {
        "orchestration": orchestrator.get_statistics(),
        "scoring": orchestrator.scoring_calculator.get_statistics(),
    }


@router.put("/configuration")
async def update_configuration(
    update: ConfigurationUpdate,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Apply orchestration and scoring overrides. Invalid values are rejected as a whole."""
    partial = dict(update.settings)
    if update.scoring:
        partial["scoring"] = update.scoring
    try:
        orchestrator.update_configuration(partial)
    except ConfigurationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"errors": e.errors, "warnings": e.warnings},
        ) from e

    manager = orchestrator.scoring_calculator.config_manager
    return {
        "config_hash": manager.get_config_hash(),
        "scoring": manager.config.to_dict(),
    }


@router.delete("/history", status_code=status.HTTP_204_NO_CONTENT)
async def clear_history(
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
) -> None:
    orchestrator.clear_history()


@router.delete("/cache", status_code=status.HTTP_204_NO_CONTENT)
async def clear_cache(
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
) -> None:
    await orchestrator.clear_cache()
