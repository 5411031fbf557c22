"""URL analysis endpoint."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from phishlens.api.dependencies import get_orchestrator
from phishlens.api.schemas import UrlAnalysisRequest, UrlAnalysisResponse
from phishlens.metrics import ANALYSIS_COUNT
from phishlens.orchestration.orchestrator import AnalysisOrchestrator, OrchestrationResult
from phishlens.scoring.confidence import interpret_confidence
from phishlens.validation.url_validator import validate_url

logger = logging.getLogger(__name__)

router = APIRouter(tags=["analysis"])


def to_response(result: OrchestrationResult) -> UrlAnalysisResponse:
    data = result.to_dict()
    scoring = data["scoring"]
    interpretation = interpret_confidence(result.scoring.confidence)
    return UrlAnalysisResponse(
        url=result.url,
        normalized_url=result.normalized_url,
        final_score=scoring["final_score"],
        risk_level=scoring["risk_level"],
        confidence=scoring["confidence"],
        confidence_level=interpretation.level,
        recommendations=interpretation.recommendations,
        fallback=result.scoring.is_fallback,
        risk_factors=scoring["risk_factors"],
        breakdown=scoring["breakdown"],
        metadata=scoring["metadata"],
        service_results=data["service_results"],
        orchestration_metrics=data["orchestration_metrics"],
    )


@router.post("/analyze", response_model=UrlAnalysisResponse)
async def analyze_url(
    request: UrlAnalysisRequest,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
) -> UrlAnalysisResponse:
    """
    Analyze a URL and return a weighted, confidence-scored verdict.

    The signals checked are reputation lists, domain registration age,
    the TLS certificate and AI content analysis.

    ``final_score`` is a safety score: higher means safer. A URL scoring
    at or above the configured ``safe_min`` is low risk, at or above
    ``caution_min`` medium risk, and anything lower high risk. When too few
    signals are available the response is the fallback verdict (score 50,
    medium risk, low confidence) with ``fallback`` set.
    """
    validation = validate_url(request.url)
    if not validation.is_valid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid URL ({validation.error_type}): {validation.error}",
        )

    result = await orchestrator.analyze_url(
        request.url,
        force_refresh=request.force_refresh,
        experiment_id=request.experiment_id,
        user_id=request.user_id,
    )

    ANALYSIS_COUNT.labels(risk_level=result.scoring.risk_level.value).inc()
    return to_response(result)
