"""Pydantic schemas for API request/response models."""

from typing import Any

from pydantic import BaseModel, Field


class UrlAnalysisRequest(BaseModel):
    """Request schema for URL analysis."""

    url: str = Field(
        ...,
        description="URL to analyze",
        examples=["https://example.com", "http://suspicious-site.evil.com"],
    )
    force_refresh: bool = Field(False, description="Bypass cached signals")
    experiment_id: str | None = Field(None, description="Scoring experiment to apply")
    user_id: str | None = Field(None, description="Caller id used for experiment bucketing")


class RiskFactorSchema(BaseModel):
    type: str
    available: bool
    description: str
    weight: float = 0.0
    raw_score: float | None = None
    normalized_score: float | None = Field(None, description="Normalized risk (0-100)")
    weighted_score: float | None = None
    confidence: float | None = None


class ServiceResultSchema(BaseModel):
    success: bool
    processing_time_ms: float
    from_cache: bool = False
    attempts: int = 0
    error: dict[str, Any] | None = None


class UrlAnalysisResponse(BaseModel):
    """
    Response schema for URL analysis.

    ``final_score`` is a SAFETY score: 100 is safest and 0 most dangerous.
    ``breakdown`` values are on the internal risk scale, where higher
    means more dangerous.
    """

    url: str = Field(..., description="Original URL analyzed")
    normalized_url: str | None = None
    final_score: float = Field(
        ..., ge=0, le=100, description="Safety score, higher is safer (0-100)"
    )
    risk_level: str = Field(..., description="low, medium or high")
    confidence: float = Field(..., ge=0, le=1, description="Overall confidence (0-1)")
    confidence_level: str = Field(..., description="high, medium, low or very_low")
    recommendations: list[str] = Field(default_factory=list)
    fallback: bool = Field(False, description="True when too little data was available")
    risk_factors: list[RiskFactorSchema] = Field(default_factory=list)
    breakdown: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    service_results: dict[str, ServiceResultSchema] = Field(default_factory=dict)
    orchestration_metrics: dict[str, Any] = Field(default_factory=dict)


class ConfigurationUpdate(BaseModel):
    """Orchestration overrides plus an optional partial scoring config."""

    settings: dict[str, Any] = Field(default_factory=dict)
    scoring: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    code: int
    message: str
    type: str
    details: list[Any] | None = None
