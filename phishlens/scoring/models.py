"""Data model shared by the scoring components."""

from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any

from phishlens.exceptions import ConfigurationError
from phishlens.providers.models import (
    AIAnalysisResult,
    DomainAgeAnalysis,
    ReputationAnalysis,
    SSLCertificateAnalysis,
)
from phishlens.providers.protocol import SignalResult


class RiskFactorType(str, Enum):
    """Independent risk signals. Every weight table is keyed by these."""

    REPUTATION = "reputation"
    DOMAIN_AGE = "domain_age"
    SSL_CERTIFICATE = "ssl_certificate"
    AI_ANALYSIS = "ai_analysis"
    TECHNICAL_INDICATORS = "technical_indicators"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Configuration constraints
MIN_WEIGHT = 0.0
MAX_WEIGHT = 1.0
TOTAL_WEIGHT_TOLERANCE = 0.01
MIN_SCORE = 0
MAX_SCORE = 100
MIN_THRESHOLD_SEPARATION = 5

NORMALIZATION_METHODS = ("linear", "logarithmic", "sigmoid")
MISSING_DATA_STRATEGIES = ("redistribute", "penalty", "default")

# Fixed answer when there is too little data to score
FALLBACK_SCORE = 50.0
FALLBACK_CONFIDENCE = 0.3
FALLBACK_CONFIG_ID = "fallback"


@dataclass(frozen=True)
class Thresholds:
    """Classification thresholds on the safety scale (higher = safer)."""

    safe_min: float = 70
    caution_min: float = 30
    danger_max: float = 20


@dataclass(frozen=True)
class ConfidenceAdjustment:
    missing_factor_penalty: float = 0.1
    minimum_confidence: float = 0.5


@dataclass(frozen=True)
class NormalizationConfig:
    method: str = "linear"
    parameters: dict[str, float] = field(default_factory=dict)


def _default_weights() -> dict[RiskFactorType, float]:
    return {
        RiskFactorType.REPUTATION: 0.40,
        RiskFactorType.DOMAIN_AGE: 0.25,
        RiskFactorType.SSL_CERTIFICATE: 0.20,
        RiskFactorType.AI_ANALYSIS: 0.15,
    }


@dataclass(frozen=True)
class ScoringConfig:
    """
    Complete scoring configuration.

    Instances are never validated on construction; the configuration
    manager decides whether a config may be used.
    """

    weights: dict[RiskFactorType, float] = field(default_factory=_default_weights)
    thresholds: Thresholds = field(default_factory=Thresholds)
    missing_data_strategy: str = "redistribute"
    confidence_adjustment: ConfidenceAdjustment = field(
        default_factory=ConfidenceAdjustment
    )
    normalization: NormalizationConfig = field(default_factory=NormalizationConfig)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["weights"] = {factor.value: w for factor, w in self.weights.items()}
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScoringConfig":
        """Build a config from plain data, as found in YAML or JSON."""
        errors: list[str] = []
        defaults = cls()
        known = {f.name for f in fields(cls)}
        errors.extend(
            f"Unknown configuration section: {key}" for key in data if key not in known
        )

        weights: dict[RiskFactorType, float] = {}
        for key, value in (data.get("weights") or {}).items():
            try:
                factor = RiskFactorType(key)
            except ValueError:
                errors.append(f"Unknown risk factor: {key}")
                continue
            try:
                weights[factor] = float(value)
            except (TypeError, ValueError):
                errors.append(f"Weight for {key} is not a number: {value!r}")

        try:
            thresholds = Thresholds(
                **{
                    k: float(v)
                    for k, v in (data.get("thresholds") or asdict(defaults.thresholds)).items()
                }
            )
            adjustment = ConfidenceAdjustment(
                **{
                    k: float(v)
                    for k, v in (
                        data.get("confidence_adjustment")
                        or asdict(defaults.confidence_adjustment)
                    ).items()
                }
            )
            normalization_data = data.get("normalization") or {}
            normalization = NormalizationConfig(
                method=str(normalization_data.get("method", "linear")),
                parameters={
                    k: float(v)
                    for k, v in (normalization_data.get("parameters") or {}).items()
                },
            )
        except (TypeError, ValueError) as e:
            errors.append(f"Malformed configuration section: {e}")

        if errors:
            raise ConfigurationError(errors)

        return cls(
            weights=weights if "weights" in data else defaults.weights,
            thresholds=thresholds,
            missing_data_strategy=str(
                data.get("missing_data_strategy", defaults.missing_data_strategy)
            ),
            confidence_adjustment=adjustment,
            normalization=normalization,
        )

    def merged(self, partial: dict[str, Any] | None) -> "ScoringConfig":
        """Overlay a partial config section by section."""
        if not partial:
            return self
        data = self.to_dict()
        for section, value in partial.items():
            if isinstance(value, dict) and isinstance(data.get(section), dict):
                data[section] = {**data[section], **value}
            else:
                data[section] = value
        return ScoringConfig.from_dict(data)


@dataclass(frozen=True)
class ScoringInput:
    """
    Signals collected for one URL.

    A field left as None, or holding a failed result, means the factor
    is unavailable. It never means zero risk.
    """

    url: str
    reputation: SignalResult[ReputationAnalysis] | None = None
    whois: SignalResult[DomainAgeAnalysis] | None = None
    ssl: SignalResult[SSLCertificateAnalysis] | None = None
    ai: SignalResult[AIAnalysisResult] | None = None


@dataclass(frozen=True)
class RiskFactor:
    type: RiskFactorType
    available: bool
    description: str
    weight: float = 0.0
    raw_score: float | None = None
    normalized_score: float | None = None
    weighted_score: float | None = None
    confidence: float | None = None


@dataclass(frozen=True)
class ScoreBreakdown:
    raw_scores: dict[str, float] = field(default_factory=dict)
    normalized_scores: dict[str, float] = field(default_factory=dict)
    weighted_scores: dict[str, float] = field(default_factory=dict)
    total_weight: float = 0.0


@dataclass(frozen=True)
class ScoringMetadata:
    missing_factors: list[str]
    redistributed_weights: dict[str, float]
    normalization_method: str
    config_used: str
    total_processing_time_ms: float
    timestamp: str
    missing_data_strategy: str = "redistribute"
    weighted_risk: float | None = None


@dataclass(frozen=True)
class ScoringResult:
    """
    Outcome of scoring one URL.

    ``final_score`` is on the safety scale: 0 is most dangerous and 100
    is safest.
    """

    url: str
    final_score: float
    risk_level: RiskLevel
    confidence: float
    risk_factors: list[RiskFactor]
    breakdown: ScoreBreakdown
    metadata: ScoringMetadata

    @property
    def is_fallback(self) -> bool:
        return self.metadata.config_used == FALLBACK_CONFIG_ID

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["risk_level"] = self.risk_level.value
        for factor in data["risk_factors"]:
            factor["type"] = factor["type"].value
        return data
