"""Confidence calculation from factor availability and data quality."""

import logging
from dataclasses import dataclass, field

from phishlens.scoring.models import ConfidenceAdjustment, RiskFactorType

logger = logging.getLogger(__name__)

HOUR_MS = 60 * 60 * 1000

# (optimal, max) processing time in milliseconds
EXPECTED_LATENCY_MS: dict[RiskFactorType, tuple[float, float]] = {
    RiskFactorType.REPUTATION: (1000, 5000),
    RiskFactorType.DOMAIN_AGE: (2000, 10000),
    RiskFactorType.SSL_CERTIFICATE: (3000, 15000),
    RiskFactorType.AI_ANALYSIS: (5000, 30000),
    RiskFactorType.TECHNICAL_INDICATORS: (500, 2000),
}

# (fresh, stale) cache age in milliseconds
CACHE_FRESHNESS_MS: dict[RiskFactorType, tuple[float, float]] = {
    RiskFactorType.REPUTATION: (1 * HOUR_MS, 24 * HOUR_MS),
    RiskFactorType.DOMAIN_AGE: (24 * HOUR_MS, 7 * 24 * HOUR_MS),
    RiskFactorType.SSL_CERTIFICATE: (6 * HOUR_MS, 48 * HOUR_MS),
    RiskFactorType.AI_ANALYSIS: (0.5 * HOUR_MS, 6 * HOUR_MS),
    RiskFactorType.TECHNICAL_INDICATORS: (5 * 60 * 1000, 1 * HOUR_MS),
}

HIGH_VALUE_FACTORS = frozenset({RiskFactorType.REPUTATION, RiskFactorType.AI_ANALYSIS})

MIN_FACTOR_CONFIDENCE = 0.1
MAX_ERROR_PENALTY = 0.3


@dataclass(frozen=True)
class ConfidenceResult:
    overall: float
    base: float
    missing_penalty: float
    quality_adjustment: float
    factor_confidences: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class ConfidenceInterpretation:
    level: str  # high, medium, low, very_low
    description: str
    recommendations: list[str]


_INTERPRETATIONS = [
    (
        0.8,
        ConfidenceInterpretation(
            level="high",
            description="High confidence: the analysis is based on comprehensive, reliable data.",
            recommendations=[
                "Results can be acted on automatically",
                "Suitable for automated blocking or allowing decisions",
            ],
        ),
    ),
    (
        0.6,
        ConfidenceInterpretation(
            level="medium",
            description="Medium confidence: the analysis is reasonably reliable with some data gaps.",
            recommendations=[
                "Spot-check results before acting on them",
                "Consider re-running the analysis when more data sources are available",
            ],
        ),
    ),
    (
        0.4,
        ConfidenceInterpretation(
            level="low",
            description="Low confidence: significant data is missing or of poor quality.",
            recommendations=[
                "Manual review recommended before making decisions",
                "Check which data sources failed and retry",
            ],
        ),
    ),
]

_VERY_LOW = ConfidenceInterpretation(
    level="very_low",
    description="Very low confidence: too little reliable data to support a decision.",
    recommendations=[
        "Defer any decision until more data is available",
        "Treat the score as indicative only",
    ],
)


def interpret_confidence(value: float) -> ConfidenceInterpretation:
    """Map a 0-1 confidence onto a qualitative band."""
    for lower_bound, interpretation in _INTERPRETATIONS:
        if value >= lower_bound:
            return interpretation
    return _VERY_LOW


class ConfidenceCalculator:
    """Turns per-factor confidences and data-quality signals into one value."""

    def __init__(self, adjustment: ConfidenceAdjustment | None = None):
        self.adjustment = adjustment or ConfidenceAdjustment()

    def factor_confidence(
        self,
        factor: RiskFactorType,
        base_confidence: float,
        processing_time_ms: float | None = None,
        cache_age_ms: float | None = None,
        error_count: int = 0,
    ) -> float:
        """Adjust a provider-reported confidence for latency, staleness and errors."""
        confidence = base_confidence

        if processing_time_ms is not None:
            confidence += self._latency_adjustment(factor, processing_time_ms)
        if cache_age_ms is not None:
            confidence += self._cache_age_adjustment(factor, cache_age_ms)
        if error_count > 0:
            confidence -= min(0.05 * error_count, MAX_ERROR_PENALTY)

        return max(MIN_FACTOR_CONFIDENCE, min(1.0, confidence))

    @staticmethod
    def _latency_adjustment(factor: RiskFactorType, elapsed_ms: float) -> float:
        optimal, maximum = EXPECTED_LATENCY_MS[factor]
        if elapsed_ms <= optimal:
            return 0.02
        if elapsed_ms <= maximum:
            return 0.0
        return -0.05 * min(elapsed_ms / maximum, 3)

    @staticmethod
    def _cache_age_adjustment(factor: RiskFactorType, age_ms: float) -> float:
        fresh, stale = CACHE_FRESHNESS_MS[factor]
        if age_ms <= fresh:
            return 0.01
        if age_ms <= stale:
            return -0.05 * (age_ms - fresh) / (stale - fresh)
        return -0.1

    def calculate(
        self,
        factor_confidences: dict[RiskFactorType, float],
        missing_factors: list[RiskFactorType],
        total_factors: int,
    ) -> ConfidenceResult:
        """
        Compute overall confidence.

        The base is a weighted mean of the factor confidences sorted in
        descending order, the i-th (from 0) weighted by ``2 ** (n - i)``.
        A progressive penalty is subtracted per missing factor and a small
        quality adjustment applied. The result never drops below the
        configured minimum confidence.
        """
        minimum = self.adjustment.minimum_confidence
        values = sorted(factor_confidences.values(), reverse=True)
        n = len(values)

        if n:
            weights = [2 ** (n - i) for i in range(n)]
            base = sum(w * c for w, c in zip(weights, values, strict=True)) / sum(weights)
        else:
            base = minimum

        missing = len(missing_factors)
        penalty = 0.0
        if missing and total_factors:
            penalty = (
                self.adjustment.missing_factor_penalty
                * missing
                * (1 + missing / total_factors)
            )

        adjustment = 0.0
        if factor_confidences.keys() & HIGH_VALUE_FACTORS:
            adjustment += 0.05
        if n:
            mean = sum(values) / n
            variance = sum((c - mean) ** 2 for c in values) / n
            if mean > 0.8:
                adjustment += 0.03
            if variance > 0.1:
                adjustment -= 0.02

        overall = max(minimum, min(1.0, base - penalty + adjustment))
        overall = max(0.0, min(1.0, overall))

        logger.debug(
            f"Confidence base={base:.3f} penalty={penalty:.3f} "
            f"adjustment={adjustment:+.3f} overall={overall:.3f}"
        )

        return ConfidenceResult(
            overall=overall,
            base=base,
            missing_penalty=penalty,
            quality_adjustment=adjustment,
            factor_confidences={f.value: c for f, c in factor_confidences.items()},
        )

    def interpret_confidence(self, value: float) -> ConfidenceInterpretation:
        return interpret_confidence(value)
