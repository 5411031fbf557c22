"""Score normalization onto the canonical 0-100 risk scale."""

import logging
import math
from dataclasses import dataclass

from phishlens.scoring.models import (
    MAX_SCORE,
    MIN_SCORE,
    NormalizationConfig,
    RiskFactorType,
)

logger = logging.getLogger(__name__)

DEFAULT_SIGMOID_STEEPNESS = 0.1
DEFAULT_SIGMOID_MIDPOINT = 50.0

# Upper bound of each provider's native risk scale
NATIVE_SCALE_MAX: dict[RiskFactorType, float] = {
    RiskFactorType.REPUTATION: 100.0,
    RiskFactorType.DOMAIN_AGE: 1.0,
    RiskFactorType.SSL_CERTIFICATE: 100.0,
    RiskFactorType.AI_ANALYSIS: 100.0,
    RiskFactorType.TECHNICAL_INDICATORS: 100.0,
}


def clamp(value: float, low: float = MIN_SCORE, high: float = MAX_SCORE) -> float:
    return max(low, min(high, value))


def to_safety_score(risk: float) -> float:
    """
    Convert a 0-100 risk value into the public 0-100 safety score.

    This is the only place where the risk scale is inverted.
    """
    return MAX_SCORE - clamp(risk)


def normalize_ai_confidence(value: float) -> float:
    """Bring the AI provider's 0-100 confidence onto 0-1."""
    return clamp(value / 100, 0.0, 1.0)


@dataclass(frozen=True)
class NormalizationResult:
    original: float
    risk_scale: float
    normalized: float
    method: str


class ScoreNormalizer:
    """Maps raw provider scores to normalized 0-100 risk."""

    def __init__(self, config: NormalizationConfig | None = None):
        self.config = config or NormalizationConfig()

    @staticmethod
    def to_risk_scale(factor: RiskFactorType, raw: float) -> float:
        """Rescale a native provider score to 0-100 risk."""
        scale = NATIVE_SCALE_MAX.get(factor, 100.0)
        return clamp(raw * (MAX_SCORE / scale))

    def normalize(self, factor: RiskFactorType, raw: float) -> NormalizationResult:
        risk = self.to_risk_scale(factor, raw)
        method = self.config.method

        if method == "logarithmic":
            normalized = self._logarithmic(risk)
        elif method == "sigmoid":
            normalized = self._sigmoid(risk)
        else:
            normalized = risk

        return NormalizationResult(
            original=raw, risk_scale=risk, normalized=clamp(normalized), method=method
        )

    @staticmethod
    def _logarithmic(value: float) -> float:
        # 0 -> 0 and 100 -> 100, compressing the upper range
        return 100 * math.log1p(value / 10) / math.log(11)

    def _sigmoid(self, value: float) -> float:
        params = self.config.parameters
        steepness = params.get("steepness", DEFAULT_SIGMOID_STEEPNESS)
        midpoint = params.get("midpoint", DEFAULT_SIGMOID_MIDPOINT)
        return 100 / (1 + math.exp(-steepness * (value - midpoint)))
