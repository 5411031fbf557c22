"""Scoring engine: configuration, normalization, confidence and calculation."""

from phishlens.scoring.calculator import ScoringCalculator, classify, create_fallback_result
from phishlens.scoring.confidence import ConfidenceCalculator, interpret_confidence
from phishlens.scoring.config_manager import ScoringConfigManager, config_hash, fnv1a_32
from phishlens.scoring.models import (
    RiskFactorType,
    RiskLevel,
    ScoringConfig,
    ScoringInput,
    ScoringResult,
)
from phishlens.scoring.normalizer import ScoreNormalizer, to_safety_score

__all__ = [
    "ConfidenceCalculator",
    "RiskFactorType",
    "RiskLevel",
    "ScoreNormalizer",
    "ScoringCalculator",
    "ScoringConfig",
    "ScoringConfigManager",
    "ScoringInput",
    "ScoringResult",
    "classify",
    "config_hash",
    "create_fallback_result",
    "fnv1a_32",
    "interpret_confidence",
    "to_safety_score",
]
