"""Weighted, confidence-scored risk calculation over available signals."""

import logging
import time
from collections import Counter, deque
from datetime import UTC, datetime
from typing import Any

from phishlens.scoring.confidence import ConfidenceCalculator, interpret_confidence
from phishlens.scoring.config_manager import ScoringConfigManager
from phishlens.scoring.models import (
    FALLBACK_CONFIDENCE,
    FALLBACK_CONFIG_ID,
    FALLBACK_SCORE,
    RiskFactor,
    RiskFactorType,
    RiskLevel,
    ScoreBreakdown,
    ScoringConfig,
    ScoringInput,
    ScoringMetadata,
    ScoringResult,
    Thresholds,
)
from phishlens.scoring.normalizer import (
    ScoreNormalizer,
    normalize_ai_confidence,
    to_safety_score,
)

logger = logging.getLogger(__name__)

HISTORY_SIZE = 1000

# Risk implied by an AI scam category when no numeric score is given
SCAM_CATEGORY_RISK: dict[str, float] = {
    "legitimate": 10,
    "financial": 80,
    "phishing": 90,
    "ecommerce": 70,
    "social_engineering": 85,
}
UNKNOWN_CATEGORY_RISK = 50.0

# Risk assumed for a missing factor under the "default" strategy
NEUTRAL_RISK = 50.0


def classify(score: float, thresholds: Thresholds) -> RiskLevel:
    """Classify a safety score. Scores at a threshold fall in the safer band."""
    if score >= thresholds.safe_min:
        return RiskLevel.LOW
    if score >= thresholds.caution_min:
        return RiskLevel.MEDIUM
    return RiskLevel.HIGH


def create_fallback_result(
    url: str,
    reason: str = "Insufficient data for scoring",
    processing_time_ms: float = 0.0,
    factors: list[RiskFactorType] | None = None,
) -> ScoringResult:
    """The fixed medium-risk, low-confidence answer used when scoring is impossible."""
    factors = factors if factors is not None else list(ScoringConfig().weights)
    return ScoringResult(
        url=url,
        final_score=FALLBACK_SCORE,
        risk_level=RiskLevel.MEDIUM,
        confidence=FALLBACK_CONFIDENCE,
        risk_factors=[
            RiskFactor(type=f, available=False, description=reason) for f in factors
        ],
        breakdown=ScoreBreakdown(),
        metadata=ScoringMetadata(
            missing_factors=[f.value for f in factors],
            redistributed_weights={},
            normalization_method="none",
            config_used=FALLBACK_CONFIG_ID,
            total_processing_time_ms=round(processing_time_ms, 2),
            timestamp=datetime.now(UTC).isoformat(),
        ),
    )


class ScoringCalculator:
    """
    Combines available signals into a final safety score.

    Internally every factor is a 0-100 risk value. The weighted risk is
    inverted exactly once, by ``to_safety_score``, to produce
    ``final_score`` where higher means safer.
    """

    def __init__(
        self,
        config_manager: ScoringConfigManager | None = None,
        history_size: int = HISTORY_SIZE,
    ):
        self.config_manager = config_manager or ScoringConfigManager()
        self._history: deque[ScoringResult] = deque(maxlen=history_size)

    def calculate_score(
        self,
        scoring_input: ScoringInput,
        experiment_id: str | None = None,
        user_id: str | None = None,
    ) -> ScoringResult:
        start_time = time.perf_counter()

        selection = self.config_manager.select_configuration(
            user_id=user_id, experiment_id=experiment_id
        )
        config = selection.config
        normalizer = ScoreNormalizer(config.normalization)
        confidence_calculator = ConfidenceCalculator(config.confidence_adjustment)

        factors = list(config.weights)
        signals = {f: self._extract(f, scoring_input) for f in factors}
        available = [f for f in factors if signals[f] is not None]
        missing = [f for f in factors if signals[f] is None]

        if not available or sum(config.weights[f] for f in available) <= 0:
            logger.warning(f"No usable factors for {scoring_input.url}, returning fallback")
            result = create_fallback_result(
                scoring_input.url,
                reason="No data available",
                processing_time_ms=(time.perf_counter() - start_time) * 1000,
                factors=factors,
            )
            self._history.append(result)
            return result

        used_weights = self._adjusted_weights(config, available, missing)

        raw_scores: dict[str, float] = {}
        normalized: dict[str, float] = {}
        weighted: dict[str, float] = {}
        factor_confidences: dict[RiskFactorType, float] = {}
        risk_factors: list[RiskFactor] = []

        for factor in factors:
            signal = signals[factor]
            weight = used_weights.get(factor, 0.0)

            if signal is None:
                if config.missing_data_strategy == "default":
                    weighted[factor.value] = round(weight * NEUTRAL_RISK, 4)
                risk_factors.append(
                    RiskFactor(
                        type=factor,
                        available=False,
                        weight=round(weight, 4),
                        description=f"{factor.value.replace('_', ' ').capitalize()} data unavailable",
                    )
                )
                continue

            raw, base_confidence, result, description = signal
            norm = normalizer.normalize(factor, raw)
            contribution = weight * norm.normalized
            confidence = confidence_calculator.factor_confidence(
                factor,
                base_confidence,
                processing_time_ms=result.processing_time_ms,
                cache_age_ms=result.cache_age_ms if result.from_cache else None,
                error_count=result.error_count,
            )

            raw_scores[factor.value] = raw
            normalized[factor.value] = round(norm.normalized, 2)
            weighted[factor.value] = round(contribution, 4)
            factor_confidences[factor] = confidence
            risk_factors.append(
                RiskFactor(
                    type=factor,
                    available=True,
                    weight=round(weight, 4),
                    raw_score=raw,
                    normalized_score=round(norm.normalized, 2),
                    weighted_score=round(contribution, 4),
                    confidence=round(confidence, 3),
                    description=description,
                )
            )

        total_weight = sum(used_weights.values())
        weighted_risk = sum(
            used_weights[f] * normalizer.normalize(f, signals[f][0]).normalized
            for f in available
        )
        if config.missing_data_strategy == "default":
            weighted_risk += sum(used_weights[f] * NEUTRAL_RISK for f in missing)
        weighted_risk /= total_weight

        final_score = round(to_safety_score(weighted_risk), 2)
        risk_level = classify(final_score, config.thresholds)

        confidence = confidence_calculator.calculate(
            factor_confidences, missing, total_factors=len(factors)
        )
        overall = confidence.overall
        if config.missing_data_strategy == "penalty" and missing:
            # missing data counted a second time, never below the floor
            overall = max(
                config.confidence_adjustment.minimum_confidence,
                overall - confidence.missing_penalty,
            )

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        result = ScoringResult(
            url=scoring_input.url,
            final_score=final_score,
            risk_level=risk_level,
            confidence=round(overall, 3),
            risk_factors=risk_factors,
            breakdown=ScoreBreakdown(
                raw_scores=raw_scores,
                normalized_scores=normalized,
                weighted_scores=weighted,
                total_weight=round(total_weight, 4),
            ),
            metadata=ScoringMetadata(
                missing_factors=[f.value for f in missing],
                redistributed_weights={f.value: round(w, 4) for f, w in used_weights.items()},
                normalization_method=config.normalization.method,
                config_used=selection.config_id,
                total_processing_time_ms=round(elapsed_ms, 2),
                timestamp=datetime.now(UTC).isoformat(),
                missing_data_strategy=config.missing_data_strategy,
                weighted_risk=round(weighted_risk, 2),
            ),
        )

        logger.info(
            f"Scored {scoring_input.url}: {final_score} ({risk_level.value}), "
            f"confidence {result.confidence}, missing {result.metadata.missing_factors}"
        )
        self._history.append(result)
        return result

    @staticmethod
    def _adjusted_weights(
        config: ScoringConfig,
        available: list[RiskFactorType],
        missing: list[RiskFactorType],
    ) -> dict[RiskFactorType, float]:
        """Weights actually applied, per missing-data strategy."""
        if config.missing_data_strategy == "default":
            total = sum(config.weights.values())
            return {f: w / total for f, w in config.weights.items()}

        available_total = sum(config.weights[f] for f in available)
        return {f: config.weights[f] / available_total for f in available}

    @staticmethod
    def _extract(
        factor: RiskFactorType, scoring_input: ScoringInput
    ) -> tuple[float, float, Any, str] | None:
        """Return (raw score, provider confidence, signal, description) or None."""
        if factor == RiskFactorType.REPUTATION:
            signal = scoring_input.reputation
            if signal is None or not signal.available:
                return None
            data = signal.data
            if data.is_clean:
                description = "Clean reputation - no threats detected"
            else:
                threats = sorted({m.threat_type for m in data.threat_matches})
                description = f"{len(data.threat_matches)} threat(s) detected: {', '.join(threats)}"
            return data.score, data.confidence, signal, description

        if factor == RiskFactorType.DOMAIN_AGE:
            signal = scoring_input.whois
            if signal is None or not signal.available:
                return None
            data = signal.data
            return data.score, data.confidence, signal, _describe_domain_age(data.age_in_days)

        if factor == RiskFactorType.SSL_CERTIFICATE:
            signal = scoring_input.ssl
            if signal is None or not signal.available:
                return None
            data = signal.data
            return data.score, data.confidence, signal, _describe_certificate(data)

        if factor == RiskFactorType.AI_ANALYSIS:
            signal = scoring_input.ai
            if signal is None or not signal.available:
                return None
            data = signal.data
            raw = data.risk_score
            if raw is None:
                raw = SCAM_CATEGORY_RISK.get(data.scam_category, UNKNOWN_CATEGORY_RISK)
            description = f"AI analysis: {data.scam_category.replace('_', ' ')} ({raw:.0f}/100 risk)"
            return raw, normalize_ai_confidence(data.confidence), signal, description

        # no provider feeds technical indicators into ScoringInput
        return None

    # Bookkeeping

    def get_statistics(self) -> dict[str, Any]:
        history = list(self._history)
        total = len(history)
        if not total:
            return {
                "total_calculations": 0,
                "average_processing_time_ms": 0.0,
                "average_score": 0.0,
                "average_confidence": 0.0,
                "score_distribution": {level.value: 0 for level in RiskLevel},
                "factor_availability": {},
                "confidence_distribution": {},
                "fallback_count": 0,
            }

        levels = Counter(r.risk_level.value for r in history)
        confidence_bands = Counter(interpret_confidence(r.confidence).level for r in history)
        availability: Counter[str] = Counter()
        seen: Counter[str] = Counter()
        for r in history:
            for factor in r.risk_factors:
                seen[factor.type.value] += 1
                if factor.available:
                    availability[factor.type.value] += 1

        return {
            "total_calculations": total,
            "average_processing_time_ms": round(
                sum(r.metadata.total_processing_time_ms for r in history) / total, 2
            ),
            "average_score": round(sum(r.final_score for r in history) / total, 2),
            "average_confidence": round(sum(r.confidence for r in history) / total, 3),
            "score_distribution": {level.value: levels.get(level.value, 0) for level in RiskLevel},
            "factor_availability": {
                name: round(availability[name] / count * 100, 1) for name, count in seen.items()
            },
            "confidence_distribution": dict(confidence_bands),
            "fallback_count": sum(1 for r in history if r.is_fallback),
        }

    def clear_history(self) -> None:
        self._history.clear()

    def update_configuration(self, partial: dict[str, Any]) -> None:
        self.config_manager.update_config(partial)


def _describe_domain_age(age_in_days: int | None) -> str:
    if age_in_days is None:
        return "Domain age unknown"
    if age_in_days < 30:
        return f"Very new domain ({age_in_days} days old)"
    if age_in_days < 90:
        return f"Recently registered domain ({age_in_days} days old)"
    if age_in_days < 365:
        return f"Domain registered {age_in_days} days ago"
    return f"Established domain ({age_in_days / 365:.1f} years old)"


def _describe_certificate(data) -> str:
    validation = data.validation
    if validation.is_expired:
        return "Certificate has expired"
    if validation.is_self_signed:
        return "Self-signed certificate"
    if not validation.is_valid:
        return "Invalid certificate"
    if data.security.encryption_strength == "weak":
        return "Valid certificate with weak cryptography"
    return f"Valid {data.certificate_type} certificate ({data.days_until_expiry} days until expiry)"
