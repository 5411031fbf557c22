"""Scoring configuration: validation, A/B experiments and audit history."""

import json
import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml

from phishlens.exceptions import ConfigurationError
from phishlens.scoring.models import (
    MAX_SCORE,
    MAX_WEIGHT,
    MIN_SCORE,
    MIN_THRESHOLD_SEPARATION,
    MIN_WEIGHT,
    MISSING_DATA_STRATEGIES,
    NORMALIZATION_METHODS,
    TOTAL_WEIGHT_TOLERANCE,
    ScoringConfig,
)

logger = logging.getLogger(__name__)

FNV_OFFSET_BASIS = 2166136261
FNV_PRIME = 16777619
HISTORY_SIZE = 10

HIGH_WEIGHT_WARNING = 0.6
LOW_WEIGHT_WARNING = 0.05
HIGH_PENALTY_WARNING = 0.3
LOW_MIN_CONFIDENCE_WARNING = 0.3


def fnv1a_32(text: str) -> str:
    """32-bit FNV-1a hash as 8 lower-case hex characters."""
    h = FNV_OFFSET_BASIS
    for byte in text.encode("utf-8"):
        h ^= byte
        h = (h * FNV_PRIME) & 0xFFFFFFFF
    return f"{h:08x}"


def config_hash(config: ScoringConfig) -> str:
    """Stable identifier for a config, independent of key insertion order."""
    canonical = json.dumps(config.to_dict(), sort_keys=True, separators=(",", ":"))
    return fnv1a_32(canonical)


@dataclass(frozen=True)
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class Experiment:
    id: str
    config: ScoringConfig
    traffic_allocation: float
    start_date: datetime
    end_date: datetime
    name: str = ""

    def is_active(self, now: datetime) -> bool:
        return self.start_date <= now <= self.end_date


@dataclass(frozen=True)
class ConfigHistoryEntry:
    config: ScoringConfig
    timestamp: datetime
    tag: str  # "initial", "update" or an experiment id


@dataclass(frozen=True)
class ConfigSelection:
    """The config chosen for one request and its identifier."""

    config: ScoringConfig
    config_id: str
    experiment_id: str | None = None


def validate_config(config: ScoringConfig) -> ValidationReport:
    """Check every configuration rule, collecting all violations."""
    errors: list[str] = []
    warnings: list[str] = []

    # Weights
    if not config.weights:
        errors.append("At least one factor weight is required")
    for factor, weight in config.weights.items():
        if not MIN_WEIGHT <= weight <= MAX_WEIGHT:
            errors.append(
                f"Weight for {factor.value} must be between {MIN_WEIGHT} and {MAX_WEIGHT}, got {weight}"
            )
        elif weight > HIGH_WEIGHT_WARNING:
            warnings.append(f"Weight for {factor.value} ({weight}) is high and may bias scoring")
        elif weight < LOW_WEIGHT_WARNING:
            warnings.append(f"Weight for {factor.value} ({weight}) is low and the factor may be ignored")

    total = sum(config.weights.values())
    if config.weights and abs(total - 1.0) > TOTAL_WEIGHT_TOLERANCE:
        errors.append(
            f"Weights must sum to 1.0 (±{TOTAL_WEIGHT_TOLERANCE}), got {total:.4f}"
        )

    # Thresholds, on the safety scale
    t = config.thresholds
    for name, value in (
        ("safe_min", t.safe_min),
        ("caution_min", t.caution_min),
        ("danger_max", t.danger_max),
    ):
        if not MIN_SCORE <= value <= MAX_SCORE:
            errors.append(f"Threshold {name} must be between {MIN_SCORE} and {MAX_SCORE}, got {value}")

    if not t.danger_max < t.caution_min < t.safe_min:
        errors.append(
            "Thresholds must be ordered danger_max < caution_min < safe_min, got "
            f"{t.danger_max} / {t.caution_min} / {t.safe_min}"
        )
    else:
        if t.caution_min - t.danger_max - 1 < MIN_THRESHOLD_SEPARATION:
            warnings.append(
                f"Gap between danger_max and caution_min is below {MIN_THRESHOLD_SEPARATION}; "
                "classification may flap near the boundary"
            )
        if t.safe_min - t.caution_min < MIN_THRESHOLD_SEPARATION:
            warnings.append(
                f"Gap between caution_min and safe_min is below {MIN_THRESHOLD_SEPARATION}; "
                "classification may flap near the boundary"
            )

    # Missing data and confidence
    if config.missing_data_strategy not in MISSING_DATA_STRATEGIES:
        errors.append(
            f"Unknown missing data strategy {config.missing_data_strategy!r}, "
            f"expected one of {', '.join(MISSING_DATA_STRATEGIES)}"
        )

    adj = config.confidence_adjustment
    if not 0 <= adj.missing_factor_penalty <= 1:
        errors.append("missing_factor_penalty must be between 0 and 1")
    elif adj.missing_factor_penalty > HIGH_PENALTY_WARNING:
        warnings.append("High missing_factor_penalty may overly reduce confidence")
    if not 0 <= adj.minimum_confidence <= 1:
        errors.append("minimum_confidence must be between 0 and 1")
    elif adj.minimum_confidence < LOW_MIN_CONFIDENCE_WARNING:
        warnings.append("Low minimum_confidence may report unreliable results as usable")

    # Normalization
    norm = config.normalization
    if norm.method not in NORMALIZATION_METHODS:
        errors.append(
            f"Unknown normalization method {norm.method!r}, "
            f"expected one of {', '.join(NORMALIZATION_METHODS)}"
        )
    elif norm.method == "sigmoid":
        steepness = norm.parameters.get("steepness")
        midpoint = norm.parameters.get("midpoint")
        if steepness is not None and not 0 < steepness <= 10:
            errors.append("Sigmoid steepness must be in (0, 10]")
        if midpoint is not None and not 0 <= midpoint <= 100:
            errors.append("Sigmoid midpoint must be in [0, 100]")

    return ValidationReport(errors=errors, warnings=warnings)


class ScoringConfigManager:
    """
    Holds the active scoring configuration and any registered experiments.

    Configuration selection is a pure function of the registered
    experiments, the user id, the requested experiment id and the current
    time, so two managers with the same state always agree.
    """

    def __init__(
        self,
        config: ScoringConfig | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        config = config or ScoringConfig()
        report = validate_config(config)
        if not report.is_valid:
            raise ConfigurationError(report.errors, report.warnings)
        for warning in report.warnings:
            logger.warning(f"Scoring config: {warning}")

        self._clock = clock
        self._config = config
        self._experiments: dict[str, Experiment] = {}
        self._history: deque[ConfigHistoryEntry] = deque(maxlen=HISTORY_SIZE)
        self._record(config, "initial")

    @classmethod
    def from_yaml(cls, path: str | Path, **kwargs: Any) -> "ScoringConfigManager":
        """Load a (possibly partial) scoring config from a YAML file."""
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError([f"Cannot load scoring config {path}: {e}"]) from e

        if not isinstance(data, dict):
            raise ConfigurationError([f"Scoring config {path} must be a mapping"])

        logger.info(f"Loaded scoring configuration from {path}")
        return cls(ScoringConfig().merged(data), **kwargs)

    @property
    def config(self) -> ScoringConfig:
        return self._config

    def _record(self, config: ScoringConfig, tag: str) -> None:
        self._history.append(ConfigHistoryEntry(config, self._clock(), tag))

    def validate_config(self, config: ScoringConfig) -> ValidationReport:
        return validate_config(config)

    def update_config(self, partial: dict[str, Any]) -> ValidationReport:
        """
        Merge ``partial`` over the active config and apply it.

        Raises ConfigurationError with every violated rule if the merged
        config is invalid. The active config is left unchanged in that case.
        """
        candidate = self._config.merged(partial)
        report = validate_config(candidate)
        if not report.is_valid:
            logger.error(f"Rejected scoring config update: {report.errors}")
            raise ConfigurationError(report.errors, report.warnings)

        for warning in report.warnings:
            logger.warning(f"Scoring config: {warning}")

        self._config = candidate
        self._record(candidate, "update")
        logger.info(f"Scoring configuration updated to {config_hash(candidate)}")
        return report

    def reset_to_defaults(self) -> None:
        self._config = ScoringConfig()
        self._record(self._config, "update")

    # Experiments

    def register_experiment(
        self,
        experiment_id: str,
        config: dict[str, Any],
        traffic_allocation: float,
        start_date: datetime,
        end_date: datetime,
        name: str = "",
    ) -> bool:
        """Register an A/B experiment whose partial config overlays the defaults."""
        if not 0 <= traffic_allocation <= 1:
            logger.error(f"Experiment {experiment_id}: traffic allocation must be in [0, 1]")
            return False
        if end_date < start_date:
            logger.error(f"Experiment {experiment_id}: end date precedes start date")
            return False

        try:
            merged = ScoringConfig().merged(config)
        except ConfigurationError as e:
            logger.error(f"Experiment {experiment_id}: {e.errors}")
            return False

        report = validate_config(merged)
        if not report.is_valid:
            logger.error(f"Experiment {experiment_id} has an invalid config: {report.errors}")
            return False

        self._experiments[experiment_id] = Experiment(
            id=experiment_id,
            config=merged,
            traffic_allocation=traffic_allocation,
            start_date=start_date,
            end_date=end_date,
            name=name or experiment_id,
        )
        self._record(merged, experiment_id)
        logger.info(f"Registered experiment {experiment_id} ({traffic_allocation:.0%} traffic)")
        return True

    def remove_experiment(self, experiment_id: str) -> bool:
        return self._experiments.pop(experiment_id, None) is not None

    def get_experiment_config(self, experiment_id: str) -> ScoringConfig | None:
        experiment = self._experiments.get(experiment_id)
        return experiment.config if experiment else None

    def list_experiments(self) -> list[Experiment]:
        return list(self._experiments.values())

    @staticmethod
    def should_use_experiment(user_id: str, experiment: Experiment) -> bool:
        """Deterministic bucketing of a user into an experiment."""
        if experiment.traffic_allocation <= 0:
            return False
        if experiment.traffic_allocation >= 1:
            return True
        bucket = int(fnv1a_32(user_id + experiment.id)[:8], 16) / 0xFFFFFFFF
        return bucket < experiment.traffic_allocation

    def select_configuration(
        self,
        user_id: str | None = None,
        experiment_id: str | None = None,
        now: datetime | None = None,
    ) -> ConfigSelection:
        now = now or self._clock()

        if experiment_id:
            experiment = self._experiments.get(experiment_id)
            if experiment and experiment.is_active(now):
                return self._selection(experiment.config, experiment.id)
            logger.debug(f"Requested experiment {experiment_id} is unknown or inactive")

        if user_id:
            for experiment in self._experiments.values():
                if experiment.is_active(now) and self.should_use_experiment(user_id, experiment):
                    return self._selection(experiment.config, experiment.id)

        return self._selection(self._config, None)

    @staticmethod
    def _selection(config: ScoringConfig, experiment_id: str | None) -> ConfigSelection:
        config_id = config_hash(config)
        if experiment_id:
            config_id = f"{config_id}-{experiment_id}"
        return ConfigSelection(config=config, config_id=config_id, experiment_id=experiment_id)

    def get_config_hash(self, config: ScoringConfig | None = None) -> str:
        return config_hash(config or self._config)

    def get_history(self) -> list[ConfigHistoryEntry]:
        return list(self._history)
