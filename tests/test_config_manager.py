"""Tests for scoring configuration, validation and A/B experiments."""

from datetime import UTC, datetime, timedelta

import pytest

from phishlens.exceptions import ConfigurationError
from phishlens.scoring.config_manager import (
    HISTORY_SIZE,
    Experiment,
    ScoringConfigManager,
    config_hash,
    fnv1a_32,
    validate_config,
)
from phishlens.scoring.models import RiskFactorType, ScoringConfig, Thresholds

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def manager():
    return ScoringConfigManager(clock=lambda: NOW)


def register(manager, experiment_id="exp", allocation=0.5, config=None, start=None, end=None):
    return manager.register_experiment(
        experiment_id,
        config if config is not None else {"weights": {"reputation": 0.5, "domain_age": 0.15}},
        traffic_allocation=allocation,
        start_date=start or NOW - timedelta(days=1),
        end_date=end or NOW + timedelta(days=1),
    )


class TestHashing:
    def test_fnv1a_known_vectors(self):
        assert fnv1a_32("") == "811c9dc5"
        assert fnv1a_32("a") == "e40c292c"
        assert fnv1a_32("foobar") == "bf9cf968"

    def test_hash_is_stable_and_order_independent(self):
        a = ScoringConfig()
        b = ScoringConfig(weights=dict(reversed(list(a.weights.items()))))

        assert config_hash(a) == config_hash(b)
        assert len(config_hash(a)) == 8

    def test_hash_changes_with_content(self):
        changed = ScoringConfig().merged({"thresholds": {"safe_min": 75}})
        assert config_hash(changed) != config_hash(ScoringConfig())


class TestValidation:
    def test_defaults_are_valid(self):
        report = validate_config(ScoringConfig())
        assert report.is_valid
        assert report.warnings == []

    def test_weights_must_sum_to_one(self):
        config = ScoringConfig().merged({"weights": {"reputation": 0.6}})
        report = validate_config(config)

        assert not report.is_valid
        assert any("sum to 1.0" in e for e in report.errors)

    def test_weight_sum_tolerance(self):
        config = ScoringConfig().merged({"weights": {"reputation": 0.405}})
        assert validate_config(config).is_valid

    def test_weight_out_of_range(self):
        config = ScoringConfig().merged(
            {"weights": {"reputation": 1.4, "domain_age": -0.4}}
        )
        errors = validate_config(config).errors
        assert any("reputation" in e for e in errors)
        assert any("domain_age" in e for e in errors)

    def test_threshold_order(self):
        config = ScoringConfig(thresholds=Thresholds(safe_min=30, caution_min=70, danger_max=20))
        report = validate_config(config)
        assert any("ordered" in e for e in report.errors)

    def test_thresholds_within_bounds(self):
        config = ScoringConfig(thresholds=Thresholds(safe_min=120, caution_min=30, danger_max=20))
        assert any("safe_min" in e for e in validate_config(config).errors)

    def test_narrow_threshold_gap_warns(self):
        config = ScoringConfig(thresholds=Thresholds(safe_min=33, caution_min=30, danger_max=20))
        report = validate_config(config)

        assert report.is_valid
        assert any("caution_min and safe_min" in w for w in report.warnings)

    def test_extreme_weights_warn(self):
        config = ScoringConfig().merged(
            {"weights": {"reputation": 0.7, "domain_age": 0.02, "ssl_certificate": 0.13}}
        )
        report = validate_config(config)

        assert report.is_valid
        assert any("high" in w for w in report.warnings)
        assert any("low" in w for w in report.warnings)

    def test_unknown_strategy_and_method(self):
        config = ScoringConfig().merged(
            {"missing_data_strategy": "guess", "normalization": {"method": "cubic"}}
        )
        errors = validate_config(config).errors
        assert any("missing data strategy" in e for e in errors)
        assert any("normalization method" in e for e in errors)

    def test_unknown_factor_rejected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            ScoringConfig.from_dict({"weights": {"popularity": 1.0}})
        assert "Unknown risk factor: popularity" in exc_info.value.errors

    def test_invalid_initial_config_raises(self):
        with pytest.raises(ConfigurationError):
            ScoringConfigManager(ScoringConfig().merged({"weights": {"reputation": 0.9}}))


class TestUpdates:
    def test_partial_update_merges(self, manager):
        manager.update_config({"thresholds": {"safe_min": 80}})

        assert manager.config.thresholds.safe_min == 80
        assert manager.config.thresholds.caution_min == 30
        assert manager.config.weights[RiskFactorType.REPUTATION] == 0.40

    def test_invalid_update_leaves_config_unchanged(self, manager):
        before = manager.get_config_hash()

        with pytest.raises(ConfigurationError) as exc_info:
            manager.update_config({"weights": {"reputation": 0.9}})

        assert exc_info.value.errors
        assert manager.get_config_hash() == before

    def test_unknown_section_rejected(self, manager):
        before = manager.get_config_hash()

        with pytest.raises(ConfigurationError) as exc_info:
            manager.update_config({"weigths": {"reputation": 0.9}})

        assert exc_info.value.errors == ["Unknown configuration section: weigths"]
        assert manager.get_config_hash() == before
        assert [entry.tag for entry in manager.get_history()] == ["initial"]

    def test_reset_to_defaults(self, manager):
        manager.update_config({"missing_data_strategy": "penalty"})
        manager.reset_to_defaults()

        assert manager.config == ScoringConfig()

    def test_history_is_bounded(self, manager):
        for i in range(HISTORY_SIZE + 5):
            manager.update_config({"thresholds": {"safe_min": 70 + (i % 10)}})

        history = manager.get_history()
        assert len(history) == HISTORY_SIZE
        assert all(entry.tag == "update" for entry in history)

    def test_history_records_initial(self, manager):
        assert [entry.tag for entry in manager.get_history()] == ["initial"]

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "scoring.yaml"
        path.write_text(
            "weights:\n"
            "  reputation: 0.5\n"
            "  domain_age: 0.2\n"
            "  ssl_certificate: 0.15\n"
            "  ai_analysis: 0.15\n"
            "missing_data_strategy: penalty\n"
        )

        manager = ScoringConfigManager.from_yaml(path)

        assert manager.config.weights[RiskFactorType.REPUTATION] == 0.5
        assert manager.config.missing_data_strategy == "penalty"
        assert manager.config.thresholds == Thresholds()

    def test_from_yaml_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            ScoringConfigManager.from_yaml(tmp_path / "missing.yaml")


class TestExperiments:
    def test_register_and_list(self, manager):
        assert register(manager) is True

        experiments = manager.list_experiments()
        assert [e.id for e in experiments] == ["exp"]
        assert manager.get_experiment_config("exp").weights[RiskFactorType.REPUTATION] == 0.5
        assert manager.get_history()[-1].tag == "exp"

    def test_invalid_experiment_rejected(self, manager):
        assert register(manager, config={"weights": {"reputation": 0.9}}) is False
        assert register(manager, allocation=1.5) is False
        assert register(manager, start=NOW, end=NOW - timedelta(days=1)) is False
        assert manager.list_experiments() == []

    def test_explicit_experiment_selected_when_active(self, manager):
        register(manager, allocation=0.0)

        selection = manager.select_configuration(experiment_id="exp")

        assert selection.experiment_id == "exp"
        assert selection.config_id.endswith("-exp")

    def test_inactive_experiment_falls_back(self, manager):
        register(manager, start=NOW + timedelta(days=1), end=NOW + timedelta(days=2))

        selection = manager.select_configuration(experiment_id="exp")

        assert selection.experiment_id is None
        assert selection.config_id == manager.get_config_hash()

    def test_unknown_experiment_falls_back(self, manager):
        selection = manager.select_configuration(experiment_id="nope")
        assert selection.config == manager.config

    def test_bucketing_is_deterministic(self, manager):
        register(manager, allocation=0.5)
        experiment = manager.list_experiments()[0]

        first = [manager.should_use_experiment(f"user-{i}", experiment) for i in range(200)]
        second = [manager.should_use_experiment(f"user-{i}", experiment) for i in range(200)]

        assert first == second
        # roughly half the users land in the experiment
        assert 60 < sum(first) < 140

    def test_allocation_extremes(self):
        config = ScoringConfig()
        never = Experiment("a", config, 0.0, NOW, NOW)
        always = Experiment("b", config, 1.0, NOW, NOW)

        assert not ScoringConfigManager.should_use_experiment("anyone", never)
        assert ScoringConfigManager.should_use_experiment("anyone", always)

    def test_user_bucketed_into_experiment(self, manager):
        register(manager, allocation=1.0)

        selection = manager.select_configuration(user_id="user-1")

        assert selection.experiment_id == "exp"

    def test_selection_is_pure(self, manager):
        register(manager, allocation=0.3)
        other = ScoringConfigManager(clock=lambda: NOW)
        register(other, allocation=0.3)

        for i in range(50):
            a = manager.select_configuration(user_id=f"u{i}")
            b = other.select_configuration(user_id=f"u{i}")
            assert a.config_id == b.config_id

    def test_remove_experiment(self, manager):
        register(manager)

        assert manager.remove_experiment("exp") is True
        assert manager.remove_experiment("exp") is False
        assert manager.get_experiment_config("exp") is None
