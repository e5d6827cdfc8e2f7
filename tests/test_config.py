"""
Tests for CrucibleConfig loading and validation.
"""

import pytest

from crucible.config import (
    ConfigValidationError,
    CrucibleConfig,
    get_crucible_config,
    reset_crucible_config,
)


class TestDefaults:

    def test_default_thresholds(self):
        config = CrucibleConfig()
        assert config.birth_support == 0.5
        assert config.death_threshold == 0.2
        assert config.graduation_threshold == 0.85
        assert config.decay_per_cycle == 0.02
        assert (config.support_floor, config.support_ceiling) == (0.2, 0.9)
        assert config.perturb_probability == 0.2
        assert config.validate() == []

    def test_model_pool_not_shared_between_instances(self):
        a = CrucibleConfig()
        b = CrucibleConfig()
        a.model_pool.append("extra")
        assert "extra" not in b.model_pool


class TestFromEnv:

    def test_reads_crucible_variables(self, monkeypatch):
        monkeypatch.setenv("CRUCIBLE_MAX_CYCLES", "12")
        monkeypatch.setenv("CRUCIBLE_COST_LIMIT", "2.5")
        monkeypatch.setenv("CRUCIBLE_CANCEL_ON_TIMEOUT", "false")
        monkeypatch.setenv("CRUCIBLE_MODELS", "a:1b, b:2b")
        monkeypatch.setenv("CRUCIBLE_SEED", "42")

        config = CrucibleConfig.from_env()

        assert config.max_cycles == 12
        assert config.cost_limit_usd == 2.5
        assert config.cancel_on_timeout is False
        assert config.model_pool == ["a:1b", "b:2b"]
        assert config.random_seed == 42

    def test_unparseable_values_fall_back(self, monkeypatch):
        monkeypatch.setenv("CRUCIBLE_MAX_CYCLES", "lots")
        monkeypatch.setenv("CRUCIBLE_NOVELTY_BONUS", "sometimes")

        config = CrucibleConfig.from_env()

        assert config.max_cycles == 50
        assert config.novelty_bonus_enabled is False

    def test_global_config_is_cached(self, monkeypatch):
        first = get_crucible_config()
        assert get_crucible_config() is first

        monkeypatch.setenv("CRUCIBLE_MAX_CYCLES", "9")
        assert get_crucible_config().max_cycles == first.max_cycles
        assert get_crucible_config(force_reload=True).max_cycles == 9

        reset_crucible_config()
        assert get_crucible_config() is not first


class TestFromYaml:

    def test_nested_key(self, temp_dir):
        path = temp_dir / "crucible.yaml"
        path.write_text("crucible:\n  max_cycles: 7\n  decay_per_cycle: 0.05\n")

        config = CrucibleConfig.from_yaml(path)

        assert config.max_cycles == 7
        assert config.decay_per_cycle == 0.05

    def test_top_level_keys_and_unknown_ignored(self, temp_dir):
        path = temp_dir / "crucible.yaml"
        path.write_text("max_cycles: 4\nmystery_knob: 3\n")

        config = CrucibleConfig.from_yaml(path)

        assert config.max_cycles == 4
        assert not hasattr(config, "mystery_knob")

    def test_empty_file_gives_defaults(self, temp_dir):
        path = temp_dir / "empty.yaml"
        path.write_text("")

        assert CrucibleConfig.from_yaml(path).max_cycles == 50


class TestOverridesAndValidation:

    def test_with_overrides_skips_none(self):
        config = CrucibleConfig(max_cycles=5)
        updated = config.with_overrides(max_cycles=None, cost_limit_usd=1.0)

        assert updated.max_cycles == 5
        assert updated.cost_limit_usd == 1.0
        assert config.cost_limit_usd is None

    @pytest.mark.parametrize("overrides,fragment", [
        ({"support_floor": 0.95}, "support_floor"),
        ({"death_threshold": 0.9}, "death_threshold"),
        ({"worker_timeout_s": 0}, "worker_timeout_s"),
        ({"model_pool": []}, "model_pool"),
        ({"on_claim_loss": "panic"}, "on_claim_loss"),
        ({"perturb_probability": 1.5}, "perturb_probability"),
        ({"cost_limit_usd": -1.0}, "cost_limit_usd"),
        ({"pivot_similarity_threshold": 0.99}, "pivot_similarity_threshold"),
    ])
    def test_invalid_values_reported(self, overrides, fragment):
        config = CrucibleConfig(**overrides)
        problems = config.validate()
        assert any(fragment in p for p in problems)

        with pytest.raises(ConfigValidationError) as exc_info:
            config.validate_or_raise()
        assert exc_info.value.problems == problems

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            CrucibleConfig(max_cycles=0).validate_or_raise()
