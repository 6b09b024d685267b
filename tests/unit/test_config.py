"""
Engine configuration tests.
"""

import pytest

from clamm import config as config_module
from clamm.config import ConfigurationError, EngineConfig
from clamm.core.pool import ConcentratedLiquidityPool, FeeTier


class TestEngineConfigFromEnv:
    """Test environment parsing."""

    def test_defaults(self):
        config = EngineConfig.from_env({})
        assert config == EngineConfig()
        assert config.default_fee_tier == "STANDARD"
        assert config.metrics_enabled is True
        assert config.log_file is None

    def test_overrides(self):
        config = EngineConfig.from_env(
            {
                "CLAMM_ENVIRONMENT": "staging",
                "CLAMM_LOG_LEVEL": "debug",
                "CLAMM_LOG_FILE": "/tmp/clamm.json",
                "CLAMM_DEFAULT_FEE_TIER": "medium",
                "CLAMM_METRICS_ENABLED": "0",
                "CLAMM_OBSERVATION_CARDINALITY_NEXT": "16",
            }
        )
        assert config.environment == "staging"
        assert config.log_level == "DEBUG"
        assert config.log_file == "/tmp/clamm.json"
        assert config.default_fee_tier == "MEDIUM"
        assert config.metrics_enabled is False
        assert config.observation_cardinality_next == 16

    @pytest.mark.parametrize(
        "env",
        [
            {"CLAMM_LOG_LEVEL": "VERBOSE"},
            {"CLAMM_DEFAULT_FEE_TIER": "TINY"},
            {"CLAMM_METRICS_ENABLED": "yes"},
            {"CLAMM_OBSERVATION_CARDINALITY_NEXT": "many"},
            {"CLAMM_OBSERVATION_CARDINALITY_NEXT": "0"},
            {"CLAMM_OBSERVATION_CARDINALITY_NEXT": "65536"},
        ],
    )
    def test_invalid_values(self, env):
        with pytest.raises(ConfigurationError):
            EngineConfig.from_env(env)

    def test_reads_process_environment_on_demand(self, monkeypatch):
        monkeypatch.setenv("CLAMM_DEFAULT_FEE_TIER", "low")
        assert EngineConfig.from_env().default_fee_tier == "LOW"

        # A bad value only fails when a config is built, not at import
        monkeypatch.setenv("CLAMM_LOG_LEVEL", "VERBOSE")
        with pytest.raises(ConfigurationError):
            EngineConfig.from_env()

    def test_no_import_time_settings(self):
        for name in ("ENVIRONMENT", "LOG_LEVEL", "LOG_FILE", "DEFAULT_FEE_TIER", "METRICS_ENABLED"):
            assert not hasattr(config_module, name)

    def test_config_is_frozen(self):
        config = EngineConfig()
        with pytest.raises(AttributeError):
            config.log_level = "DEBUG"


class TestPoolFromConfig:
    """Test building pools from engine settings."""

    def test_uses_configured_defaults(self, token0, token1):
        config = EngineConfig(default_fee_tier="HIGH", metrics_enabled=False, observation_cardinality_next=3)
        pool = ConcentratedLiquidityPool.from_config(config, token0, token1)

        assert pool.fee_tier is FeeTier.HIGH
        assert pool.metrics is None
        pool.initialize(2**96)
        assert pool.slot0.observation_cardinality_next == 3

    def test_explicit_arguments_win(self, token0, token1):
        config = EngineConfig(default_fee_tier="HIGH", metrics_enabled=False)
        pool = ConcentratedLiquidityPool.from_config(config, token0, token1, fee_tier=FeeTier.LOW)
        assert pool.fee_tier is FeeTier.LOW
