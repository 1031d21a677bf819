import pytest

import config
from errors import ConfigurationError


def test_test_environment_loaded_by_default():
    assert config.settings.env == "test"
    assert config.settings.rpc.request_timeout == 5.0
    assert config.LOGGING.level.upper() == "DEBUG"


def test_reload_settings_switch_environment(monkeypatch):
    monkeypatch.setenv("TRH_ENV", "production")
    new_settings = config.reload_settings(env="production")
    assert new_settings.env == "production"
    assert config.LOGGING.level.upper() == "WARNING"

    monkeypatch.setenv("TRH_ENV", "test")
    config.reload_settings(env="test")


def test_default_references_pinned_for_known_prefixes():
    refs = config.settings.chain.references
    assert refs["90"]["block"] == 14885653
    assert refs["42"]["block"] == 4752207
    assert config.settings.chain.block_interval_seconds == 6.0


def test_status_timeout_defaults_to_none():
    assert config.settings.submission.status_timeout is None
    assert config.settings.submission.max_weight_ref_time == 1_000_000_000


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("TRH_STATUS_TIMEOUT", "30")
    monkeypatch.setenv("TRH_LIVE_REFERENCE", "yes")
    monkeypatch.setenv("TRH_MULTISIG_PALLET", "31")
    loaded = config.load_settings(env="test")
    assert loaded.submission.status_timeout == 30.0
    assert loaded.chain.live_reference is True
    assert loaded.pallets.multisig_pallet == 31


def test_references_override_replaces_mapping():
    loaded = config.load_settings(
        env="test",
        overrides={"chain": {"references": {"0": {"block": 10, "timestamp": "2024-01-01T00:00:00Z"}}}},
    )
    assert list(loaded.chain.references) == ["0"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"chain": {"block_interval_seconds": 0}},
        {"rpc": {"endpoint": "http://localhost:9933"}},
        {"pallets": {"multisig_pallet": 300}},
        {"submission": {"status_timeout": -1}},
        {"chain": {"references": {"42": {"block": 1, "timestamp": "2023-03-31 13:13:12"}}}},
    ],
)
def test_invalid_settings_rejected(overrides):
    with pytest.raises(ConfigurationError):
        config.load_settings(env="test", overrides=overrides)


def test_only_logging_is_exported_as_module_constant():
    assert config.LOGGING is config.settings.logging
    for name in ("RPC_ENDPOINT", "RPC_TIMEOUT", "DEFAULT_PREFIX", "MAX_WEIGHT_REF_TIME", "STATUS_TIMEOUT"):
        assert not hasattr(config, name)
