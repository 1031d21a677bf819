"""Environment-aware configuration for the time release transfer helper."""
from __future__ import annotations

import copy
import json
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from errors import ConfigurationError


def _default_references() -> Dict[str, Dict[str, Any]]:
    # Relay chain blocks pinned by hand, keyed by SS58 prefix.
    return {
        "90": {"block": 14885653, "timestamp": "2023-03-31T13:12:30Z"},
        "42": {"block": 4752207, "timestamp": "2023-03-31T13:13:12Z"},
    }


def parse_utc_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; a trailing 'Z' means UTC."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        raise ValueError(f"Timestamp must carry a timezone: {value!r}")
    return parsed


@dataclass
class RpcSettings:
    endpoint: str = "ws://127.0.0.1:9944"
    request_timeout: float = 30.0

    def validate(self) -> None:
        if not self.endpoint:
            raise ConfigurationError("RPC endpoint must be provided.")
        if not self.endpoint.startswith(("ws://", "wss://")):
            raise ConfigurationError(f"RPC endpoint must be a websocket URL: {self.endpoint}")
        if self.request_timeout <= 0:
            raise ConfigurationError("RPC request timeout must be greater than zero.")


@dataclass
class ChainSettings:
    default_prefix: int = 42
    default_symbol: str = "UNIT"
    default_decimals: int = 8
    block_interval_seconds: float = 6.0
    live_reference: bool = False
    references: Dict[str, Dict[str, Any]] = field(default_factory=_default_references)

    def validate(self) -> None:
        if not (0 <= self.default_prefix <= 16383):
            raise ConfigurationError(f"Invalid SS58 prefix: {self.default_prefix}")
        if not self.default_symbol:
            raise ConfigurationError("Default token symbol must be provided.")
        if self.default_decimals < 0:
            raise ConfigurationError("Token decimals cannot be negative.")
        if self.block_interval_seconds <= 0:
            raise ConfigurationError("Block interval must be greater than zero.")
        for prefix, entry in self.references.items():
            if not str(prefix).isdigit():
                raise ConfigurationError(f"Reference key must be a numeric SS58 prefix: {prefix!r}")
            if not isinstance(entry, dict) or "block" not in entry or "timestamp" not in entry:
                raise ConfigurationError(f"Invalid chain reference entry for prefix {prefix}: {entry}")
            if not isinstance(entry["block"], int) or entry["block"] < 0:
                raise ConfigurationError(f"Reference block for prefix {prefix} must be a non-negative integer.")
            try:
                parse_utc_timestamp(str(entry["timestamp"]))
            except ValueError as exc:
                raise ConfigurationError(f"Invalid reference timestamp for prefix {prefix}: {exc}") from exc


@dataclass
class PalletSettings:
    time_release_pallet: int = 40
    time_release_transfer_call: int = 1
    multisig_pallet: int = 30
    multisig_as_multi_call: int = 1

    def validate(self) -> None:
        for name, value in asdict(self).items():
            if not (0 <= value <= 255):
                raise ConfigurationError(f"Pallet setting '{name}' must fit in a byte (got {value}).")


@dataclass
class SubmissionSettings:
    max_weight_ref_time: int = 1_000_000_000
    max_weight_proof_size: int = 1_000_000
    # None means wait for a terminal status forever.
    status_timeout: Optional[float] = None
    tip: int = 0

    def validate(self) -> None:
        if self.max_weight_ref_time <= 0:
            raise ConfigurationError("Multisig max weight must be greater than zero.")
        if self.max_weight_proof_size < 0:
            raise ConfigurationError("Multisig max proof size cannot be negative.")
        if self.status_timeout is not None and self.status_timeout <= 0:
            raise ConfigurationError("Status timeout must be positive when set.")
        if self.tip < 0:
            raise ConfigurationError("Tip cannot be negative.")


@dataclass
class LoggingSettings:
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
    datefmt: str = "%Y-%m-%d %H:%M:%S"

    def validate(self) -> None:
        if not self.level:
            raise ConfigurationError("Logging level must be provided.")
        if not self.format:
            raise ConfigurationError("Logging format must be provided.")


@dataclass
class Settings:
    env: str
    rpc: RpcSettings
    chain: ChainSettings
    pallets: PalletSettings
    submission: SubmissionSettings
    logging: LoggingSettings

    def validate(self) -> None:
        self.rpc.validate()
        self.chain.validate()
        self.pallets.validate()
        self.submission.validate()
        self.logging.validate()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "env": self.env,
            "rpc": asdict(self.rpc),
            "chain": asdict(self.chain),
            "pallets": asdict(self.pallets),
            "submission": asdict(self.submission),
            "logging": asdict(self.logging),
        }


BASE_DEFAULTS: Dict[str, Any] = {
    "rpc": asdict(RpcSettings()),
    "chain": asdict(ChainSettings()),
    "pallets": asdict(PalletSettings()),
    "submission": asdict(SubmissionSettings()),
    "logging": asdict(LoggingSettings()),
}

ENVIRONMENT_OVERRIDES: Dict[str, Dict[str, Any]] = {
    "development": {},
    "test": {
        "logging": {"level": "DEBUG"},
        "rpc": {"request_timeout": 5.0},
    },
    "production": {
        "logging": {"level": "WARNING"},
        "rpc": {"request_timeout": 60.0},
    },
}


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _parse_optional_float(value: str) -> Optional[float]:
    if value.strip().lower() in ("", "none", "off"):
        return None
    return float(value)


_ENV_VALUE_CASTERS: Dict[str, Any] = {
    "TRH_RPC_ENDPOINT": ("rpc", "endpoint", str),
    "TRH_RPC_TIMEOUT": ("rpc", "request_timeout", float),
    "TRH_DEFAULT_PREFIX": ("chain", "default_prefix", int),
    "TRH_DEFAULT_SYMBOL": ("chain", "default_symbol", str),
    "TRH_DEFAULT_DECIMALS": ("chain", "default_decimals", int),
    "TRH_BLOCK_INTERVAL": ("chain", "block_interval_seconds", float),
    "TRH_LIVE_REFERENCE": ("chain", "live_reference", _parse_bool),
    "TRH_CHAIN_REFERENCES": ("chain", "references", lambda value: json.loads(value)),
    "TRH_TIME_RELEASE_PALLET": ("pallets", "time_release_pallet", int),
    "TRH_TIME_RELEASE_CALL": ("pallets", "time_release_transfer_call", int),
    "TRH_MULTISIG_PALLET": ("pallets", "multisig_pallet", int),
    "TRH_MULTISIG_CALL": ("pallets", "multisig_as_multi_call", int),
    "TRH_MAX_WEIGHT": ("submission", "max_weight_ref_time", int),
    "TRH_MAX_PROOF_SIZE": ("submission", "max_weight_proof_size", int),
    "TRH_STATUS_TIMEOUT": ("submission", "status_timeout", _parse_optional_float),
    "TRH_TIP": ("submission", "tip", int),
    "TRH_LOG_LEVEL": ("logging", "level", str),
    "TRH_LOG_FORMAT": ("logging", "format", str),
    "TRH_LOG_DATEFMT": ("logging", "datefmt", str),
}


def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict) and key != "references":
            base[key] = _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _overrides_from_env() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for env_key, (section, key, caster) in _ENV_VALUE_CASTERS.items():
        raw = os.environ.get(env_key)
        if raw is None:
            continue
        try:
            parsed = caster(raw)
        except Exception as exc:  # pragma: no cover - configuration error path
            raise ConfigurationError(f"Failed to coerce environment variable {env_key}: {exc}") from exc
        overrides.setdefault(section, {})[key] = parsed
    return overrides


def _settings_from_dict(env: str, payload: Dict[str, Any]) -> Settings:
    try:
        return Settings(
            env=env,
            rpc=RpcSettings(**payload["rpc"]),
            chain=ChainSettings(**payload["chain"]),
            pallets=PalletSettings(**payload["pallets"]),
            submission=SubmissionSettings(**payload["submission"]),
            logging=LoggingSettings(**payload["logging"]),
        )
    except TypeError as exc:
        raise ConfigurationError(f"Unknown configuration key: {exc}") from exc


def load_settings(env: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> Settings:
    env_name = (env or os.environ.get("TRH_ENV", "development")).lower()
    base = copy.deepcopy(BASE_DEFAULTS)
    env_specific = ENVIRONMENT_OVERRIDES.get(env_name, {})
    base = _deep_merge(base, copy.deepcopy(env_specific))
    base = _deep_merge(base, _overrides_from_env())
    if overrides:
        base = _deep_merge(base, copy.deepcopy(overrides))
    settings_obj = _settings_from_dict(env_name, base)
    settings_obj.validate()
    return settings_obj


def _sync_legacy_exports(current: Settings) -> None:
    global LOGGING

    LOGGING = current.logging


def reload_settings(env: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> Settings:
    global settings
    settings = load_settings(env=env or settings.env, overrides=overrides)
    _sync_legacy_exports(settings)
    return settings


settings: Settings = load_settings()
_sync_legacy_exports(settings)

__all__ = [
    "settings",
    "load_settings",
    "reload_settings",
    "parse_utc_timestamp",
    "Settings",
    "RpcSettings",
    "ChainSettings",
    "PalletSettings",
    "SubmissionSettings",
    "LoggingSettings",
]
