"""Logging configuration helpers for the time release transfer helper."""
from __future__ import annotations

import logging
import os
from typing import Any, Optional

_DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"

_PROJECT_LOGGERS = [
    "helper",
    "estimator",
    "multisig",
    "submission",
    "ledger",
    "activity_log",
    "chain",
    "app",
]

_THIRD_PARTY_LOGGERS = [
    "trio",
    "trio_websocket",
    "wsproto",
    "nacl",
]

_configured = False


def _coerce_level(level: Optional[Any]) -> int:
    """Translate a human readable level into the logging module's numeric level."""
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        level = level.strip().upper()
        numeric = getattr(logging, level, None)
        if isinstance(numeric, int):
            return numeric
    env_default = os.environ.get("TRH_LOG_LEVEL", "INFO").strip().upper()
    return getattr(logging, env_default, logging.INFO)


def configure(logging_settings: Optional[Any] = None, *, force: bool = True) -> None:
    """Configure the project loggers; third-party loggers stay at WARNING."""
    global _configured
    if _configured and not force:
        return

    level = None
    fmt = None
    datefmt = None

    if logging_settings is not None:
        if isinstance(logging_settings, dict):
            level = logging_settings.get("level")
            fmt = logging_settings.get("format")
            datefmt = logging_settings.get("datefmt")
        else:
            level = getattr(logging_settings, "level", None)
            fmt = getattr(logging_settings, "format", None)
            datefmt = getattr(logging_settings, "datefmt", None)

    level = _coerce_level(level)
    fmt = fmt or os.environ.get("TRH_LOG_FORMAT", _DEFAULT_FORMAT)
    datefmt = datefmt or os.environ.get("TRH_LOG_DATEFMT", _DEFAULT_DATEFMT)

    formatter = logging.Formatter(fmt, datefmt)

    root_logger = logging.getLogger()
    root_logger.setLevel(max(logging.WARNING, level))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    for name in _PROJECT_LOGGERS:
        logging.getLogger(name).setLevel(level)

    for name in _THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, level))

    logging.captureWarnings(True)

    _configured = True
