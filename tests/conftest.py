"""Shared pytest fixtures for the time release helper test-suite."""
from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import config
import release_logging


@pytest.fixture(scope="session", autouse=True)
def test_environment() -> Iterator[None]:
    """Ensure tests run with the dedicated 'test' configuration and logging."""
    original_env = os.environ.get("TRH_ENV")
    os.environ["TRH_ENV"] = "test"

    config.reload_settings(env="test")
    release_logging.configure(config.LOGGING, force=True)

    yield

    if original_env is None:
        os.environ.pop("TRH_ENV", None)
        config.reload_settings(env="development")
    else:
        os.environ["TRH_ENV"] = original_env
        config.reload_settings(env=original_env)
