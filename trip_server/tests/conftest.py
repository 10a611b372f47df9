# tests/conftest.py
from __future__ import annotations

import pytest

from tripplanner.core.config import Settings
from tripplanner.core.retry import RetryPolicy


@pytest.fixture
def cfg(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        environment="test",
        debug=False,
        data_dir=tmp_path / "trips",
        max_trip_days=14,
        model_max_attempts=3,
        model_attempt_timeout_s=2.0,
        model_backoff_base_s=0.0,
        store_timeout_s=2.0,
        online_enabled=False,
        local_enabled=False,
        template_enabled=False,
    )


@pytest.fixture
def policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, attempt_timeout_s=2.0, backoff_base_s=0.0)
