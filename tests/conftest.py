"""Shared fixtures."""

import os
from pathlib import Path

import pytest

# studio.main loads config at import time
os.environ.setdefault("STUDIO_CONFIG", str(Path(__file__).resolve().parent.parent / "config.yaml"))

from studio.config import BudgetProfile, StudioConfig  # noqa: E402

from tests.helpers import FakeClock  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def studio_config() -> StudioConfig:
    return StudioConfig(
        profiles={
            "fast": BudgetProfile(max_iterations=4, time_budget_seconds=25),
            "patient": BudgetProfile(max_iterations=10),
        }
    )
