"""
Shared pytest fixtures and configuration for lockstep tests.

This module provides:
- Auto-marking of unit / integration tests by location
- Settings and circuit-breaker registry isolation
- A deterministic ``FakeClock`` and preconfigured lock managers
"""

from __future__ import annotations

import random
from collections.abc import Iterator
from pathlib import Path

import pytest

from lockstep.core.settings import clear_settings_cache
from lockstep.execution.circuit_breaker import CircuitBreaker, clear_circuit_breakers
from lockstep.locking.manager import LockManager
from lockstep.locking.store import InMemoryLockStore
from tests._support.clock import FakeClock
from tests._support.fault_injection import FlakyAppendClient, RecordingAppendClient
from tests._support.rows import make_rows


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _isolate_state(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Fresh settings and breaker registry for every test."""
    for var in ("LOCKSTEP_REDIS_URL", "LOCKSTEP_BATCH_SIZE", "LOCKSTEP_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    clear_settings_cache()
    clear_circuit_breakers()
    yield
    clear_settings_cache()
    clear_circuit_breakers()


# =============================================================================
# Time / Locking Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def local_store(clock: FakeClock) -> InMemoryLockStore:
    return InMemoryLockStore(clock)


@pytest.fixture
def lock_manager(clock: FakeClock, local_store: InMemoryLockStore) -> LockManager:
    """Local-only manager with deterministic jitter."""
    return LockManager(local_store=local_store, clock=clock, rng=random.Random(42))


@pytest.fixture
def breaker(clock: FakeClock) -> CircuitBreaker:
    return CircuitBreaker("test-dependency", failure_threshold=5, cooldown=30.0, clock=clock)


# =============================================================================
# Dependency Fixtures
# =============================================================================


@pytest.fixture
def recording_client() -> RecordingAppendClient:
    return RecordingAppendClient()


@pytest.fixture
def flaky_client() -> FlakyAppendClient:
    return FlakyAppendClient()


@pytest.fixture
def rows_factory():
    return make_rows
