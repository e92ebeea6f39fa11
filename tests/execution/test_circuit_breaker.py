"""Tests for the circuit breaker state machine."""

import pytest

from lockstep.core.errors import CircuitOpenError, ValidationError
from lockstep.execution.circuit_breaker import (
    BreakerNames,
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
    get_all_circuit_breakers,
    get_circuit_breaker,
)


class Boom(Exception):
    pass


def fail():
    raise Boom("dependency down")


def ok():
    return "ok"


def trip(breaker: CircuitBreaker, times: int) -> None:
    for _ in range(times):
        with pytest.raises(Boom):
            breaker.execute(fail)


class TestClosedState:
    """CLOSED passes calls through and counts consecutive failures."""

    def test_initial_state(self, breaker):
        assert breaker.state == CircuitState.CLOSED
        assert breaker.consecutive_failures == 0
        assert breaker.opened_at is None

    def test_passes_result_through(self, breaker):
        assert breaker.execute(ok) == "ok"

    def test_failure_propagates_unchanged(self, breaker):
        with pytest.raises(Boom, match="dependency down"):
            breaker.execute(fail)
        assert breaker.consecutive_failures == 1

    def test_opens_on_threshold(self, breaker):
        """Five consecutive failures with threshold 5 open the circuit on the 5th."""
        trip(breaker, 4)
        assert breaker.state == CircuitState.CLOSED
        trip(breaker, 1)
        assert breaker.state == CircuitState.OPEN
        assert breaker.opened_at is not None

    def test_success_resets_counter(self, breaker):
        trip(breaker, 4)
        breaker.execute(ok)
        assert breaker.consecutive_failures == 0
        trip(breaker, 4)
        assert breaker.state == CircuitState.CLOSED

    def test_passes_args(self, breaker):
        assert breaker.execute(lambda a, b=0: a + b, 2, b=3) == 5


class TestOpenState:
    """OPEN rejects without invoking the work."""

    def test_rejects_without_calling(self, breaker):
        trip(breaker, 5)
        calls = []
        with pytest.raises(CircuitOpenError) as exc_info:
            breaker.execute(lambda: calls.append(1))
        assert calls == []
        assert exc_info.value.breaker_name == "test-dependency"
        assert exc_info.value.retry_after == pytest.approx(30.0)

    def test_remaining_cooldown(self, breaker, clock):
        trip(breaker, 5)
        clock.advance(10)
        assert breaker.remaining_cooldown() == pytest.approx(20.0)

    def test_stays_open_before_cooldown(self, breaker, clock):
        trip(breaker, 5)
        clock.advance(29.9)
        assert breaker.state == CircuitState.OPEN

    def test_rejections_counted(self, breaker):
        trip(breaker, 5)
        for _ in range(3):
            with pytest.raises(CircuitOpenError):
                breaker.execute(ok)
        assert breaker.stats.rejected_requests == 3


class TestHalfOpenState:
    """After the cooldown exactly one trial call is admitted."""

    def test_becomes_half_open_after_cooldown(self, breaker, clock):
        trip(breaker, 5)
        clock.advance(30)
        assert breaker.state == CircuitState.HALF_OPEN

    def test_trial_success_closes(self, breaker, clock):
        trip(breaker, 5)
        clock.advance(30)
        assert breaker.execute(ok) == "ok"
        assert breaker.state == CircuitState.CLOSED
        assert breaker.consecutive_failures == 0

    def test_trial_failure_reopens_and_restarts_cooldown(self, breaker, clock):
        trip(breaker, 5)
        clock.advance(30)
        trip(breaker, 1)
        assert breaker.state == CircuitState.OPEN
        assert breaker.remaining_cooldown() == pytest.approx(30.0)
        clock.advance(29)
        assert breaker.state == CircuitState.OPEN
        clock.advance(1)
        assert breaker.state == CircuitState.HALF_OPEN

    def test_only_one_trial_in_flight(self, breaker, clock):
        trip(breaker, 5)
        clock.advance(30)
        assert breaker.allow_request() is True
        assert breaker.allow_request() is False

        def nested():
            # second caller during the trial
            with pytest.raises(CircuitOpenError):
                breaker.execute(ok)
            return "trial"

        breaker.reset()
        trip(breaker, 5)
        clock.advance(30)
        assert breaker.execute(nested) == "trial"
        assert breaker.state == CircuitState.CLOSED

    def test_interrupted_trial_reopens(self, breaker, clock):
        """A trial cut short by an interrupt counts as a failed trial."""

        def interrupted():
            raise KeyboardInterrupt

        trip(breaker, 5)
        clock.advance(30)
        with pytest.raises(KeyboardInterrupt):
            breaker.execute(interrupted)
        assert breaker.state == CircuitState.OPEN
        clock.advance(30)
        assert breaker.allow_request() is True


class TestManualControl:
    def test_force_open_and_reset(self, breaker):
        breaker.force_open()
        assert breaker.state == CircuitState.OPEN
        breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.execute(ok) == "ok"

    def test_invalid_threshold(self):
        with pytest.raises(ValidationError):
            CircuitBreaker("x", failure_threshold=0)

    def test_snapshot(self, breaker):
        trip(breaker, 2)
        snap = breaker.snapshot()
        assert snap["name"] == "test-dependency"
        assert snap["state"] == "closed"
        assert snap["consecutive_failures"] == 2
        assert snap["failure_rate"] == 100.0


class TestRegistry:
    def test_get_or_create_shares_instance(self):
        registry = CircuitBreakerRegistry()
        a = registry.get_or_create("svc", failure_threshold=2)
        b = registry.get_or_create("svc", failure_threshold=9)
        assert a is b
        assert b.failure_threshold == 2

    def test_names_isolate_failure_counts(self):
        registry = CircuitBreakerRegistry()
        sheets = registry.get_or_create(BreakerNames.SHEETS_APPEND, failure_threshold=1)
        other = registry.get_or_create("google-sheets-other", failure_threshold=1)
        trip(sheets, 1)
        assert sheets.state == CircuitState.OPEN
        assert other.state == CircuitState.CLOSED

    def test_reset_all_and_remove(self):
        registry = CircuitBreakerRegistry()
        registry.get_or_create("a").force_open()
        registry.reset_all()
        assert registry.get("a").state == CircuitState.CLOSED
        registry.remove("a")
        assert registry.get("a") is None
        assert registry.snapshot() == []

    def test_default_registry_helpers(self):
        breaker = get_circuit_breaker("global-svc", failure_threshold=3)
        assert get_circuit_breaker("global-svc") is breaker
        assert "global-svc" in get_all_circuit_breakers()
