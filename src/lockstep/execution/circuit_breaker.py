"""Circuit breaker pattern for fault tolerance.

Stops hammering a failing dependency: after ``failure_threshold``
consecutive failures the circuit opens and every call is rejected
immediately with :class:`~lockstep.core.errors.CircuitOpenError`, without
invoking the wrapped work. Once ``cooldown`` seconds have passed, exactly
one trial call is let through; its outcome decides whether the circuit
closes again or re-opens for another cooldown.

States:
    CLOSED: Normal operation, requests pass through
    OPEN: Failing fast, requests rejected immediately
    HALF_OPEN: Cooldown elapsed, one trial request allowed

The OPEN -> HALF_OPEN transition is evaluated lazily whenever the state is
read; there is no background timer.

Example:
    >>> from lockstep.execution.circuit_breaker import CircuitBreaker
    >>>
    >>> breaker = CircuitBreaker("google-sheets", failure_threshold=5, cooldown=30.0)
    >>> result = breaker.execute(call_external_service, payload)

Breaker state is process-local: each instance judges dependency health on
its own.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, TypeVar

from lockstep.core.errors import CircuitOpenError, ValidationError
from lockstep.core.logging import get_logger
from lockstep.core.timestamps import Clock, SystemClock, utc_now

T = TypeVar("T")

logger = get_logger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"          # Normal operation
    OPEN = "open"              # Rejecting requests
    HALF_OPEN = "half_open"    # Testing recovery


class BreakerNames:
    """Stable breaker names, one per external dependency."""

    SHEETS_APPEND = "google-sheets-batch"


@dataclass
class CircuitStats:
    """Statistics for circuit breaker monitoring."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    rejected_requests: int = 0
    state_changes: int = 0
    last_failure_time: datetime | None = None
    last_success_time: datetime | None = None
    last_state_change: datetime | None = None

    @property
    def failure_rate(self) -> float:
        """Failure rate as a percentage of completed calls."""
        total = self.successful_requests + self.failed_requests
        if total == 0:
            return 0.0
        return (self.failed_requests / total) * 100


@dataclass
class CircuitBreaker:
    """Three-state circuit breaker keyed by dependency name.

    Attributes:
        name: Identifier for this circuit (one per external dependency)
        failure_threshold: Consecutive failures before opening
        cooldown: Seconds to stay open before allowing a trial call
        clock: Time source (monotonic reading is used)
    """

    name: str = "default"
    failure_threshold: int = 5
    cooldown: float = 30.0
    clock: Clock = field(default_factory=SystemClock, repr=False)

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _consecutive_failures: int = field(default=0, init=False)
    _opened_at: float | None = field(default=None, init=False)
    _trial_in_flight: bool = field(default=False, init=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)
    _stats: CircuitStats = field(default_factory=CircuitStats, init=False)

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValidationError(
                "failure_threshold must be >= 1",
                field="failure_threshold",
                value=self.failure_threshold,
            )
        if self.cooldown < 0:
            raise ValidationError("cooldown must be >= 0", field="cooldown", value=self.cooldown)

    # ── Introspection ────────────────────────────────────────────

    @property
    def state(self) -> CircuitState:
        """Current circuit state (cooldown expiry applied)."""
        with self._lock:
            self._check_state_transition()
            return self._state

    @property
    def consecutive_failures(self) -> int:
        with self._lock:
            return self._consecutive_failures

    @property
    def opened_at(self) -> float | None:
        """Monotonic timestamp of the last opening; ``None`` unless OPEN."""
        with self._lock:
            return self._opened_at if self._state == CircuitState.OPEN else None

    @property
    def stats(self) -> CircuitStats:
        return self._stats

    def remaining_cooldown(self) -> float:
        """Seconds until a trial call will be admitted (0 if not open)."""
        with self._lock:
            self._check_state_transition()
            if self._state != CircuitState.OPEN or self._opened_at is None:
                return 0.0
            elapsed = self.clock.monotonic() - self._opened_at
            return max(0.0, self.cooldown - elapsed)

    def snapshot(self) -> dict[str, Any]:
        """Serializable view for logs and the CLI."""
        with self._lock:
            state = self.state
            return {
                "name": self.name,
                "state": state.value,
                "consecutive_failures": self._consecutive_failures,
                "failure_threshold": self.failure_threshold,
                "cooldown": self.cooldown,
                "remaining_cooldown": self.remaining_cooldown(),
                "total_requests": self._stats.total_requests,
                "rejected_requests": self._stats.rejected_requests,
                "failure_rate": self._stats.failure_rate,
            }

    # ── State machine ────────────────────────────────────────────

    def _check_state_transition(self) -> None:
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            elapsed = self.clock.monotonic() - self._opened_at
            if elapsed >= self.cooldown:
                self._transition_to(CircuitState.HALF_OPEN)

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state
        self._stats.state_changes += 1
        self._stats.last_state_change = utc_now()

        if new_state == CircuitState.CLOSED:
            self._consecutive_failures = 0
            self._opened_at = None
            self._trial_in_flight = False
            logger.info("circuit_closed", breaker=self.name, previous=old_state.value)
        elif new_state == CircuitState.OPEN:
            self._opened_at = self.clock.monotonic()
            self._trial_in_flight = False
            logger.warning(
                "circuit_opened",
                breaker=self.name,
                previous=old_state.value,
                consecutive_failures=self._consecutive_failures,
                cooldown=self.cooldown,
            )
        else:
            self._trial_in_flight = False
            logger.info("circuit_half_open", breaker=self.name)

    def allow_request(self) -> bool:
        """Admit or reject a call; admitting a HALF_OPEN call claims the trial slot."""
        with self._lock:
            self._check_state_transition()
            self._stats.total_requests += 1

            if self._state == CircuitState.CLOSED:
                return True

            if self._state == CircuitState.HALF_OPEN and not self._trial_in_flight:
                self._trial_in_flight = True
                return True

            self._stats.rejected_requests += 1
            logger.debug("circuit_rejected", breaker=self.name, state=self._state.value)
            return False

    def record_success(self) -> None:
        with self._lock:
            self._stats.successful_requests += 1
            self._stats.last_success_time = utc_now()
            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.CLOSED)
            else:
                self._consecutive_failures = 0

    def record_failure(self, error: BaseException | None = None) -> None:
        with self._lock:
            self._consecutive_failures += 1
            self._stats.failed_requests += 1
            self._stats.last_failure_time = utc_now()

            if self._state == CircuitState.HALF_OPEN:
                # A failed trial restarts the cooldown
                self._transition_to(CircuitState.OPEN)
            elif (
                self._state == CircuitState.CLOSED
                and self._consecutive_failures >= self.failure_threshold
            ):
                self._transition_to(CircuitState.OPEN)

            if error is not None:
                logger.debug(
                    "circuit_failure_recorded",
                    breaker=self.name,
                    consecutive_failures=self._consecutive_failures,
                    error=str(error),
                )

    def reset(self) -> None:
        """Reset circuit to closed state."""
        with self._lock:
            self._transition_to(CircuitState.CLOSED)
            self._consecutive_failures = 0

    def force_open(self) -> None:
        """Force circuit to open state (maintenance / testing)."""
        with self._lock:
            self._transition_to(CircuitState.OPEN)
            self._opened_at = self.clock.monotonic()

    # ── Execution ────────────────────────────────────────────────

    def execute(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run ``func`` through the breaker.

        Raises:
            CircuitOpenError: If the call was short-circuited
            Exception: Whatever ``func`` raised, after the state was updated
        """
        if not self.allow_request():
            raise CircuitOpenError(self.name, retry_after=self.remaining_cooldown())

        try:
            result = func(*args, **kwargs)
        except BaseException as e:
            # Interrupts count as failures; a half-open trial must always resolve
            self.record_failure(e)
            raise
        self.record_success()
        return result

    call = execute


class CircuitBreakerRegistry:
    """Registry of named circuit breakers."""

    def __init__(self) -> None:
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.RLock()

    def get(self, name: str) -> CircuitBreaker | None:
        with self._lock:
            return self._breakers.get(name)

    def get_or_create(
        self,
        name: str,
        failure_threshold: int = 5,
        cooldown: float = 30.0,
        **kwargs: Any,
    ) -> CircuitBreaker:
        """Return the breaker named ``name``, creating it on first use.

        Settings are only applied on creation; later callers share the
        existing breaker and its failure count.
        """
        with self._lock:
            if name not in self._breakers:
                self._breakers[name] = CircuitBreaker(
                    name=name,
                    failure_threshold=failure_threshold,
                    cooldown=cooldown,
                    **kwargs,
                )
            return self._breakers[name]

    def list_all(self) -> list[str]:
        with self._lock:
            return list(self._breakers.keys())

    def remove(self, name: str) -> None:
        with self._lock:
            self._breakers.pop(name, None)

    def clear(self) -> None:
        with self._lock:
            self._breakers.clear()

    def reset_all(self) -> None:
        with self._lock:
            for breaker in self._breakers.values():
                breaker.reset()

    def snapshot(self) -> list[dict[str, Any]]:
        with self._lock:
            return [breaker.snapshot() for breaker in self._breakers.values()]


# Global registry
_default_registry = CircuitBreakerRegistry()


def get_circuit_breaker(name: str, **kwargs: Any) -> CircuitBreaker:
    """Get a circuit breaker from the default registry."""
    return _default_registry.get_or_create(name, **kwargs)


def get_all_circuit_breakers() -> dict[str, CircuitBreaker]:
    """Get all circuit breakers from the default registry."""
    return {
        name: breaker
        for name in _default_registry.list_all()
        if (breaker := _default_registry.get(name)) is not None
    }


def clear_circuit_breakers() -> None:
    """Drop every breaker in the default registry (primarily for testing)."""
    _default_registry.clear()


__all__ = [
    "BreakerNames",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitState",
    "CircuitStats",
    "clear_circuit_breakers",
    "get_all_circuit_breakers",
    "get_circuit_breaker",
]
