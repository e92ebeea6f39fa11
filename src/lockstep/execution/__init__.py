"""lockstep.execution: fault-tolerance primitives (circuit breaker, retry policy)."""

from lockstep.execution.circuit_breaker import (
    BreakerNames,
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
    CircuitStats,
    get_all_circuit_breakers,
    get_circuit_breaker,
)
from lockstep.execution.retry import (
    ExponentialBackoff,
    JitteredConstantBackoff,
    RetryStrategy,
    backoff_schedule,
)

__all__ = [
    "BreakerNames",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitState",
    "CircuitStats",
    "ExponentialBackoff",
    "JitteredConstantBackoff",
    "RetryStrategy",
    "backoff_schedule",
    "get_all_circuit_breakers",
    "get_circuit_breaker",
]
