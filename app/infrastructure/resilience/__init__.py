"""Resilience patterns for provider calls."""

from infrastructure.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    CircuitState,
    register_circuit_breaker,
    get_all_circuit_breaker_stats,
    get_open_circuit_breakers,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerOpenError",
    "CircuitState",
    "register_circuit_breaker",
    "get_all_circuit_breaker_stats",
    "get_open_circuit_breakers",
]
