"""Per-provider circuit breakers.

A breaker guards one channel/provider pair (``email_sendgrid``,
``sms_twilio``). After ``failure_threshold`` consecutive failed deliveries
it opens and rejects calls until ``timeout_seconds`` have passed, so the
dispatcher goes straight to the fallback provider instead of waiting on a
provider that is down. After the cool-down a limited number of trial
deliveries run: one success closes the breaker, one failure opens it again.

Usage:
    breaker = CircuitBreaker("email_sendgrid", failure_threshold=5)
    result = breaker.call(client.deliver, message, is_failure=lambda r: r.is_transient)
"""

import threading
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from infrastructure.logging import get_module_logger

logger = get_module_logger()


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpenError(Exception):
    """The breaker rejected the call without reaching the provider."""

    def __init__(self, name: str, retry_after: int = 0):
        self.name = name
        self.retry_after = retry_after
        if retry_after:
            message = f"provider circuit {name} is open, retry in {retry_after}s"
        else:
            message = f"provider circuit {name} is testing recovery"
        super().__init__(message)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class CircuitBreaker:
    """Consecutive-failure breaker around provider calls.

    A call fails when it raises or when ``is_failure`` returns True for its
    result. Provider clients report errors as OperationResult values, so
    adapters pass ``lambda r: r.is_transient``: timeouts and 5xx trip the
    breaker while rejected recipients or content do not.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        timeout_seconds: int = 60,
        half_open_max_calls: int = 1,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.timeout_seconds = timeout_seconds
        self.half_open_max_calls = half_open_max_calls

        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._total_failures = 0
        self._total_successes = 0
        self._rejected = 0
        self._trials_in_flight = 0
        self._open_until: Optional[datetime] = None
        self._last_error: Optional[str] = None

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    def call(
        self,
        func: Callable[..., Any],
        *args: Any,
        is_failure: Optional[Callable[[Any], bool]] = None,
        **kwargs: Any,
    ) -> Any:
        """Run ``func`` if the breaker admits it.

        Raises:
            CircuitBreakerOpenError: the breaker is open, or every trial
                slot is taken while half-open.
        """
        trial = self._admit()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            self._record(failed=True, error=str(e), trial=trial)
            raise
        failed = is_failure is not None and is_failure(result)
        error = None
        if failed:
            error = getattr(result, "message", None) or "failed result"
        self._record(failed=failed, error=error, trial=trial)
        return result

    def _admit(self) -> bool:
        """Reserve a slot for one call; True when the call is a trial."""
        with self._lock:
            if self._state is CircuitState.OPEN:
                now = _now()
                if self._open_until is not None and now < self._open_until:
                    self._rejected += 1
                    retry_after = max(1, int((self._open_until - now).total_seconds()))
                    logger.warning(
                        "provider_circuit_rejected",
                        circuit=self.name,
                        retry_after=retry_after,
                    )
                    raise CircuitBreakerOpenError(self.name, retry_after)
                self._set_state(CircuitState.HALF_OPEN)

            if self._state is CircuitState.HALF_OPEN:
                if self._trials_in_flight >= self.half_open_max_calls:
                    self._rejected += 1
                    raise CircuitBreakerOpenError(self.name)
                self._trials_in_flight += 1
                return True
            return False

    def _record(self, failed: bool, error: Optional[str], trial: bool) -> None:
        with self._lock:
            if trial and self._trials_in_flight:
                self._trials_in_flight -= 1

            if not failed:
                self._total_successes += 1
                self._consecutive_failures = 0
                if self._state is CircuitState.HALF_OPEN:
                    self._set_state(CircuitState.CLOSED)
                return

            self._total_failures += 1
            self._consecutive_failures += 1
            self._last_error = error
            if self._state is CircuitState.HALF_OPEN:
                self._trip(error)
            elif self._consecutive_failures >= self.failure_threshold:
                self._trip(error)
            else:
                logger.warning(
                    "provider_call_failed",
                    circuit=self.name,
                    consecutive_failures=self._consecutive_failures,
                    threshold=self.failure_threshold,
                    error=error,
                )

    def _trip(self, error: Optional[str]) -> None:
        self._open_until = _now() + timedelta(seconds=self.timeout_seconds)
        logger.error(
            "provider_circuit_opened",
            circuit=self.name,
            consecutive_failures=self._consecutive_failures,
            open_until=self._open_until.isoformat(),
            error=error,
        )
        self._set_state(CircuitState.OPEN)

    def _set_state(self, state: CircuitState) -> None:
        # Caller holds the lock
        if state is not CircuitState.OPEN:
            self._open_until = None
        if state is CircuitState.CLOSED:
            self._consecutive_failures = 0
        self._trials_in_flight = 0
        if state is not self._state:
            logger.info(
                "provider_circuit_state_changed",
                circuit=self.name,
                previous=self._state.value,
                state=state.value,
            )
        self._state = state

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "failure_count": self._consecutive_failures,
                "total_failures": self._total_failures,
                "total_successes": self._total_successes,
                "rejected": self._rejected,
                "open_until": self._open_until.isoformat() if self._open_until else None,
                "last_error": self._last_error,
            }

    def reset(self) -> None:
        """Close the breaker regardless of its history."""
        with self._lock:
            self._set_state(CircuitState.CLOSED)


class CircuitBreakerRegistry:
    """Breakers known to the process, keyed by name, for health reporting."""

    def __init__(self) -> None:
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def register(self, breaker: CircuitBreaker) -> None:
        with self._lock:
            self._breakers[breaker.name] = breaker

    def breakers(self) -> List[CircuitBreaker]:
        with self._lock:
            return list(self._breakers.values())


_registry = CircuitBreakerRegistry()


def register_circuit_breaker(breaker: CircuitBreaker) -> None:
    _registry.register(breaker)


def get_all_circuit_breaker_stats() -> Dict[str, Dict[str, Any]]:
    return {breaker.name: breaker.get_stats() for breaker in _registry.breakers()}


def get_open_circuit_breakers() -> List[str]:
    """Names of breakers currently rejecting calls."""
    return [
        breaker.name
        for breaker in _registry.breakers()
        if breaker.state is CircuitState.OPEN
    ]
