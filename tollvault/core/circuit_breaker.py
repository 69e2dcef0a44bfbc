"""
Circuit Breaker for outbound Bot API calls.

After ``failure_threshold`` consecutive failures the breaker opens and calls
fail fast with CircuitBreakerOpenError until ``timeout_seconds`` have passed;
then a limited number of trial calls decide whether it closes again.
"""
import asyncio
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from tollvault.core.exceptions import CircuitBreakerOpenError
from tollvault.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states"""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker"""
    failure_threshold: int = 5
    success_threshold: int = 2
    timeout_seconds: float = 30.0
    half_open_max_calls: int = 3


class CircuitBreaker:
    """Per-service breaker; one shared instance per service name."""

    _instances: dict[str, "CircuitBreaker"] = {}
    _instances_lock = threading.Lock()

    def __init__(self, service_name: str, config: CircuitBreakerConfig | None = None):
        self.service_name = service_name
        self.config = config or CircuitBreakerConfig()
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._half_open_calls = 0
        self._opened_at = 0.0
        # threading.Lock: Celery workers run each task on a fresh event loop
        self._lock = threading.Lock()

    @classmethod
    def get_instance(
        cls,
        service_name: str,
        config: CircuitBreakerConfig | None = None
    ) -> "CircuitBreaker":
        """Get or create circuit breaker instance for a service"""
        with cls._instances_lock:
            if service_name not in cls._instances:
                cls._instances[service_name] = cls(service_name, config)
            return cls._instances[service_name]

    @classmethod
    def reset_all(cls) -> None:
        """Drop every instance (used by tests)"""
        with cls._instances_lock:
            cls._instances.clear()

    @property
    def state(self) -> CircuitState:
        return self._state

    def _set_state(self, new_state: CircuitState) -> None:
        old_state, self._state = self._state, new_state
        if new_state is CircuitState.OPEN:
            self._opened_at = time.monotonic()
        elif new_state is CircuitState.HALF_OPEN:
            self._half_open_calls = 0
            self._successes = 0
        else:
            self._failures = 0
            self._successes = 0

        logger.info(
            f"Circuit breaker '{self.service_name}' transitioned",
            extra_data={
                "service": self.service_name,
                "old_state": old_state.value,
                "new_state": new_state.value,
            }
        )

    def retry_after(self) -> float:
        """Seconds until an open breaker lets a trial call through"""
        if self._state is not CircuitState.OPEN:
            return 0.0
        return max(0.0, self.config.timeout_seconds - (time.monotonic() - self._opened_at))

    def _acquire(self) -> bool:
        with self._lock:
            if self._state is CircuitState.OPEN:
                if self.retry_after() > 0:
                    return False
                self._set_state(CircuitState.HALF_OPEN)

            if self._state is CircuitState.HALF_OPEN:
                if self._half_open_calls >= self.config.half_open_max_calls:
                    return False
                self._half_open_calls += 1
            return True

    def _on_success(self) -> None:
        with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                self._successes += 1
                if self._successes >= self.config.success_threshold:
                    self._set_state(CircuitState.CLOSED)
            else:
                self._failures = 0

    def _on_failure(self, error: Exception) -> None:
        with self._lock:
            self._failures += 1
            logger.warning(
                f"Circuit breaker '{self.service_name}' recorded failure",
                extra_data={
                    "service": self.service_name,
                    "failure_count": self._failures,
                    "threshold": self.config.failure_threshold,
                    "error": str(error),
                }
            )
            if (
                self._state is CircuitState.HALF_OPEN
                or self._failures >= self.config.failure_threshold
            ):
                self._set_state(CircuitState.OPEN)

    async def execute(self, func: Callable[..., Awaitable[T] | T], *args: Any, **kwargs: Any) -> T:
        """
        Run ``func`` under the breaker.

        Raises:
            CircuitBreakerOpenError: the breaker is open and the call was not attempted
        """
        if not self._acquire():
            raise CircuitBreakerOpenError(self.service_name, self.retry_after())

        try:
            result = func(*args, **kwargs)
            if asyncio.iscoroutine(result):
                result = await result
        except Exception as e:
            self._on_failure(e)
            raise

        self._on_success()
        return result


def get_telegram_circuit_breaker() -> CircuitBreaker:
    """Get circuit breaker for Telegram API"""
    return CircuitBreaker.get_instance(
        "telegram",
        CircuitBreakerConfig(
            failure_threshold=5,
            success_threshold=2,
            timeout_seconds=30.0
        )
    )
