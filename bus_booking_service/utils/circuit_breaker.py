"""
Circuit breaker for collaborator service calls.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional
from dataclasses import dataclass, field

from ..utils.exceptions import BookingServiceError, ExternalServiceError

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""
    failure_threshold: int = 5
    recovery_timeout: int = 60
    expected_exception: Any = Exception
    success_threshold: int = 3
    timeout: float = 10.0


@dataclass
class CircuitBreakerStats:
    """Circuit breaker statistics."""
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    last_failure_time: Optional[float] = None
    last_success_time: Optional[float] = None
    total_requests: int = 0
    total_failures: int = 0
    total_successes: int = 0
    state_changes: Dict[str, int] = field(default_factory=lambda: {
        "closed_to_open": 0,
        "open_to_half_open": 0,
        "half_open_to_closed": 0,
        "half_open_to_open": 0
    })


class CircuitBreaker:
    """
    Fails fast while a collaborator keeps failing.

    Business outcomes raised by the wrapped call (a 409 seat conflict, say)
    pass through untouched and do not count as failures.
    """

    def __init__(self, name: str, config: CircuitBreakerConfig, enabled: bool = True):
        self.name = name
        self.config = config
        self.enabled = enabled
        self.stats = CircuitBreakerStats()
        self._lock = asyncio.Lock()

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        """Execute function with circuit breaker protection."""
        async with self._lock:
            self.stats.total_requests += 1

            if self._should_open_circuit():
                self._open_circuit()

            if self._should_attempt_reset():
                self._half_open_circuit()

            if self.enabled and self.stats.state == CircuitState.OPEN:
                raise ExternalServiceError(
                    self.name,
                    f"Circuit breaker is OPEN for {self.name}",
                    details={
                        "state": self.stats.state.value,
                        "failure_count": self.stats.failure_count,
                    },
                    retry_after=self.config.recovery_timeout
                )

        try:
            result = await asyncio.wait_for(
                func(*args, **kwargs),
                timeout=self.config.timeout
            )

            await self._record_success()
            return result

        except asyncio.TimeoutError:
            await self._record_failure()
            raise ExternalServiceError(
                self.name,
                f"Request timeout after {self.config.timeout}s",
                details={"timeout": self.config.timeout}
            )
        except ExternalServiceError:
            await self._record_failure()
            raise
        except BookingServiceError:
            await self._record_success()
            raise
        except self.config.expected_exception as e:
            await self._record_failure()
            raise ExternalServiceError(
                self.name,
                f"Service call failed: {str(e)}",
                details={"original_error": str(e)}
            )

    async def _record_success(self):
        async with self._lock:
            self.stats.success_count += 1
            self.stats.total_successes += 1
            self.stats.last_success_time = time.time()

            if self.stats.state == CircuitState.CLOSED:
                self.stats.failure_count = 0

            if (self.stats.state == CircuitState.HALF_OPEN and
                    self.stats.success_count >= self.config.success_threshold):
                self._close_circuit()

    async def _record_failure(self):
        async with self._lock:
            self.stats.failure_count += 1
            self.stats.total_failures += 1
            self.stats.last_failure_time = time.time()

            if self.stats.state == CircuitState.HALF_OPEN:
                self.stats.success_count = 0
                self._open_circuit()

            logger.warning(f"Circuit breaker {self.name}: Failure recorded ({self.stats.failure_count})")

    def _should_open_circuit(self) -> bool:
        return (self.stats.state == CircuitState.CLOSED and
                self.stats.failure_count >= self.config.failure_threshold)

    def _should_attempt_reset(self) -> bool:
        if self.stats.state != CircuitState.OPEN or not self.stats.last_failure_time:
            return False
        return time.time() - self.stats.last_failure_time >= self.config.recovery_timeout

    def _open_circuit(self):
        old_state = self.stats.state
        self.stats.state = CircuitState.OPEN

        if old_state == CircuitState.CLOSED:
            self.stats.state_changes["closed_to_open"] += 1
        elif old_state == CircuitState.HALF_OPEN:
            self.stats.state_changes["half_open_to_open"] += 1

        logger.warning(f"Circuit breaker {self.name}: OPENED (failures: {self.stats.failure_count})")

    def _half_open_circuit(self):
        self.stats.state = CircuitState.HALF_OPEN
        self.stats.success_count = 0
        self.stats.state_changes["open_to_half_open"] += 1

        logger.info(f"Circuit breaker {self.name}: HALF-OPEN (attempting recovery)")

    def _close_circuit(self):
        self.stats.state = CircuitState.CLOSED
        self.stats.failure_count = 0
        self.stats.success_count = 0
        self.stats.state_changes["half_open_to_closed"] += 1

        logger.info(f"Circuit breaker {self.name}: CLOSED (service recovered)")

    def get_stats(self) -> Dict[str, Any]:
        """Get circuit breaker statistics."""
        return {
            "name": self.name,
            "state": self.stats.state.value,
            "failure_count": self.stats.failure_count,
            "total_requests": self.stats.total_requests,
            "total_failures": self.stats.total_failures,
            "total_successes": self.stats.total_successes,
            "success_rate": (
                self.stats.total_successes / self.stats.total_requests
                if self.stats.total_requests > 0 else 0
            ),
            "last_failure_time": self.stats.last_failure_time,
            "state_changes": self.stats.state_changes.copy(),
        }


class CircuitBreakerRegistry:
    """Registry for managing multiple circuit breakers."""

    def __init__(self):
        self._breakers: Dict[str, CircuitBreaker] = {}

    def get_breaker(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        enabled: bool = True
    ) -> CircuitBreaker:
        """Get or create a circuit breaker."""
        if name not in self._breakers:
            self._breakers[name] = CircuitBreaker(name, config or CircuitBreakerConfig(), enabled)
        return self._breakers[name]

    def get_all_stats(self) -> Dict[str, Dict[str, Any]]:
        return {name: breaker.get_stats() for name, breaker in self._breakers.items()}


# Global registry instance
_registry = CircuitBreakerRegistry()


def get_circuit_breaker(
    name: str,
    config: Optional[CircuitBreakerConfig] = None,
    enabled: bool = True
) -> CircuitBreaker:
    """Get a circuit breaker from the global registry."""
    return _registry.get_breaker(name, config, enabled)


def get_registry() -> CircuitBreakerRegistry:
    return _registry
