"""
Circuit Breaker Pattern Implementation
Fails fast when an AI provider keeps erroring instead of waiting on every timeout
"""

import logging
import time
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Type

import httpx

from app.core.metrics import update_circuit_breaker_state

logger = logging.getLogger(__name__)


class CircuitBreakerState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpenException(Exception):
    """Raised when a call is refused because the breaker is open"""


class CircuitBreaker:
    """Circuit breaker for async calls"""

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        expected_exceptions: Tuple[Type[BaseException], ...] = (Exception,),
        success_threshold: int = 1,
        name: str = "default",
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exceptions = expected_exceptions
        self.success_threshold = success_threshold
        self.name = name

        self.state = CircuitBreakerState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None

    def _should_attempt_reset(self) -> bool:
        if self.last_failure_time is None:
            return False
        return time.monotonic() - self.last_failure_time >= self.recovery_timeout

    def _set_state(self, state: CircuitBreakerState):
        self.state = state
        update_circuit_breaker_state(self.name, state.value)

    def _record_success(self):
        if self.state == CircuitBreakerState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.success_threshold:
                self.reset()
        else:
            self.failure_count = 0

    def _record_failure(self):
        self.failure_count += 1
        self.last_failure_time = time.monotonic()

        if (
            self.state == CircuitBreakerState.HALF_OPEN
            or self.failure_count >= self.failure_threshold
        ):
            self._set_state(CircuitBreakerState.OPEN)
            logger.warning(
                f"Circuit breaker '{self.name}' opened after {self.failure_count} failures"
            )

    def reset(self):
        """Reset the circuit breaker to closed state"""
        self._set_state(CircuitBreakerState.CLOSED)
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time = None
        logger.info(f"Circuit breaker '{self.name}' reset to closed state")

    def _can_attempt_call(self) -> bool:
        if self.state == CircuitBreakerState.OPEN:
            if not self._should_attempt_reset():
                return False
            self._set_state(CircuitBreakerState.HALF_OPEN)
            self.success_count = 0
            logger.info(f"Circuit breaker '{self.name}' attempting reset")
        return True

    @asynccontextmanager
    async def call_context(self):
        """Context manager for circuit breaker protected calls"""
        if not self._can_attempt_call():
            raise CircuitBreakerOpenException(f"Circuit breaker '{self.name}' is OPEN")

        try:
            yield
        except self.expected_exceptions:
            self._record_failure()
            raise
        self._record_success()

    def get_state(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "failure_threshold": self.failure_threshold,
            "recovery_timeout": self.recovery_timeout,
        }


_breakers: Dict[str, CircuitBreaker] = {}


def get_provider_breaker(provider: str) -> CircuitBreaker:
    """One breaker per AI provider, shared across requests"""
    if provider not in _breakers:
        _breakers[provider] = CircuitBreaker(
            name=f"ai_{provider}",
            failure_threshold=3,
            recovery_timeout=30.0,
            expected_exceptions=(httpx.TransportError,),
        )
    return _breakers[provider]


def reset_all_breakers():
    for breaker in _breakers.values():
        breaker.reset()
