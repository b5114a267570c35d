"""
Circuit breakers for calls to the payment gateway.

Circuit Breaker Pattern:
- CLOSED: Normal operation, requests pass through
- OPEN: Too many failures, requests fail immediately
- HALF_OPEN: Testing if service recovered, limited requests allowed

Configuration:
- fail_max: Number of consecutive failures before opening circuit
- reset_timeout: Seconds to wait before attempting recovery (HALF_OPEN)
- exclude: Exceptions that don't count as failures (the gateway answered)
"""

import logging
from typing import Iterable

from pybreaker import CircuitBreaker, CircuitBreakerError, CircuitBreakerListener

logger = logging.getLogger(__name__)


def log_circuit_state_change(breaker_name: str, old_state: str, new_state: str) -> None:
    logger.warning(
        "Circuit breaker state changed",
        extra={
            "breaker_name": breaker_name,
            "old_state": old_state,
            "new_state": new_state,
        },
    )


class StateChangeLogger(CircuitBreakerListener):
    """Listener for circuit breaker state changes."""

    def __init__(self, name: str):
        self.name = name

    def state_change(self, cb, old_state, new_state):
        log_circuit_state_change(self.name, old_state.name if old_state else "none", new_state.name)


def build_breaker(
    name: str,
    fail_max: int = 5,
    reset_timeout: int = 60,
    exclude: Iterable[type[BaseException]] = (),
) -> CircuitBreaker:
    """One breaker per gateway instance, so tests never share circuit state."""
    return CircuitBreaker(
        fail_max=fail_max,
        reset_timeout=reset_timeout,
        exclude=list(exclude),
        name=f"{name}_circuit_breaker",
        listeners=[StateChangeLogger(name)],
    )


__all__ = [
    "build_breaker",
    "CircuitBreakerError",
    "StateChangeLogger",
]
