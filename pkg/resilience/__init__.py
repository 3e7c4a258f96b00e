"""
Resilience package.
"""
from .circuit_breaker import CircuitBreaker, CircuitBreakerError, CircuitState
from .timeout import CallTimeoutError, call_with_timeout

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerError",
    "CircuitState",
    "CallTimeoutError",
    "call_with_timeout",
]
