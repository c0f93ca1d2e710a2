"""
Resilience infrastructure - handles retry logic, circuit breakers, and fault tolerance.
"""

from .retry_service import (
    RetryService,
    CircuitBreaker,
    CircuitBreakerState,
    CircuitBreakerError,
    RetryExhaustedError,
    TransientError,
    RETRIABLE_ERRORS,
    get_retry_service,
    get_openai_circuit_breaker,
    retry_with_circuit_breaker,
    exponential_backoff_delay
)

__all__ = [
    'RetryService',
    'CircuitBreaker',
    'CircuitBreakerState',
    'CircuitBreakerError',
    'RetryExhaustedError',
    'TransientError',
    'RETRIABLE_ERRORS',
    'get_retry_service',
    'get_openai_circuit_breaker',
    'retry_with_circuit_breaker',
    'exponential_backoff_delay'
]
