"""
Resilience service for retry logic, circuit breakers, and fault tolerance.
All external calls (LLM provider, reference text provider, durable store) go through here.
"""

import asyncio
import random
from typing import Awaitable, Callable, Any, Dict, Optional
from datetime import datetime
from enum import Enum
import httpx
import openai

from infrastructure.monitoring.logging_service import get_logger

logger = get_logger(__name__)


class TransientError(Exception):
    """Base class for adapter errors that are worth retrying"""
    pass


# Define which errors should trigger retries (transient errors)
RETRIABLE_ERRORS = (
    openai.RateLimitError,
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.InternalServerError,  # Server-side issues
    httpx.TransportError,
    asyncio.TimeoutError,
    TransientError,
)

# Define which errors should NOT be retried (permanent errors)
NON_RETRIABLE_ERRORS = (
    openai.AuthenticationError,  # API key issues
    openai.BadRequestError,      # User input issues
    openai.ContentFilterFinishReasonError,  # Content policy violations
)


def exponential_backoff_delay(attempt: int, base_delay: float = 1.0, max_delay: float = 10.0) -> float:
    """
    Calculate exponential backoff delay with jitter

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds

    Returns:
        Delay in seconds, at most 10% above the capped exponential value
    """
    delay = min(base_delay * (2 ** attempt), max_delay)

    # Add jitter to avoid thundering herd effect
    jitter = random.uniform(0, 0.1 * delay)

    return delay + jitter


class CircuitBreakerState(Enum):
    """Circuit breaker states"""
    CLOSED = "closed"      # Normal operation, requests pass through
    OPEN = "open"          # Circuit is open, requests are blocked
    HALF_OPEN = "half_open"  # Testing if service has recovered


class CircuitBreakerError(Exception):
    """Raised when a call is rejected because the circuit is open"""
    pass


class RetryExhaustedError(Exception):
    """Raised when every attempt failed with a retriable error"""

    def __init__(self, attempts: int, last_error: Exception):
        super().__init__(f"Gave up after {attempts} attempts: {last_error.__class__.__name__}")
        self.attempts = attempts
        self.last_error = last_error


class CircuitBreaker:
    """
    Circuit breaker implementation for external API calls

    States:
    - CLOSED: Normal operation, all requests pass through
    - OPEN: Circuit is open, requests fail fast without hitting the API
    - HALF_OPEN: Testing recovery, limited requests allowed through

    Calls run on the event loop thread, so state changes need no lock.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        expected_exception: tuple = RETRIABLE_ERRORS,
        name: str = "CircuitBreaker"
    ):
        """
        Initialize circuit breaker

        Args:
            failure_threshold: Number of failures before opening circuit
            recovery_timeout: Seconds to wait before attempting recovery
            expected_exception: Exceptions that count as failures
            name: Name for logging and identification
        """
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception
        self.name = name

        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[datetime] = None
        self.state = CircuitBreakerState.CLOSED

        logger.info(f"CircuitBreaker '{name}' initialized with threshold={failure_threshold}, timeout={recovery_timeout}s")

    def _should_attempt_reset(self) -> bool:
        """Check if enough time has passed to attempt recovery"""
        if self.last_failure_time is None:
            return False

        time_since_failure = datetime.now() - self.last_failure_time
        return time_since_failure.total_seconds() >= self.recovery_timeout

    def _record_success(self):
        self.failure_count = 0
        self.success_count += 1

        if self.state == CircuitBreakerState.HALF_OPEN:
            self.state = CircuitBreakerState.CLOSED
            logger.info(f"CircuitBreaker '{self.name}' recovered - state: CLOSED")

    def _record_failure(self, exception: Exception):
        self.failure_count += 1
        self.last_failure_time = datetime.now()

        if self.state == CircuitBreakerState.HALF_OPEN:
            self.state = CircuitBreakerState.OPEN
            logger.warning(f"CircuitBreaker '{self.name}' recovery failed - state: OPEN")

        elif self.state == CircuitBreakerState.CLOSED and self.failure_count >= self.failure_threshold:
            self.state = CircuitBreakerState.OPEN
            logger.warning(f"CircuitBreaker '{self.name}' opened - failures: {self.failure_count} "
                           f"(last: {exception.__class__.__name__})")

    def can_execute(self) -> bool:
        """Check if a request can be executed"""
        if self.state == CircuitBreakerState.CLOSED:
            return True

        if self.state == CircuitBreakerState.OPEN:
            if self._should_attempt_reset():
                self.state = CircuitBreakerState.HALF_OPEN
                logger.info(f"CircuitBreaker '{self.name}' attempting recovery - state: HALF_OPEN")
                return True
            return False

        # HALF_OPEN lets a single trial call through
        return True

    async def execute(self, func: Callable[[], Awaitable[Any]]) -> Any:
        """
        Execute a coroutine function with circuit breaker protection

        Args:
            func: Zero-argument callable returning an awaitable

        Returns:
            Function result if successful

        Raises:
            CircuitBreakerError: If circuit is open
            Original exception: If function fails
        """
        if not self.can_execute():
            remaining_time = self.recovery_timeout
            if self.last_failure_time:
                elapsed = (datetime.now() - self.last_failure_time).total_seconds()
                remaining_time = max(0, self.recovery_timeout - elapsed)

            raise CircuitBreakerError(
                f"Circuit breaker '{self.name}' is OPEN. "
                f"Service appears to be down. Retry in {remaining_time:.0f}s."
            )

        try:
            result = await func()
        except self.expected_exception as e:
            self._record_failure(e)
            raise
        except Exception as e:
            # Non-expected exceptions don't count as circuit failures
            logger.warning(f"CircuitBreaker '{self.name}' encountered non-tracked exception: {e.__class__.__name__}")
            raise

        self._record_success()
        return result

    def get_state(self) -> dict:
        """Get current circuit breaker state for monitoring"""
        remaining_timeout = 0
        if self.last_failure_time and self.state == CircuitBreakerState.OPEN:
            elapsed = (datetime.now() - self.last_failure_time).total_seconds()
            remaining_timeout = max(0, self.recovery_timeout - elapsed)

        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "failure_threshold": self.failure_threshold,
            "remaining_timeout": remaining_timeout,
            "last_failure_time": self.last_failure_time.isoformat() if self.last_failure_time else None
        }

    def reset(self):
        """Manually reset the circuit breaker to CLOSED state"""
        self.state = CircuitBreakerState.CLOSED
        self.failure_count = 0
        self.last_failure_time = None
        logger.info(f"CircuitBreaker '{self.name}' manually reset - state: CLOSED")


class RetryService:
    """
    Service for handling retry logic and circuit breakers.
    Provides infrastructure-level fault tolerance capabilities.
    """

    def __init__(self, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
                 failure_threshold: int = 5, recovery_timeout: int = 60):
        self.logger = get_logger(__name__)
        self._sleep = sleep
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._circuit_breakers: Dict[str, CircuitBreaker] = {}

    def create_circuit_breaker(
        self,
        name: str,
        failure_threshold: Optional[int] = None,
        recovery_timeout: Optional[int] = None,
        expected_exception: tuple = RETRIABLE_ERRORS
    ) -> CircuitBreaker:
        """Create a new circuit breaker"""
        circuit_breaker = CircuitBreaker(
            failure_threshold=failure_threshold or self._failure_threshold,
            recovery_timeout=recovery_timeout or self._recovery_timeout,
            expected_exception=expected_exception,
            name=name
        )
        self._circuit_breakers[name] = circuit_breaker
        return circuit_breaker

    def get_circuit_breaker(self, name: str) -> CircuitBreaker:
        """Get or lazily create a circuit breaker by name"""
        if name not in self._circuit_breakers:
            return self.create_circuit_breaker(name)
        return self._circuit_breakers[name]

    async def retry_with_backoff(
        self,
        func: Callable[[], Awaitable[Any]],
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
        on_retry: Optional[Callable[[int, Exception], None]] = None,
        operation: str = "operation"
    ) -> Any:
        """
        Execute a coroutine function with retry logic and exponential backoff

        Args:
            func: Zero-argument callable returning an awaitable
            max_attempts: Total number of attempts, including the first one
            base_delay: Base delay between retries in seconds
            max_delay: Maximum delay between retries in seconds
            on_retry: Optional callback for retry events (attempt_number, exception)
            operation: Name used in log lines

        Returns:
            Function result if successful

        Raises:
            RetryExhaustedError: If every attempt failed with a retriable error
            Any non-retriable exception, unchanged
        """
        for attempt in range(max_attempts):
            try:
                result = await func()

                if attempt > 0:
                    self.logger.info(f"{operation} succeeded after {attempt} retries")

                return result

            except CircuitBreakerError:
                # An open circuit will not close during our backoff window
                raise

            except NON_RETRIABLE_ERRORS as e:
                self.logger.warning(f"{operation}: non-retriable error {e.__class__.__name__}")
                raise

            except RETRIABLE_ERRORS as e:
                if attempt == max_attempts - 1:
                    self.logger.error(f"{operation} failed after {max_attempts} attempts: {e.__class__.__name__}")
                    raise RetryExhaustedError(max_attempts, e) from e

                delay = exponential_backoff_delay(attempt, base_delay, max_delay)
                self.logger.warning(f"{operation}: attempt {attempt + 1} failed ({e.__class__.__name__}), "
                                    f"retrying in {delay:.2f}s")

                if on_retry:
                    on_retry(attempt + 1, e)

                await self._sleep(delay)

        raise ValueError("max_attempts must be at least 1")

    async def retry_with_circuit_breaker(
        self,
        func: Callable[[], Awaitable[Any]],
        circuit_breaker: Optional[CircuitBreaker] = None,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
        on_retry: Optional[Callable[[int, Exception], None]] = None,
        operation: str = "operation"
    ) -> Any:
        """
        Execute a coroutine function with both retry logic and circuit breaker protection

        Each attempt is recorded by the breaker; an open breaker stops the retry loop.

        Raises:
            CircuitBreakerError: If circuit breaker is open
            RetryExhaustedError: If all attempts are exhausted
        """
        if circuit_breaker is None:
            circuit_breaker = self.get_openai_circuit_breaker()

        async def guarded():
            return await circuit_breaker.execute(func)

        return await self.retry_with_backoff(
            guarded,
            max_attempts=max_attempts,
            base_delay=base_delay,
            max_delay=max_delay,
            on_retry=on_retry,
            operation=operation
        )

    def get_openai_circuit_breaker(self) -> CircuitBreaker:
        """Get or create the LLM provider circuit breaker"""
        return self.get_circuit_breaker("openai")

    def get_sefaria_circuit_breaker(self) -> CircuitBreaker:
        """Get or create the reference text provider circuit breaker"""
        return self.get_circuit_breaker("sefaria")

    def get_all_states(self) -> Dict[str, dict]:
        """Snapshot of every breaker for health reporting"""
        return {name: breaker.get_state() for name, breaker in self._circuit_breakers.items()}


# Global retry service instance
_retry_service: Optional[RetryService] = None


def get_retry_service() -> RetryService:
    """Get the global retry service instance"""
    global _retry_service
    if _retry_service is None:
        from infrastructure.config.settings import get_config
        resilience = get_config().resilience
        _retry_service = RetryService(
            failure_threshold=resilience.failure_threshold,
            recovery_timeout=resilience.recovery_timeout
        )
    return _retry_service


def get_openai_circuit_breaker() -> CircuitBreaker:
    """Get OpenAI circuit breaker from the global service"""
    return get_retry_service().get_openai_circuit_breaker()


async def retry_with_circuit_breaker(
    func: Callable[[], Awaitable[Any]],
    circuit_breaker: Optional[CircuitBreaker] = None,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    on_retry: Optional[Callable[[int, Exception], None]] = None
) -> Any:
    """Execute coroutine function with retry and circuit breaker via the global service"""
    return await get_retry_service().retry_with_circuit_breaker(
        func, circuit_breaker, max_attempts, base_delay, max_delay, on_retry
    )
