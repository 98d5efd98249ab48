"""Retry policies and the retry engine.

This module provides:
- RetryConfig presets (conservative, aggressive, user-triggered)
- Context-aware policy selection and retry decisions
- RetryEngine, which runs an async operation under tenacity with
  exponential backoff, jitter and error classification
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt

from network.classifier import ErrorClassifier
from network.errors import (
    AuthenticationError,
    NetworkError,
    NoConnectionError,
    RecoveryStrategy,
    RequestTimeoutError,
    RetryExhaustedError,
    ServerError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryPredicate = Callable[[NetworkError], bool]
RetryCallback = Callable[[int, NetworkError, float], None]


@dataclass(frozen=True)
class RetryConfig:
    """Immutable retry configuration. Delays are in seconds."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 300.0
    backoff_multiplier: float = 2.0
    jitter: float = 0.1
    jitter_enabled: bool = True

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.initial_delay < 0:
            raise ValueError(f"initial_delay must be >= 0, got {self.initial_delay}")
        if self.max_delay < self.initial_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) must be >= initial_delay ({self.initial_delay})"
            )
        if self.backoff_multiplier < 1.0:
            raise ValueError(f"backoff_multiplier must be >= 1.0, got {self.backoff_multiplier}")
        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError(f"jitter must be within [0, 1], got {self.jitter}")

    def base_delay(self, retry_number: int) -> float:
        """Delay before the given retry (1-based), before jitter."""
        return min(
            self.initial_delay * self.backoff_multiplier ** (retry_number - 1),
            self.max_delay,
        )


# Predefined configurations
CONSERVATIVE = RetryConfig(max_attempts=2, initial_delay=2.0, backoff_multiplier=1.5)
AGGRESSIVE = RetryConfig(max_attempts=5, initial_delay=0.5, backoff_multiplier=2.5)
USER_TRIGGERED = RetryConfig(max_attempts=1, initial_delay=0.0)

# Essential data: retry quickly and often
CRITICAL = RetryConfig(max_attempts=5, initial_delay=0.1, max_delay=30.0)
# Nice-to-have data: a single attempt
OPTIONAL = RetryConfig(max_attempts=1, initial_delay=1.0)


class RequestContext(Enum):
    """Why a request is being made."""

    USER_INITIATED = "user_initiated"  # User tapped refresh
    BACKGROUND = "background"  # Auto-refresh or background sync
    CRITICAL = "critical"  # Essential data for app function
    OPTIONAL = "optional"  # Nice-to-have data


def default_should_retry(error: NetworkError) -> bool:
    """Retry iff the error itself recommends it."""
    return error.recommended_strategy == RecoveryStrategy.RETRY


class RetryPolicy:
    """Selects a RetryConfig and makes retry decisions per request context."""

    _CONFIGS = {
        RequestContext.USER_INITIATED: AGGRESSIVE,
        RequestContext.BACKGROUND: CONSERVATIVE,
        RequestContext.CRITICAL: CRITICAL,
        RequestContext.OPTIONAL: OPTIONAL,
    }

    def config_for(self, context: RequestContext) -> RetryConfig:
        """Get the retry configuration for a request context."""
        return self._CONFIGS[context]

    def should_retry(self, error: NetworkError, context: RequestContext) -> bool:
        """Decide whether an error is worth retrying in a context.

        Rules are checked in order; the first match decides.
        """
        # Never retry auth errors
        if isinstance(error, AuthenticationError):
            return False
        # Always retry connection issues for critical requests
        if isinstance(error, NoConnectionError) and context == RequestContext.CRITICAL:
            return True
        # Don't retry timeouts for background requests
        if isinstance(error, RequestTimeoutError) and context == RequestContext.BACKGROUND:
            return False
        # Server errors: only 5xx
        if isinstance(error, ServerError):
            return error.status_code >= 500
        return default_should_retry(error)

    def predicate_for(self, context: RequestContext) -> RetryPredicate:
        """Bind should_retry to a context."""
        return lambda error: self.should_retry(error, context)


class RetryEngine:
    """Run async operations with classified, backed-off retries."""

    def __init__(
        self,
        classifier: Optional[ErrorClassifier] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        """Initialize retry engine.

        Args:
            classifier: ErrorClassifier used on every failure
            sleep: Async sleep function (injectable for tests)
            rng: Random source for jitter
        """
        self.classifier = classifier or ErrorClassifier()
        self._sleep = sleep
        self._rng = rng or random.Random()

    def compute_delay(self, config: RetryConfig, retry_number: int) -> float:
        """Backoff delay for a retry, with jitter applied when enabled."""
        delay = config.base_delay(retry_number)
        if config.jitter_enabled and config.jitter > 0:
            delay += delay * config.jitter * self._rng.uniform(-1.0, 1.0)
        return max(0.0, delay)

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        config: Optional[RetryConfig] = None,
        should_retry: Optional[RetryPredicate] = None,
        on_retry: Optional[RetryCallback] = None,
    ) -> T:
        """Execute an operation, retrying classified failures.

        Args:
            operation: Zero-argument callable returning a fresh awaitable
            config: Retry configuration (defaults to RetryConfig())
            should_retry: Predicate on the classified error
            on_retry: Called with (attempt, error, delay) before each sleep

        Returns:
            The operation's result

        Raises:
            RetryExhaustedError: When the last allowed attempt failed
            Exception: The original failure when it is not retryable
        """
        config = config or RetryConfig()
        decide = should_retry or default_should_retry
        attempts = 0

        async def attempt() -> T:
            nonlocal attempts
            attempts += 1
            return await operation()

        def retry_condition(retry_state: RetryCallState) -> bool:
            outcome = retry_state.outcome
            if not outcome.failed:
                return False
            exc = outcome.exception()
            if not isinstance(exc, Exception):
                # Cancellation and interpreter exits are never retried
                return False
            if retry_state.attempt_number >= config.max_attempts:
                # Let the stop condition raise RetryExhaustedError
                return True
            error = self.classifier.classify(exc)
            if not decide(error):
                logger.info(f"Error is not retryable: {error}")
                return False
            return True

        def wait(retry_state: RetryCallState) -> float:
            return self.compute_delay(config, retry_state.attempt_number)

        def before_sleep(retry_state: RetryCallState) -> None:
            error = self.classifier.classify(retry_state.outcome.exception())
            delay = retry_state.next_action.sleep
            logger.warning(
                f"Attempt {retry_state.attempt_number}/{config.max_attempts} failed "
                f"({error}), retrying in {delay:.2f}s"
            )
            if on_retry is not None:
                on_retry(retry_state.attempt_number, error, delay)

        def exhausted(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception()
            error = self.classifier.classify(exc)
            logger.error(f"Operation failed after {retry_state.attempt_number} attempts: {error}")
            raise RetryExhaustedError(error, retry_state.attempt_number) from exc

        retrying = AsyncRetrying(
            stop=stop_after_attempt(config.max_attempts),
            wait=wait,
            retry=retry_condition,
            before_sleep=before_sleep,
            retry_error_callback=exhausted,
            sleep=self._sleep,
        )

        result = await retrying(attempt)
        if attempts > 1:
            logger.info(f"Operation succeeded on attempt {attempts}")
        return result

    async def execute_for_context(
        self,
        operation: Callable[[], Awaitable[T]],
        context: RequestContext,
        policy: Optional[RetryPolicy] = None,
        on_retry: Optional[RetryCallback] = None,
    ) -> T:
        """Execute with the config and retry rules of a request context."""
        policy = policy or RetryPolicy()
        return await self.execute_with_retry(
            operation,
            config=policy.config_for(context),
            should_retry=policy.predicate_for(context),
            on_retry=on_retry,
        )


__all__ = [
    "RetryConfig",
    "CONSERVATIVE",
    "AGGRESSIVE",
    "USER_TRIGGERED",
    "CRITICAL",
    "OPTIONAL",
    "RequestContext",
    "RetryPolicy",
    "RetryEngine",
    "default_should_retry",
]
