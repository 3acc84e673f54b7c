# ============================================================================
# src/clinical_provenance/llm/retry.py
# ============================================================================
"""
Retry Policy

Exponential backoff for model calls, passed to the client explicitly so
it can be tested on its own. Only TransientModelError is retried;
exhausting the attempts raises TerminalModelError.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar
import asyncio
import logging

from ..utils.exceptions import TerminalModelError, TransientModelError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3          # retries after the first attempt
    initial_delay: float = 0.5    # seconds
    multiplier: float = 2.0
    max_delay: float = 10.0

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_delay <= 0 or self.max_delay <= 0:
            raise ValueError("delays must be positive")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt: int) -> float:
        """Delay after the given zero-based failed attempt."""
        return min(self.initial_delay * (self.multiplier ** attempt), self.max_delay)

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        from ..config.model_config import model_settings
        return cls(
            max_retries=model_settings.RETRY_MAX_RETRIES,
            initial_delay=model_settings.RETRY_INITIAL_DELAY,
            multiplier=model_settings.RETRY_MULTIPLIER,
            max_delay=model_settings.RETRY_MAX_DELAY,
        )

    @classmethod
    def fast_from_settings(cls) -> "RetryPolicy":
        """Shorter policy for the identity-only extraction."""
        from ..config.model_config import model_settings
        return cls(
            max_retries=model_settings.FAST_RETRY_MAX_RETRIES,
            initial_delay=model_settings.FAST_RETRY_INITIAL_DELAY,
            multiplier=model_settings.RETRY_MULTIPLIER,
            max_delay=model_settings.FAST_RETRY_MAX_DELAY,
        )


NO_RETRY = RetryPolicy(max_retries=0)


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    description: str = "model call",
) -> T:
    """
    Run `operation` until it succeeds or the policy is exhausted.

    Raises:
        TerminalModelError: non-retryable failure, or retries exhausted
    """
    last_error: Optional[TransientModelError] = None

    for attempt in range(policy.max_attempts):
        try:
            return await operation()
        except TransientModelError as e:
            last_error = e
            if attempt + 1 >= policy.max_attempts:
                break
            delay = policy.delay_for(attempt)
            logger.warning(
                f"{description} attempt {attempt + 1}/{policy.max_attempts} failed, "
                f"retrying in {delay:.2f}s: {e}"
            )
            await sleep(delay)
        except TerminalModelError as e:
            e.attempts = attempt + 1
            raise

    raise TerminalModelError(
        f"{description} failed after {policy.max_attempts} attempts: {last_error}",
        attempts=policy.max_attempts,
    ) from last_error
