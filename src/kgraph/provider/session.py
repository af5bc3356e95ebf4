"""Run-scoped circuit breaker and retry with exponential backoff."""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, TypeVar

from .base import (
    CircuitOpenError,
    PermanentProviderError,
    QuotaExhaustedError,
    TransientProviderError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RunContext:
    """State shared by every provider call in one pipeline run.

    Once `tripped`, all call sites skip the network and use their local
    fallback until `reset()` is called for a new run.
    """

    def __init__(
        self,
        max_retries: int = 3,
        initial_delay: float = 2.0,
        max_delay: float = 30.0,
        jitter: float = 2.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        seed: int | None = None,
    ):
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.sleep = sleep
        self.rng = random.Random(seed)
        self.tripped = False
        self.attempts = 0
        self.last_error: Exception | None = None

    @classmethod
    def from_config(cls, config: dict[str, Any], **overrides) -> "RunContext":
        p = config.get("provider", {})
        kwargs = {
            "max_retries": p.get("max_retries", 3),
            "initial_delay": p.get("initial_delay", 2.0),
            "max_delay": p.get("max_delay", 30.0),
        }
        kwargs.update(overrides)
        return cls(**kwargs)

    @property
    def is_open(self) -> bool:
        return self.tripped

    def trip(self, error: Exception | None = None) -> None:
        """Open the breaker. Without an error this just disables the provider for the run."""
        if not self.tripped and error is not None:
            logger.error(f"Provider retries exhausted ({error}); switching to offline heuristics for this run")
        self.tripped = True
        self.last_error = error

    def reset(self) -> None:
        self.tripped = False
        self.last_error = None

    def backoff(self, attempt: int, quota: bool) -> float:
        """Delay before retry number `attempt + 1` (attempt is 0-based)."""
        base = 3 if quota else 2
        delay = self.initial_delay * (base ** attempt) + self.rng.uniform(0, self.jitter)
        return min(delay, self.max_delay)


async def call_with_retry(ctx: RunContext, operation: Callable[[], Awaitable[T]]) -> T:
    """Run a provider operation, retrying transient failures.

    Raises CircuitOpenError without calling when the breaker is open,
    PermanentProviderError immediately, and the last TransientProviderError
    once attempts run out (tripping the breaker).
    """
    if ctx.is_open:
        raise CircuitOpenError("circuit breaker open")

    last_error: TransientProviderError | None = None
    for attempt in range(ctx.max_retries):
        ctx.attempts += 1
        try:
            return await operation()
        except PermanentProviderError:
            raise
        except TransientProviderError as e:
            last_error = e
            quota = isinstance(e, QuotaExhaustedError)
            if attempt < ctx.max_retries - 1:
                delay = ctx.backoff(attempt, quota)
                logger.warning(
                    f"Provider attempt {attempt + 1}/{ctx.max_retries} failed "
                    f"({type(e).__name__}), retrying in {delay:.1f}s"
                )
                await ctx.sleep(delay)

    ctx.trip(last_error)
    raise last_error
