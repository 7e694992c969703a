"""
Rate limiter for remote platform calls.

Hey future me - this is the spacing gate between consecutive remote calls!
Token Bucket algorithm, same as always:
- Bucket has max_tokens capacity
- Tokens refill at refill_rate per second
- Each call consumes 1 token
- Empty bucket: wait until a token is available

With max_tokens=1 the bucket degenerates to "at least 1/refill_rate seconds between
calls", which is exactly what the sync worker (300 ms between batches) and the
importer (1200 ms between searches) want. No burst, no backoff - a failed call is
NOT retried here, the outbox entry just goes to failed.

USAGE:
    limiter = RateLimiter.for_interval(300)

    async with limiter:
        await api.add_tracks(collection_id, chunk)
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class RateLimiterConfig:
    """Configuration for rate limiter.

    refill_rate <= 0 disables limiting entirely (tests use call_interval_ms=0).
    """

    max_tokens: int = 1  # Bucket size
    refill_rate: float = 1.0  # Tokens per second


@dataclass
class RateLimiter:
    """Token Bucket Rate Limiter.

    Use it as async context manager, one `async with` per remote call.
    """

    config: RateLimiterConfig = field(default_factory=RateLimiterConfig)
    name: str = "default"

    # Internal state (not in __init__ signature)
    _tokens: float = field(default=0.0, init=False)
    _last_refill: float = field(default_factory=time.monotonic, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    def __post_init__(self) -> None:
        """Initialize tokens to max capacity."""
        self._tokens = float(self.config.max_tokens)

    @classmethod
    def for_interval(cls, interval_ms: int, name: str = "default") -> "RateLimiter":
        """Create a limiter that spaces calls at least interval_ms apart.

        Hey future me - the FIRST call goes through immediately (bucket starts full),
        only the following ones wait. interval_ms=0 → no waiting at all.
        """
        refill_rate = 1000.0 / interval_ms if interval_ms > 0 else 0.0
        return cls(config=RateLimiterConfig(max_tokens=1, refill_rate=refill_rate), name=name)

    @property
    def enabled(self) -> bool:
        return self.config.refill_rate > 0

    def _refill_tokens(self) -> None:
        """Refill tokens based on elapsed time."""
        now = time.monotonic()
        elapsed = now - self._last_refill

        new_tokens = elapsed * self.config.refill_rate
        self._tokens = min(self.config.max_tokens, self._tokens + new_tokens)
        self._last_refill = now

    async def acquire(self) -> None:
        """Acquire one token, waiting if necessary."""
        if not self.enabled:
            return

        async with self._lock:
            self._refill_tokens()

            while self._tokens < 1.0:
                wait_time = (1.0 - self._tokens) / self.config.refill_rate
                logger.debug(
                    f"RateLimiter[{self.name}]: No tokens available, "
                    f"waiting {wait_time:.2f}s"
                )
                # Still holding the lock - callers queue up behind us in order
                await asyncio.sleep(wait_time)
                self._refill_tokens()

            self._tokens -= 1.0

    async def __aenter__(self) -> "RateLimiter":
        """Enter async context - acquire token."""
        await self.acquire()
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: Exception | None, exc_tb: object
    ) -> None:
        """Exit async context."""
        # Token already consumed, failures don't refund it
        return None

    @property
    def available_tokens(self) -> float:
        """Get current available tokens (for debugging)."""
        self._refill_tokens()
        return self._tokens


__all__ = [
    "RateLimiter",
    "RateLimiterConfig",
]
