"""Sliding-window request throttling keyed by caller identity.

Built on ``limits``, the engine behind slowapi: a moving-window strategy over
an in-memory storage that each throttle instance owns, so tests (and separate
limiter profiles) never share state. For multi-process deployments point the
strategy at a shared ``limits`` storage instead.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from functools import cached_property

import limits
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from ..errors import ThrottleExceeded

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThrottleConfig:
    """A named rate in ``limits`` notation, e.g. ``"100/15 minutes"``."""

    name: str
    rate: str

    @cached_property
    def item(self) -> limits.RateLimitItem:
        return limits.parse(self.rate)

    @property
    def ceiling(self) -> int:
        return self.item.amount

    @property
    def interval_seconds(self) -> int:
        return self.item.get_expiry()


@dataclass(frozen=True)
class ThrottleResult:
    allowed: bool
    remaining: int
    retry_after: float = 0.0


API_THROTTLE = ThrottleConfig(name="api", rate="100/15 minutes")
AUTH_THROTTLE = ThrottleConfig(name="auth", rate="5/minute")


class RequestThrottle:
    """Admit at most ``config.ceiling`` requests per token per rolling window."""

    def __init__(self, config: ThrottleConfig) -> None:
        if config.ceiling < 1:
            raise ValueError("Throttle ceiling must be positive")
        self.config = config
        self._item = config.item
        self._storage = MemoryStorage()
        self._limiter = MovingWindowRateLimiter(self._storage)
        self._tokens: set[str] = set()
        self._lock = threading.Lock()

    def _retry_after(self, token: str) -> float:
        stats = self._limiter.get_window_stats(self._item, self.config.name, token)
        return max(stats.reset_time - time.time(), 0.0)

    def check(self, token: str) -> ThrottleResult:
        """Record a request for ``token`` if the window has room."""

        with self._lock:
            self._tokens.add(token)
            admitted = self._limiter.hit(self._item, self.config.name, token)
        if not admitted:
            return ThrottleResult(
                allowed=False, remaining=0, retry_after=self._retry_after(token)
            )
        stats = self._limiter.get_window_stats(self._item, self.config.name, token)
        return ThrottleResult(allowed=True, remaining=max(stats.remaining, 0))

    def enforce(self, token: str) -> ThrottleResult:
        """Like :meth:`check` but raise :class:`ThrottleExceeded` on rejection."""

        result = self.check(token)
        if not result.allowed:
            logger.info("Throttle %s rejected %s", self.config.name, token)
            raise ThrottleExceeded(token, result.retry_after)
        return result

    def sweep(self) -> int:
        """Forget tokens whose window holds no live requests.

        Tokens are inspected one at a time. The lock is held only to re-check
        and drop a single idle token, so a concurrent hit is never cleared.
        """

        with self._lock:
            tokens = list(self._tokens)
        removed = 0
        for token in tokens:
            if not self._idle(token):
                continue
            with self._lock:
                if token in self._tokens and self._idle(token):
                    self._storage.clear(self._item.key_for(self.config.name, token))
                    self._tokens.discard(token)
                    removed += 1
        if removed:
            logger.debug("Throttle %s swept %d idle tokens", self.config.name, removed)
        return removed

    def _idle(self, token: str) -> bool:
        stats = self._limiter.get_window_stats(self._item, self.config.name, token)
        return stats.remaining >= self.config.ceiling

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)


def api_throttle() -> RequestThrottle:
    return RequestThrottle(API_THROTTLE)


def auth_throttle() -> RequestThrottle:
    return RequestThrottle(AUTH_THROTTLE)


def throttle_token(
    user_id: str | None = None,
    forwarded_for: str | None = None,
    client_host: str | None = None,
) -> str:
    """Return the bucket key for a caller: user id first, then network address."""

    if user_id:
        return f"user:{user_id}"
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return f"ip:{first_hop}"
    return f"ip:{client_host or 'unknown'}"


__all__ = [
    "API_THROTTLE",
    "AUTH_THROTTLE",
    "RequestThrottle",
    "ThrottleConfig",
    "ThrottleResult",
    "api_throttle",
    "auth_throttle",
    "throttle_token",
]
