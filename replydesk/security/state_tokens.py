"""Single-use state tokens guarding provider connection callbacks."""

from __future__ import annotations

import hashlib
import secrets
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class _IssuedState:
    subject: str | None
    expires_at: float


class StateTokenStore:
    """Issue random state values and accept each one at most once.

    Only the SHA-256 digest of a token is kept in memory.
    """

    def __init__(
        self,
        ttl_seconds: float = 600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl = ttl_seconds
        self._clock = clock
        self._issued: dict[str, _IssuedState] = {}
        self._lock = threading.Lock()

    def issue(self, subject: str | None = None) -> str:
        """Return a new token, optionally bound to ``subject`` (e.g. a user id)."""

        token = secrets.token_urlsafe(16)
        with self._lock:
            self._issued[_hash_token(token)] = _IssuedState(
                subject=subject, expires_at=self._clock() + self._ttl
            )
        return token

    def consume(self, token: str, subject: str | None = None) -> bool:
        """Validate and burn ``token``.

        Returns ``False`` for unknown, expired or already used tokens and for
        tokens bound to a different subject. A token is burned even when the
        subject does not match.
        """

        if not token:
            return False
        with self._lock:
            issued = self._issued.pop(_hash_token(token), None)
        if issued is None or issued.expires_at <= self._clock():
            return False
        if issued.subject is not None and issued.subject != subject:
            return False
        return True

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, item in self._issued.items() if item.expires_at <= now]
            for key in expired:
                del self._issued[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._issued)


__all__ = ["StateTokenStore"]
