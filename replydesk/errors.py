"""Error taxonomy shared by the drafting pipeline and its security helpers.

Each error maps onto one caller-visible outcome:

- :class:`NotFoundError`: missing conversation or message (HTTP 404).
- :class:`ValidationError`: malformed caller input or configuration (HTTP 400).
- :class:`GenerationError`: the model call failed or returned nothing usable.
  The draft is recorded as ``failed``; nothing is retried.
- :class:`IntegrityError`: a stored credential could not be decrypted.
- :class:`ThrottleExceeded`: the caller must back off (HTTP 429).
- :class:`LifecycleError`: an illegal draft status transition was requested.
"""

from __future__ import annotations


class ReplyDeskError(Exception):
    """Base class for all errors raised by the package."""


class NotFoundError(ReplyDeskError):
    """Raised when a conversation or message could not be located."""


class ValidationError(ReplyDeskError):
    """Raised when caller supplied data or configuration is malformed."""


class GenerationError(ReplyDeskError):
    """Raised when the language model produced no usable draft."""


class IntegrityError(ReplyDeskError):
    """Raised when a credential token fails authentication or parsing."""


class ThrottleExceeded(ReplyDeskError):
    """Raised when a throttle token has exhausted its window."""

    def __init__(self, token: str, retry_after: float) -> None:
        super().__init__(f"Too many requests for {token}")
        self.token = token
        self.retry_after = retry_after


class LifecycleError(ReplyDeskError):
    """Raised when a draft is asked to move backwards in its lifecycle."""


__all__ = [
    "GenerationError",
    "IntegrityError",
    "LifecycleError",
    "NotFoundError",
    "ReplyDeskError",
    "ThrottleExceeded",
    "ValidationError",
]
