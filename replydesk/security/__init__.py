"""Security utilities exposed for convenience."""

from .state_tokens import StateTokenStore
from .sweeper import PeriodicSweeper
from .throttle import (
    API_THROTTLE,
    AUTH_THROTTLE,
    RequestThrottle,
    ThrottleConfig,
    ThrottleResult,
    api_throttle,
    auth_throttle,
    throttle_token,
)
from .vault import CredentialVault

__all__ = [
    "API_THROTTLE",
    "AUTH_THROTTLE",
    "CredentialVault",
    "PeriodicSweeper",
    "RequestThrottle",
    "StateTokenStore",
    "ThrottleConfig",
    "ThrottleResult",
    "api_throttle",
    "auth_throttle",
    "throttle_token",
]
