"""Data models for bearer-token authentication"""

import time
from dataclasses import dataclass
from typing import Optional, Union

# Values above this are taken to be milliseconds rather than seconds
_MILLISECONDS_THRESHOLD = 100_000_000_000


def normalize_epoch_seconds(value: int) -> int:
    """Convert a provider expiry timestamp to whole seconds since epoch

    Some token endpoints report ``expires_at`` in milliseconds. A seconds
    value does not cross the threshold until the year 5138.
    """
    value = int(value)
    if value > _MILLISECONDS_THRESHOLD:
        return value // 1000
    return value


@dataclass(frozen=True)
class AuthToken:
    """Bearer token with its absolute expiry

    Attributes:
        access_token: Opaque bearer token
        expires_at: Expiry in seconds since epoch
    """
    access_token: str
    expires_at: int

    def is_expired(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return now >= self.expires_at


@dataclass(frozen=True)
class Unauthorized:
    """No token has been obtained (or the user logged out)"""


@dataclass(frozen=True)
class Loading:
    """A credential exchange is in flight"""


@dataclass(frozen=True)
class Authorized:
    access_token: str
    expires_at: int


@dataclass(frozen=True)
class Error:
    message: str


AuthState = Union[Unauthorized, Loading, Authorized, Error]
