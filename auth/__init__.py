"""Bearer-token authentication package

Provides:
- Client-credential token exchange (AuthApiClient)
- Token lifecycle with single-flight refresh (TokenLifecycleManager)
- AuthState variants for observers
"""

from .models import (
    AuthState,
    AuthToken,
    Authorized,
    Error,
    Loading,
    Unauthorized,
    normalize_epoch_seconds,
)
from .token_exchange import AuthApiClient, AuthResponse
from .token_manager import TokenLifecycleManager

__all__ = [
    "AuthState",
    "AuthToken",
    "Authorized",
    "Error",
    "Loading",
    "Unauthorized",
    "normalize_epoch_seconds",
    "AuthApiClient",
    "AuthResponse",
    "TokenLifecycleManager",
]
