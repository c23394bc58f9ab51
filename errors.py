"""Error taxonomy for the chat client core

AuthError, NetworkError and ApiError propagate to the caller of a send.
ParseError and CompressionError are recovered where they are raised and never
abort a user-visible operation.
"""

from typing import Optional


class ChatClientError(Exception):
    """Base class for all chat client failures"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthError(ChatClientError):
    """Credential exchange or token refresh failed"""


class NetworkError(ChatClientError):
    """Connectivity failure or timeout while talking to the API"""


class ApiError(ChatClientError):
    """Non-success HTTP status from the completion API

    Attributes:
        status_code: HTTP status, or None when the failure was not a status
        message: Decoded error message or raw status/body text
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401


class ParseError(ChatClientError):
    """Malformed stream frame"""


class CompressionError(ChatClientError):
    """Summarization call failed or produced nothing usable"""


__all__ = [
    "ChatClientError",
    "AuthError",
    "NetworkError",
    "ApiError",
    "ParseError",
    "CompressionError",
]
