"""Shared utilities package for the streaming chat client

Stores live in ``utils.storage`` and are imported from there directly.
"""

from .logging_utils import log_request, redact_headers, setup_logging

__all__ = [
    "log_request",
    "redact_headers",
    "setup_logging",
]
