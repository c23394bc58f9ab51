"""
Logging setup and request logging helpers.
"""
import logging
import os
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

SENSITIVE_HEADERS = ("authorization", "rquid", "x-api-key", "api-key")

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(debug: bool = False, level: str = "info", log_file: str = "chat_debug.log") -> Optional[str]:
    """Configure the root logger

    In debug mode everything is logged at DEBUG to both the console and an
    appended log file. Otherwise only warnings and above reach the console,
    at the configured level, so log lines do not interleave with the chat.

    Returns:
        Absolute path of the debug log file, or None when not in debug mode
    """
    root_logger = logging.getLogger()

    # Clear existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT)

    if not debug:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(max(logging.WARNING, _parse_level(level)))
        console_handler.setFormatter(formatter)
        root_logger.setLevel(_parse_level(level))
        root_logger.addHandler(console_handler)
        return None

    root_logger.setLevel(logging.DEBUG)

    log_path = os.path.abspath(log_file)
    file_handler = logging.FileHandler(log_path, mode='a', encoding='utf-8')  # 'a' to append
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(formatter)

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    # httpx/httpcore are very chatty at DEBUG
    logging.getLogger("httpcore").setLevel(logging.INFO)

    logger.info(f"Debug logging enabled - appending to {log_path}")
    return log_path


def _parse_level(level: str) -> int:
    value = logging.getLevelName(str(level).upper())
    return value if isinstance(value, int) else logging.INFO


def redact_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """Copy of headers with credentials replaced"""
    return {
        name: "[REDACTED]" if name.lower() in SENSITIVE_HEADERS else value
        for name, value in headers.items()
    }


def log_request(request_id: str, payload: Dict[str, Any], endpoint: str, headers: Optional[Dict[str, str]] = None):
    """Log outgoing chat request details with credentials redacted"""
    if not logger.isEnabledFor(logging.DEBUG):
        return

    logger.debug(f"[{request_id}] Endpoint: {endpoint}")
    logger.debug(f"[{request_id}] Model: {payload.get('model', 'unknown')}")
    logger.debug(f"[{request_id}] Stream: {payload.get('stream', False)}")
    logger.debug(f"[{request_id}] Max Tokens: {payload.get('max_tokens', 'unknown')}")
    logger.debug(f"[{request_id}] Temperature: {payload.get('temperature', 'unknown')}")

    messages = payload.get("messages") or []
    roles = [message.get("role") for message in messages]
    logger.debug(f"[{request_id}] Messages: {len(messages)} {roles}")

    if headers:
        for header_name, header_value in redact_headers(headers).items():
            logger.debug(f"[{request_id}] {header_name}: {header_value}")
