"""Configuration loader for the streaming chat client

Values are looked up in three layers, highest priority first:
1. Environment variables
2. .env file
3. Defaults given at the call site

The .env file is read into its own layer rather than into os.environ, so the
process environment always wins and the source of a value can be reported.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import dotenv_values

logger = logging.getLogger(__name__)

_TRUE_VALUES = ('true', '1', 'yes', 'on')


def _coerce(name: str, raw: str, default: Any) -> Any:
    """Convert a raw string to the type of the default"""
    # bool before int: bool is a subclass of int
    if isinstance(default, bool):
        return raw.strip().lower() in _TRUE_VALUES
    if isinstance(default, (int, float)):
        kind = type(default)
        try:
            return kind(raw)
        except ValueError:
            logger.warning(f"Failed to parse {name}={raw} as {kind.__name__}, using default: {default}")
            return default
    return raw


class ConfigLoader:
    """Typed access to layered configuration"""

    def __init__(self, env_path: Optional[str] = None, prefix: str = ""):
        """
        Args:
            env_path: Path to the .env file (default: .env in the working directory)
            prefix: Prepended to every variable name, so with "CHAT_" the
                    key API_HOST is read from CHAT_API_HOST
        """
        self.env_path = Path(env_path) if env_path else Path(".env")
        self.prefix = prefix
        self._file_values: Dict[str, Optional[str]] = {}
        self._load_env_file()

    def _load_env_file(self):
        if not self.env_path.exists():
            logger.debug(f".env file not found at {self.env_path}, using environment variables and defaults only")
            return
        self._file_values = dotenv_values(self.env_path)
        logger.debug(f"Loaded {len(self._file_values)} value(s) from {self.env_path}")

    def _raw(self, name: str) -> Optional[str]:
        value = os.getenv(name)
        if value is not None:
            return value
        return self._file_values.get(name)

    def get(self, env_var: str, default: Any) -> Any:
        """Get a configuration value, coerced to the type of the default

        Args:
            env_var: Variable name (without prefix)
            default: Value used when no layer defines the variable

        Returns:
            The configured value or the default
        """
        name = f"{self.prefix}{env_var}"
        raw = self._raw(name)
        if raw is None:
            return default
        return _coerce(name, raw, default)

    def get_path(self, env_var: str, default: str) -> str:
        """Get a filesystem path, expanding a leading ~"""
        return str(Path(self.get(env_var, default)).expanduser())

    def source(self, env_var: str) -> str:
        """Which layer a variable comes from: "env", ".env" or "default" """
        name = f"{self.prefix}{env_var}"
        if os.getenv(name) is not None:
            return "env"
        if self._file_values.get(name) is not None:
            return ".env"
        return "default"


_config_loader = None


def get_config_loader() -> ConfigLoader:
    """Get or create the global ConfigLoader instance"""
    global _config_loader
    if _config_loader is None:
        _config_loader = ConfigLoader()
    return _config_loader
