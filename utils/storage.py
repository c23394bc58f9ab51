"""JSON-file stores for tokens, chat settings and the conversation

These are the persistence collaborators of the chat core. The core only
relies on their method contracts, never on the file layout.
"""

import json
import logging
import os
import platform
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from auth.models import AuthToken
from chat.models import ChatSettings, Message
from context.models import ContextSummary
import settings

logger = logging.getLogger(__name__)


def _ensure_secure_directory(path: Path):
    """Create parent directory with secure permissions"""
    parent_dir = path.parent
    if not parent_dir.exists():
        parent_dir.mkdir(parents=True, exist_ok=True)
        # Set directory permissions to 700 on Unix-like systems
        if platform.system() != "Windows":
            os.chmod(parent_dir, 0o700)


def _write_json(path: Path, data: Any, private: bool = False):
    _ensure_secure_directory(path)
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    # Set file permissions to 600 on Unix-like systems
    if private and platform.system() != "Windows":
        os.chmod(path, 0o600)


def _read_json(path: Path) -> Optional[Any]:
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, IOError) as e:
        logger.error(f"Failed to read {path}: {e}")
        return None


class TokenStorage:
    """Secure bearer-token storage with owner-only file permissions"""

    def __init__(self, token_file: Optional[str] = None):
        self.token_path = Path(token_file if token_file else settings.TOKEN_FILE)

    def save(self, token: AuthToken):
        """Persist the token, replacing any previous one"""
        data = {
            "access_token": token.access_token,
            "expires_at": token.expires_at,
        }
        _write_json(self.token_path, data, private=True)
        logger.debug(f"Saved token to {self.token_path}")

    def load(self) -> Optional[AuthToken]:
        """Load the stored token, or None if absent or unreadable"""
        data = _read_json(self.token_path)
        if not isinstance(data, dict):
            return None
        access_token = data.get("access_token")
        if not access_token:
            return None
        try:
            expires_at = int(data.get("expires_at", 0))
        except (TypeError, ValueError):
            return None
        return AuthToken(access_token=access_token, expires_at=expires_at)

    def clear(self):
        """Remove stored token"""
        if self.token_path.exists():
            self.token_path.unlink()
            logger.info("Cleared stored token")

    @property
    def token_file(self) -> Path:
        """Get the token file path"""
        return self.token_path


class SettingsStorage:
    """Chat settings persisted as a flat JSON object"""

    def __init__(self, settings_file: Optional[str] = None):
        self.settings_path = Path(settings_file if settings_file else settings.SETTINGS_FILE)

    def load(self) -> ChatSettings:
        """Load settings, falling back to defaults for missing fields"""
        data = _read_json(self.settings_path)
        if not isinstance(data, dict):
            return ChatSettings()
        return ChatSettings.from_dict(data)

    def save(self, chat_settings: ChatSettings):
        _write_json(self.settings_path, chat_settings.to_dict())

    def reset(self) -> ChatSettings:
        defaults = ChatSettings()
        self.save(defaults)
        return defaults


class ConversationStorage:
    """Messages and summaries of the current conversation

    Messages keep a ``compressed`` flag and the id of the summary that
    absorbed them so the recent window can be rebuilt on startup.
    """

    def __init__(self, conversation_file: Optional[str] = None):
        self.conversation_path = Path(
            conversation_file if conversation_file else settings.CONVERSATION_FILE
        )

    def _load(self) -> Dict[str, List[Dict[str, Any]]]:
        data = _read_json(self.conversation_path)
        if not isinstance(data, dict):
            return {"messages": [], "summaries": []}
        data.setdefault("messages", [])
        data.setdefault("summaries", [])
        return data

    def _save(self, data: Dict[str, List[Dict[str, Any]]]):
        _write_json(self.conversation_path, data, private=True)

    def append_message(self, message: Message):
        data = self._load()
        record = message.to_dict()
        record["compressed"] = False
        record["summary_id"] = None
        data["messages"].append(record)
        self._save(data)

    def mark_compressed(self, message_ids: Iterable[str], summary_id: str):
        ids = set(message_ids)
        data = self._load()
        for record in data["messages"]:
            if record["id"] in ids:
                record["compressed"] = True
                record["summary_id"] = summary_id
        self._save(data)

    def insert_summary(self, summary: ContextSummary):
        data = self._load()
        data["summaries"].append(summary.to_dict())
        self._save(data)

    def load_recent(self) -> List[Message]:
        """Uncompressed messages in chronological order"""
        messages = []
        for record in self._load()["messages"]:
            if record.get("compressed"):
                continue
            try:
                messages.append(Message.from_dict(record))
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping unreadable stored message: {e}")
        return messages

    def load_summaries(self) -> List[ContextSummary]:
        summaries = []
        for record in self._load()["summaries"]:
            try:
                summaries.append(ContextSummary.from_dict(record))
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping unreadable stored summary: {e}")
        return summaries

    def clear_all(self):
        if self.conversation_path.exists():
            self.conversation_path.unlink()
            logger.info("Cleared stored conversation")
