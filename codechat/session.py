"""Chat sessions, application settings and their JSON persistence."""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from .constants import (
    CODE_TITLE_PREFIX,
    DEFAULT_DATA_DIR,
    DEFAULT_SERVER_URL,
    MAX_TITLE_LENGTH,
    SESSIONS_FILE,
    SETTINGS_FILE,
)

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Chat"


class ChatMode(Enum):
    REGULAR = "regular"
    CODE = "code"

    @property
    def display(self) -> str:
        return "Code Chat" if self is ChatMode.CODE else "Regular Chat"

    @property
    def description(self) -> str:
        if self is ChatMode.CODE:
            return "AI can execute commands and manage files in a workspace"
        return "Have a normal conversation with the AI"


@dataclass
class ChatMessage:
    role: str
    content: str

    @property
    def is_user(self) -> bool:
        return self.role.lower() == "user"

    def to_api(self) -> dict[str, str]:
        return {"role": self.role.lower(), "content": self.content}


@dataclass
class ChatSession:
    """One conversation, its transcript and (in code mode) its workspace."""

    id: uuid.UUID = field(default_factory=uuid.uuid4)
    title: str = DEFAULT_TITLE
    mode: ChatMode = ChatMode.REGULAR
    workspace_path: str | None = None
    messages: list[ChatMessage] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def update_title(self) -> None:
        """Derive the title from the first message.

        Code sessions get a ``[Code] `` prefix; prefix plus text is limited
        to 30 characters, with ``...`` appended when the text was cut.
        """
        if not self.messages:
            return
        prefix = CODE_TITLE_PREFIX if self.mode is ChatMode.CODE else ""
        first = self.messages[0].content
        max_len = MAX_TITLE_LENGTH - len(prefix)
        self.title = prefix + (first[:max_len] + "..." if len(first) > max_len else first)

    def touch(self) -> None:
        self.updated_at = datetime.now()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "title": self.title,
            "mode": self.mode.value,
            "workspacePath": self.workspace_path,
            "messages": [{"role": m.role, "content": m.content} for m in self.messages],
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatSession:
        return cls(
            id=uuid.UUID(str(data["id"])),
            title=str(data.get("title") or DEFAULT_TITLE),
            mode=ChatMode(str(data.get("mode", ChatMode.REGULAR.value)).lower()),
            workspace_path=data.get("workspacePath"),
            messages=[
                ChatMessage(role=str(m.get("role", "")), content=str(m.get("content", "")))
                for m in data.get("messages") or []
            ],
            created_at=_parse_timestamp(data.get("createdAt")),
            updated_at=_parse_timestamp(data.get("updatedAt")),
        )


@dataclass
class AppSettings:
    server_url: str = DEFAULT_SERVER_URL
    last_selected_model: str | None = None
    last_session_id: uuid.UUID | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "serverUrl": self.server_url,
            "lastSelectedModel": self.last_selected_model,
            "lastSessionId": str(self.last_session_id) if self.last_session_id else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppSettings:
        session_id = data.get("lastSessionId")
        return cls(
            server_url=str(data.get("serverUrl") or DEFAULT_SERVER_URL),
            last_selected_model=data.get("lastSelectedModel"),
            last_session_id=uuid.UUID(str(session_id)) if session_id else None,
        )


def _parse_timestamp(value: Any) -> datetime:
    if not value:
        return datetime.now()
    return datetime.fromisoformat(str(value))


class SessionStore:
    """JSON-backed storage for sessions and settings under ``data_dir``.

    Load failures (missing, unreadable or corrupt files) are logged and
    produce empty defaults so a damaged store never prevents startup.
    """

    def __init__(self, data_dir: str | Path = DEFAULT_DATA_DIR) -> None:
        self.data_dir = Path(data_dir).expanduser()
        self.sessions_file = self.data_dir / SESSIONS_FILE
        self.settings_file = self.data_dir / SETTINGS_FILE

    def load_sessions(self) -> list[ChatSession]:
        """Return stored sessions, most recently updated first."""
        data = self._read_json(self.sessions_file)
        if data is None:
            return []
        if not isinstance(data, list):
            logger.error("Ignoring %s: expected a list of sessions", self.sessions_file)
            return []
        sessions: list[ChatSession] = []
        for entry in data:
            try:
                sessions.append(ChatSession.from_dict(entry))
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                logger.error("Skipping malformed session entry in %s: %s", self.sessions_file, exc)
        sessions.sort(key=lambda session: session.updated_at, reverse=True)
        return sessions

    def save_sessions(self, sessions: list[ChatSession]) -> None:
        self._write_json(self.sessions_file, [session.to_dict() for session in sessions])

    def save_session(self, session: ChatSession) -> None:
        """Replace the stored session with the same id, or insert it first."""
        sessions = self.load_sessions()
        for index, existing in enumerate(sessions):
            if existing.id == session.id:
                sessions[index] = session
                break
        else:
            sessions.insert(0, session)
        self.save_sessions(sessions)

    def get_session(self, session_id: uuid.UUID) -> ChatSession | None:
        for session in self.load_sessions():
            if session.id == session_id:
                return session
        return None

    def delete_session(self, session_id: uuid.UUID) -> bool:
        sessions = self.load_sessions()
        remaining = [session for session in sessions if session.id != session_id]
        if len(remaining) == len(sessions):
            return False
        self.save_sessions(remaining)
        return True

    def load_settings(self) -> AppSettings:
        data = self._read_json(self.settings_file)
        if not isinstance(data, dict):
            return AppSettings()
        try:
            return AppSettings.from_dict(data)
        except ValueError as exc:
            logger.error("Invalid settings in %s: %s", self.settings_file, exc)
            return AppSettings()

    def save_settings(self, settings: AppSettings) -> None:
        self._write_json(self.settings_file, settings.to_dict())

    # Internals -----------------------------------------------------------------

    def _read_json(self, path: Path) -> Any:
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Failed to load %s: %s", path, exc)
            return None

    def _write_json(self, path: Path, payload: Any) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("w", encoding="utf-8") as fh:
                json.dump(payload, fh, ensure_ascii=False, indent=2)
        except OSError as exc:
            logger.error("Failed to save %s: %s", path, exc)


__all__ = [
    "AppSettings",
    "ChatMessage",
    "ChatMode",
    "ChatSession",
    "SessionStore",
]
