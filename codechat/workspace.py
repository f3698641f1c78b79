"""Per-session workspace directories for code chats."""

from __future__ import annotations

import logging
import shutil
import uuid
from pathlib import Path

from .constants import DEFAULT_WORKSPACE_DIR
from .files import FileEntry, FileSystemGateway

logger = logging.getLogger(__name__)


class WorkspaceManager:
    """Creates, locates and removes workspace directories under ``base_dir``.

    Each code session owns ``base_dir/<session id as 32 hex digits>``.
    Workspaces are never removed implicitly; only :meth:`delete` does that.
    """

    def __init__(self, base_dir: str | Path = DEFAULT_WORKSPACE_DIR) -> None:
        self.base_dir = Path(base_dir).expanduser()

    def path_for(self, session_id: uuid.UUID) -> Path:
        return self.base_dir / session_id.hex

    def create(self, session_id: uuid.UUID) -> Path:
        path = self.path_for(session_id)
        if not path.is_dir():
            logger.info("Creating workspace %s", path)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def exists(self, session_id: uuid.UUID) -> bool:
        return self.path_for(session_id).is_dir()

    def delete(self, session_id: uuid.UUID) -> bool:
        path = self.path_for(session_id)
        if not path.is_dir():
            return False
        shutil.rmtree(path)
        logger.info("Deleted workspace %s", path)
        return True

    def list_contents(self, workspace_path: str | Path, relative_path: str = "") -> list[FileEntry]:
        return FileSystemGateway(workspace_path).list_directory(relative_path)

    @staticmethod
    def size(workspace_path: str | Path) -> int:
        """Total size in bytes of every file below ``workspace_path``."""
        root = Path(workspace_path)
        if not root.is_dir():
            return 0
        return sum(path.stat().st_size for path in root.rglob("*") if path.is_file())


__all__ = ["WorkspaceManager"]
