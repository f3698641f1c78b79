"""Workspace-confined filesystem operations.

Every operation goes through :func:`resolve_workspace_path` first, so a
path that escapes the workspace is rejected before any I/O happens.
Files are read and written as UTF-8 without newline translation, so what
is written is exactly what is read back.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .errors import NotFoundError, PathEscapeError

logger = logging.getLogger(__name__)

LINE_RE = re.compile(r"[^\n]*\n|[^\n]+")


def _is_within(base: Path, target: Path) -> bool:
    # normcase folds case only on case-insensitive hosts (Windows).
    try:
        Path(os.path.normcase(target)).relative_to(os.path.normcase(base))
        return True
    except ValueError:
        return False


def _split_lines(text: str) -> list[str]:
    # Lines keep their terminator; only \n (and so \r\n) ends a line.
    return LINE_RE.findall(text)


def _strip_terminator(line: str) -> str:
    if line.endswith("\n"):
        line = line[:-1]
        if line.endswith("\r"):
            line = line[:-1]
    return line


def _dominant_newline(text: str) -> str:
    crlf = text.count("\r\n")
    return "\r\n" if crlf and crlf >= text.count("\n") - crlf else "\n"


def resolve_workspace_path(
    workspace_root: str | Path,
    relative_path: str | Path,
    follow_symlinks: bool = True,
) -> Path:
    """Resolve ``relative_path`` against ``workspace_root``.

    Both sides are canonicalised the same way (``..`` segments and
    symlinks resolved) before the containment check. With
    ``follow_symlinks=False`` a symlink in the last component is kept as
    the link itself; only its parent directory is canonicalised.

    Raises:
        PathEscapeError: if the canonical path is not inside the canonical root.
    """
    root = Path(workspace_root).expanduser().resolve()
    candidate = root / Path(relative_path)
    if follow_symlinks or candidate.name in ("", ".", "..") or not candidate.is_symlink():
        candidate = candidate.resolve()
    else:
        candidate = candidate.parent.resolve() / candidate.name
    if not _is_within(root, candidate):
        logger.warning("Rejected path outside workspace: %s", relative_path)
        raise PathEscapeError(f"Access denied: path is outside workspace: {relative_path}")
    return candidate


@dataclass
class FileEntry:
    """One row of a directory listing."""

    name: str
    path: str
    is_directory: bool
    size: int | None
    modified: datetime

    @property
    def size_display(self) -> str:
        if self.is_directory or self.size is None:
            return "-"
        size = float(self.size)
        units = ["B", "KB", "MB", "GB"]
        order = 0
        while size >= 1024 and order < len(units) - 1:
            order += 1
            size /= 1024
        return f"{size:.2f}".rstrip("0").rstrip(".") + f" {units[order]}"


class FileSystemGateway:
    """File and directory operations bound to one workspace root."""

    def __init__(self, workspace_root: str | Path) -> None:
        self.root = Path(workspace_root).expanduser().resolve()

    def resolve(self, path: str | Path) -> Path:
        return resolve_workspace_path(self.root, path)

    def _existing_file(self, path: str) -> Path:
        target = self.resolve(path)
        if not target.is_file():
            raise NotFoundError(f"File not found: {path}")
        return target

    def _guard_root(self, target: Path, operation: str) -> None:
        if target == self.root:
            raise PermissionError(f"Refusing to {operation} the workspace root")

    # Whole-file operations ---------------------------------------------------

    def read(self, path: str) -> str:
        target = self._existing_file(path)
        with target.open("r", encoding="utf-8", newline="") as fh:
            return fh.read()

    def write(self, path: str, content: str) -> Path:
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("w", encoding="utf-8", newline="") as fh:
            fh.write(content)
        logger.debug("Wrote %d chars to %s", len(content), target)
        return target

    def append(self, path: str, content: str) -> Path:
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("a", encoding="utf-8", newline="") as fh:
            fh.write(content)
        return target

    # Line-oriented operations ------------------------------------------------

    def read_lines(self, path: str, start: int = 1, end: int | None = None) -> str:
        """Return lines ``start``..``end`` (1-indexed, inclusive) joined by newlines.

        Only ``\\n`` and ``\\r\\n`` end a line. ``end=None`` reads to the
        last line, an ``end`` past the file is clamped and a ``start`` past
        the file yields ``""``.
        """
        lines = [_strip_terminator(line) for line in _split_lines(self.read(path))]
        first = max(start, 1)
        last = len(lines) if end is None else min(end, len(lines))
        if first > last:
            return ""
        return "\n".join(lines[first - 1:last])

    def replace(self, path: str, search: str, replacement: str) -> None:
        """Replace the first literal occurrence of ``search``.

        The search text is never interpreted as a pattern and later
        occurrences are left untouched.
        """
        target = self._existing_file(path)
        if not search:
            raise ValueError("Search text is empty")
        content = self.read(path)
        if search not in content:
            raise ValueError(f"Search text not found in {path}")
        with target.open("w", encoding="utf-8", newline="") as fh:
            fh.write(content.replace(search, replacement, 1))

    def insert_at_line(self, path: str, line_number: int, content: str) -> None:
        """Insert ``content`` before 1-indexed ``line_number``.

        Numbers below 1 insert at the top; numbers past the end append.
        Existing line endings are kept and the inserted lines use the
        file's dominant ending.
        """
        target = self._existing_file(path)
        original = self.read(path)
        lines = _split_lines(original)
        newline = _dominant_newline(original)
        index = min(max(line_number - 1, 0), len(lines))
        inserted = [_strip_terminator(line) + newline for line in _split_lines(content)] or [newline]
        if index == len(lines) and lines and not lines[-1].endswith("\n"):
            # Appending after an unterminated last line: move its missing
            # terminator to the end of the inserted block.
            lines[-1] += newline
            inserted[-1] = _strip_terminator(inserted[-1])
        lines[index:index] = inserted
        with target.open("w", encoding="utf-8", newline="") as fh:
            fh.write("".join(lines))

    # Tree operations ---------------------------------------------------------

    def delete(self, path: str) -> None:
        """Delete a file or directory tree; a symlink is removed, not its target."""
        target = resolve_workspace_path(self.root, path, follow_symlinks=False)
        self._guard_root(target, "delete")
        if target.is_symlink():
            target.unlink()
        elif target.is_dir():
            shutil.rmtree(target)
        elif target.exists():
            target.unlink()
        else:
            raise NotFoundError(f"Path not found: {path}")

    def rename(self, source: str, dest: str) -> Path:
        source_path = resolve_workspace_path(self.root, source, follow_symlinks=False)
        dest_path = resolve_workspace_path(self.root, dest, follow_symlinks=False)
        self._guard_root(source_path, "rename")
        if not (source_path.exists() or source_path.is_symlink()):
            raise NotFoundError(f"Path not found: {source}")
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        source_path.rename(dest_path)
        return dest_path

    def copy(self, source: str, dest: str) -> Path:
        """Copy a file (overwriting) or merge a directory tree into ``dest``."""
        source_path = self.resolve(source)
        dest_path = self.resolve(dest)
        if source_path.is_file():
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source_path, dest_path)
        elif source_path.is_dir():
            if _is_within(source_path, dest_path):
                raise ValueError(f"Cannot copy {source} into itself")
            shutil.copytree(source_path, dest_path, dirs_exist_ok=True)
        else:
            raise NotFoundError(f"Path not found: {source}")
        return dest_path

    def create_directory(self, path: str) -> Path:
        target = self.resolve(path)
        target.mkdir(parents=True, exist_ok=True)
        return target

    def exists(self, path: str) -> bool:
        return self.resolve(path).exists()

    def list_directory(self, path: str = "") -> list[FileEntry]:
        """List a directory: sub-directories first, then files, each by name."""
        target = self.resolve(path)
        if not target.is_dir():
            raise NotFoundError(f"Directory not found: {path}")
        entries: list[FileEntry] = []
        for child in target.iterdir():
            try:
                stat = child.stat()
            except OSError as exc:
                logger.debug("Skipping unreadable entry %s: %s", child, exc)
                continue
            is_directory = child.is_dir()
            entries.append(
                FileEntry(
                    name=child.name,
                    path=child.relative_to(self.root).as_posix(),
                    is_directory=is_directory,
                    size=None if is_directory else stat.st_size,
                    modified=datetime.fromtimestamp(stat.st_mtime),
                )
            )
        entries.sort(key=lambda entry: (not entry.is_directory, entry.name.lower(), entry.name))
        return entries


__all__ = ["FileEntry", "FileSystemGateway", "resolve_workspace_path"]
