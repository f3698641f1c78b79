"""Error taxonomy for the code-action pipeline."""

from __future__ import annotations


class CodeChatError(Exception):
    """Base class for all errors raised by the package."""


class PathEscapeError(CodeChatError, PermissionError):
    """A workspace-relative path resolved outside the workspace root."""


class NotFoundError(CodeChatError, FileNotFoundError):
    """The file or directory an operation needs does not exist."""


class ProcessLaunchError(CodeChatError, OSError):
    """The shell or interpreter could not be started."""


class ProcessTimeoutError(CodeChatError, TimeoutError):
    """A process exceeded its allotted time."""


class OperationCancelled(CodeChatError):
    """Raised when a cancellation token has been triggered."""


class LLMError(CodeChatError, RuntimeError):
    """The model server failed or answered with something unusable."""


__all__ = [
    "CodeChatError",
    "LLMError",
    "NotFoundError",
    "OperationCancelled",
    "PathEscapeError",
    "ProcessLaunchError",
    "ProcessTimeoutError",
]
