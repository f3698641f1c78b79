"""Centralized constants for the code-chat client.

Defaults used across the package live here so that configuration,
execution and presentation agree on the same values.
"""

from __future__ import annotations

from pathlib import Path
from typing import Final

# ============================================================================
# Model server
# ============================================================================

DEFAULT_SERVER_URL: Final[str] = "http://localhost:11434"
"""Base URL of a locally hosted Ollama server."""

DEFAULT_LLM_TIMEOUT: Final[float] = 300.0
"""HTTP timeout for model requests in seconds."""

CONNECTION_TEST_TIMEOUT: Final[float] = 5.0
"""Timeout used when probing the server for availability."""

# ============================================================================
# Process execution
# ============================================================================

DEFAULT_COMMAND_TIMEOUT: Final[float] = 60.0
"""Default timeout for commands and scripts in seconds."""

PROCESS_POLL_INTERVAL: Final[float] = 0.05
"""Interval between cancellation/timeout checks while a process runs."""

READER_JOIN_TIMEOUT: Final[float] = 2.0
"""Time allowed for the output reader threads to drain after exit."""

DEFAULT_SCRIPT_EXTENSION: Final[str] = ".sh"
"""Extension used for scripts that do not declare one."""

TEMP_SCRIPT_PREFIX: Final[str] = "temp_script_"
"""Prefix of the temporary files created for script actions."""

# ============================================================================
# Presentation
# ============================================================================

MAX_TITLE_LENGTH: Final[int] = 30
"""Maximum session title length, prefix included."""

COMMAND_DESCRIPTION_LENGTH: Final[int] = 50
"""Commands longer than this are truncated in action descriptions."""

CODE_TITLE_PREFIX: Final[str] = "[Code] "

# ============================================================================
# Storage
# ============================================================================

DEFAULT_DATA_DIR: Final[Path] = Path("~/.codechat")
"""Directory holding sessions, settings and logs."""

DEFAULT_WORKSPACE_DIR: Final[Path] = DEFAULT_DATA_DIR / "workspaces"
"""Parent directory of the per-session workspaces."""

SESSIONS_FILE: Final[str] = "sessions.json"
SETTINGS_FILE: Final[str] = "settings.json"
LOG_FILE: Final[str] = "logs/codechat.log"
