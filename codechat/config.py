"""Loading of the YAML configuration file."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .constants import (
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_DATA_DIR,
    DEFAULT_LLM_TIMEOUT,
    DEFAULT_SERVER_URL,
    DEFAULT_WORKSPACE_DIR,
    LOG_FILE,
)

LLM_TYPES = ("ollama", "scripted")


@dataclass
class LLMConfig:
    type: str = "ollama"
    base_url: str = DEFAULT_SERVER_URL
    model: str | None = None
    timeout: float = DEFAULT_LLM_TIMEOUT
    script: Path | None = None


@dataclass
class WorkspaceConfig:
    base_dir: Path = field(default_factory=lambda: DEFAULT_WORKSPACE_DIR.expanduser())


@dataclass
class LimitsConfig:
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT
    script_timeout: float = DEFAULT_COMMAND_TIMEOUT


@dataclass
class StorageConfig:
    data_dir: Path = field(default_factory=lambda: DEFAULT_DATA_DIR.expanduser())


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Path | None = None


@dataclass
class AppConfig:
    llm: LLMConfig = field(default_factory=LLMConfig)
    workspace: WorkspaceConfig = field(default_factory=WorkspaceConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def default_config() -> AppConfig:
    """Configuration used when no file is given."""
    config = AppConfig()
    config.logging.file = config.storage.data_dir / LOG_FILE
    return config


def load_config(path: str | Path) -> AppConfig:
    """Load configuration from a YAML file.

    Relative paths inside the file are resolved against the file's own
    directory and ``~`` is expanded. Sections that are absent keep their
    defaults.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ValueError: If the root is not a mapping or a value is invalid.
    """
    config_path = Path(path).expanduser().resolve()
    data = _read_yaml(config_path)
    base_dir = config_path.parent

    llm_section = _section(data, "llm")
    llm_type = str(llm_section.get("type", "ollama")).lower()
    if llm_type not in LLM_TYPES:
        raise ValueError(f"Unsupported llm type: {llm_type}")
    script_value = llm_section.get("script")
    llm = LLMConfig(
        type=llm_type,
        base_url=str(llm_section.get("base_url") or DEFAULT_SERVER_URL).rstrip("/"),
        model=llm_section.get("model"),
        timeout=float(llm_section.get("timeout", DEFAULT_LLM_TIMEOUT)),
        script=_resolve(base_dir, script_value) if script_value else None,
    )
    if llm.type == "scripted" and llm.script is None:
        raise ValueError("llm.script is required for the scripted client")

    workspace_section = _section(data, "workspace")
    workspace = WorkspaceConfig(
        base_dir=_resolve(base_dir, workspace_section.get("base_dir", DEFAULT_WORKSPACE_DIR)),
    )

    limits_section = _section(data, "limits")
    limits = LimitsConfig(
        command_timeout=float(limits_section.get("command_timeout", DEFAULT_COMMAND_TIMEOUT)),
        script_timeout=float(limits_section.get("script_timeout", DEFAULT_COMMAND_TIMEOUT)),
    )

    storage_section = _section(data, "storage")
    storage = StorageConfig(
        data_dir=_resolve(base_dir, storage_section.get("data_dir", DEFAULT_DATA_DIR)),
    )

    logging_section = _section(data, "logging")
    if "file" in logging_section:
        file_value = logging_section["file"]
        log_file = _resolve(base_dir, file_value) if file_value else None
    else:
        log_file = storage.data_dir / LOG_FILE
    logging_config = LoggingConfig(
        level=str(logging_section.get("level", "INFO")).upper(),
        file=log_file,
    )

    return AppConfig(
        llm=llm,
        workspace=workspace,
        limits=limits,
        storage=storage,
        logging=logging_config,
    )


def _resolve(base_dir: Path, value: str | Path) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (base_dir / path).resolve()
    return path


def _section(data: dict, name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"Invalid configuration: '{name}' must be a mapping")
    return section


def _read_yaml(path: Path) -> dict:
    if not path.exists():
        raise FileNotFoundError(f"Configuration not found: {path}")
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError("Invalid configuration: root must be a mapping")
    return data


__all__ = [
    "AppConfig",
    "LLMConfig",
    "LimitsConfig",
    "LoggingConfig",
    "StorageConfig",
    "WorkspaceConfig",
    "default_config",
    "load_config",
]
