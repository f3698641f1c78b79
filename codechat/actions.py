"""Action records extracted from model output and their results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import ClassVar, Union

from .constants import COMMAND_DESCRIPTION_LENGTH, DEFAULT_SCRIPT_EXTENSION


class ActionType(Enum):
    """Closed set of actions a model may request in code-chat mode."""

    WRITE_FILE = auto()
    APPEND_FILE = auto()
    READ_FILE = auto()
    READ_LINES = auto()
    REPLACE_IN_FILE = auto()
    INSERT_AT_LINE = auto()
    DELETE = auto()
    RENAME = auto()
    COPY = auto()
    CREATE_DIRECTORY = auto()
    RUN_COMMAND = auto()
    RUN_SCRIPT = auto()


class AgentStatus(Enum):
    """What the assistant is doing right now, for status displays."""

    IDLE = "Ready"
    CONNECTING = "Connecting to Ollama..."
    LOADING_MODELS = "Loading available models..."
    THINKING = "Thinking..."
    GENERATING = "Generating response..."
    EXECUTING_COMMAND = "Executing command..."
    READING_FILES = "Reading files..."
    WRITING_FILES = "Writing files..."
    CREATING_WORKSPACE = "Creating workspace..."
    ERROR = "Error occurred"

    @property
    def display(self) -> str:
        return self.value

    @property
    def is_working(self) -> bool:
        return self not in (AgentStatus.IDLE, AgentStatus.ERROR)


@dataclass
class CodeAction:
    """Common base of every parsed action.

    Paths are kept exactly as the model wrote them (workspace-relative);
    they are only resolved when the action is executed.
    """

    type: ClassVar[ActionType]
    raw_block: str = field(default="", kw_only=True, repr=False, compare=False)

    @property
    def description(self) -> str:
        raise NotImplementedError


@dataclass
class WriteFile(CodeAction):
    type: ClassVar[ActionType] = ActionType.WRITE_FILE
    path: str
    content: str

    @property
    def description(self) -> str:
        return f"Write file: {self.path}"


@dataclass
class AppendFile(CodeAction):
    type: ClassVar[ActionType] = ActionType.APPEND_FILE
    path: str
    content: str

    @property
    def description(self) -> str:
        return f"Append to file: {self.path}"


@dataclass
class ReadFile(CodeAction):
    type: ClassVar[ActionType] = ActionType.READ_FILE
    path: str

    @property
    def description(self) -> str:
        return f"Read file: {self.path}"


@dataclass
class ReadLines(CodeAction):
    """Read an inclusive, 1-indexed line range. ``end_line=None`` reads to the end."""

    type: ClassVar[ActionType] = ActionType.READ_LINES
    path: str
    start_line: int = 1
    end_line: int | None = None

    @property
    def description(self) -> str:
        end = "end" if self.end_line is None else str(self.end_line)
        return f"Read lines {self.start_line}-{end}: {self.path}"


@dataclass
class ReplaceInFile(CodeAction):
    type: ClassVar[ActionType] = ActionType.REPLACE_IN_FILE
    path: str
    search_text: str
    replace_text: str

    @property
    def description(self) -> str:
        return f"Replace in file: {self.path}"


@dataclass
class InsertAtLine(CodeAction):
    type: ClassVar[ActionType] = ActionType.INSERT_AT_LINE
    path: str
    line_number: int
    content: str

    @property
    def description(self) -> str:
        return f"Insert at line {self.line_number}: {self.path}"


@dataclass
class Delete(CodeAction):
    type: ClassVar[ActionType] = ActionType.DELETE
    path: str

    @property
    def description(self) -> str:
        return f"Delete: {self.path}"


@dataclass
class Rename(CodeAction):
    type: ClassVar[ActionType] = ActionType.RENAME
    source_path: str
    dest_path: str

    @property
    def description(self) -> str:
        return f"Rename: {self.source_path} -> {self.dest_path}"


@dataclass
class CopyPath(CodeAction):
    type: ClassVar[ActionType] = ActionType.COPY
    source_path: str
    dest_path: str

    @property
    def description(self) -> str:
        return f"Copy: {self.source_path} -> {self.dest_path}"


@dataclass
class CreateDirectory(CodeAction):
    type: ClassVar[ActionType] = ActionType.CREATE_DIRECTORY
    path: str

    @property
    def description(self) -> str:
        return f"Create directory: {self.path}"


@dataclass
class RunCommand(CodeAction):
    type: ClassVar[ActionType] = ActionType.RUN_COMMAND
    command_line: str

    @property
    def description(self) -> str:
        command = self.command_line
        if len(command) > COMMAND_DESCRIPTION_LENGTH:
            command = command[:COMMAND_DESCRIPTION_LENGTH] + "..."
        return f"Run command: {command}"


@dataclass
class RunScript(CodeAction):
    type: ClassVar[ActionType] = ActionType.RUN_SCRIPT
    script_body: str
    file_extension: str = DEFAULT_SCRIPT_EXTENSION

    @property
    def description(self) -> str:
        return f"Run script ({self.file_extension})"


Action = Union[
    WriteFile,
    AppendFile,
    ReadFile,
    ReadLines,
    ReplaceInFile,
    InsertAtLine,
    Delete,
    Rename,
    CopyPath,
    CreateDirectory,
    RunCommand,
    RunScript,
]


@dataclass
class ActionResult:
    """Outcome of executing one action.

    ``message`` is the text shown in (and persisted with) the transcript.
    ``output`` carries read content or the combined process output.
    """

    action: CodeAction
    success: bool
    message: str
    output: str = ""
    error: str | None = None
    exit_code: int | None = None
    timed_out: bool = False
    duration: float = 0.0

    @property
    def description(self) -> str:
        return self.action.description


__all__ = [
    "Action",
    "ActionResult",
    "ActionType",
    "AgentStatus",
    "AppendFile",
    "CodeAction",
    "CopyPath",
    "CreateDirectory",
    "Delete",
    "InsertAtLine",
    "ReadFile",
    "ReadLines",
    "Rename",
    "ReplaceInFile",
    "RunCommand",
    "RunScript",
    "WriteFile",
]
