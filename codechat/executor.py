"""Sequential execution of parsed code actions against a workspace.

:class:`ActionExecutor` is the error boundary of the code-action pipeline:
whatever goes wrong inside one action becomes a failed
:class:`~codechat.actions.ActionResult` and the batch moves on to the next
action. Actions run strictly in the order they were parsed because later
actions may depend on earlier ones.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from .actions import (
    ActionResult,
    ActionType,
    AgentStatus,
    AppendFile,
    CodeAction,
    CopyPath,
    CreateDirectory,
    Delete,
    InsertAtLine,
    ReadFile,
    ReadLines,
    Rename,
    ReplaceInFile,
    RunCommand,
    RunScript,
    WriteFile,
)
from .cancellation import CancellationToken
from .constants import DEFAULT_COMMAND_TIMEOUT
from .files import FileSystemGateway
from .parser import ActionParser
from .process import ProcessGateway, ProcessResult

logger = logging.getLogger(__name__)

StatusCallback = Callable[[AgentStatus], None]

STATUS_FOR_ACTION: dict[ActionType, AgentStatus] = {
    ActionType.WRITE_FILE: AgentStatus.WRITING_FILES,
    ActionType.APPEND_FILE: AgentStatus.WRITING_FILES,
    ActionType.READ_FILE: AgentStatus.READING_FILES,
    ActionType.READ_LINES: AgentStatus.READING_FILES,
    ActionType.REPLACE_IN_FILE: AgentStatus.WRITING_FILES,
    ActionType.INSERT_AT_LINE: AgentStatus.WRITING_FILES,
    ActionType.DELETE: AgentStatus.WRITING_FILES,
    ActionType.RENAME: AgentStatus.WRITING_FILES,
    ActionType.COPY: AgentStatus.WRITING_FILES,
    ActionType.CREATE_DIRECTORY: AgentStatus.WRITING_FILES,
    ActionType.RUN_COMMAND: AgentStatus.EXECUTING_COMMAND,
    ActionType.RUN_SCRIPT: AgentStatus.EXECUTING_COMMAND,
}


def _fenced(text: str) -> str:
    return f"```\n{text}\n```"


@dataclass
class ExecutionContext:
    """Per-batch state shared by the handlers."""

    workspace_root: Path
    files: FileSystemGateway
    cancel_token: CancellationToken


class ActionExecutor:
    """Apply code actions to a workspace, one result per action."""

    def __init__(
        self,
        process_gateway: ProcessGateway | None = None,
        parser: ActionParser | None = None,
        command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
        script_timeout: float = DEFAULT_COMMAND_TIMEOUT,
    ) -> None:
        self.process_gateway = process_gateway or ProcessGateway(default_timeout=command_timeout)
        self.parser = parser or ActionParser()
        self.command_timeout = command_timeout
        self.script_timeout = script_timeout

    def get_handler(self, action_type: ActionType) -> Callable[[CodeAction, ExecutionContext], ActionResult] | None:
        """Return the ``_handle_<type>`` method for ``action_type``, if any."""
        return getattr(self, f"_handle_{action_type.name.lower()}", None)

    def parse_and_execute(
        self,
        response_text: str,
        workspace_root: str | Path,
        cancel_token: CancellationToken | None = None,
        on_status: StatusCallback | None = None,
    ) -> tuple[str, list[ActionResult]]:
        """Execute every action in ``response_text``.

        Returns the response with action blocks stripped, plus the results.
        """
        actions = self.parser.parse(response_text)
        display_text = self.parser.strip_action_blocks(response_text)
        results = self.execute_all(actions, workspace_root, cancel_token, on_status)
        return display_text, results

    def execute_all(
        self,
        actions: Sequence[CodeAction],
        workspace_root: str | Path,
        cancel_token: CancellationToken | None = None,
        on_status: StatusCallback | None = None,
    ) -> list[ActionResult]:
        """Run ``actions`` in order and return one result per action.

        If the token is cancelled, the remaining actions are not started and
        each gets a failed "cancelled" result.
        """
        token = cancel_token or CancellationToken()
        notify = on_status or (lambda status: None)
        files = FileSystemGateway(workspace_root)
        context = ExecutionContext(workspace_root=files.root, files=files, cancel_token=token)

        results: list[ActionResult] = []
        for action in actions:
            if token.cancelled:
                results.append(self._failure(action, "Cancelled before execution"))
                continue
            notify(STATUS_FOR_ACTION.get(action.type, AgentStatus.WRITING_FILES))
            try:
                results.append(self.execute(action, context))
            finally:
                notify(AgentStatus.IDLE)
        return results

    def execute(self, action: CodeAction, context: ExecutionContext) -> ActionResult:
        """Execute a single action, converting any error into a failed result."""
        handler = self.get_handler(action.type)
        if handler is None:
            return self._failure(action, f"Unsupported action type: {action.type.name}")

        started_at = time.perf_counter()
        try:
            result = handler(action, context)
        except Exception as exc:
            logger.warning("Action failed: %s: %s", action.description, exc)
            result = self._failure(action, str(exc) or exc.__class__.__name__)
        else:
            logger.info("Executed %s (success=%s)", action.description, result.success)
        if not result.duration:
            result.duration = time.perf_counter() - started_at
        return result

    # File handlers -------------------------------------------------------------

    def _handle_write_file(self, action: WriteFile, context: ExecutionContext) -> ActionResult:
        context.files.write(action.path, action.content)
        return ActionResult(action=action, success=True, message=f"Created/Updated file: {action.path}")

    def _handle_append_file(self, action: AppendFile, context: ExecutionContext) -> ActionResult:
        context.files.append(action.path, action.content)
        return ActionResult(action=action, success=True, message=f"Appended to file: {action.path}")

    def _handle_read_file(self, action: ReadFile, context: ExecutionContext) -> ActionResult:
        content = context.files.read(action.path)
        return ActionResult(
            action=action,
            success=True,
            message=f"Read file: {action.path}\n{_fenced(content)}",
            output=content,
        )

    def _handle_read_lines(self, action: ReadLines, context: ExecutionContext) -> ActionResult:
        content = context.files.read_lines(action.path, action.start_line, action.end_line)
        end = "end" if action.end_line is None else action.end_line
        return ActionResult(
            action=action,
            success=True,
            message=f"Read lines {action.start_line}-{end} of {action.path}\n{_fenced(content)}",
            output=content,
        )

    def _handle_replace_in_file(self, action: ReplaceInFile, context: ExecutionContext) -> ActionResult:
        context.files.replace(action.path, action.search_text, action.replace_text)
        return ActionResult(action=action, success=True, message=f"Replaced text in: {action.path}")

    def _handle_insert_at_line(self, action: InsertAtLine, context: ExecutionContext) -> ActionResult:
        context.files.insert_at_line(action.path, action.line_number, action.content)
        return ActionResult(
            action=action,
            success=True,
            message=f"Inserted at line {action.line_number}: {action.path}",
        )

    def _handle_delete(self, action: Delete, context: ExecutionContext) -> ActionResult:
        context.files.delete(action.path)
        return ActionResult(action=action, success=True, message=f"Deleted: {action.path}")

    def _handle_rename(self, action: Rename, context: ExecutionContext) -> ActionResult:
        context.files.rename(action.source_path, action.dest_path)
        return ActionResult(
            action=action,
            success=True,
            message=f"Renamed: {action.source_path} -> {action.dest_path}",
        )

    def _handle_copy(self, action: CopyPath, context: ExecutionContext) -> ActionResult:
        context.files.copy(action.source_path, action.dest_path)
        return ActionResult(
            action=action,
            success=True,
            message=f"Copied: {action.source_path} -> {action.dest_path}",
        )

    def _handle_create_directory(self, action: CreateDirectory, context: ExecutionContext) -> ActionResult:
        context.files.create_directory(action.path)
        return ActionResult(action=action, success=True, message=f"Created directory: {action.path}")

    # Process handlers ----------------------------------------------------------

    def _handle_run_command(self, action: RunCommand, context: ExecutionContext) -> ActionResult:
        if not action.command_line:
            raise ValueError("Command not provided")
        proc = self.process_gateway.run(
            action.command_line,
            context.workspace_root,
            timeout=self.command_timeout,
            cancel_token=context.cancel_token,
        )
        header = f"Command: {action.command_line}\nExit code: {proc.exit_code}"
        return self._process_result(action, proc, header)

    def _handle_run_script(self, action: RunScript, context: ExecutionContext) -> ActionResult:
        if not action.script_body:
            raise ValueError("Script body is empty")
        proc = self.process_gateway.run_script(
            action.script_body,
            context.workspace_root,
            extension=action.file_extension,
            timeout=self.script_timeout,
            cancel_token=context.cancel_token,
        )
        header = f"Script executed ({action.file_extension})\nExit code: {proc.exit_code}"
        return self._process_result(action, proc, header)

    # Helpers -------------------------------------------------------------------

    def _process_result(self, action: CodeAction, proc: ProcessResult, header: str) -> ActionResult:
        output = proc.full_output
        return ActionResult(
            action=action,
            success=proc.success,
            message=f"{header}\n{_fenced(output)}",
            output=output,
            error=None if proc.success else (proc.stderr or None),
            exit_code=proc.exit_code,
            timed_out=proc.timed_out,
            duration=proc.duration,
        )

    def _failure(self, action: CodeAction, error: str) -> ActionResult:
        return ActionResult(
            action=action,
            success=False,
            message=f"Action failed: {action.description}\nError: {error}",
            error=error,
        )


__all__ = ["ActionExecutor", "ExecutionContext", "STATUS_FOR_ACTION"]
