"""Unit tests for codechat.executor."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import Mock

import pytest

from codechat.actions import (
    ActionType,
    AgentStatus,
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
from codechat.cancellation import CancellationToken
from codechat.executor import STATUS_FOR_ACTION, ActionExecutor
from codechat.process import ProcessResult

posix_only = pytest.mark.skipif(os.name == "nt", reason="uses POSIX shell syntax")


@pytest.fixture
def executor() -> ActionExecutor:
    return ActionExecutor(command_timeout=10, script_timeout=10)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "ws"
    root.mkdir()
    return root


def test_every_action_type_has_a_handler(executor: ActionExecutor) -> None:
    for action_type in ActionType:
        assert executor.get_handler(action_type) is not None, action_type
        assert action_type in STATUS_FOR_ACTION


def test_failure_in_middle_does_not_abort_batch(executor: ActionExecutor, workspace: Path) -> None:
    actions = [
        WriteFile(path="a.txt", content="alpha"),
        ReadFile(path="missing.txt"),
        WriteFile(path="b.txt", content="beta"),
    ]

    results = executor.execute_all(actions, workspace)

    assert [result.success for result in results] == [True, False, True]
    assert results[1].message == "Action failed: Read file: missing.txt\nError: File not found: missing.txt"
    assert results[1].error == "File not found: missing.txt"
    assert (workspace / "b.txt").read_text(encoding="utf-8") == "beta"


def test_path_escape_becomes_failed_result(executor: ActionExecutor, workspace: Path) -> None:
    [result] = executor.execute_all([WriteFile(path="../evil.txt", content="x")], workspace)

    assert not result.success
    assert "outside workspace" in result.message
    assert not (workspace.parent / "evil.txt").exists()


def test_file_action_messages(executor: ActionExecutor, workspace: Path) -> None:
    (workspace / "a.txt").write_text("foo baz foo\nline2\n", encoding="utf-8")
    actions = [
        ReplaceInFile(path="a.txt", search_text="foo", replace_text="bar"),
        ReadLines(path="a.txt", start_line=1, end_line=1),
        InsertAtLine(path="a.txt", line_number=2, content="inserted"),
        ReadFile(path="a.txt"),
        CreateDirectory(path="dir"),
        CopyPath(source_path="a.txt", dest_path="dir/a.txt"),
        Rename(source_path="dir/a.txt", dest_path="dir/b.txt"),
        Delete(path="dir"),
    ]

    results = executor.execute_all(actions, workspace)

    assert all(result.success for result in results), [r.message for r in results]
    assert [result.message for result in results] == [
        "Replaced text in: a.txt",
        "Read lines 1-1 of a.txt\n```\nbar baz foo\n```",
        "Inserted at line 2: a.txt",
        "Read file: a.txt\n```\nbar baz foo\ninserted\nline2\n\n```",
        "Created directory: dir",
        "Copied: a.txt -> dir/a.txt",
        "Renamed: dir/a.txt -> dir/b.txt",
        "Deleted: dir",
    ]
    assert results[3].output == "bar baz foo\ninserted\nline2\n"


def test_replace_example_only_first_occurrence(executor: ActionExecutor, workspace: Path) -> None:
    (workspace / "a.txt").write_text("foo baz foo", encoding="utf-8")
    response = "```action:replace\nfile: a.txt\nsearch: foo\nreplace: bar\n```"

    _, [result] = executor.parse_and_execute(response, workspace)

    assert result.success
    assert (workspace / "a.txt").read_text(encoding="utf-8") == "bar baz foo"


def test_status_transitions_per_action(executor: ActionExecutor, workspace: Path) -> None:
    statuses: list[AgentStatus] = []
    executor.execute_all(
        [WriteFile(path="a.txt", content="x"), ReadFile(path="a.txt"), ReadFile(path="nope")],
        workspace,
        on_status=statuses.append,
    )

    assert statuses == [
        AgentStatus.WRITING_FILES,
        AgentStatus.IDLE,
        AgentStatus.READING_FILES,
        AgentStatus.IDLE,
        AgentStatus.READING_FILES,
        AgentStatus.IDLE,
    ]


def test_cancelled_token_skips_remaining_actions(executor: ActionExecutor, workspace: Path) -> None:
    token = CancellationToken()
    token.cancel()

    results = executor.execute_all([WriteFile(path="a.txt", content="x")], workspace, cancel_token=token)

    assert len(results) == 1
    assert not results[0].success
    assert "Cancelled" in results[0].message
    assert not (workspace / "a.txt").exists()


def test_command_result_uses_process_gateway(workspace: Path) -> None:
    gateway = Mock()
    gateway.run.return_value = ProcessResult(exit_code=2, stdout="out", stderr="err", success=False)
    executor = ActionExecutor(process_gateway=gateway, command_timeout=7)

    [result] = executor.execute_all([RunCommand(command_line="make")], workspace)

    assert not result.success
    assert result.exit_code == 2
    assert result.message == "Command: make\nExit code: 2\n```\nout\n\nErrors:\nerr\n```"
    _, kwargs = gateway.run.call_args
    assert kwargs["timeout"] == 7


def test_empty_command_fails(executor: ActionExecutor, workspace: Path) -> None:
    [result] = executor.execute_all([RunCommand(command_line="")], workspace)
    assert not result.success
    assert result.error == "Command not provided"


@posix_only
def test_script_action_runs_in_workspace(executor: ActionExecutor, workspace: Path) -> None:
    [result] = executor.execute_all(
        [RunScript(script_body="echo made > made.txt\necho done", file_extension=".sh")],
        workspace,
    )

    assert result.success
    assert result.message == "Script executed (.sh)\nExit code: 0\n```\ndone\n```"
    assert (workspace / "made.txt").exists()


@posix_only
def test_parse_and_execute_end_to_end(executor: ActionExecutor, workspace: Path) -> None:
    response = (
        "Creating the file.\n"
        "```action:write\nfile: hello.txt\nHello World\n```\n"
        "Checking it:\n"
        "```action:run\ncat hello.txt\n```\n"
        "Done."
    )

    display_text, results = executor.parse_and_execute(response, workspace)

    assert display_text == "Creating the file.\n\nChecking it:\n\nDone."
    assert [result.success for result in results] == [True, True]
    assert results[0].message == "Created/Updated file: hello.txt"
    assert results[1].output == "Hello World"
