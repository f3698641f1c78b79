"""Shell command and script execution with timeout and cancellation.

Commands run through the host shell in their own process group. Output is
captured line by line by two reader threads (stdout and stderr) while the
caller waits; on timeout or cancellation the whole process tree is killed.
Launch failures and timeouts are reported through :class:`ProcessResult`
rather than raised.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import signal
import subprocess
import sys
import threading
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import IO

import psutil

from .cancellation import CancellationToken
from .constants import (
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_SCRIPT_EXTENSION,
    PROCESS_POLL_INTERVAL,
    READER_JOIN_TIMEOUT,
    TEMP_SCRIPT_PREFIX,
)
from .errors import OperationCancelled, ProcessLaunchError, ProcessTimeoutError

logger = logging.getLogger(__name__)

IS_WINDOWS = os.name == "nt"

# Interpreters for script extensions that need one; others run directly.
SCRIPT_INTERPRETERS: dict[str, list[str]] = {
    ".sh": ["bash"],
    ".bash": ["bash"],
    ".py": [sys.executable],
    ".ps1": ["powershell", "-ExecutionPolicy", "Bypass", "-File"],
    ".js": ["node"],
    ".rb": ["ruby"],
    ".pl": ["perl"],
}


@dataclass
class ProcessResult:
    exit_code: int | None
    stdout: str = ""
    stderr: str = ""
    success: bool = False
    timed_out: bool = False
    duration: float = 0.0

    @property
    def full_output(self) -> str:
        if not self.stderr:
            return self.stdout
        if not self.stdout:
            return self.stderr
        return f"{self.stdout}\n\nErrors:\n{self.stderr}"


def _quote(parts: list[str]) -> str:
    if IS_WINDOWS:
        return subprocess.list2cmdline(parts)
    return " ".join(shlex.quote(part) for part in parts)


def _pump(stream: IO[str], sink: list[str]) -> None:
    with stream:
        for line in stream:
            sink.append(line.rstrip("\r\n"))


class ProcessGateway:
    """Runs commands and scripts on behalf of code actions."""

    def __init__(
        self,
        default_timeout: float = DEFAULT_COMMAND_TIMEOUT,
        env: dict[str, str] | None = None,
    ) -> None:
        self.default_timeout = default_timeout
        self.env = env

    def run(
        self,
        command_line: str,
        working_dir: str | Path,
        timeout: float | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ProcessResult:
        """Run ``command_line`` through the host shell inside ``working_dir``."""
        timeout = self.default_timeout if timeout is None else timeout
        token = cancel_token or CancellationToken()
        started_at = time.perf_counter()

        try:
            proc = self._spawn(command_line, Path(working_dir))
        except ProcessLaunchError as exc:
            logger.error("Failed to launch command %r: %s", command_line, exc)
            return ProcessResult(
                exit_code=None,
                stderr=f"Failed to execute command: {exc}",
                duration=time.perf_counter() - started_at,
            )

        stdout_lines: list[str] = []
        stderr_lines: list[str] = []
        readers = [
            threading.Thread(target=_pump, args=(proc.stdout, stdout_lines), daemon=True),
            threading.Thread(target=_pump, args=(proc.stderr, stderr_lines), daemon=True),
        ]
        for reader in readers:
            reader.start()

        notice: str | None = None
        try:
            exit_code = self._wait(proc, started_at, timeout, token)
        except (ProcessTimeoutError, OperationCancelled) as exc:
            notice = "Command cancelled" if isinstance(exc, OperationCancelled) else str(exc)
            logger.warning("%s: %s", notice, command_line)
            self._kill_tree(proc)
            exit_code = proc.returncode
        finally:
            # One deadline for both readers; a background child may hold the pipes open.
            join_deadline = time.perf_counter() + READER_JOIN_TIMEOUT
            for reader in readers:
                reader.join(max(join_deadline - time.perf_counter(), 0))
            stdout_lines = list(stdout_lines)
            stderr_lines = list(stderr_lines)

        stderr = "\n".join(stderr_lines).rstrip()
        if notice is not None:
            stderr = f"{stderr}\n{notice}" if stderr else notice
        return ProcessResult(
            exit_code=exit_code,
            stdout="\n".join(stdout_lines).rstrip(),
            stderr=stderr,
            success=notice is None and exit_code == 0,
            timed_out=notice is not None,
            duration=time.perf_counter() - started_at,
        )

    def run_script(
        self,
        script_body: str,
        working_dir: str | Path,
        extension: str = DEFAULT_SCRIPT_EXTENSION,
        timeout: float | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ProcessResult:
        """Write ``script_body`` to a temporary file in ``working_dir`` and run it.

        The file is removed afterwards, whatever happens during execution.
        """
        if not extension.startswith("."):
            extension = "." + extension
        script_path = Path(working_dir) / f"{TEMP_SCRIPT_PREFIX}{uuid.uuid4().hex}{extension}"
        try:
            script_path.write_text(script_body, encoding="utf-8")
            if not IS_WINDOWS:
                script_path.chmod(script_path.stat().st_mode | 0o111)
            return self.run(self._script_command(script_path, extension), working_dir, timeout, cancel_token)
        finally:
            try:
                script_path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Could not remove temporary script %s: %s", script_path, exc)

    # Internals ----------------------------------------------------------------

    def _shell_command(self, command_line: str) -> list[str] | str:
        if IS_WINDOWS:
            return f"cmd.exe /c {command_line}"
        return [shutil.which("bash") or "/bin/sh", "-c", command_line]

    def _script_command(self, script_path: Path, extension: str) -> str:
        interpreter = SCRIPT_INTERPRETERS.get(extension.lower())
        if interpreter and shutil.which(interpreter[0]):
            return _quote([*interpreter, str(script_path)])
        return _quote([str(script_path)])

    def _spawn(self, command_line: str, working_dir: Path) -> subprocess.Popen:
        logger.debug("Launching %r in %s", command_line, working_dir)
        try:
            return subprocess.Popen(
                self._shell_command(command_line),
                cwd=working_dir,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                env=self.env,
                start_new_session=not IS_WINDOWS,
            )
        except OSError as exc:
            raise ProcessLaunchError(str(exc)) from exc

    def _wait(
        self,
        proc: subprocess.Popen,
        started_at: float,
        timeout: float,
        token: CancellationToken,
    ) -> int:
        deadline = started_at + timeout
        while True:
            try:
                return proc.wait(timeout=PROCESS_POLL_INTERVAL)
            except subprocess.TimeoutExpired:
                pass
            if token.cancelled:
                raise OperationCancelled("Command cancelled")
            if time.perf_counter() >= deadline:
                raise ProcessTimeoutError(f"Command timed out after {timeout:g}s")

    def _kill_tree(self, proc: subprocess.Popen) -> None:
        # Collect descendants before the parent dies and they get re-parented.
        try:
            descendants = psutil.Process(proc.pid).children(recursive=True)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            descendants = []
        if not IS_WINDOWS:
            try:
                os.killpg(proc.pid, signal.SIGKILL)
            except (ProcessLookupError, PermissionError):
                pass
        for child in descendants:
            try:
                child.kill()
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                pass
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        psutil.wait_procs(descendants, timeout=READER_JOIN_TIMEOUT)
        try:
            proc.wait(timeout=READER_JOIN_TIMEOUT)
        except subprocess.TimeoutExpired:
            logger.error("Process %s did not exit after kill", proc.pid)


__all__ = ["ProcessGateway", "ProcessResult", "SCRIPT_INTERPRETERS"]
