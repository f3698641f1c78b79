"""Command-line interface for codechat."""

from __future__ import annotations

import argparse
import logging
import sys
import threading
import uuid
from pathlib import Path

from .actions import ActionResult, AgentStatus
from .cancellation import CancellationToken
from .config import AppConfig, default_config, load_config
from .errors import LLMError
from .executor import ActionExecutor
from .files import FileEntry
from .llm import build_llm_client
from .orchestrator import ConversationOrchestrator, TurnResult
from .session import ChatMode, SessionStore
from .workspace import WorkspaceManager

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
EXIT_COMMANDS = {"/exit", "/quit"}

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO", log_file: Path | None = None) -> None:
    """Configure the package logger: a file handler plus warnings on stderr."""
    package_logger = logging.getLogger("codechat")
    package_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    formatter = logging.Formatter(LOG_FORMAT)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.WARNING)
    console.setFormatter(formatter)
    package_logger.addHandler(console)


def _load_app_config(args: argparse.Namespace) -> AppConfig:
    config = load_config(args.config) if args.config else default_config()
    if args.log_level:
        config.logging.level = args.log_level
    return config


def _print_results(results: list[ActionResult]) -> None:
    for result in results:
        marker = "ok" if result.success else "FAILED"
        print(f"[{marker}] {result.message}")


def _format_entry(entry: FileEntry) -> str:
    name = entry.name + ("/" if entry.is_directory else "")
    return f"{name:<40} {entry.size_display:>10}"


def _run_turn(orchestrator: ConversationOrchestrator, text: str) -> TurnResult:
    """Run a turn on a worker thread so Ctrl+C can cancel it cleanly."""
    token = CancellationToken()
    outcome: list[TurnResult] = []
    worker = threading.Thread(target=lambda: outcome.append(orchestrator.send(text, token)), daemon=True)
    worker.start()
    while worker.is_alive():
        try:
            worker.join(0.1)
        except KeyboardInterrupt:
            print("\n(cancelling...)", file=sys.stderr)
            token.cancel()
    if not outcome:
        raise RuntimeError("Chat turn ended without a result")
    return outcome[0]


def _handle_chat_command(args: argparse.Namespace, config: AppConfig) -> int:
    store = SessionStore(config.storage.data_dir)
    settings = store.load_settings()
    if not args.config:
        config.llm.base_url = settings.server_url
    llm_client = build_llm_client(config.llm)
    workspaces = WorkspaceManager(config.workspace.base_dir)
    executor = ActionExecutor(
        command_timeout=config.limits.command_timeout,
        script_timeout=config.limits.script_timeout,
    )

    def on_status(status: AgentStatus) -> None:
        if status in (AgentStatus.EXECUTING_COMMAND, AgentStatus.CREATING_WORKSPACE):
            print(f"[{status.display}]", file=sys.stderr)

    def on_token(chunk: str) -> None:
        sys.stdout.write(chunk)
        sys.stdout.flush()

    orchestrator = ConversationOrchestrator(
        llm_client,
        store,
        workspaces,
        executor=executor,
        model=args.model or config.llm.model or settings.last_selected_model,
        on_status=on_status,
        on_token=on_token,
    )

    if args.session:
        session = store.get_session(uuid.UUID(args.session))
        if session is None:
            print(f"Session not found: {args.session}", file=sys.stderr)
            return 1
        orchestrator.resume_session(session)
    else:
        orchestrator.new_session(ChatMode.CODE if args.code else ChatMode.REGULAR)

    for message in orchestrator.transcript:
        print(f"{message.role}: {message.content}\n")

    try:
        model = orchestrator.select_model()
    except LLMError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(f"Model: {model}. Type /exit to quit, Ctrl+C cancels a running reply.")

    settings.last_selected_model = model
    settings.last_session_id = orchestrator.session.id
    store.save_settings(settings)

    try:
        while True:
            try:
                text = input("\n> ")
            except EOFError:
                break
            if text.strip() in EXIT_COMMANDS:
                break
            if not text.strip():
                continue
            result = _run_turn(orchestrator, text)
            print()
            if result.error:
                print(f"Error: {result.error}", file=sys.stderr)
            if result.cancelled:
                print("(cancelled)", file=sys.stderr)
            _print_results(result.results)
    except KeyboardInterrupt:
        print()
    finally:
        llm_client.close()
    return 0


def _handle_models_command(args: argparse.Namespace, config: AppConfig) -> int:
    llm_client = build_llm_client(config.llm)
    try:
        if not llm_client.test_connection():
            print(f"Cannot reach model server at {config.llm.base_url}", file=sys.stderr)
            return 1
        models = llm_client.list_models()
    finally:
        llm_client.close()
    if not models:
        print("No models available.")
        return 1
    for name in models:
        print(name)
    return 0


def _handle_sessions_command(args: argparse.Namespace, config: AppConfig) -> int:
    store = SessionStore(config.storage.data_dir)
    if args.sessions_command == "list":
        sessions = store.load_sessions()
        if not sessions:
            print("No saved sessions.")
            return 0
        for session in sessions:
            updated = session.updated_at.strftime("%Y-%m-%d %H:%M")
            print(f"{session.id}  {updated}  {session.mode.value:<7}  {session.title}")
        return 0
    if args.sessions_command == "delete":
        session_id = uuid.UUID(args.session_id)
        if not store.delete_session(session_id):
            print(f"Session not found: {args.session_id}", file=sys.stderr)
            return 1
        if args.purge_workspace:
            WorkspaceManager(config.workspace.base_dir).delete(session_id)
        print(f"Deleted session {args.session_id}")
        return 0
    return 1


def _handle_apply_command(args: argparse.Namespace, config: AppConfig) -> int:
    response_text = Path(args.file).read_text(encoding="utf-8")
    workspace = Path(args.workspace)
    workspace.mkdir(parents=True, exist_ok=True)
    executor = ActionExecutor(
        command_timeout=config.limits.command_timeout,
        script_timeout=config.limits.script_timeout,
    )
    display_text, results = executor.parse_and_execute(response_text, workspace)
    if display_text:
        print(display_text)
        print()
    if not results:
        print("No actions found.")
        return 0
    _print_results(results)
    return 0 if all(result.success for result in results) else 1


def _handle_workspace_command(args: argparse.Namespace, config: AppConfig) -> int:
    workspaces = WorkspaceManager(config.workspace.base_dir)
    if args.workspace_command == "size":
        size = workspaces.size(args.directory)
        print(f"{size} bytes")
        return 0
    if args.workspace_command == "list":
        for entry in workspaces.list_contents(args.directory, args.path):
            print(_format_entry(entry))
        return 0
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Chat with a local model that can edit a workspace")
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Overrides logging.level from the configuration",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    chat_parser = subparsers.add_parser("chat", help="Start an interactive chat")
    chat_parser.add_argument("--code", action="store_true", help="Code chat with a workspace and actions")
    chat_parser.add_argument("--model", help="Model name (default: configured or first available)")
    chat_parser.add_argument("--session", help="Resume a saved session by id")

    subparsers.add_parser("models", help="List models offered by the server")

    sessions_parser = subparsers.add_parser("sessions", help="Manage saved sessions")
    sessions_sub = sessions_parser.add_subparsers(dest="sessions_command", required=True)
    sessions_sub.add_parser("list", help="List saved sessions, newest first")
    delete_parser = sessions_sub.add_parser("delete", help="Delete a saved session")
    delete_parser.add_argument("session_id")
    delete_parser.add_argument(
        "--purge-workspace",
        action="store_true",
        help="Also delete the session's workspace directory",
    )

    apply_parser = subparsers.add_parser("apply", help="Execute the actions in a saved model response")
    apply_parser.add_argument("file", help="Text file with the model response")
    apply_parser.add_argument("--workspace", required=True, help="Workspace directory")

    workspace_parser = subparsers.add_parser("workspace", help="Inspect workspace directories")
    workspace_sub = workspace_parser.add_subparsers(dest="workspace_command", required=True)
    size_parser = workspace_sub.add_parser("size", help="Total size of a workspace")
    size_parser.add_argument("directory")
    list_parser = workspace_sub.add_parser("list", help="List a workspace directory")
    list_parser.add_argument("directory")
    list_parser.add_argument("path", nargs="?", default="", help="Sub-directory inside the workspace")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = _load_app_config(args)
    except (FileNotFoundError, ValueError) as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2
    setup_logging(config.logging.level, config.logging.file)

    handlers = {
        "chat": _handle_chat_command,
        "models": _handle_models_command,
        "sessions": _handle_sessions_command,
        "apply": _handle_apply_command,
        "workspace": _handle_workspace_command,
    }
    handler = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        return 1
    try:
        return handler(args, config)
    except (OSError, ValueError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
