"""One chat conversation: prompting, streaming and code-action execution.

:class:`ConversationOrchestrator` is the single writer of its session. A
turn appends the user message, streams the model reply and, in code mode,
executes the reply's action blocks before persisting the session. Only one
turn runs at a time; a turn is aborted through its cancellation token.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from .actions import ActionResult, AgentStatus
from .cancellation import CancellationToken
from .constants import CODE_TITLE_PREFIX
from .errors import LLMError, OperationCancelled
from .executor import ActionExecutor
from .llm import BaseLLMClient
from .session import ChatMessage, ChatMode, ChatSession, SessionStore
from .workspace import WorkspaceManager

logger = logging.getLogger(__name__)

StatusCallback = Callable[[AgentStatus], None]
TokenCallback = Callable[[str], None]

CODE_CHAT_SYSTEM_PROMPT = """\
You are an AI coding assistant with access to a workspace directory. You can \
work with files and run commands by writing action blocks.

WORKSPACE: {workspace}

ACTION SYNTAX - use these exact formats in your responses:

WRITE FILE (the ACTUAL content the user wants, never placeholders):
```action:write
file: filename.txt
The actual file content here
```

APPEND TO FILE:
```action:append
file: notes.txt
Text added at the end of the file
```

READ FILE:
```action:read
file: filename.txt
```

READ LINES (inclusive, 1-indexed):
```action:readlines
file: filename.txt
lines: 10-20
```

REPLACE TEXT (first occurrence only):
```action:replace
file: filename.txt
search: old text
replace: new text
```

INSERT AT LINE:
```action:insert
file: filename.txt
line: 3
Text inserted before line 3
```

DELETE:
```action:delete
file: path/to/delete
```

RENAME/MOVE:
```action:rename
from: oldname.txt
to: newname.txt
```

COPY:
```action:copy
from: source.txt
to: backup/source.txt
```

CREATE DIRECTORY:
```action:mkdir
file: foldername
```

RUN COMMAND:
```action:run
the command here
```

RUN SCRIPT:
```action:script
extension: .sh
script content here
```

CRITICAL RULES:
1. When writing files, use the EXACT content the user requests. Never use placeholder text like 'content here'.
2. All paths are relative to the workspace.
3. Explain what you are doing before each action.
4. You can use multiple action blocks in one response. They run in order.
5. Results of your actions are reported back to you as system messages."""

WELCOME_MESSAGE = (
    "Code Chat initialized!\n\n"
    "Workspace: {workspace}\n\n"
    "The AI can now execute commands and manage files in this workspace."
)


@dataclass
class TurnResult:
    """Outcome of one :meth:`ConversationOrchestrator.send` call."""

    reply: str
    display_text: str
    results: list[ActionResult] = field(default_factory=list)
    cancelled: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.cancelled


class ConversationOrchestrator:
    def __init__(
        self,
        llm_client: BaseLLMClient,
        store: SessionStore,
        workspaces: WorkspaceManager,
        executor: ActionExecutor | None = None,
        model: str | None = None,
        on_status: StatusCallback | None = None,
        on_token: TokenCallback | None = None,
    ) -> None:
        self.llm_client = llm_client
        self.store = store
        self.workspaces = workspaces
        self.executor = executor or ActionExecutor()
        self.model = model
        self.on_status = on_status
        self.on_token = on_token
        self.session = ChatSession()
        # What a front end shows: the session messages plus display-only notices.
        self.transcript: list[ChatMessage] = []
        self.status = AgentStatus.IDLE

    # Session lifecycle -------------------------------------------------------

    def new_session(self, mode: ChatMode = ChatMode.REGULAR) -> ChatSession:
        session = ChatSession(mode=mode)
        self.transcript = []
        if mode is ChatMode.CODE:
            self._set_status(AgentStatus.CREATING_WORKSPACE)
            session.workspace_path = str(self.workspaces.create(session.id))
            session.title = CODE_TITLE_PREFIX + session.title
            self.transcript.append(
                ChatMessage("system", WELCOME_MESSAGE.format(workspace=session.workspace_path))
            )
        self.session = session
        self._set_status(AgentStatus.IDLE)
        return session

    def resume_session(self, session: ChatSession) -> ChatSession:
        """Continue a stored session, recreating its workspace if it is gone."""
        if session.mode is ChatMode.CODE:
            if not session.workspace_path:
                session.workspace_path = str(self.workspaces.path_for(session.id))
            self.workspaces.create(session.id)
        self.session = session
        self.transcript = list(session.messages)
        return session

    def select_model(self) -> str:
        """Return the configured model, falling back to the first one offered."""
        if self.model:
            return self.model
        self._set_status(AgentStatus.LOADING_MODELS)
        try:
            models = self.llm_client.list_models()
        finally:
            self._set_status(AgentStatus.IDLE)
        if not models:
            raise LLMError("No models available on the model server")
        self.model = models[0]
        return self.model

    # Turns -------------------------------------------------------------------

    def send(self, user_text: str, cancel_token: CancellationToken | None = None) -> TurnResult:
        """Run one conversational turn for ``user_text``.

        Model and transport errors are reported in the result (and as a
        system notice in the transcript) rather than raised. The failed user message
        stays in the transcript but not in the session history. A cancelled
        turn keeps whatever part of the reply had arrived.
        """
        text = user_text.strip()
        if not text:
            raise ValueError("Message is empty")
        token = cancel_token or CancellationToken()
        session = self.session

        history_length = len(session.messages)
        previous_title = session.title
        user_message = ChatMessage("user", text)
        session.messages.append(user_message)
        self.transcript.append(user_message)
        if len(session.messages) == 1:
            session.update_title()

        reply_parts: list[str] = []
        results: list[ActionResult] = []
        reply_stored = False
        try:
            model = self.select_model()
            self._set_status(AgentStatus.THINKING)
            api_messages = self.build_api_messages()
            self._set_status(AgentStatus.GENERATING)
            for chunk in self.llm_client.stream_chat(model, api_messages, token):
                reply_parts.append(chunk)
                if self.on_token is not None:
                    self.on_token(chunk)
            token.raise_if_cancelled()

            reply = "".join(reply_parts)
            self._append_message("assistant", reply)
            reply_stored = True
            display_text = self._run_actions(reply, token, results)
            token.raise_if_cancelled()
            self._save()
            return TurnResult(reply=reply, display_text=display_text, results=results)
        except OperationCancelled:
            logger.info("Turn cancelled in session %s", session.id)
            reply = "".join(reply_parts)
            if reply and not reply_stored:
                self._append_message("assistant", reply)
            self._save()
            return TurnResult(
                reply=reply,
                display_text=self.executor.parser.strip_action_blocks(reply),
                results=results,
                cancelled=True,
            )
        except (LLMError, OSError, ValueError) as exc:
            logger.error("Turn failed in session %s: %s", session.id, exc)
            self.transcript.append(ChatMessage("system", f"Error: {exc}"))
            self._set_status(AgentStatus.ERROR)
            if not reply_stored:
                # Session history only holds completed exchanges.
                del session.messages[history_length:]
                session.title = previous_title
            reply = "".join(reply_parts)
            return TurnResult(reply=reply, display_text=reply, results=results, error=str(exc))
        finally:
            self._set_status(AgentStatus.IDLE)

    def build_api_messages(self) -> list[ChatMessage]:
        """Messages sent to the model: the code-chat prompt (if any) then history."""
        messages: list[ChatMessage] = []
        if self.session.mode is ChatMode.CODE and self.session.workspace_path:
            prompt = CODE_CHAT_SYSTEM_PROMPT.format(workspace=self.session.workspace_path)
            messages.append(ChatMessage("system", prompt))
        messages.extend(self.session.messages)
        return messages

    # Internals ---------------------------------------------------------------

    def _run_actions(self, reply: str, token: CancellationToken, results: list[ActionResult]) -> str:
        """Execute the reply's actions into ``results`` and return the display text."""
        session = self.session
        if session.mode is not ChatMode.CODE or not session.workspace_path:
            return self.executor.parser.strip_action_blocks(reply)
        display_text, executed = self.executor.parse_and_execute(
            reply,
            session.workspace_path,
            cancel_token=token,
            on_status=self._set_status,
        )
        results.extend(executed)
        for result in executed:
            self._append_message("system", result.message)
        return display_text

    def _append_message(self, role: str, content: str) -> None:
        message = ChatMessage(role, content)
        self.session.messages.append(message)
        self.transcript.append(message)

    def _save(self) -> None:
        self.session.touch()
        self.store.save_session(self.session)

    def _set_status(self, status: AgentStatus) -> None:
        self.status = status
        if self.on_status is not None:
            self.on_status(status)


__all__ = [
    "CODE_CHAT_SYSTEM_PROMPT",
    "ConversationOrchestrator",
    "TurnResult",
    "WELCOME_MESSAGE",
]
