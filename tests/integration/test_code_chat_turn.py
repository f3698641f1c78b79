"""End-to-end code-chat turns: scripted model, real workspace, real processes."""

from __future__ import annotations

import os
import shlex
import sys
from pathlib import Path

import pytest

from codechat.executor import ActionExecutor
from codechat.llm import ScriptedLLMClient
from codechat.orchestrator import ConversationOrchestrator
from codechat.session import ChatMode, SessionStore
from codechat.workspace import WorkspaceManager

pytestmark = pytest.mark.skipif(os.name == "nt", reason="uses POSIX shell commands")

BUILD_REPLY = """\
I'll set up the project first.

```action:mkdir
file: app
```

```action:write
file: app/main.py
def greet(name):
    return f"Hello, {name}"

print(greet("world"))
```

Now let me run it:

```action:run
python3 app/main.py
```
""".replace("python3", shlex.quote(sys.executable))

EDIT_REPLY = """\
Changing the greeting and keeping a backup.

```action:copy
from: app/main.py
to: backup/main.py
```

```action:replace
file: app/main.py
search: Hello
replace: Goodbye
```

```action:readlines
file: app/main.py
lines: 1-2
```

```action:delete
file: ../outside.txt
```

```action:script
extension: .sh
python3 app/main.py > out.txt
cat out.txt
```
""".replace("python3", shlex.quote(sys.executable))


@pytest.fixture
def orchestrator(tmp_path: Path) -> ConversationOrchestrator:
    return ConversationOrchestrator(
        ScriptedLLMClient([BUILD_REPLY, EDIT_REPLY]),
        SessionStore(tmp_path / "data"),
        WorkspaceManager(tmp_path / "workspaces"),
        executor=ActionExecutor(command_timeout=30, script_timeout=30),
        model="scripted",
    )


def test_two_turn_code_session(orchestrator: ConversationOrchestrator, tmp_path: Path) -> None:
    session = orchestrator.new_session(ChatMode.CODE)
    workspace = Path(session.workspace_path)
    (tmp_path / "workspaces" / "outside.txt").write_text("keep me", encoding="utf-8")

    first = orchestrator.send("Create a hello world app")

    assert [r.success for r in first.results] == [True, True, True], [r.message for r in first.results]
    assert first.results[2].output == "Hello, world"
    assert first.display_text.startswith("I'll set up the project first.")
    assert first.display_text.endswith("Now let me run it:")
    assert "```" not in first.display_text

    second = orchestrator.send("Say goodbye instead")

    assert [r.success for r in second.results] == [True, True, True, False, True]
    assert (workspace / "backup" / "main.py").read_text(encoding="utf-8").count("Hello") == 1
    assert second.results[2].output == 'def greet(name):\n    return f"Goodbye, {name}"'
    assert "outside workspace" in second.results[3].message
    assert (tmp_path / "workspaces" / "outside.txt").exists()
    assert second.results[4].output == "Goodbye, world"
    assert (workspace / "out.txt").read_text(encoding="utf-8") == "Goodbye, world\n"
    assert not list(workspace.glob("temp_script_*"))

    [stored] = orchestrator.store.load_sessions()
    roles = [m.role for m in stored.messages]
    assert roles == ["user", "assistant"] + ["system"] * 3 + ["user", "assistant"] + ["system"] * 5
    assert stored.title == "[Code] Create a hello world ap..."
