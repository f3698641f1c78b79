"""Extraction of action blocks from model output.

A model in code-chat mode embeds instructions in fenced blocks::

    ```action:write
    file: hello.txt
    Hello World
    ```

:class:`ActionParser` turns every recognised block into a typed action (in
order of appearance) and can strip all blocks so that only the prose is
shown to the user. Model output is untrusted and frequently sloppy, so the
body grammars are lenient: missing directives fall back to positional
parsing and unknown block types are dropped. Parsing never raises.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable

from .actions import (
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
from .constants import DEFAULT_SCRIPT_EXTENSION

logger = logging.getLogger(__name__)

# ```action:<type> ... ``` , non-greedy up to the first closing fence.
ACTION_BLOCK_RE = re.compile(r"```action:(\w+)[ \t]*\r?\n(.*?)```", re.IGNORECASE | re.DOTALL)

FILE_DIRECTIVE_RE = re.compile(r"^file:[ \t]*(.+?)[ \t]*$", re.IGNORECASE | re.MULTILINE)
START_DIRECTIVE_RE = re.compile(r"^start:[ \t]*(.*?)[ \t]*$", re.IGNORECASE | re.MULTILINE)
END_DIRECTIVE_RE = re.compile(r"^end:[ \t]*(.*?)[ \t]*$", re.IGNORECASE | re.MULTILINE)
LINES_DIRECTIVE_RE = re.compile(r"^lines:[ \t]*(\S*?)[ \t]*-[ \t]*(\S*?)[ \t]*$", re.IGNORECASE | re.MULTILINE)
LINE_DIRECTIVE_RE = re.compile(r"^line:\s*(.*?)\s*$", re.IGNORECASE)
EXTENSION_DIRECTIVE_RE = re.compile(r"^extension:\s*(.*?)\s*$", re.IGNORECASE)
# Any ReadLines range directive, used to keep them out of the positional path.
READ_LINES_DIRECTIVE_RE = re.compile(r"^(start|end|lines):", re.IGNORECASE)
# Directive keywords of the search/replace grammar, anchored to start of line.
REPLACE_DIRECTIVE_RE = re.compile(r"^(file|search|replace):[ \t]*(.*)$", re.IGNORECASE)


def _normalise(body: str) -> str:
    body = body.replace("\r\n", "\n")
    # The newline right before the closing fence belongs to the fence.
    if body.endswith("\n"):
        body = body[:-1]
    return body


def _to_int(value: str, default: int | None) -> int | None:
    try:
        return int(value.strip())
    except ValueError:
        return default


def _file_directive(body: str) -> str | None:
    match = FILE_DIRECTIVE_RE.search(body)
    return match.group(1) if match else None


def _first_non_empty_line(body: str, skip: re.Pattern[str] | None = None) -> str:
    for line in body.splitlines():
        if line.strip() and not (skip and skip.match(line.strip())):
            return line.strip()
    return ""


def _single_path(body: str) -> str:
    path = _file_directive(body)
    return path if path is not None else _first_non_empty_line(body)


def _split_first_line(body: str) -> tuple[str, str]:
    first, _, rest = body.partition("\n")
    return first, rest


def _source_and_dest(body: str) -> tuple[str, str]:
    source = dest = None
    for line in body.splitlines():
        stripped = line.strip()
        lowered = stripped.lower()
        if lowered.startswith("from:"):
            source = stripped[5:].strip()
        elif lowered.startswith("to:"):
            dest = stripped[3:].strip()
    if source is None and dest is None:
        # No directives at all: first two non-empty lines, in order.
        lines = [line.strip() for line in body.splitlines() if line.strip()]
        source = lines[0] if lines else ""
        dest = lines[1] if len(lines) > 1 else ""
    return source or "", dest or ""


# Per-type body parsers -------------------------------------------------------


def parse_write(body: str) -> WriteFile:
    first, rest = _split_first_line(body)
    match = FILE_DIRECTIVE_RE.match(first)
    path = match.group(1) if match else first.strip()
    if rest.startswith("\n"):
        rest = rest[1:]
    return WriteFile(path=path, content=rest)


def parse_append(body: str) -> AppendFile:
    write = parse_write(body)
    return AppendFile(path=write.path, content=write.content)


def parse_read(body: str) -> ReadFile:
    return ReadFile(path=_single_path(body))


def parse_read_lines(body: str) -> ReadLines:
    start = 1
    end: int | None = None
    lines_match = LINES_DIRECTIVE_RE.search(body)
    if lines_match:
        start = _to_int(lines_match.group(1), 0) or 0
        end = _to_int(lines_match.group(2), None)
    else:
        start_match = START_DIRECTIVE_RE.search(body)
        end_match = END_DIRECTIVE_RE.search(body)
        if start_match:
            start = _to_int(start_match.group(1), 0) or 0
        if end_match:
            end = _to_int(end_match.group(1), None)
    path = _file_directive(body)
    if path is None:
        path = _first_non_empty_line(body, skip=READ_LINES_DIRECTIVE_RE)
    return ReadLines(path=path, start_line=start, end_line=end)


def parse_replace(body: str) -> ReplaceInFile:
    sections: dict[str, list[str]] = {"file": [], "search": [], "replace": []}
    current: str | None = None
    for line in body.split("\n"):
        match = REPLACE_DIRECTIVE_RE.match(line)
        if match:
            current = match.group(1).lower()
            inline = match.group(2)
            if inline.strip():
                sections[current].append(inline)
            continue
        if current is not None:
            sections[current].append(line)
    path = "\n".join(sections["file"]).strip()
    return ReplaceInFile(
        path=path,
        search_text="\n".join(sections["search"]),
        replace_text="\n".join(sections["replace"]),
    )


def parse_insert(body: str) -> InsertAtLine:
    path = _file_directive(body)
    line_number = 0
    content_lines: list[str] = []
    lines = body.split("\n")
    for index, line in enumerate(lines):
        match = LINE_DIRECTIVE_RE.match(line)
        if match:
            line_number = _to_int(match.group(1), 0) or 0
            content_lines = lines[index + 1:]
            if path is not None and not any(FILE_DIRECTIVE_RE.match(head) for head in lines[:index]):
                # file: came after line:, so it is a directive rather than content.
                for position, rest in enumerate(content_lines):
                    if FILE_DIRECTIVE_RE.match(rest):
                        del content_lines[position]
                        break
            break
    if path is None:
        path = _first_non_empty_line(body, skip=LINE_DIRECTIVE_RE)
    return InsertAtLine(path=path, line_number=line_number, content="\n".join(content_lines))


def parse_delete(body: str) -> Delete:
    return Delete(path=_single_path(body))


def parse_rename(body: str) -> Rename:
    source, dest = _source_and_dest(body)
    return Rename(source_path=source, dest_path=dest)


def parse_copy(body: str) -> CopyPath:
    source, dest = _source_and_dest(body)
    return CopyPath(source_path=source, dest_path=dest)


def parse_mkdir(body: str) -> CreateDirectory:
    return CreateDirectory(path=_single_path(body))


def parse_command(body: str) -> RunCommand:
    return RunCommand(command_line=body.strip())


def parse_script(body: str) -> RunScript:
    extension = DEFAULT_SCRIPT_EXTENSION
    first, rest = _split_first_line(body)
    match = EXTENSION_DIRECTIVE_RE.match(first.strip())
    if match:
        extension = match.group(1).lower() or DEFAULT_SCRIPT_EXTENSION
        if not extension.startswith("."):
            extension = "." + extension
        body = rest
    return RunScript(script_body=body.strip(), file_extension=extension)


BODY_PARSERS: dict[str, Callable[[str], CodeAction]] = {
    "write": parse_write,
    "create": parse_write,
    "append": parse_append,
    "read": parse_read,
    "readlines": parse_read_lines,
    "read_lines": parse_read_lines,
    "lines": parse_read_lines,
    "replace": parse_replace,
    "edit": parse_replace,
    "insert": parse_insert,
    "delete": parse_delete,
    "remove": parse_delete,
    "rename": parse_rename,
    "move": parse_rename,
    "copy": parse_copy,
    "mkdir": parse_mkdir,
    "createdir": parse_mkdir,
    "run": parse_command,
    "execute": parse_command,
    "cmd": parse_command,
    "command": parse_command,
    "script": parse_script,
}


class ActionParser:
    """Extract typed actions from free-form model output."""

    def parse(self, response_text: str) -> list[CodeAction]:
        """Return the recognised actions in order of appearance."""
        actions: list[CodeAction] = []
        for match in ACTION_BLOCK_RE.finditer(response_text):
            tag = match.group(1).lower()
            body_parser = BODY_PARSERS.get(tag)
            if body_parser is None:
                logger.debug("Ignoring action block with unknown type %r", tag)
                continue
            action = body_parser(_normalise(match.group(2)))
            action.raw_block = match.group(0)
            actions.append(action)
        return actions

    def strip_action_blocks(self, response_text: str) -> str:
        """Remove every action block, known or not, and trim the result."""
        return ACTION_BLOCK_RE.sub("", response_text).strip()


__all__ = ["ACTION_BLOCK_RE", "ActionParser", "BODY_PARSERS"]
