"""Unit tests for codechat.files."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from codechat.errors import NotFoundError, PathEscapeError
from codechat.files import FileEntry, FileSystemGateway, resolve_workspace_path

SEGMENT = st.text(
    alphabet="abcdefghijklmnopqrstuvwxyz0123456789_-",
    min_size=1,
    max_size=12,
)


@pytest.fixture
def gateway(tmp_path: Path) -> FileSystemGateway:
    return FileSystemGateway(tmp_path)


class TestPathGuard:
    @given(segments=st.lists(SEGMENT, min_size=1, max_size=4))
    @settings(max_examples=50, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_inside_paths_resolve_under_root(self, tmp_path: Path, segments: list[str]) -> None:
        relative = "/".join(segments)
        resolved = resolve_workspace_path(tmp_path, relative)
        assert resolved.is_relative_to(tmp_path.resolve())

    @given(depth=st.integers(min_value=1, max_value=6), tail=st.lists(SEGMENT, max_size=3))
    @settings(max_examples=50, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_traversal_outside_root_is_rejected(self, tmp_path: Path, depth: int, tail: list[str]) -> None:
        workspace = tmp_path / "workspace-root"
        relative = "/".join([".."] * depth + tail + ["escape.txt"])
        with pytest.raises(PathEscapeError):
            resolve_workspace_path(workspace, relative)

    def test_etc_passwd_is_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(PathEscapeError):
            resolve_workspace_path(tmp_path, "../../etc/passwd")

    def test_absolute_path_outside_is_rejected(self, tmp_path: Path) -> None:
        outside = tmp_path.parent / "elsewhere.txt"
        with pytest.raises(PathEscapeError):
            resolve_workspace_path(tmp_path / "ws", str(outside))

    def test_traversal_that_stays_inside_is_allowed(self, tmp_path: Path) -> None:
        assert resolve_workspace_path(tmp_path, "a/../b.txt") == tmp_path.resolve() / "b.txt"

    def test_sibling_with_common_prefix_is_rejected(self, tmp_path: Path) -> None:
        (tmp_path / "ws").mkdir()
        with pytest.raises(PathEscapeError):
            resolve_workspace_path(tmp_path / "ws", "../ws-other/x.txt")

    @pytest.mark.skipif(os.name == "nt", reason="symlinks need privileges on Windows")
    def test_symlink_pointing_outside_is_rejected(self, tmp_path: Path) -> None:
        workspace = tmp_path / "ws"
        workspace.mkdir()
        (workspace / "link").symlink_to(tmp_path)
        with pytest.raises(PathEscapeError):
            resolve_workspace_path(workspace, "link/secret.txt")

    def test_escape_is_rejected_before_any_io(self, tmp_path: Path) -> None:
        gateway = FileSystemGateway(tmp_path / "ws")
        with pytest.raises(PathEscapeError):
            gateway.write("../outside.txt", "data")
        assert not (tmp_path / "outside.txt").exists()


class TestReadWrite:
    @given(content=st.text())
    @settings(max_examples=50)
    def test_write_then_read_returns_content(self, content: str) -> None:
        with tempfile.TemporaryDirectory() as root:
            gateway = FileSystemGateway(root)
            gateway.write("dir/file.txt", content)
            assert gateway.read("dir/file.txt") == content

    def test_round_trip_keeps_line_endings_and_fences(self, gateway: FileSystemGateway) -> None:
        content = "a\r\nb\n```action:write\nx\n```\n"
        gateway.write("f.md", content)
        assert gateway.read("f.md") == content

    def test_write_creates_parent_directories(self, gateway: FileSystemGateway, tmp_path: Path) -> None:
        gateway.write("a/b/c.txt", "x")
        assert (tmp_path / "a" / "b" / "c.txt").read_text(encoding="utf-8") == "x"

    def test_read_missing_file(self, gateway: FileSystemGateway) -> None:
        with pytest.raises(NotFoundError, match="File not found: nope.txt"):
            gateway.read("nope.txt")

    def test_append(self, gateway: FileSystemGateway) -> None:
        gateway.append("log.txt", "one\n")
        gateway.append("log.txt", "two\n")
        assert gateway.read("log.txt") == "one\ntwo\n"


class TestLineOperations:
    @pytest.fixture
    def five_lines(self, gateway: FileSystemGateway) -> FileSystemGateway:
        gateway.write("a.txt", "1\n2\n3\n4\n5\n")
        return gateway

    def test_read_lines_range(self, five_lines: FileSystemGateway) -> None:
        assert five_lines.read_lines("a.txt", 3, 5) == "3\n4\n5"

    def test_read_lines_to_end(self, five_lines: FileSystemGateway) -> None:
        assert five_lines.read_lines("a.txt", 4) == "4\n5"

    def test_read_lines_clamps(self, five_lines: FileSystemGateway) -> None:
        assert five_lines.read_lines("a.txt", -3, 99) == "1\n2\n3\n4\n5"

    def test_read_lines_past_end_is_empty(self, five_lines: FileSystemGateway) -> None:
        assert five_lines.read_lines("a.txt", 10, 12) == ""

    def test_replace_first_occurrence_only(self, gateway: FileSystemGateway) -> None:
        gateway.write("a.txt", "foo baz foo")
        gateway.replace("a.txt", "foo", "bar")
        assert gateway.read("a.txt") == "bar baz foo"

    def test_replace_is_literal(self, gateway: FileSystemGateway) -> None:
        gateway.write("a.txt", "a.c abc")
        gateway.replace("a.txt", "a.c", "X")
        assert gateway.read("a.txt") == "X abc"

    def test_replace_missing_text(self, gateway: FileSystemGateway) -> None:
        gateway.write("a.txt", "hello")
        with pytest.raises(ValueError, match="not found"):
            gateway.replace("a.txt", "bye", "x")
        assert gateway.read("a.txt") == "hello"

    def test_insert_at_line(self, five_lines: FileSystemGateway) -> None:
        five_lines.insert_at_line("a.txt", 2, "new")
        assert five_lines.read("a.txt") == "1\nnew\n2\n3\n4\n5\n"

    def test_insert_below_one_goes_to_top(self, five_lines: FileSystemGateway) -> None:
        five_lines.insert_at_line("a.txt", -4, "top")
        assert five_lines.read("a.txt").startswith("top\n1\n")

    def test_insert_past_end_appends(self, five_lines: FileSystemGateway) -> None:
        five_lines.insert_at_line("a.txt", 100, "end")
        assert five_lines.read("a.txt") == "1\n2\n3\n4\n5\nend\n"

    def test_insert_into_missing_file(self, gateway: FileSystemGateway) -> None:
        with pytest.raises(NotFoundError):
            gateway.insert_at_line("nope.txt", 1, "x")

    def test_insert_keeps_crlf_endings(self, gateway: FileSystemGateway) -> None:
        gateway.write("a.txt", "one\r\ntwo\r\nthree\r\n")
        gateway.insert_at_line("a.txt", 2, "new")
        assert gateway.read("a.txt") == "one\r\nnew\r\ntwo\r\nthree\r\n"

    def test_insert_keeps_form_feed(self, gateway: FileSystemGateway) -> None:
        gateway.write("a.py", "x = 1\n\x0c\ny = 2\n")
        gateway.insert_at_line("a.py", 3, "z = 0")
        assert gateway.read("a.py") == "x = 1\n\x0c\nz = 0\ny = 2\n"

    def test_insert_after_unterminated_last_line(self, gateway: FileSystemGateway) -> None:
        gateway.write("a.txt", "a\nb")
        gateway.insert_at_line("a.txt", 9, "c")
        assert gateway.read("a.txt") == "a\nb\nc"

    def test_read_lines_counts_only_newlines(self, gateway: FileSystemGateway) -> None:
        gateway.write("a.txt", "a\x0cb\nc\n")
        assert gateway.read_lines("a.txt", 2, 2) == "c"

    def test_read_lines_strips_crlf(self, gateway: FileSystemGateway) -> None:
        gateway.write("a.txt", "one\r\ntwo\r\n")
        assert gateway.read_lines("a.txt") == "one\ntwo"


class TestTreeOperations:
    def test_delete_file_and_directory(self, gateway: FileSystemGateway, tmp_path: Path) -> None:
        gateway.write("d/x.txt", "x")
        gateway.write("f.txt", "y")
        gateway.delete("f.txt")
        gateway.delete("d")
        assert list(tmp_path.iterdir()) == []

    def test_delete_missing(self, gateway: FileSystemGateway) -> None:
        with pytest.raises(NotFoundError, match="Path not found"):
            gateway.delete("ghost")

    def test_root_cannot_be_deleted(self, gateway: FileSystemGateway, tmp_path: Path) -> None:
        with pytest.raises(PermissionError):
            gateway.delete(".")
        assert tmp_path.exists()

    def test_rename_creates_destination_parents(self, gateway: FileSystemGateway) -> None:
        gateway.write("a.txt", "x")
        gateway.rename("a.txt", "sub/b.txt")
        assert not gateway.exists("a.txt")
        assert gateway.read("sub/b.txt") == "x"

    def test_rename_missing_source(self, gateway: FileSystemGateway) -> None:
        with pytest.raises(NotFoundError):
            gateway.rename("ghost.txt", "b.txt")

    @pytest.mark.skipif(os.name == "nt", reason="symlinks need privileges on Windows")
    def test_delete_symlink_keeps_target_file(self, gateway: FileSystemGateway, tmp_path: Path) -> None:
        (tmp_path / "real.txt").write_text("keep", encoding="utf-8")
        (tmp_path / "link.txt").symlink_to(tmp_path / "real.txt")

        gateway.delete("link.txt")

        assert not (tmp_path / "link.txt").is_symlink()
        assert (tmp_path / "real.txt").read_text(encoding="utf-8") == "keep"

    @pytest.mark.skipif(os.name == "nt", reason="symlinks need privileges on Windows")
    def test_delete_symlink_keeps_target_tree(self, gateway: FileSystemGateway, tmp_path: Path) -> None:
        gateway.write("data/a.txt", "a")
        (tmp_path / "alias").symlink_to(tmp_path / "data", target_is_directory=True)

        gateway.delete("alias")

        assert not (tmp_path / "alias").exists()
        assert gateway.read("data/a.txt") == "a"

    @pytest.mark.skipif(os.name == "nt", reason="symlinks need privileges on Windows")
    def test_delete_symlink_pointing_outside(self, tmp_path: Path) -> None:
        workspace = tmp_path / "ws"
        workspace.mkdir()
        (tmp_path / "outside.txt").write_text("keep", encoding="utf-8")
        (workspace / "out").symlink_to(tmp_path / "outside.txt")

        FileSystemGateway(workspace).delete("out")

        assert not (workspace / "out").is_symlink()
        assert (tmp_path / "outside.txt").exists()

    @pytest.mark.skipif(os.name == "nt", reason="symlinks need privileges on Windows")
    def test_rename_moves_the_link(self, gateway: FileSystemGateway, tmp_path: Path) -> None:
        gateway.write("real.txt", "x")
        (tmp_path / "link.txt").symlink_to(tmp_path / "real.txt")

        gateway.rename("link.txt", "moved.txt")

        assert (tmp_path / "moved.txt").is_symlink()
        assert (tmp_path / "real.txt").is_file()
        assert not (tmp_path / "link.txt").is_symlink()

    def test_copy_file_and_tree(self, gateway: FileSystemGateway) -> None:
        gateway.write("src/a.txt", "a")
        gateway.write("src/deep/b.txt", "b")
        gateway.copy("src/a.txt", "copy.txt")
        gateway.copy("src", "backup")
        assert gateway.read("copy.txt") == "a"
        assert gateway.read("backup/deep/b.txt") == "b"
        assert gateway.read("src/a.txt") == "a"

    def test_copy_directory_into_itself(self, gateway: FileSystemGateway) -> None:
        gateway.create_directory("src")
        with pytest.raises(ValueError):
            gateway.copy("src", "src/inner")

    def test_create_directory_is_idempotent(self, gateway: FileSystemGateway) -> None:
        gateway.create_directory("x/y")
        gateway.create_directory("x/y")
        assert gateway.exists("x/y")

    def test_list_directory_orders_directories_first(self, gateway: FileSystemGateway) -> None:
        gateway.write("b.txt", "12345")
        gateway.write("A.txt", "")
        gateway.create_directory("zdir")
        gateway.create_directory("adir")

        entries = gateway.list_directory()

        assert [entry.name for entry in entries] == ["adir", "zdir", "A.txt", "b.txt"]
        assert entries[0].is_directory and entries[0].size is None
        assert entries[3].size == 5
        assert entries[3].path == "b.txt"

    def test_list_missing_directory(self, gateway: FileSystemGateway) -> None:
        with pytest.raises(NotFoundError):
            gateway.list_directory("ghost")


@pytest.mark.parametrize(
    ("size", "expected"),
    [(0, "0 B"), (512, "512 B"), (1536, "1.5 KB"), (1024 * 1024, "1 MB"), (5 * 1024**3, "5 GB")],
)
def test_size_display(size: int, expected: str) -> None:
    entry = FileEntry(name="f", path="f", is_directory=False, size=size, modified=None)  # type: ignore[arg-type]
    assert entry.size_display == expected
