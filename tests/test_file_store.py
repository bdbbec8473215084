from __future__ import annotations

from pathlib import Path

import pytest

from rakune.structured import Fragment
from rakune.tools.file_store import (
    FileStore,
    OutOfBoundsError,
    PathExistsError,
    PathNotFoundError,
    UnsafePathError,
    check_line_range,
)


def test_read_fragment_returns_half_open_slice(tmp_path: Path) -> None:
    (tmp_path / "a.txt").write_text("zero\none\ntwo\nthree\n", encoding="utf-8")
    store = FileStore(tmp_path)

    assert store.read_fragment(Fragment("a.txt", (1, 3))) == ["one", "two"]
    assert store.read_fragment(Fragment("a.txt", (4, 4))) == []
    assert store.line_count("a.txt") == 4


def test_read_fragment_rejects_out_of_range(tmp_path: Path) -> None:
    (tmp_path / "a.txt").write_text("zero\none\n", encoding="utf-8")
    store = FileStore(tmp_path)

    with pytest.raises(OutOfBoundsError) as excinfo:
        store.read_fragment(Fragment("a.txt", (1, 5)))

    assert excinfo.value.requested == (1, 5)
    assert excinfo.value.actual_len == 2
    assert excinfo.value.details["path"] == "a.txt"


def test_check_line_range_rejects_inverted_range() -> None:
    with pytest.raises(OutOfBoundsError):
        check_line_range("a.txt", 3, 2, 10)
    check_line_range("a.txt", 0, 0, 0)


def test_write_preserves_crlf_and_missing_trailing_newline(tmp_path: Path) -> None:
    target = tmp_path / "win.txt"
    target.write_bytes(b"one\r\ntwo\r\n")
    bare = tmp_path / "bare.txt"
    bare.write_bytes(b"one\ntwo")
    store = FileStore(tmp_path)

    text = store.read_text("win.txt")
    text.lines.append("three")
    store.write_text("win.txt", text)
    bare_text = store.read_text("bare.txt")
    bare_text.lines[1] = "TWO"
    store.write_text("bare.txt", bare_text)

    assert target.read_bytes() == b"one\r\ntwo\r\nthree\r\n"
    assert bare.read_bytes() == b"one\nTWO"
    assert not list(tmp_path.glob(".*.tmp"))


def test_paths_outside_the_tree_are_rejected(tmp_path: Path) -> None:
    root = tmp_path / "root"
    root.mkdir()
    store = FileStore(root)

    with pytest.raises(UnsafePathError):
        store.resolve("../escape.txt")
    with pytest.raises(UnsafePathError):
        store.resolve(tmp_path / "elsewhere.txt")
    with pytest.raises(UnsafePathError):
        store.delete(".")


def test_missing_file_is_reported(tmp_path: Path) -> None:
    store = FileStore(tmp_path)

    with pytest.raises(PathNotFoundError):
        store.read_lines("nope.txt")
    with pytest.raises(PathNotFoundError):
        FileStore(tmp_path / "missing")


def test_create_move_and_delete(tmp_path: Path) -> None:
    store = FileStore(tmp_path)

    store.create("pkg/new.txt")
    assert (tmp_path / "pkg" / "new.txt").read_text(encoding="utf-8") == ""
    with pytest.raises(PathExistsError):
        store.create("pkg/new.txt")

    store.move("pkg/new.txt", "other/moved.txt")
    assert not (tmp_path / "pkg" / "new.txt").exists()
    assert (tmp_path / "other" / "moved.txt").exists()

    store.delete("other")
    assert not (tmp_path / "other").exists()
    with pytest.raises(PathNotFoundError):
        store.delete("other")


def test_iter_text_files_skips_binary_and_vendor_directories(tmp_path: Path) -> None:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "main.rs").write_text("fn main() {}\n", encoding="utf-8")
    (tmp_path / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n\0\0")
    (tmp_path / "target").mkdir()
    (tmp_path / "target" / "out.rs").write_text("fn main() {}\n", encoding="utf-8")
    (tmp_path / ".git").mkdir()
    (tmp_path / ".git" / "HEAD").write_text("ref: refs/heads/main\n", encoding="utf-8")
    (tmp_path / "README.md").write_text("hello\n", encoding="utf-8")

    assert list(FileStore(tmp_path).iter_text_files()) == ["README.md", "src/main.rs"]


def test_only_newlines_split_lines(tmp_path: Path) -> None:
    (tmp_path / "page.c").write_bytes(b"int a;\n\x0c\nint b;\rint c;\n")
    store = FileStore(tmp_path)

    text = store.read_text("page.c")
    store.write_text("page.c", text)

    assert text.lines == ["int a;", "\x0c", "int b;\rint c;"]
    assert (tmp_path / "page.c").read_bytes() == b"int a;\n\x0c\nint b;\rint c;\n"
