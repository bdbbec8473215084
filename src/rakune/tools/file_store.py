"""Line-oriented file access confined to a single working tree.

Every write goes through a temporary file in the destination directory
followed by ``os.replace`` so a crash mid-write never leaves a partially
written file behind.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Mapping, Sequence, Tuple

from ..structured import Fragment

LOGGER = logging.getLogger(__name__)

_SKIPPED_DIRECTORIES = frozenset(
    {
        ".git",
        ".hg",
        ".svn",
        ".venv",
        "venv",
        "__pycache__",
        "node_modules",
        "target",
        "build",
        "dist",
        ".mypy_cache",
        ".pytest_cache",
    }
)
_BINARY_SNIFF_BYTES = 8192


class ApplyError(RuntimeError):
    """Raised when a file operation cannot be carried out as requested."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class OutOfBoundsError(ApplyError):
    """Raised when a line range does not fit inside the current file."""

    def __init__(self, path: str, requested: Tuple[int, int], actual_len: int) -> None:
        super().__init__(
            f"Line range {list(requested)} is out of bounds for {path} with {actual_len} line(s) "
            f"(valid: 0 <= start <= end <= {actual_len}).",
            details={"path": path, "requested": list(requested), "actual_len": actual_len},
        )
        self.path = path
        self.requested = requested
        self.actual_len = actual_len


class PathNotFoundError(ApplyError):
    """Raised when an operation targets a path that does not exist."""


class PathExistsError(ApplyError):
    """Raised when an operation would overwrite an existing path."""


class UnsupportedTransformationError(ApplyError):
    """Raised for transformations without defined semantics."""


class UnsafePathError(ApplyError):
    """Raised when a path resolves outside the working tree."""


@dataclass(slots=True)
class FileText:
    """Lines of a text file plus the layout needed to write it back."""

    lines: list[str]
    newline: str = "\n"
    trailing_newline: bool = True

    def render(self) -> str:
        if not self.lines:
            return ""
        body = self.newline.join(self.lines)
        if self.trailing_newline:
            body += self.newline
        return body


def _split_text(text: str) -> FileText:
    newline = "\r\n" if "\r\n" in text else "\n"
    normalised = text.replace("\r\n", "\n")
    trailing = normalised.endswith("\n") or not normalised
    # Only "\n" ends a line; form feeds and other separators stay content.
    lines = normalised.split("\n")
    if trailing:
        lines.pop()
    return FileText(lines=lines, newline=newline, trailing_newline=trailing)


def check_line_range(path: str, start: int, end: int, line_count: int) -> None:
    """Raise :class:`OutOfBoundsError` unless ``0 <= start <= end <= line_count``."""
    if not (0 <= start <= end <= line_count):
        raise OutOfBoundsError(path, (start, end), line_count)


class FileStore:
    """Reads and writes files by repository-relative path and line range."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()
        if not self.root.is_dir():
            raise PathNotFoundError(f"Working tree does not exist: {self.root}")

    # ---------------------------------------------------------------- paths
    def resolve(self, path: str | Path) -> Path:
        """Return the absolute location of ``path`` inside the working tree."""
        raw = str(path).strip()
        if not raw:
            raise UnsafePathError("Empty path supplied.")
        candidate = Path(raw)
        if not candidate.is_absolute():
            candidate = self.root / candidate
        resolved = candidate.resolve()
        if resolved != self.root and not resolved.is_relative_to(self.root):
            raise UnsafePathError(
                f"Path {raw} resolves outside the working tree {self.root}.",
                details={"path": raw},
            )
        return resolved

    def relative(self, path: str | Path) -> str:
        return self.resolve(path).relative_to(self.root).as_posix()

    # ---------------------------------------------------------------- reads
    def read_text(self, path: str | Path) -> FileText:
        target = self.resolve(path)
        if not target.is_file():
            raise PathNotFoundError(f"File not found: {path}", details={"path": str(path)})
        return _split_text(target.read_bytes().decode("utf-8"))

    def read_lines(self, path: str | Path) -> list[str]:
        return self.read_text(path).lines

    def line_count(self, path: str | Path) -> int:
        return len(self.read_lines(path))

    def read_fragment(self, fragment: Fragment) -> list[str]:
        """Return the lines covered by ``fragment`` after validating its bounds."""
        lines = self.read_lines(fragment.filepath)
        check_line_range(fragment.filepath, fragment.start, fragment.end, len(lines))
        return lines[fragment.start : fragment.end]

    # --------------------------------------------------------------- writes
    def write_text(self, path: str | Path, content: FileText) -> None:
        self._atomic_write(self.resolve(path), content.render())

    def _atomic_write(self, target: Path, payload: str) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            if target.exists():
                shutil.copymode(target, tmp_path)
            os.replace(tmp_path, target)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise
        LOGGER.debug("Wrote %s (%d byte(s))", target, len(payload))

    def create(self, path: str | Path) -> None:
        target = self.resolve(path)
        if target.exists():
            raise PathExistsError(f"Path already exists: {path}", details={"path": str(path)})
        target.parent.mkdir(parents=True, exist_ok=True)
        target.touch(exist_ok=False)

    def delete(self, path: str | Path) -> None:
        target = self.resolve(path)
        if target == self.root:
            raise UnsafePathError("Refusing to delete the working tree root.")
        if not target.exists() and not target.is_symlink():
            raise PathNotFoundError(f"Path not found: {path}", details={"path": str(path)})
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        else:
            target.unlink()

    def move(self, old: str | Path, new: str | Path) -> None:
        source = self.resolve(old)
        destination = self.resolve(new)
        if not source.exists():
            raise PathNotFoundError(f"Path not found: {old}", details={"path": str(old)})
        if destination.exists():
            raise PathExistsError(f"Path already exists: {new}", details={"path": str(new)})
        destination.parent.mkdir(parents=True, exist_ok=True)
        os.replace(source, destination)

    # ----------------------------------------------------------------- walk
    def iter_text_files(self, *, skip: Sequence[str] = ()) -> Iterator[str]:
        """Yield repository-relative paths of UTF-8 text files, sorted."""
        skipped = _SKIPPED_DIRECTORIES.union(skip)
        for current, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(name for name in dirnames if name not in skipped)
            for filename in sorted(filenames):
                path = Path(current) / filename
                if path.is_symlink() or not _looks_like_text(path):
                    continue
                yield path.relative_to(self.root).as_posix()


def _looks_like_text(path: Path) -> bool:
    try:
        with path.open("rb") as handle:
            head = handle.read(_BINARY_SNIFF_BYTES)
    except OSError:
        return False
    if b"\0" in head:
        return False
    try:
        head.decode("utf-8")
    except UnicodeDecodeError as error:
        # A multi-byte sequence may straddle the sniff boundary.
        return error.start >= len(head) - 3
    return True


__all__ = [
    "ApplyError",
    "FileStore",
    "FileText",
    "OutOfBoundsError",
    "PathExistsError",
    "PathNotFoundError",
    "UnsafePathError",
    "UnsupportedTransformationError",
    "check_line_range",
]
