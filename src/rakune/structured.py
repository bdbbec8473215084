"""Typed payloads that describe pending work and structured file edits."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple, Union

LineRange = Tuple[int, int]


@dataclass(slots=True, frozen=True)
class Fragment:
    """Zero-based, half-open ``[start, end)`` span of lines inside ``filepath``.

    Fragments are positions, not content. They are re-validated against the
    file on disk every time they are read or written.
    """

    filepath: str
    line_range: LineRange

    @property
    def start(self) -> int:
        return self.line_range[0]

    @property
    def end(self) -> int:
        return self.line_range[1]

    def describe(self) -> str:
        return f"{self.filepath}[{self.start}:{self.end}]"


@dataclass(slots=True)
class Comment:
    """Pending unit of work: free text plus the fragments it is anchored to."""

    message: str
    fragments: list[Fragment] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class Diagnostic:
    """One error reported by the build tool.

    ``line`` and ``column`` are kept exactly as the tool printed them
    (1-based); :meth:`fragment` converts to the half-open convention.
    """

    message: str
    filepath: str
    line: int
    column: int

    def fragment(self) -> Fragment:
        start = self.line - 1
        return Fragment(filepath=self.filepath, line_range=(start, start + 1))

    def location(self) -> str:
        return f"{self.filepath}:{self.line}:{self.column}"


@dataclass(slots=True, frozen=True)
class RenameSymbol:
    """Rewrite every whole-identifier occurrence of ``old`` to ``new``."""

    old: str
    new: str


@dataclass(slots=True, frozen=True)
class CreateFile:
    path: str


@dataclass(slots=True, frozen=True)
class DeleteFile:
    path: str


@dataclass(slots=True, frozen=True)
class MoveFile:
    old: str
    new: str


@dataclass(slots=True, frozen=True)
class UpdateFragment:
    """Replace the lines covered by ``fragment`` with ``updated_lines``."""

    fragment: Fragment
    updated_lines: Tuple[str, ...]


@dataclass(slots=True, frozen=True)
class InsertFragment:
    """Insert ``content`` before line ``line_no`` of ``filepath``."""

    filepath: str
    line_no: int
    content: Tuple[str, ...]


Transformation = Union[RenameSymbol, CreateFile, DeleteFile, MoveFile, UpdateFragment, InsertFragment]


def describe_transformation(transformation: Transformation) -> str:
    """Return a short human-readable label for logs and run artifacts."""
    if isinstance(transformation, UpdateFragment):
        return f"update {transformation.fragment.describe()} ({len(transformation.updated_lines)} line(s))"
    if isinstance(transformation, InsertFragment):
        return f"insert {len(transformation.content)} line(s) at {transformation.filepath}:{transformation.line_no}"
    if isinstance(transformation, CreateFile):
        return f"create {transformation.path}"
    if isinstance(transformation, DeleteFile):
        return f"delete {transformation.path}"
    if isinstance(transformation, MoveFile):
        return f"move {transformation.old} -> {transformation.new}"
    if isinstance(transformation, RenameSymbol):
        return f"rename symbol {transformation.old} -> {transformation.new}"
    return type(transformation).__name__


__all__ = [
    "Comment",
    "CreateFile",
    "DeleteFile",
    "Diagnostic",
    "Fragment",
    "InsertFragment",
    "LineRange",
    "MoveFile",
    "RenameSymbol",
    "Transformation",
    "UpdateFragment",
    "describe_transformation",
]
