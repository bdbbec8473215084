"""Apply structured transformations to a :class:`FileStore`."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable

from ..structured import (
    CreateFile,
    DeleteFile,
    InsertFragment,
    MoveFile,
    RenameSymbol,
    Transformation,
    UpdateFragment,
    describe_transformation,
)
from ..telemetry import emit_event
from .file_store import (
    ApplyError,
    FileStore,
    OutOfBoundsError,
    PathExistsError,
    PathNotFoundError,
    UnsupportedTransformationError,
    check_line_range,
)

LOGGER = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(slots=True)
class ApplyResult:
    """Paths touched by a single transformation."""

    transformation: Transformation
    paths: tuple[str, ...]


def _apply_update(store: FileStore, transformation: UpdateFragment) -> tuple[str, ...]:
    fragment = transformation.fragment
    text = store.read_text(fragment.filepath)
    check_line_range(fragment.filepath, fragment.start, fragment.end, len(text.lines))
    text.lines[fragment.start : fragment.end] = list(transformation.updated_lines)
    store.write_text(fragment.filepath, text)
    return (store.relative(fragment.filepath),)


def _apply_insert(store: FileStore, transformation: InsertFragment) -> tuple[str, ...]:
    text = store.read_text(transformation.filepath)
    line_no = transformation.line_no
    if not 0 <= line_no <= len(text.lines):
        raise OutOfBoundsError(transformation.filepath, (line_no, line_no), len(text.lines))
    text.lines[line_no:line_no] = list(transformation.content)
    store.write_text(transformation.filepath, text)
    return (store.relative(transformation.filepath),)


def _apply_create(store: FileStore, transformation: CreateFile) -> tuple[str, ...]:
    store.create(transformation.path)
    return (store.relative(transformation.path),)


def _apply_delete(store: FileStore, transformation: DeleteFile) -> tuple[str, ...]:
    relative = store.relative(transformation.path)
    store.delete(transformation.path)
    return (relative,)


def _apply_move(store: FileStore, transformation: MoveFile) -> tuple[str, ...]:
    store.move(transformation.old, transformation.new)
    return (store.relative(transformation.old), store.relative(transformation.new))


def _apply_rename(store: FileStore, transformation: RenameSymbol) -> tuple[str, ...]:
    """Whole-identifier textual rename across every text file in the tree."""
    old, new = transformation.old, transformation.new
    for label, value in (("old", old), ("new", new)):
        if not _IDENTIFIER_RE.match(value):
            raise UnsupportedTransformationError(
                f"RenameSymbol {label} value {value!r} is not an identifier.",
                details={label: value},
            )
    if old == new:
        return ()

    pattern = re.compile(rf"(?<![A-Za-z0-9_]){re.escape(old)}(?![A-Za-z0-9_])")
    touched: list[str] = []
    for path in store.iter_text_files():
        try:
            text = store.read_text(path)
        except UnicodeDecodeError:
            LOGGER.debug("Skipping undecodable file during rename: %s", path)
            continue
        rewritten = [pattern.sub(new, line) for line in text.lines]
        if rewritten == text.lines:
            continue
        text.lines = rewritten
        store.write_text(path, text)
        touched.append(path)

    if not touched:
        raise PathNotFoundError(
            f"Symbol {old!r} does not occur in the working tree.",
            details={"symbol": old},
        )
    return tuple(touched)


def apply_transformation(store: FileStore, transformation: Transformation) -> ApplyResult:
    """Apply one transformation; side effects are confined to the file system."""
    if isinstance(transformation, UpdateFragment):
        paths = _apply_update(store, transformation)
    elif isinstance(transformation, InsertFragment):
        paths = _apply_insert(store, transformation)
    elif isinstance(transformation, CreateFile):
        paths = _apply_create(store, transformation)
    elif isinstance(transformation, DeleteFile):
        paths = _apply_delete(store, transformation)
    elif isinstance(transformation, MoveFile):
        paths = _apply_move(store, transformation)
    elif isinstance(transformation, RenameSymbol):
        paths = _apply_rename(store, transformation)
    else:
        raise UnsupportedTransformationError(
            f"No apply semantics for transformation {type(transformation).__name__}.",
            details={"type": type(transformation).__name__},
        )
    LOGGER.info("Applied %s", describe_transformation(transformation))
    emit_event("transform.applied", kind=type(transformation).__name__, paths=paths)
    return ApplyResult(transformation=transformation, paths=paths)


class TransformationApplier:
    """Applies transformations in order against a single working tree.

    Application is not transactional: when one transformation fails the
    ones before it stay on disk and the error propagates.
    """

    def __init__(self, store: FileStore) -> None:
        self.store = store

    def apply(self, transformation: Transformation) -> ApplyResult:
        return apply_transformation(self.store, transformation)

    def apply_all(self, transformations: Iterable[Transformation]) -> list[ApplyResult]:
        return [self.apply(transformation) for transformation in transformations]


__all__ = [
    "ApplyError",
    "ApplyResult",
    "OutOfBoundsError",
    "PathExistsError",
    "PathNotFoundError",
    "TransformationApplier",
    "UnsupportedTransformationError",
    "apply_transformation",
]
