"""Parse oracle answers into structured transformations.

The oracle is asked to answer with key/value blocks such as::

    UpdateFragment:
        filepath: src/lib.rs
        start_line: 3
        end_line: 5
        content:
            let total = a + b;
            total
    ```

``content`` runs until the closing fence. Line numbers are zero-based and
``end_line`` is exclusive. The same template style covers the remaining
transformation kinds (``InsertFragment``, ``CreateFile``, ``DeleteFile``,
``MoveFile`` and ``RenameSymbol``).
"""

from __future__ import annotations

import logging
import re
import textwrap
from dataclasses import dataclass
from typing import Callable, Mapping

from ..structured import (
    CreateFile,
    DeleteFile,
    Fragment,
    InsertFragment,
    MoveFile,
    RenameSymbol,
    Transformation,
    UpdateFragment,
)

LOGGER = logging.getLogger(__name__)

_VALUE = r"[ \t]*(?P<{name}>[^\n]*?)[ \t]*,?[ \t]*\n"
_CONTENT = r"[ \t]*content:(?P<content>.*?)^[ \t]*```[ \t]*$"

_UPDATE_RE = re.compile(
    r"filepath:" + _VALUE.format(name="filepath")
    + r"[ \t]*start_line:" + _VALUE.format(name="start")
    + r"[ \t]*end_line:" + _VALUE.format(name="end")
    + _CONTENT,
    re.DOTALL | re.MULTILINE,
)
_INSERT_RE = re.compile(
    r"filepath:" + _VALUE.format(name="filepath")
    + r"[ \t]*line_no:" + _VALUE.format(name="line_no")
    + _CONTENT,
    re.DOTALL | re.MULTILINE,
)
_PATH_OP_RE = re.compile(
    r"^[ \t]*(?P<kind>CreateFile|DeleteFile)[ \t]*:[ \t]*\n"
    r"[ \t]*path:[ \t]*(?P<path>[^\n]*?)[ \t]*,?[ \t]*$",
    re.MULTILINE,
)
_PAIR_OP_RE = re.compile(
    r"^[ \t]*(?P<kind>MoveFile|RenameSymbol)[ \t]*:[ \t]*\n"
    r"[ \t]*old:[ \t]*(?P<old>[^\n]*?)[ \t]*,?[ \t]*\n"
    r"[ \t]*new:[ \t]*(?P<new>[^\n]*?)[ \t]*,?[ \t]*$",
    re.MULTILINE,
)
_FENCE_OPENER_RE = re.compile(r"^[ \t]*```[A-Za-z0-9_+-]+[ \t]*$")
_QUOTE_CHARS = "\"'`"
_LINE_NUMBER_RE = re.compile(r"[0-9]+")


class ParseError(RuntimeError):
    """Raised when an oracle answer cannot be turned into transformations."""


class NoMatchError(ParseError):
    """Raised when the answer contains no recognisable edit block."""


class MalformedBlockError(ParseError):
    """Raised when a recognised block carries an invalid field value."""

    def __init__(self, message: str, *, index: int, field: str, value: str) -> None:
        super().__init__(message)
        self.index = index
        self.field = field
        self.value = value


@dataclass(slots=True)
class _Candidate:
    start: int
    end: int
    kind: str
    groups: Mapping[str, str]


def _clean_scalar(raw: str | None) -> str:
    value = (raw or "").strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in _QUOTE_CHARS:
        value = value[1:-1].strip()
    return value


def _parse_line_number(raw: str, *, index: int, field: str) -> int:
    value = _clean_scalar(raw)
    if _LINE_NUMBER_RE.fullmatch(value) is None:
        raise MalformedBlockError(
            f"Edit block {index} has a non-integer {field}: {raw.strip()!r}",
            index=index,
            field=field,
            value=raw,
        )
    return int(value)


def _split_content(raw: str) -> tuple[str, ...]:
    """Split a ``content:`` body into lines.

    Text on the ``content:`` line itself is the first line (minus the single
    separating space, so its indentation survives); following lines are
    dedented by their common indentation so block-indented bodies keep only
    their relative indentation.
    """
    head, _, tail = raw.partition("\n")
    if head.startswith(" "):
        head = head[1:]
    head = head.rstrip() if head.strip() else ""
    body = textwrap.dedent(tail).splitlines() if tail else []
    if not head:
        while body and not body[0].strip():
            body.pop(0)
        # ```rust style opener inside the body; the bare closer ended the match.
        if body and _FENCE_OPENER_RE.match(body[0]):
            body = textwrap.dedent("\n".join(body[1:])).splitlines()
    lines = [head, *body] if head else body
    while lines and not lines[-1].strip():
        lines.pop()
    return tuple(lines)


def _require_path(raw: str, *, index: int, field: str) -> str:
    value = _clean_scalar(raw)
    if not value:
        raise MalformedBlockError(
            f"Edit block {index} has an empty {field}.",
            index=index,
            field=field,
            value=raw,
        )
    return value


def _build_update(groups: Mapping[str, str], index: int) -> Transformation:
    start = _parse_line_number(groups["start"], index=index, field="start_line")
    end = _parse_line_number(groups["end"], index=index, field="end_line")
    return UpdateFragment(
        fragment=Fragment(
            filepath=_require_path(groups["filepath"], index=index, field="filepath"),
            line_range=(start, end),
        ),
        updated_lines=_split_content(groups["content"]),
    )


def _build_insert(groups: Mapping[str, str], index: int) -> Transformation:
    return InsertFragment(
        filepath=_require_path(groups["filepath"], index=index, field="filepath"),
        line_no=_parse_line_number(groups["line_no"], index=index, field="line_no"),
        content=_split_content(groups["content"]),
    )


def _build_path_op(groups: Mapping[str, str], index: int) -> Transformation:
    path = _require_path(groups["path"], index=index, field="path")
    if groups["kind"] == "CreateFile":
        return CreateFile(path=path)
    return DeleteFile(path=path)


def _build_pair_op(groups: Mapping[str, str], index: int) -> Transformation:
    old = _require_path(groups["old"], index=index, field="old")
    new = _require_path(groups["new"], index=index, field="new")
    if groups["kind"] == "MoveFile":
        return MoveFile(old=old, new=new)
    return RenameSymbol(old=old, new=new)


_BUILDERS: dict[str, Callable[[Mapping[str, str], int], Transformation]] = {
    "update": _build_update,
    "insert": _build_insert,
    "path": _build_path_op,
    "pair": _build_pair_op,
}
_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("update", _UPDATE_RE),
    ("insert", _INSERT_RE),
    ("path", _PATH_OP_RE),
    ("pair", _PAIR_OP_RE),
)


def _collect_candidates(text: str) -> list[_Candidate]:
    found: list[_Candidate] = []
    for kind, pattern in _PATTERNS:
        for match in pattern.finditer(text):
            found.append(
                _Candidate(
                    start=match.start(),
                    end=match.end(),
                    kind=kind,
                    groups={key: value or "" for key, value in match.groupdict().items()},
                )
            )
    found.sort(key=lambda item: (item.start, -item.end))

    accepted: list[_Candidate] = []
    for candidate in found:
        if accepted and candidate.start < accepted[-1].end:
            continue
        accepted.append(candidate)
    return accepted


def parse_transformations(text: str, *, strict: bool = True) -> list[Transformation]:
    """Extract every edit block in ``text`` in order of appearance.

    Raises :class:`NoMatchError` when nothing matches. A block with an
    invalid line number or empty path raises :class:`MalformedBlockError`
    when ``strict``; otherwise it is skipped with a warning, and the parse
    fails only if no valid block remains.
    """
    if not isinstance(text, str) or not text.strip():
        raise NoMatchError("Oracle answer is empty.")

    candidates = _collect_candidates(text)
    if not candidates:
        raise NoMatchError("Oracle answer does not contain any edit block.")

    transformations: list[Transformation] = []
    skipped: list[MalformedBlockError] = []
    for index, candidate in enumerate(candidates):
        try:
            transformations.append(_BUILDERS[candidate.kind](candidate.groups, index))
        except MalformedBlockError as error:
            if strict:
                raise
            LOGGER.warning("Skipping malformed edit block: %s", error)
            skipped.append(error)

    if not transformations:
        raise skipped[0]
    LOGGER.debug("Parsed %d transformation(s) from oracle answer", len(transformations))
    return transformations


class InstructionParser:
    """Callable wrapper so the parsing mode can be configured once."""

    def __init__(self, *, strict: bool = True) -> None:
        self.strict = strict

    def parse(self, text: str) -> list[Transformation]:
        return parse_transformations(text, strict=self.strict)


__all__ = [
    "InstructionParser",
    "MalformedBlockError",
    "NoMatchError",
    "ParseError",
    "parse_transformations",
]
