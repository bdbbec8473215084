"""Convergence loop: instruction -> edits -> build -> diagnostics -> edits.

Work is a LIFO stack of :class:`Comment` values. Every comment popped from
the stack goes through one generate/apply/build cycle. A failed build
pushes a comment derived from the first diagnostic, and that comment shares
the cycle budget of the comment that caused it, so each caller-supplied
comment gets at most ``max_cycles`` attempts before the loop gives up.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional, Sequence

from .config import RakuneConfig
from .models.llm_client import Oracle, OracleError
from .prompts import (
    comment_from_diagnostic,
    detect_language,
    render_context,
    template_code,
    template_debug,
)
from .structured import Comment, Transformation, describe_transformation
from .summarizer import SnapshotSummarizer
from .telemetry import emit_event, serialise_value
from .tools.apply import ApplyError, OutOfBoundsError, TransformationApplier
from .tools.diagnostics import BuildCommandError, BuildOutcome, DiagnosticsExtractor
from .tools.file_store import FileStore
from .tools.instructions import InstructionParser, ParseError
from .tools.vcs import GitError, GitRepository, Revision, VersionControl
from .utils.slug import slugify

LOGGER = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    """Terminal failure categories of the convergence loop."""

    UNCONVERGED = "UNCONVERGED"
    FATAL = "FATAL"
    APPLY = "APPLY"
    ORACLE = "ORACLE"


class ConvergenceError(RuntimeError):
    """Raised when the loop stops without a successful build."""

    def __init__(
        self,
        kind: ErrorKind,
        stage: str,
        message: str,
        *,
        cycles: int = 0,
    ) -> None:
        super().__init__(f"[{kind.value}] {stage}: {message}")
        self.kind = kind
        self.stage = stage
        self.message = message
        self.cycles = cycles


@dataclass(slots=True)
class CycleRecord:
    """What happened during one generate/apply/build cycle."""

    index: int
    comment: str
    prompt: str = ""
    answers: List[str] = field(default_factory=list)
    parse_errors: List[str] = field(default_factory=list)
    transformations: List[str] = field(default_factory=list)
    exit_code: Optional[int] = None
    diagnostics: List[dict[str, Any]] = field(default_factory=list)


@dataclass(slots=True)
class LoopResult:
    """Outcome of a converged run."""

    summary: str
    cycles: int
    base_revision: Revision
    revision: Revision = None
    records: List[CycleRecord] = field(default_factory=list)


@dataclass(slots=True)
class _Budget:
    limit: int
    used: int = 0

    @property
    def exhausted(self) -> bool:
        return self.used >= self.limit


@dataclass(slots=True)
class _WorkItem:
    comment: Comment
    budget: _Budget


class ConvergenceLoop:
    """Drives comments to a green build, then summarises the change."""

    def __init__(
        self,
        oracle: Oracle,
        store: FileStore,
        extractor: DiagnosticsExtractor,
        repository: VersionControl,
        *,
        max_cycles: int = 5,
        max_parse_attempts: int = 3,
        context_lines: int = 10,
        language: Optional[str] = None,
        commit: bool = False,
        logs_root: Path | None = None,
        parser: Optional[InstructionParser] = None,
        summarizer: Optional[SnapshotSummarizer] = None,
    ) -> None:
        if max_cycles < 1:
            raise ValueError("max_cycles must be at least 1")
        if max_parse_attempts < 1:
            raise ValueError("max_parse_attempts must be at least 1")
        self.oracle = oracle
        self.store = store
        self.applier = TransformationApplier(store)
        self.extractor = extractor
        self.repository = repository
        self.max_cycles = max_cycles
        self.max_parse_attempts = max_parse_attempts
        self.context_lines = context_lines
        self.language = language or detect_language(store.root)
        self.commit = commit
        self.logs_root = logs_root
        self.parser = parser or InstructionParser()
        self.summarizer = summarizer or SnapshotSummarizer(oracle)

    @classmethod
    def from_config(
        cls,
        config: RakuneConfig,
        oracle: Oracle,
        *,
        repository: Optional[VersionControl] = None,
    ) -> "ConvergenceLoop":
        """Wire the loop from configuration values."""
        repo_root = config.repo_root()
        store = FileStore(repo_root)
        extractor = DiagnosticsExtractor(
            config.build.command,
            repo_root=repo_root,
            lint_command=config.build.lint_command,
            error_marker=config.build.error_marker,
            timeout=config.build.timeout,
        )
        return cls(
            oracle,
            store,
            extractor,
            repository or GitRepository(repo_root),
            max_cycles=config.loop.max_cycles,
            max_parse_attempts=config.loop.max_parse_attempts,
            context_lines=config.loop.context_lines,
            language=config.project.language,
            commit=config.loop.commit,
            logs_root=config.logs_root(),
        )

    # ------------------------------------------------------------------ run
    def run(self, comments: Sequence[Comment]) -> LoopResult:
        """Process ``comments`` (last one first) until every build succeeds."""
        records: List[CycleRecord] = []
        base_revision: Revision = None
        started = datetime.now(timezone.utc)
        try:
            base_revision = self._snapshot()
            emit_event("loop.start", comments=len(comments), base_revision=base_revision)
            stack = [_WorkItem(comment, _Budget(self.max_cycles)) for comment in comments]
            if not stack:
                stack.extend(self._preflight())

            while stack:
                item = stack.pop()
                if item.budget.exhausted:
                    raise ConvergenceError(
                        ErrorKind.UNCONVERGED,
                        "build",
                        f"Build still failing after {item.budget.used} cycle(s); last request: "
                        f"{_first_line(item.comment.message)}",
                        cycles=len(records),
                    )
                item.budget.used += 1
                record = CycleRecord(index=len(records) + 1, comment=item.comment.message)
                records.append(record)
                outcome = self._cycle(item.comment, record)
                if outcome.ok:
                    continue
                stack.append(_WorkItem(self._derive_comment(outcome), item.budget))

            result = self._finalize(base_revision, records)
        except ConvergenceError as error:
            error.cycles = len(records)
            LOGGER.error("Convergence loop failed: %s", error)
            emit_event("loop.failed", kind=error.kind.value, stage=error.stage, cycles=len(records))
            self._write_run_artifact(started, base_revision, records, error=error)
            raise

        emit_event("loop.finished", cycles=result.cycles, revision=result.revision)
        self._write_run_artifact(started, base_revision, records, result=result)
        return result

    def _snapshot(self) -> Revision:
        try:
            return self.repository.current_head()
        except GitError as error:
            raise ConvergenceError(ErrorKind.FATAL, "snapshot", str(error)) from error

    def _preflight(self) -> List[_WorkItem]:
        """Build once when no comment was supplied; seed work from failures."""
        outcome = self._build(None)
        if outcome.ok:
            LOGGER.info("Build already succeeds; nothing to do")
            return []
        return [_WorkItem(self._derive_comment(outcome), _Budget(self.max_cycles))]

    def _cycle(self, comment: Comment, record: CycleRecord) -> BuildOutcome:
        LOGGER.info("Cycle %d: %s", record.index, _first_line(comment.message))
        emit_event("cycle.start", cycle=record.index, fragments=len(comment.fragments))
        transformations = self._generate(comment, record)
        self._apply(transformations, record)
        return self._build(record)

    # ------------------------------------------------------------- generate
    def build_prompt(self, comment: Comment) -> str:
        """Instruction prompt plus context re-read from the current tree."""
        temporal: List[str] = []
        for fragment in comment.fragments:
            temporal.extend(self.repository.temporal_context(fragment))
        context = render_context(
            self.store,
            comment.fragments,
            surround=self.context_lines,
            temporal=temporal,
        )
        return template_code(comment.message, language=self.language) + context

    def _generate(self, comment: Comment, record: CycleRecord) -> List[Transformation]:
        try:
            prompt = self.build_prompt(comment)
        except (ApplyError, GitError, OSError) as error:
            raise ConvergenceError(ErrorKind.FATAL, "generate", f"Cannot build prompt: {error}") from error
        record.prompt = prompt
        for attempt in range(1, self.max_parse_attempts + 1):
            try:
                answer = self.oracle.prompt(prompt)
            except OracleError as error:
                raise ConvergenceError(ErrorKind.ORACLE, "generate", str(error)) from error
            record.answers.append(answer)
            try:
                transformations = self.parser.parse(answer)
            except ParseError as error:
                record.parse_errors.append(str(error))
                LOGGER.warning(
                    "Attempt %d/%d: could not parse oracle answer: %s",
                    attempt,
                    self.max_parse_attempts,
                    error,
                )
                emit_event("parse.failed", cycle=record.index, attempt=attempt, error=str(error))
                continue
            return transformations

        raise ConvergenceError(
            ErrorKind.UNCONVERGED,
            "generate",
            f"No parseable edit after {self.max_parse_attempts} attempt(s): {record.parse_errors[-1]}",
        )

    # ---------------------------------------------------------------- apply
    def _apply(self, transformations: Sequence[Transformation], record: CycleRecord) -> None:
        for transformation in transformations:
            label = describe_transformation(transformation)
            try:
                self.applier.apply(transformation)
            except OutOfBoundsError as error:
                raise ConvergenceError(
                    ErrorKind.APPLY,
                    "apply",
                    f"{label}: requested {list(error.requested)}, file has {error.actual_len} line(s)",
                ) from error
            except ApplyError as error:
                raise ConvergenceError(ErrorKind.APPLY, "apply", f"{label}: {error}") from error
            except (OSError, UnicodeError) as error:
                raise ConvergenceError(ErrorKind.FATAL, "apply", f"{label}: {error}") from error
            record.transformations.append(label)

    # ---------------------------------------------------------------- build
    def _build(self, record: Optional[CycleRecord]) -> BuildOutcome:
        try:
            outcome = self.extractor.check()
        except BuildCommandError as error:
            raise ConvergenceError(ErrorKind.FATAL, "build", str(error)) from error
        if record is not None:
            record.exit_code = outcome.exit_code
            record.diagnostics = [asdict(diagnostic) for diagnostic in outcome.diagnostics]
        return outcome

    def _derive_comment(self, outcome: BuildOutcome) -> Comment:
        if outcome.diagnostics:
            return comment_from_diagnostic(outcome.diagnostics[0])
        tail = outcome.output_tail()
        if not tail:
            tail = f"`{' '.join(outcome.command)}` exited with status {outcome.exit_code} and printed nothing."
        LOGGER.warning("Build failed without recognisable diagnostics; forwarding raw output")
        return Comment(message=template_debug(tail))

    # ------------------------------------------------------------- finalize
    def _finalize(self, base_revision: Revision, records: List[CycleRecord]) -> LoopResult:
        try:
            diff = self.repository.diff(base_revision)
        except GitError as error:
            raise ConvergenceError(ErrorKind.FATAL, "finalize", str(error)) from error
        try:
            summary = self.summarizer.summarize(diff)
        except OracleError as error:
            raise ConvergenceError(ErrorKind.ORACLE, "finalize", str(error)) from error

        revision: Revision = None
        if self.commit and diff.strip():
            try:
                revision = self.repository.commit(summary)
            except GitError as error:
                raise ConvergenceError(ErrorKind.FATAL, "finalize", str(error)) from error
        LOGGER.info("Converged after %d cycle(s): %s", len(records), summary)
        return LoopResult(
            summary=summary,
            cycles=len(records),
            base_revision=base_revision,
            revision=revision,
            records=records,
        )

    # ------------------------------------------------------------ artifacts
    def _write_run_artifact(
        self,
        started: datetime,
        base_revision: Revision,
        records: List[CycleRecord],
        *,
        result: Optional[LoopResult] = None,
        error: Optional[ConvergenceError] = None,
    ) -> Optional[Path]:
        """Persist a JSON record of the run under ``<logs>/runs``."""
        if self.logs_root is None:
            return None
        runs_root = self.logs_root / "runs"
        first_comment = records[0].comment if records else "preflight"
        name = f"{started.strftime('%Y%m%dT%H%M%S')}-{slugify(_first_line(first_comment), fallback='run')}.json"
        payload: dict[str, Any] = {
            "started_at": started.isoformat(),
            "finished_at": datetime.now(timezone.utc).isoformat(),
            "base_revision": base_revision,
            "language": self.language,
            "max_cycles": self.max_cycles,
            "cycles": [asdict(record) for record in records],
        }
        if result is not None:
            payload["result"] = {"summary": result.summary, "revision": result.revision}
        if error is not None:
            payload["error"] = {"kind": error.kind.value, "stage": error.stage, "message": error.message}
        try:
            runs_root.mkdir(parents=True, exist_ok=True)
            path = runs_root / name
            path.write_text(json.dumps(serialise_value(payload), indent=2), encoding="utf-8")
        except OSError as write_error:
            LOGGER.warning("Failed to write run artifact to %s: %s", runs_root, write_error)
            return None
        return path


def _first_line(text: str) -> str:
    for line in text.splitlines():
        if line.strip():
            return line.strip()
    return ""


__all__ = [
    "ConvergenceError",
    "ConvergenceLoop",
    "CycleRecord",
    "ErrorKind",
    "LoopResult",
]
