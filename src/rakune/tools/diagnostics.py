"""Run build/lint commands and extract structured diagnostics.

The extractor recognises the two-line error blocks emitted by rustc-style
tools::

    error[E0425]: cannot find value `x` in this scope
     --> src/main.rs:4:5

A block starts at a line beginning with the error marker; any following
lines up to the ``<path>:<line>:<column>`` location line belong to the
message. A new marker line before a location abandons the pending block.
Lines are 1-based, so a ``path:0:col`` line is not a location.
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Sequence

from ..structured import Diagnostic
from ..telemetry import emit_event

LOGGER = logging.getLogger(__name__)

DEFAULT_ERROR_MARKER = "error"
_LOCATION_RE = re.compile(
    r"^\s*(?:-->\s*)?(?P<path>[^\s:][^:\n]*?):(?P<line>[1-9]\d*):(?P<column>\d+)\s*$"
)


class BuildCommandError(RuntimeError):
    """Raised when a build or lint command cannot be executed at all."""


def _marker_pattern(marker: str) -> re.Pattern[str]:
    return re.compile(rf"^{re.escape(marker)}(?:\[[^\]\n]*\])?:[ \t]?(?P<message>.*)$")


def extract_diagnostics(output: str, *, marker: str = DEFAULT_ERROR_MARKER) -> list[Diagnostic]:
    """Return one :class:`Diagnostic` per recognised error block in ``output``."""
    marker_re = _marker_pattern(marker)
    diagnostics: list[Diagnostic] = []
    pending: list[str] | None = None

    for raw_line in output.splitlines():
        match = marker_re.match(raw_line)
        if match is not None:
            pending = [match.group("message").rstrip()]
            continue
        if pending is None:
            continue
        location = _LOCATION_RE.match(raw_line)
        if location is None:
            pending.append(raw_line.rstrip())
            continue
        diagnostics.append(
            Diagnostic(
                message="\n".join(pending).strip(),
                filepath=location.group("path").strip(),
                line=int(location.group("line")),
                column=int(location.group("column")),
            )
        )
        pending = None
    return diagnostics


@dataclass(slots=True)
class BuildOutcome:
    """Result of one build invocation."""

    command: List[str]
    exit_code: int
    stdout: str
    stderr: str
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def output_tail(self, max_lines: int = 40) -> str:
        """Return the last ``max_lines`` lines of combined output."""
        combined = "\n".join(part.rstrip() for part in (self.stdout, self.stderr) if part.strip())
        lines = combined.splitlines()
        return "\n".join(lines[-max_lines:])


def _run(command: Sequence[str], cwd: Path, timeout: float | None) -> subprocess.CompletedProcess[str]:
    if not command:
        raise BuildCommandError("Command vector is empty.")
    executable = command[0]
    if shutil.which(executable) is None and not (cwd / executable).is_file():
        raise BuildCommandError(f"Executable not available: {executable}")
    try:
        return subprocess.run(  # noqa: S603  # command is sourced from project config
            list(command),
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as error:
        raise BuildCommandError(f"Command {' '.join(command)} timed out after {timeout} s.") from error
    except OSError as error:
        raise BuildCommandError(f"Failed to execute {' '.join(command)}: {error}") from error


class DiagnosticsExtractor:
    """Runs the configured lint and build commands inside ``repo_root``."""

    def __init__(
        self,
        build_command: Sequence[str],
        *,
        repo_root: Path | str,
        lint_command: Sequence[str] | None = None,
        error_marker: str = DEFAULT_ERROR_MARKER,
        timeout: float | None = None,
    ) -> None:
        self.build_command = list(build_command)
        self.lint_command = list(lint_command) if lint_command else None
        self.repo_root = Path(repo_root).resolve()
        self.error_marker = error_marker
        self.timeout = timeout

    def lint(self) -> int | None:
        """Run the lint pre-step. Failures are logged and otherwise ignored."""
        if not self.lint_command:
            return None
        try:
            process = _run(self.lint_command, self.repo_root, self.timeout)
        except BuildCommandError as error:
            LOGGER.warning("Skipping lint step: %s", error)
            return None
        if process.returncode != 0:
            LOGGER.warning(
                "Lint command %s exited with %d: %s",
                " ".join(self.lint_command),
                process.returncode,
                (process.stderr or process.stdout).strip()[:500],
            )
        return process.returncode

    def run_and_extract(self, build_command: Sequence[str] | None = None) -> BuildOutcome:
        """Run the build and parse its stderr into diagnostics.

        A failing build with no recognisable error block yields an outcome
        with an empty diagnostic list.
        """
        command = list(build_command) if build_command is not None else self.build_command
        process = _run(command, self.repo_root, self.timeout)
        outcome = BuildOutcome(
            command=command,
            exit_code=process.returncode,
            stdout=process.stdout or "",
            stderr=process.stderr or "",
        )
        if not outcome.ok:
            outcome.diagnostics = extract_diagnostics(outcome.stderr, marker=self.error_marker)
        LOGGER.info(
            "Build %s exited with %d (%d diagnostic(s))",
            " ".join(command),
            outcome.exit_code,
            len(outcome.diagnostics),
        )
        emit_event(
            "build.finished",
            command=command,
            exit_code=outcome.exit_code,
            diagnostics=len(outcome.diagnostics),
        )
        return outcome

    def check(self) -> BuildOutcome:
        """Lint then build, as the loop does after every apply pass."""
        self.lint()
        return self.run_and_extract()


__all__ = [
    "BuildCommandError",
    "BuildOutcome",
    "DEFAULT_ERROR_MARKER",
    "DiagnosticsExtractor",
    "extract_diagnostics",
]
