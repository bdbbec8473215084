"""Minimal git helpers.

The loop only needs to remember where it started, diff the working tree
against that revision, and optionally commit the result.
"""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from ..structured import Fragment

Revision = Optional[str]


class GitError(RuntimeError):
    """Raised when a git command fails or the repository cannot be used."""


class VersionControl(Protocol):
    """Collaborator the convergence loop snapshots and diffs through."""

    def current_head(self) -> Revision: ...

    def diff(self, target: Revision = None) -> str: ...

    def commit(self, message: str) -> Revision: ...

    def temporal_context(self, fragment: Fragment) -> List[str]: ...


class GitRepository:
    """Lightweight wrapper around ``git`` commands."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()
        if not (self.root / ".git").exists():
            raise GitError(f"Not a git repository: {self.root}")

    # ------------------------------------------------------------------ git IO
    def _run_git(self, args: Sequence[str], *, check: bool = True) -> subprocess.CompletedProcess[str]:
        command = ["git", *args]
        try:
            process = subprocess.run(
                command,
                cwd=self.root,
                capture_output=True,
                text=False,
                check=False,
            )
        except OSError as error:
            raise GitError(f"Unable to run git: {error}") from error
        stdout = process.stdout.decode("utf-8", errors="replace") if process.stdout else ""
        stderr = process.stderr.decode("utf-8", errors="replace") if process.stderr else ""
        result = subprocess.CompletedProcess(process.args, process.returncode, stdout, stderr)
        if check and result.returncode != 0:
            message = result.stderr.strip() or result.stdout.strip() or "unknown git error"
            raise GitError(f"git {' '.join(args)} failed: {message}")
        return result

    # ------------------------------------------------------------- snapshots
    def current_head(self) -> Revision:
        """Return the ``HEAD`` commit hash, or ``None`` before the first commit."""

        result = self._run_git(["rev-parse", "--verify", "HEAD"], check=False)
        if result.returncode != 0:
            return None
        head = result.stdout.strip()
        return head or None

    def diff(self, target: Revision = None) -> str:
        """Return the working-tree diff against ``target`` (the index when ``None``).

        Untracked files are first recorded with ``git add --intent-to-add`` so
        files created during the run show up as additions.
        """

        self._run_git(["add", "--intent-to-add", "--", "."], check=True)
        args: List[str] = ["diff"]
        if target:
            args.append(target)
        result = self._run_git(args, check=True)
        return result.stdout

    def commit(self, message: str) -> Revision:
        """Add all changes to the index and create a commit.

        Returns the new commit SHA, or ``None`` when there was nothing to commit.
        """

        self._run_git(["add", "--all"], check=True)

        commit = self._run_git(["commit", "-m", message], check=False)
        if commit.returncode != 0:
            output = commit.stderr.strip() or commit.stdout.strip() or ""
            if "nothing to commit" in output.lower():
                return None
            raise GitError(f"git commit failed: {output}")

        return self.current_head()

    # --------------------------------------------------------------- context
    def temporal_context(self, fragment: Fragment) -> List[str]:
        """History-derived context for ``fragment``; history is not mined yet."""

        return []


__all__ = ["GitError", "GitRepository", "Revision", "VersionControl"]
