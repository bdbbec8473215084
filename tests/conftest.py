from __future__ import annotations

import subprocess
import sys
import textwrap
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Sequence

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@dataclass(slots=True)
class ScriptedOracle:
    """Oracle stub that replays canned answers and records every prompt."""

    answers: List[str | Callable[[str], str]]
    summary: str = "Fix the value constant"
    prompts: List[str] = field(default_factory=list)
    summary_prompts: List[str] = field(default_factory=list)

    def prompt(self, text: str) -> str:
        if text.startswith("summarize the following diff"):
            self.summary_prompts.append(text)
            return f"  {self.summary}\n"
        self.prompts.append(text)
        if not self.answers:
            raise AssertionError("ScriptedOracle ran out of answers")
        answer = self.answers[0] if len(self.answers) == 1 else self.answers.pop(0)
        return answer(text) if callable(answer) else answer


@dataclass(slots=True)
class StubRepository:
    """In-memory version-control collaborator."""

    head: str | None = "base"
    diff_text: str = "diff --git a/app.txt b/app.txt\n-value = broken\n+value = fixed\n"
    diffed: List[str | None] = field(default_factory=list)
    commits: List[str] = field(default_factory=list)

    def current_head(self) -> str | None:
        return self.head

    def diff(self, target: str | None = None) -> str:
        self.diffed.append(target)
        return self.diff_text

    def commit(self, message: str) -> str | None:
        self.commits.append(message)
        self.head = f"rev-{len(self.commits)}"
        return self.head

    def temporal_context(self, fragment) -> list[str]:
        return []


def update_block(filepath: str, start: int, end: int, *lines: str) -> str:
    body = "\n".join(lines)
    return textwrap.dedent(
        """
        ```
        UpdateFragment:
            filepath: {filepath}
            start_line: {start}
            end_line: {end}
            content:
        {body}
        ```
        """
    ).format(filepath=filepath, start=start, end=end, body=textwrap.indent(body, "        "))


CHECK_SCRIPT = textwrap.dedent(
    """
    import sys
    from pathlib import Path

    text = Path("app.txt").read_text(encoding="utf-8")
    for number, line in enumerate(text.splitlines(), start=1):
        if "broken" in line:
            sys.stderr.write(
                "error: value is broken\\n"
                f" --> app.txt:{number}:1\\n"
            )
            sys.exit(1)
    sys.exit(0)
    """
).lstrip()


@pytest.fixture()
def work_tree(tmp_path: Path) -> Path:
    """Tiny project whose build fails while app.txt mentions "broken"."""

    root = tmp_path / "project"
    root.mkdir()
    (root / "app.txt").write_text("header\nvalue = broken\nfooter\n", encoding="utf-8")
    (root / "check.py").write_text(CHECK_SCRIPT, encoding="utf-8")
    return root


@pytest.fixture()
def build_command() -> Sequence[str]:
    return [sys.executable, "check.py"]


@pytest.fixture()
def git_repo(tmp_path: Path) -> Path:
    """Empty git repository with an identity configured."""

    root = tmp_path / "repo"
    root.mkdir()

    def run_git(*cmd: str) -> None:
        subprocess.run(["git", *cmd], cwd=root, check=True, capture_output=True, text=True)

    run_git("init")
    run_git("config", "user.email", "agent@example.com")
    run_git("config", "user.name", "Rakune Tests")
    run_git("config", "commit.gpgsign", "false")
    return root
