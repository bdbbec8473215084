from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from rakune.structured import CreateFile, Fragment, MoveFile
from rakune.tools.apply import TransformationApplier
from rakune.tools.file_store import FileStore
from rakune.tools.vcs import GitError, GitRepository


def _last_subject(root: Path) -> str:
    log = subprocess.run(["git", "log", "-1", "--format=%s"], cwd=root, check=True, capture_output=True, text=True)
    return log.stdout.strip()


def test_snapshot_diff_and_commit(git_repo: Path) -> None:
    repo = GitRepository(git_repo)
    assert repo.current_head() is None

    tracked = git_repo / "tracked.txt"
    tracked.write_text("alpha\n", encoding="utf-8")
    base = repo.commit("init")
    assert base is not None
    assert repo.current_head() == base

    tracked.write_text("alpha\nbeta\n", encoding="utf-8")
    diff = repo.diff(base)
    assert "diff --git a/tracked.txt b/tracked.txt" in diff
    assert "+beta" in diff

    head = repo.commit("Add beta")
    assert head is not None and head != base
    assert repo.diff(head) == ""
    assert _last_subject(git_repo) == "Add beta"


def test_diff_includes_created_and_moved_files(git_repo: Path) -> None:
    repo = GitRepository(git_repo)
    (git_repo / "old.rs").write_text("fn old() {}\n", encoding="utf-8")
    base = repo.commit("init")
    store = FileStore(git_repo)
    applier = TransformationApplier(store)

    applier.apply_all([CreateFile(path="src/new.rs"), MoveFile(old="old.rs", new="src/moved.rs")])
    (git_repo / "src" / "new.rs").write_text("fn main() {}\n", encoding="utf-8")
    diff = repo.diff(base)

    assert "b/src/new.rs" in diff
    assert "+fn main() {}" in diff
    assert "b/src/moved.rs" in diff
    assert "a/old.rs" in diff
    head = repo.commit("Add new module")
    assert head is not None and head != base
    assert _last_subject(git_repo) == "Add new module"


def test_commit_with_nothing_to_commit_returns_none(git_repo: Path) -> None:
    repo = GitRepository(git_repo)
    (git_repo / "a.txt").write_text("a\n", encoding="utf-8")
    repo.commit("init")

    assert repo.commit("again") is None


def test_plain_directory_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(GitError):
        GitRepository(tmp_path)


def test_git_failures_raise(git_repo: Path) -> None:
    repo = GitRepository(git_repo)

    with pytest.raises(GitError):
        repo.diff("no-such-revision")
    assert repo.temporal_context(Fragment("a.txt", (0, 1))) == []
