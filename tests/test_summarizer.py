from __future__ import annotations

from conftest import ScriptedOracle
from rakune.prompts import SUMMARY_INSTRUCTION
from rakune.summarizer import EMPTY_DIFF_SUMMARY, SnapshotSummarizer


def test_empty_diff_does_not_call_the_oracle() -> None:
    oracle = ScriptedOracle([], summary="unused")

    assert SnapshotSummarizer(oracle).summarize("  \n") == EMPTY_DIFF_SUMMARY
    assert oracle.summary_prompts == []


def test_summary_is_trimmed_oracle_answer() -> None:
    oracle = ScriptedOracle([], summary="Rename helper and fix call sites")
    diff = "diff --git a/x.rs b/x.rs\n-old\n+new\n"

    summary = SnapshotSummarizer(oracle).summarize(diff)

    assert summary == "Rename helper and fix call sites"
    assert oracle.summary_prompts == [f"{SUMMARY_INSTRUCTION}\n\n{diff}"]
