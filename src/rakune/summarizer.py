"""Commit-message summaries of the accumulated diff."""

from __future__ import annotations

import logging

from .models.llm_client import Oracle
from .prompts import template_summary

LOGGER = logging.getLogger(__name__)

EMPTY_DIFF_SUMMARY = "No changes."


class SnapshotSummarizer:
    """Asks the oracle for a short summary of a diff."""

    def __init__(self, oracle: Oracle) -> None:
        self.oracle = oracle

    def summarize(self, diff: str) -> str:
        if not diff.strip():
            LOGGER.info("Diff is empty; skipping summary request")
            return EMPTY_DIFF_SUMMARY
        return self.oracle.prompt(template_summary(diff)).strip()


__all__ = ["EMPTY_DIFF_SUMMARY", "SnapshotSummarizer"]
