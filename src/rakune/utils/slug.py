"""Filesystem-friendly, length-limited slugs for run artifact names."""

from __future__ import annotations

import hashlib
import re
from typing import Pattern

_UNSAFE: Pattern[str] = re.compile(r"[^a-z0-9_.-]+")
_HYPHEN_COLLAPSE = re.compile(r"-{2,}")


def slugify(value: str | None, *, fallback: str = "item", max_length: int = 60) -> str:
    """Normalize ``value`` into a lowercase slug no longer than ``max_length``."""
    slug = _normalize(value or "") or _normalize(fallback) or "item"
    if len(slug) <= max_length:
        return slug

    digest = hashlib.sha256(slug.encode("utf-8")).hexdigest()[:8]
    prefix = slug[: max(max_length - len(digest) - 1, 1)].rstrip("-")
    return f"{prefix}-{digest}"


def _normalize(value: str) -> str:
    slug = _UNSAFE.sub("-", value.strip().lower())
    slug = _HYPHEN_COLLAPSE.sub("-", slug)
    return slug.strip("-")
