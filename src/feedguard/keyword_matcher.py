# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Keyword layer: case-insensitive substring match against a keyword list.

Pure functions, no feedguard imports.  Matching is raw containment with no
word-boundary awareness, so "die" also matches "diet".
"""

from __future__ import annotations

from collections.abc import Sequence


def parse_keywords(raw: str) -> list[str]:
    """Split a comma-separated keyword string: trim, lowercase, drop empties."""
    if not raw or not raw.strip():
        return []
    return [k for k in (part.strip().lower() for part in raw.split(",")) if k]


def match_keyword(text: str, keywords: Sequence[str]) -> str | None:
    """Return the first keyword (list order) contained in *text*, else None.

    *keywords* must already be normalised by ``parse_keywords``.  An empty
    list never matches; that is how a disabled layer is represented.
    """
    if not keywords:
        return None
    lower = text.lower()
    for keyword in keywords:
        if keyword in lower:
            return keyword
    return None
