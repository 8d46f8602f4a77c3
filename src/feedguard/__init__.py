# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""FeedGuard: layered block/allow classification for text found in HTML pages.

Layers run cheapest first and short-circuit:
- keyword: substring match against a user keyword list
- script: Simplified-Chinese detection by OpenCC round-trip divergence
- ai: one chat-completions call with a natural-language filter description

Any failure resolves to "allow" (fail-open).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class MatchedBy(StrEnum):
    """Which layer produced a verdict."""

    KEYWORD = "keyword"
    SCRIPT = "script"
    AI = "ai"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class Verdict:
    """Final block/allow decision for one fragment (immutable)."""

    should_block: bool
    matched_by: MatchedBy
    matched_keyword: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "shouldBlock": self.should_block,
            "matched_by": str(self.matched_by),
        }
        if self.matched_keyword is not None:
            out["matched_keyword"] = self.matched_keyword
        if self.error is not None:
            out["error"] = self.error
        return out


ALLOW = Verdict(should_block=False, matched_by=MatchedBy.NONE)


@dataclass(frozen=True, slots=True, eq=False)
class Fragment:
    """A unit of candidate text discovered in a document."""

    raw_text: str
    content_hash: str
    element: Any  # lxml.html.HtmlElement (opaque to the engine)

    def preview(self, width: int = 60) -> str:
        if len(self.raw_text) <= width:
            return self.raw_text
        return self.raw_text[:width] + "..."
