# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Simplified vs Traditional Chinese detection by round-trip divergence.

Strategy:
- Require >= 3 characters in the CJK Unified Ideographs block (U+4E00..U+9FFF);
  fewer means "undeterminable" and the answer is False
- Convert the text Simplified -> Traditional (forward) and
  Traditional -> Simplified (reverse) with OpenCC
- Count positions where the converted text differs from the original
  (index-by-index equality, not edit distance)
- Simplified when forward changes more characters than reverse, and at least one

This is a heuristic: text using characters shared by both variants is
indistinguishable and passes as not-Simplified.
"""

from __future__ import annotations

import functools
import re
from collections.abc import Callable
from dataclasses import dataclass

from opencc import OpenCC

Converter = Callable[[str], str]

_HAN_RE = re.compile(r"[\u4e00-\u9fff]")

MIN_HAN_CHARS = 3

# OpenCC configs: character-level conversion with Taiwan standard forms
_FORWARD_CONFIG = "s2tw"
_REVERSE_CONFIG = "tw2s"


@functools.lru_cache(maxsize=None)
def _opencc_converter(config: str) -> Converter:
    # Dictionary loading is the expensive part; build each converter once.
    return OpenCC(config).convert


def count_han(text: str) -> int:
    """Number of characters in U+4E00..U+9FFF."""
    return len(_HAN_RE.findall(text))


def count_changed(original: str, converted: str) -> int:
    """Positions of *original* whose character differs at the same index.

    Positions past the end of *converted* count as changed.
    """
    n = len(converted)
    return sum(1 for i, ch in enumerate(original) if i >= n or converted[i] != ch)


@dataclass(frozen=True, slots=True)
class VariantProfile:
    """Round-trip counts for one text (diagnostics)."""

    han_chars: int
    forward_changes: int  # Simplified -> Traditional
    reverse_changes: int  # Traditional -> Simplified

    @property
    def determinable(self) -> bool:
        return self.han_chars >= MIN_HAN_CHARS

    @property
    def is_simplified(self) -> bool:
        return self.determinable and self.forward_changes > self.reverse_changes and self.forward_changes > 0


class ScriptVariantDetector:
    """Detects Simplified-Chinese text.

    Converters default to OpenCC ``s2tw`` / ``tw2s`` and can be replaced with
    any ``str -> str`` callables.
    """

    def __init__(self, forward: Converter | None = None, reverse: Converter | None = None) -> None:
        self._forward = forward
        self._reverse = reverse

    @property
    def forward(self) -> Converter:
        if self._forward is None:
            self._forward = _opencc_converter(_FORWARD_CONFIG)
        return self._forward

    @property
    def reverse(self) -> Converter:
        if self._reverse is None:
            self._reverse = _opencc_converter(_REVERSE_CONFIG)
        return self._reverse

    def profile(self, text: str) -> VariantProfile:
        han = count_han(text)
        if han < MIN_HAN_CHARS:
            return VariantProfile(han_chars=han, forward_changes=0, reverse_changes=0)
        return VariantProfile(
            han_chars=han,
            forward_changes=count_changed(text, self.forward(text)),
            reverse_changes=count_changed(text, self.reverse(text)),
        )

    def is_simplified(self, text: str) -> bool:
        return self.profile(text).is_simplified


_default_detector = ScriptVariantDetector()


def variant_profile(text: str) -> VariantProfile:
    return _default_detector.profile(text)


def is_simplified_chinese(text: str) -> bool:
    """Module-level shortcut using the default OpenCC converters."""
    return _default_detector.is_simplified(text)
