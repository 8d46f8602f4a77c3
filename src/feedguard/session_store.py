# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Per-session analysis state: analyzed content hashes and element lifecycle.

One store per page load (owned by the scheduler), never a module global, so
concurrent sessions and tests never share state.

NOTE: not thread-safe.  All mutation happens on the scheduler's event loop,
synchronously, before any task suspends.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any

from .errors import InvalidTransitionError


class ElementState(IntEnum):
    """Element lifecycle; values only move forward."""

    UNSEEN = 0
    PENDING = 1
    PROCESSING = 2
    DONE = 3
    REVEALED = 4  # only from DONE, for blocked elements


_ALLOWED: dict[ElementState, frozenset[ElementState]] = {
    ElementState.UNSEEN: frozenset({ElementState.PENDING, ElementState.DONE}),
    ElementState.PENDING: frozenset({ElementState.PROCESSING}),
    ElementState.PROCESSING: frozenset({ElementState.DONE}),
    ElementState.DONE: frozenset({ElementState.REVEALED}),
    ElementState.REVEALED: frozenset(),
}


class SessionStore:
    """AnalyzedSet + ElementState map.

    Elements are keyed by identity; lxml keeps one proxy per node while a
    reference is held, and the store holds one for every tracked element.
    """

    def __init__(self) -> None:
        self._analyzed: set[str] = set()
        self._states: dict[Any, ElementState] = {}
        self._blocked: set[Any] = set()

    # -- AnalyzedSet --

    def is_analyzed(self, content_hash: str) -> bool:
        return content_hash in self._analyzed

    def claim_hash(self, content_hash: str) -> bool:
        """Add *content_hash*; False if it was already claimed."""
        if content_hash in self._analyzed:
            return False
        self._analyzed.add(content_hash)
        return True

    @property
    def analyzed_count(self) -> int:
        return len(self._analyzed)

    # -- ElementState --

    def state(self, element: Any) -> ElementState:
        return self._states.get(element, ElementState.UNSEEN)

    def is_claimed(self, element: Any) -> bool:
        """True once the element is at least PENDING."""
        return self.state(element) is not ElementState.UNSEEN

    def advance(self, element: Any, new: ElementState) -> None:
        current = self.state(element)
        if new not in _ALLOWED[current]:
            raise InvalidTransitionError(f"element cannot move from {current.name} to {new.name}")
        self._states[element] = new

    def mark_blocked(self, element: Any) -> None:
        self._blocked.add(element)

    def is_blocked(self, element: Any) -> bool:
        return element in self._blocked

    def reveal(self, element: Any) -> None:
        """DONE (blocked) -> REVEALED."""
        if element not in self._blocked:
            raise InvalidTransitionError("only blocked elements can be revealed")
        self.advance(element, ElementState.REVEALED)
        self._blocked.discard(element)

    def count(self, state: ElementState) -> int:
        return sum(1 for s in self._states.values() if s is state)

    def clear(self) -> None:
        self._analyzed.clear()
        self._states.clear()
        self._blocked.clear()
