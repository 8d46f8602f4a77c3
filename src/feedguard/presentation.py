# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Presentation: swap blocked fragments for placeholders, restore on reveal.

The scheduler calls ``apply`` exactly once per fragment, after it reaches
DONE.  Allow verdicts (including fail-open errors) leave the element as is.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Protocol

import lxml.html

from . import Fragment, Verdict
from .scanner import BLOCKED_CLASS

logger = logging.getLogger(__name__)

BLOCKED_LABEL = "Blocked content"
REVEAL_LABEL = "Show"
REVEAL_ATTR = "data-content-reveal"


class PresentationSink(Protocol):
    def apply(self, fragment: Fragment, verdict: Verdict) -> None: ...


@dataclass
class _Original:
    text: str | None
    children: list[lxml.html.HtmlElement]
    class_attr: str | None


class DomPresenter:
    """Applies verdicts to an lxml document in place."""

    def __init__(self, *, allow_reveal: bool = True) -> None:
        self.allow_reveal = allow_reveal
        self._originals: dict[lxml.html.HtmlElement, _Original] = {}

    def apply(self, fragment: Fragment, verdict: Verdict) -> None:
        if verdict.error:
            logger.warning("Showing content after classification error: %s", verdict.error)
            return
        if not verdict.should_block:
            return
        self.block(fragment.element)

    def block(self, el: lxml.html.HtmlElement) -> None:
        if el in self._originals:
            return
        # Children keep their tails; deep-copied so later edits can't leak in.
        self._originals[el] = _Original(
            text=el.text,
            children=[copy.deepcopy(child) for child in el],
            class_attr=el.get("class"),
        )
        for child in list(el):
            el.remove(child)
        el.text = None

        classes = (el.get("class") or "").split()
        if BLOCKED_CLASS not in classes:
            classes.append(BLOCKED_CLASS)
        el.set("class", " ".join(classes))

        label = lxml.html.Element("span")
        label.text = BLOCKED_LABEL
        el.append(label)
        if self.allow_reveal:
            button = lxml.html.Element("button")
            button.set(REVEAL_ATTR, "true")
            button.text = REVEAL_LABEL
            el.append(button)

    def is_blocked(self, el: lxml.html.HtmlElement) -> bool:
        return el in self._originals

    def reveal(self, el: lxml.html.HtmlElement) -> bool:
        """Restore a blocked element.  False if reveal is disabled or not blocked."""
        if not self.allow_reveal:
            return False
        original = self._originals.pop(el, None)
        if original is None:
            return False
        for child in list(el):
            el.remove(child)
        el.text = original.text
        for child in original.children:
            el.append(child)
        if original.class_attr is None:
            el.attrib.pop("class", None)
        else:
            el.set("class", original.class_attr)
        return True


class RecordingSink:
    """Collects (fragment, verdict) pairs; for headless runs and tests."""

    def __init__(self) -> None:
        self.applied: list[tuple[Fragment, Verdict]] = []

    def apply(self, fragment: Fragment, verdict: Verdict) -> None:
        self.applied.append((fragment, verdict))
