# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Candidate discovery: text-bearing, visible, not-yet-handled elements.

Read-only with respect to both the document and the session store; mutation
is the presenter's job, invoked by the scheduler after a verdict.

Per element, all of:
  (a) own tag is not structural/non-content
  (b) not injected by FeedGuard (placeholder / blocked markers), nor inside
      an injected element
  (c) visible as far as inline markup can tell (hidden attr, display:none,
      visibility:hidden, opacity:0 on self or ancestor); aria-hidden only
      affects the accessibility tree and is ignored
  (d) full text >= MIN_TEXT_LENGTH, and direct text >= MIN_TEXT_LENGTH
      unless the element has no child elements
  (e) not already PROCESSING / DONE in the store
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator

import lxml.html

from . import Fragment
from .session_store import ElementState, SessionStore

logger = logging.getLogger(__name__)

MIN_TEXT_LENGTH = 10

SKIP_TAGS = frozenset(
    {
        "script",
        "style",
        "noscript",
        "iframe",
        "svg",
        "img",
        "video",
        "audio",
        "input",
        "textarea",
        "select",
        "button",
        "nav",
        "header",
        "footer",
        "aside",
        "head",
        "meta",
        "link",
        "title",
    }
)

INJECTED_ID_PREFIX = "feedguard-"
PLACEHOLDER_CLASS = "feedguard-placeholder"
BLOCKED_CLASS = "feedguard-blocked"
_INJECTED_CLASSES = frozenset({PLACEHOLDER_CLASS, BLOCKED_CLASS})

_DISPLAY_NONE_RE = re.compile(r"display\s*:\s*none", re.IGNORECASE)
_VISIBILITY_HIDDEN_RE = re.compile(r"visibility\s*:\s*hidden", re.IGNORECASE)
_OPACITY_ZERO_RE = re.compile(r"opacity\s*:\s*0(?:\.0+)?(?:\s*[;!]|\s*$)", re.IGNORECASE)

_DONE_STATES = frozenset({ElementState.PROCESSING, ElementState.DONE, ElementState.REVEALED})


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def content_hash(text: str) -> str:
    """Fixed-width non-cryptographic fingerprint (32-bit rolling hash, 8 hex digits).

    ``h = h * 31 + code point`` wrapped to 32 bits.  Collisions only cost a
    skipped analysis.
    """
    h = 0
    for ch in text:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    return f"{h:08x}"


def full_text(el: lxml.html.HtmlElement) -> str:
    return (el.text_content() or "").strip()


def direct_text(el: lxml.html.HtmlElement) -> str:
    """Text of the element's own text nodes, excluding nested elements."""
    parts = [el.text or ""]
    for child in el:
        parts.append(child.tail or "")
    return "".join(parts).strip()


def _tag(el: lxml.html.HtmlElement) -> str:
    return el.tag.lower() if isinstance(el.tag, str) else ""


def _child_elements(el: lxml.html.HtmlElement) -> int:
    return sum(1 for child in el if isinstance(child.tag, str))


# ---------------------------------------------------------------------------
# Element predicates
# ---------------------------------------------------------------------------


def _hidden_by_markup(el: lxml.html.HtmlElement) -> bool:
    if el.get("hidden") is not None:
        return True
    style = el.get("style", "")
    if style and (
        _DISPLAY_NONE_RE.search(style) or _VISIBILITY_HIDDEN_RE.search(style) or _OPACITY_ZERO_RE.search(style)
    ):
        return True
    return False


def _is_injected(el: lxml.html.HtmlElement) -> bool:
    if (el.get("id") or "").startswith(INJECTED_ID_PREFIX):
        return True
    classes = (el.get("class") or "").split()
    return any(c in _INJECTED_CLASSES for c in classes)


def _self_and_ancestors(el: lxml.html.HtmlElement) -> Iterator[lxml.html.HtmlElement]:
    node = el
    while node is not None:
        yield node
        node = node.getparent()


def is_visible(el: lxml.html.HtmlElement) -> bool:
    """No hiding markup on the element or any ancestor."""
    return not any(_hidden_by_markup(node) for node in _self_and_ancestors(el))


def should_skip(el: lxml.html.HtmlElement, store: SessionStore | None = None) -> bool:
    """Structural, injected, or already handled (criteria a, b, e).

    Skip tags apply to the element's own tag only: a post's text inside a
    ``<header>`` or ``<button>`` is still a candidate.  Injected markers are
    checked on ancestors too so placeholder contents stay excluded.
    """
    if _tag(el) in SKIP_TAGS:
        return True
    if any(_is_injected(node) for node in _self_and_ancestors(el)):
        return True
    return store is not None and store.state(el) in _DONE_STATES


def has_enough_text(el: lxml.html.HtmlElement) -> bool:
    """Criterion (d)."""
    if len(full_text(el)) < MIN_TEXT_LENGTH:
        return False
    return len(direct_text(el)) >= MIN_TEXT_LENGTH or _child_elements(el) == 0


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def find_candidates(root: lxml.html.HtmlElement, store: SessionStore | None = None) -> list[Fragment]:
    """Fragments for every qualifying element in *root* (inclusive), document order."""
    if root is None or not isinstance(root.tag, str):
        return []

    fragments: list[Fragment] = []
    for el in root.iter():
        if not isinstance(el.tag, str):
            continue  # comments, processing instructions
        if should_skip(el, store):
            continue
        if not is_visible(el):
            continue
        if not has_enough_text(el):
            continue
        text = full_text(el)
        fragments.append(Fragment(raw_text=text, content_hash=content_hash(text), element=el))

    logger.debug("Scanner found %d candidate(s) under <%s>", len(fragments), _tag(root))
    return fragments
