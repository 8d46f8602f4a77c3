# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for feedguard.presentation: placeholder swap and reveal."""

from __future__ import annotations

import lxml.html

from feedguard import ALLOW, MatchedBy, Verdict
from feedguard.presentation import BLOCKED_LABEL, REVEAL_ATTR, DomPresenter
from feedguard.scanner import BLOCKED_CLASS, content_hash, find_candidates
from tests._helpers import body_of, make_doc

BLOCK = Verdict(should_block=True, matched_by=MatchedBy.KEYWORD, matched_keyword="spoiler")
TEXT = "Huge spoiler: <b>he</b> dies at the end"


def _setup(allow_reveal: bool = True):
    doc = make_doc(f'<p class="tweet">{TEXT}</p>')
    (frag,) = [f for f in find_candidates(doc) if f.element.tag == "p"]
    return doc, frag, DomPresenter(allow_reveal=allow_reveal)


class TestBlock:
    def test_block_replaces_content(self):
        doc, frag, presenter = _setup()
        presenter.apply(frag, BLOCK)
        p = frag.element
        assert BLOCKED_CLASS in p.get("class").split()
        assert "tweet" in p.get("class").split()
        assert p.find("span").text == BLOCKED_LABEL
        assert p.find("button").get(REVEAL_ATTR) == "true"
        assert "dies" not in p.text_content()
        assert presenter.is_blocked(p)

    def test_no_reveal_button_when_disallowed(self):
        _doc, frag, presenter = _setup(allow_reveal=False)
        presenter.apply(frag, BLOCK)
        assert frag.element.find("button") is None
        assert frag.element.find("span").text == BLOCKED_LABEL

    def test_allow_leaves_element(self):
        doc, frag, presenter = _setup()
        before = lxml.html.tostring(doc)
        presenter.apply(frag, ALLOW)
        assert lxml.html.tostring(doc) == before

    def test_error_verdict_leaves_element(self):
        doc, frag, presenter = _setup()
        before = lxml.html.tostring(doc)
        presenter.apply(frag, Verdict(should_block=False, matched_by=MatchedBy.NONE, error="boom"))
        assert lxml.html.tostring(doc) == before

    def test_blocked_element_not_rescanned(self):
        doc, frag, presenter = _setup()
        presenter.apply(frag, BLOCK)
        assert find_candidates(doc) == []


class TestReveal:
    def test_reveal_restores_original(self):
        doc, frag, presenter = _setup()
        before = lxml.html.tostring(body_of(doc))
        presenter.apply(frag, BLOCK)
        assert presenter.reveal(frag.element) is True
        assert lxml.html.tostring(body_of(doc)) == before
        assert not presenter.is_blocked(frag.element)

    def test_reveal_disallowed(self):
        _doc, frag, presenter = _setup(allow_reveal=False)
        presenter.apply(frag, BLOCK)
        assert presenter.reveal(frag.element) is False
        assert presenter.is_blocked(frag.element)

    def test_reveal_not_blocked(self):
        _doc, frag, presenter = _setup()
        assert presenter.reveal(frag.element) is False

    def test_revealed_text_hash_unchanged(self):
        _doc, frag, presenter = _setup()
        presenter.apply(frag, BLOCK)
        presenter.reveal(frag.element)
        assert content_hash(frag.element.text_content().strip()) == frag.content_hash
