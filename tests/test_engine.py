# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for feedguard.engine: layer order, short-circuiting, fail-open."""

from __future__ import annotations

import httpx
import pytest

from feedguard import MatchedBy, Verdict
from feedguard.ai_classifier import AIClassifier
from feedguard.engine import ClassificationEngine, Err, Ok, collapse
from feedguard.errors import SettingsError
from feedguard.script_variant import ScriptVariantDetector
from feedguard.settings import Settings, StaticSettingsProvider
from tests._helpers import FakeClassifier


def _engine(classifier=None, **settings_kwargs) -> ClassificationEngine:
    return ClassificationEngine(StaticSettingsProvider(Settings(**settings_kwargs)), classifier)


class _BrokenProvider:
    def get(self):
        raise SettingsError("settings storage unavailable")


class _ExplodingDetector(ScriptVariantDetector):
    def is_simplified(self, text: str) -> bool:
        raise RuntimeError("converter crashed")


# ── keyword layer ────────────────────────────────────────────────


class TestKeywordLayer:
    async def test_end_to_end_keyword_block(self, fake_classifier):
        engine = _engine(fake_classifier, keywords="spoiler", ai_filter_enabled=False)
        verdict = await engine.evaluate("Huge spoiler: he dies")
        assert verdict == Verdict(should_block=True, matched_by=MatchedBy.KEYWORD, matched_keyword="spoiler")

    async def test_keyword_hit_skips_ai(self, fake_classifier):
        engine = _engine(fake_classifier, keywords="spoiler", api_key="sk-test")
        verdict = await engine.evaluate("SPOILER alert")
        assert verdict.matched_by is MatchedBy.KEYWORD
        assert fake_classifier.calls == []

    async def test_empty_keywords_never_block(self, fake_classifier):
        engine = _engine(fake_classifier, keywords="", keyword_filter_enabled=True, ai_filter_enabled=False)
        verdict = await engine.evaluate("spoiler spoiler spoiler")
        assert verdict.should_block is False
        assert verdict.matched_by is MatchedBy.NONE

    async def test_disabled_keyword_layer(self, fake_classifier):
        engine = _engine(fake_classifier, keywords="spoiler", keyword_filter_enabled=False, ai_filter_enabled=False)
        verdict = await engine.evaluate("Huge spoiler: he dies")
        assert verdict.should_block is False


# ── script layer ─────────────────────────────────────────────────


class TestScriptLayer:
    async def test_end_to_end_script_block(self, fake_classifier):
        engine = _engine(fake_classifier, keywords="", script_filter_enabled=True, api_key="sk-test")
        verdict = await engine.evaluate("简体测试题")
        assert verdict == Verdict(should_block=True, matched_by=MatchedBy.SCRIPT)
        assert fake_classifier.calls == []

    async def test_script_layer_disabled_by_default(self):
        engine = _engine(None, ai_filter_enabled=False)
        verdict = await engine.evaluate("简体测试题")
        assert verdict.should_block is False

    async def test_keyword_checked_before_script(self):
        engine = _engine(None, keywords="简体", script_filter_enabled=True)
        verdict = await engine.evaluate("简体测试题")
        assert verdict.matched_by is MatchedBy.KEYWORD


# ── AI layer ─────────────────────────────────────────────────────


class TestAILayer:
    async def test_all_layers_disabled(self, fake_classifier):
        engine = _engine(
            fake_classifier,
            keyword_filter_enabled=False,
            script_filter_enabled=False,
            ai_filter_enabled=False,
        )
        verdict = await engine.evaluate("anything at all")
        assert verdict == Verdict(should_block=False, matched_by=MatchedBy.NONE)
        assert fake_classifier.calls == []

    async def test_no_api_key_is_inert(self, fake_classifier):
        engine = _engine(fake_classifier, ai_filter_enabled=True, api_key="")
        verdict = await engine.evaluate("anything")
        assert verdict == Verdict(should_block=False, matched_by=MatchedBy.NONE)
        assert verdict.error is None
        assert fake_classifier.calls == []

    async def test_ai_block(self):
        clf = FakeClassifier(should_block=True)
        engine = _engine(clf, api_key="sk-test")
        verdict = await engine.evaluate("borderline text")
        assert verdict == Verdict(should_block=True, matched_by=MatchedBy.AI)
        assert clf.calls == ["borderline text"]

    async def test_ai_allow(self):
        engine = _engine(FakeClassifier(should_block=False), api_key="sk-test")
        verdict = await engine.evaluate("nice text")
        assert verdict == Verdict(should_block=False, matched_by=MatchedBy.AI)

    async def test_no_classifier_attached(self):
        engine = _engine(None, api_key="sk-test")
        verdict = await engine.evaluate("nice text")
        assert verdict.matched_by is MatchedBy.NONE

    async def test_empty_description_uses_default(self):
        seen = {}

        class _Spy(FakeClassifier):
            async def classify(self, text, api_key, model, filter_description, *, api_url=None):
                seen.update(model=model, desc=filter_description, url=api_url)
                return await super().classify(text, api_key, model, filter_description, api_url=api_url)

        engine = _engine(_Spy(), api_key="k", filter_description="", model="m1", api_url="https://x.test/v1")
        await engine.evaluate("text")
        assert seen == {"model": "m1", "desc": "content I want to avoid", "url": "https://x.test/v1"}


# ── fail-open ────────────────────────────────────────────────────


class TestFailOpen:
    async def test_classifier_error_allows(self, failing_classifier):
        engine = _engine(failing_classifier, api_key="sk-test")
        verdict = await engine.evaluate("some text")
        assert verdict.should_block is False
        assert verdict.matched_by is MatchedBy.NONE
        assert verdict.error
        assert "500" in verdict.error

    async def test_http_500_end_to_end(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500, text="down")))
        async with AIClassifier(client=client) as clf:
            engine = _engine(clf, api_key="sk-test")
            verdict = await engine.evaluate("some text")
        await client.aclose()
        assert verdict.should_block is False
        assert verdict.matched_by is MatchedBy.NONE
        assert verdict.error

    async def test_reply_without_should_block_allows_with_error(self):
        reply = {"choices": [{"message": {"content": '{"answer": true}'}}]}
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, json=reply)))
        async with AIClassifier(client=client) as clf:
            engine = _engine(clf, api_key="sk-test")
            verdict = await engine.evaluate("some text")
        await client.aclose()
        assert verdict.should_block is False
        assert verdict.matched_by is MatchedBy.NONE
        assert "no shouldBlock field" in verdict.error

    async def test_settings_failure_allows(self, fake_classifier):
        engine = ClassificationEngine(_BrokenProvider(), fake_classifier)
        verdict = await engine.evaluate("some text")
        assert verdict.should_block is False
        assert "settings storage unavailable" in verdict.error

    async def test_internal_fault_allows(self):
        engine = ClassificationEngine(
            StaticSettingsProvider(Settings(script_filter_enabled=True)),
            None,
            _ExplodingDetector(),
        )
        verdict = await engine.evaluate("简体测试题")
        assert verdict.should_block is False
        assert "RuntimeError" in verdict.error

    async def test_unexpected_classifier_exception_allows(self):
        engine = _engine(FakeClassifier(error=ValueError("bad")), api_key="k")
        verdict = await engine.evaluate("text")
        assert verdict.should_block is False
        assert verdict.error == "ValueError: bad"


# ── tagged result ────────────────────────────────────────────────


class TestTaggedResult:
    async def test_detailed_ok(self):
        engine = _engine(None, keywords="x", ai_filter_enabled=False)
        result = await engine.evaluate_detailed("xyz text")
        assert isinstance(result, Ok)
        assert result.verdict.matched_by is MatchedBy.KEYWORD

    async def test_detailed_err(self, failing_classifier):
        engine = _engine(failing_classifier, api_key="k")
        result = await engine.evaluate_detailed("text")
        assert isinstance(result, Err)
        assert result.exception is not None

    def test_collapse_err(self):
        verdict = collapse(Err("boom"))
        assert verdict == Verdict(should_block=False, matched_by=MatchedBy.NONE, error="boom")

    @pytest.mark.parametrize("verdict", [Verdict(True, MatchedBy.AI), Verdict(False, MatchedBy.NONE)])
    def test_collapse_ok(self, verdict):
        assert collapse(Ok(verdict)) is verdict
