# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Classification engine: KEYWORD -> SCRIPT -> AI -> DONE.

Layers are visited in that fixed order and any of them may short-circuit to
a block verdict.  A keyword or script hit skips the AI call entirely.

Fail-open: internally each evaluation yields ``Ok(verdict)`` or
``Err(reason)``; ``evaluate()`` collapses ``Err`` into an allow verdict with
the reason attached.  Only an explicit keyword/script match or a successful
AI answer of ``true`` can ever block.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from . import ALLOW, MatchedBy, Verdict
from .ai_classifier import AIClassification
from .errors import ClassifierError
from .keyword_matcher import match_keyword
from .script_variant import ScriptVariantDetector
from .settings import Settings, SettingsProvider, StaticSettingsProvider

logger = logging.getLogger(__name__)


class TextClassifier(Protocol):
    async def classify(
        self,
        text: str,
        api_key: str,
        model: str,
        filter_description: str,
        *,
        api_url: str | None = None,
    ) -> AIClassification: ...


# ---------------------------------------------------------------------------
# Tagged result
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Ok:
    verdict: Verdict


@dataclass(frozen=True, slots=True)
class Err:
    reason: str
    exception: BaseException | None = None


EvaluationResult = Ok | Err


def collapse(result: EvaluationResult) -> Verdict:
    """Public fail-open contract: Err becomes allow with the reason attached."""
    if isinstance(result, Ok):
        return result.verdict
    return Verdict(should_block=False, matched_by=MatchedBy.NONE, error=result.reason)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ClassificationEngine:
    """Orders the three layers and applies the fail-open policy.

    Settings are read from the provider once per evaluation, synchronously,
    so the keyword and script layers always finish before the first await.
    """

    def __init__(
        self,
        settings: SettingsProvider | None = None,
        classifier: TextClassifier | None = None,
        detector: ScriptVariantDetector | None = None,
    ) -> None:
        self._settings = settings or StaticSettingsProvider()
        self._classifier = classifier
        self._detector = detector or ScriptVariantDetector()

    def _local_layers(self, text: str, settings: Settings) -> Verdict | None:
        if settings.keyword_filter_enabled:
            keyword = match_keyword(text, settings.parsed_keywords)
            if keyword is not None:
                logger.info('Keyword match found: "%s"', keyword)
                return Verdict(should_block=True, matched_by=MatchedBy.KEYWORD, matched_keyword=keyword)
        else:
            logger.debug("Keyword filter disabled, skipping")

        if settings.script_filter_enabled:
            if self._detector.is_simplified(text):
                logger.info("Simplified Chinese detected")
                return Verdict(should_block=True, matched_by=MatchedBy.SCRIPT)
        else:
            logger.debug("Script filter disabled, skipping")
        return None

    async def evaluate_detailed(self, text: str) -> EvaluationResult:
        """Run the pipeline; unexpected faults become ``Err`` instead of raising."""
        try:
            settings = self._settings.get()
            local = self._local_layers(text, settings)
            if local is not None:
                return Ok(local)

            if not settings.ai_filter_enabled:
                logger.debug("AI filter disabled, passing content through")
                return Ok(ALLOW)
            if not settings.api_key:
                logger.info("No API key configured, passing content through")
                return Ok(ALLOW)
            if self._classifier is None:
                logger.info("No AI classifier attached, passing content through")
                return Ok(ALLOW)

            logger.debug("Analyzing with AI for: %s", settings.effective_filter_description)
            result = await self._classifier.classify(
                text,
                settings.api_key,
                settings.model,
                settings.effective_filter_description,
                api_url=settings.api_url,
            )
            return Ok(Verdict(should_block=result.should_block, matched_by=MatchedBy.AI))
        except ClassifierError as e:
            logger.warning("Classifier error: %s", e)
            return Err(str(e), e)
        except Exception as e:
            logger.error("Error analyzing text", exc_info=True)
            return Err(f"{type(e).__name__}: {e}", e)

    async def evaluate(self, text: str) -> Verdict:
        """Never raises (except cancellation); errors yield allow + ``error``."""
        return collapse(await self.evaluate_detailed(text))
