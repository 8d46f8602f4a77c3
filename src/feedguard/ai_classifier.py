# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""AI layer: one chat-completions request per classification.

Targets any OpenAI-compatible endpoint (Groq by default).  Exactly one
non-streaming POST per call: no retries, no batching, no backoff.  Every
failure raises ClassifierError; deciding the fail-open outcome is the
engine's job, not this module's.

A reply object without a ``shouldBlock`` key is a failure, not a silent
"allow": the verdict still allows the text, but it carries the error so a
misbehaving model shows up in logs and stats.  A present but non-boolean
value is coerced (only ``true`` / ``"true"`` blocks).
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from types import TracebackType
from typing import Any

import httpx

from .errors import ClassifierError
from .settings import GROQ_CHAT_COMPLETIONS_URL

logger = logging.getLogger(__name__)

TEMPERATURE = 0.3
DEFAULT_TIMEOUT = httpx.Timeout(30.0)

# Greedy: first "{" to last "}"; models often wrap the object in prose.
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

_ERROR_BODY_MAX = 500


def build_prompt(text: str, filter_description: str) -> str:
    """Single user-turn prompt embedding the filter criterion and the literal text."""
    return (
        "Analyze this text and determine if it should be blocked based on the "
        f'following filter criteria: "{filter_description}"\n\n'
        f'Text to analyze: """{text}"""\n\n'
        'Respond with JSON only: {"shouldBlock": true} or {"shouldBlock": false}'
    )


@dataclass(frozen=True, slots=True)
class AIClassification:
    """Parsed model answer."""

    should_block: bool


def _coerce_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def parse_model_reply(content: str) -> AIClassification:
    """Extract ``shouldBlock`` from a free-form model reply.

    Raises:
        ClassifierError: no JSON object, invalid JSON, non-object JSON,
            or the field is missing.
    """
    match = _JSON_OBJECT_RE.search(content)
    if match is None:
        raise ClassifierError("No JSON found in model response", detail=content[:_ERROR_BODY_MAX])
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ClassifierError(f"Failed to parse model response: {e}", detail=content[:_ERROR_BODY_MAX]) from e
    if not isinstance(parsed, dict):
        raise ClassifierError("Model response JSON is not an object", detail=content[:_ERROR_BODY_MAX])
    if "shouldBlock" not in parsed:
        raise ClassifierError("Model response has no shouldBlock field", detail=content[:_ERROR_BODY_MAX])
    return AIClassification(should_block=_coerce_flag(parsed["shouldBlock"]))


def _extract_content(data: Any) -> str:
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        content = None
    if not isinstance(content, str) or not content:
        raise ClassifierError("No content in model response", detail=json.dumps(data)[:_ERROR_BODY_MAX])
    return content


class AIClassifier:
    """Async client for the text-classification endpoint.

    Pass an ``httpx.AsyncClient`` to share a connection pool (or to inject a
    ``MockTransport`` in tests); otherwise one is created lazily and closed by
    ``aclose()``.
    """

    def __init__(
        self,
        *,
        api_url: str = GROQ_CHAT_COMPLETIONS_URL,
        client: httpx.AsyncClient | None = None,
        timeout: httpx.Timeout = DEFAULT_TIMEOUT,
    ) -> None:
        self.api_url = api_url
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout
        self.calls = 0

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def classify(
        self,
        text: str,
        api_key: str,
        model: str,
        filter_description: str,
        *,
        api_url: str | None = None,
    ) -> AIClassification:
        """Classify *text* against *filter_description*.

        Raises:
            ClassifierError: transport failure, non-2xx status, empty or
                unparseable body, or a reply without a usable answer.
        """
        self.calls += 1
        payload = {
            "model": model,
            "messages": [{"role": "user", "content": build_prompt(text, filter_description)}],
            "temperature": TEMPERATURE,
        }
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = await self._get_client().post(api_url or self.api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise ClassifierError(f"Classifier request failed: {e}") from e

        if not response.is_success:
            body = response.text[:_ERROR_BODY_MAX]
            raise ClassifierError(
                f"Classifier API error: {response.status_code} - {body}",
                status_code=response.status_code,
                detail=body,
            )
        if not response.content.strip():
            raise ClassifierError("Empty classifier response body", status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise ClassifierError(
                f"Classifier response is not JSON: {e}",
                status_code=response.status_code,
                detail=response.text[:_ERROR_BODY_MAX],
            ) from e

        content = _extract_content(data)
        try:
            return parse_model_reply(content)
        except ClassifierError:
            logger.error("Failed to parse model response: %s", content[:_ERROR_BODY_MAX])
            raise

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> AIClassifier:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()
