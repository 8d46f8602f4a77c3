# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Settings snapshot, defaults, loading, and the per-session domain gate.

The snapshot is read-only to the core.  Keys are accepted in the browser
extension's camelCase storage layout as well as snake_case, so a storage
export can be used as a settings file directly.

Environment overrides (applied by ``load_settings``):
    FEEDGUARD_API_KEY, FEEDGUARD_MODEL, FEEDGUARD_API_URL
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Protocol

import yaml

from .errors import SettingsError
from .keyword_matcher import parse_keywords

logger = logging.getLogger(__name__)

GROQ_CHAT_COMPLETIONS_URL = "https://api.groq.com/openai/v1/chat/completions"
DEFAULT_MODEL = "llama-3.3-70b-versatile"
DEFAULT_FILTER_DESCRIPTION = "content I want to avoid"

DEFAULT_ENABLED_DOMAINS = frozenset(
    {
        "twitter.com",
        "x.com",
        "reddit.com",
        "www.reddit.com",
        "instagram.com",
        "www.instagram.com",
        "facebook.com",
        "www.facebook.com",
    }
)


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Settings:
    """Immutable settings snapshot."""

    keyword_filter_enabled: bool = True
    keywords: str = ""
    script_filter_enabled: bool = False
    ai_filter_enabled: bool = True
    api_key: str = ""
    model: str = DEFAULT_MODEL
    filter_description: str = DEFAULT_FILTER_DESCRIPTION
    allow_reveal: bool = True
    enabled_domains: frozenset[str] = DEFAULT_ENABLED_DOMAINS
    api_url: str = GROQ_CHAT_COMPLETIONS_URL
    # Normalised once per snapshot, not per match call.
    parsed_keywords: tuple[str, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        for f in fields(self):
            if f.name == "parsed_keywords":
                continue
            value = getattr(self, f.name)
            if f.type == "bool" and not isinstance(value, bool):
                raise SettingsError(f"{f.name} must be a bool, got {type(value).__name__}")
            if f.type == "str" and not isinstance(value, str):
                raise SettingsError(f"{f.name} must be a string, got {type(value).__name__}")
        if not isinstance(self.enabled_domains, frozenset):
            object.__setattr__(self, "enabled_domains", frozenset(self.enabled_domains))
        object.__setattr__(self, "parsed_keywords", tuple(parse_keywords(self.keywords)))

    @property
    def keyword_layer_active(self) -> bool:
        return self.keyword_filter_enabled and bool(self.parsed_keywords)

    @property
    def ai_layer_active(self) -> bool:
        return self.ai_filter_enabled and bool(self.api_key)

    @property
    def effective_filter_description(self) -> str:
        return self.filter_description or DEFAULT_FILTER_DESCRIPTION


DEFAULT_SETTINGS = Settings()


# camelCase storage key -> Settings field
_KEY_ALIASES: dict[str, str] = {
    "keywordFilterEnabled": "keyword_filter_enabled",
    "keywords": "keywords",
    "scriptFilterEnabled": "script_filter_enabled",
    "simplifiedChineseFilterEnabled": "script_filter_enabled",
    "aiFilterEnabled": "ai_filter_enabled",
    "apiKey": "api_key",
    "groqApiKey": "api_key",
    "model": "model",
    "selectedModel": "model",
    "filterDescription": "filter_description",
    "allowReveal": "allow_reveal",
    "enabledDomains": "enabled_domains",
    "apiUrl": "api_url",
}
_FIELD_NAMES = frozenset(f.name for f in fields(Settings) if f.init)


def settings_from_mapping(data: Mapping[str, Any] | None) -> Settings:
    """Build a snapshot from a mapping; ``None`` or empty yields defaults.

    A top-level ``settings`` key (extension storage layout) is unwrapped.
    Unknown keys are ignored.

    Raises:
        SettingsError: a value has the wrong type.
    """
    if not data:
        return DEFAULT_SETTINGS
    if not isinstance(data, Mapping):
        raise SettingsError(f"settings must be a mapping, got {type(data).__name__}")
    if "settings" in data and isinstance(data["settings"], Mapping):
        data = data["settings"]

    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        name = _KEY_ALIASES.get(key, key)
        if name not in _FIELD_NAMES:
            logger.debug("Ignoring unknown settings key %r", key)
            continue
        if name == "enabled_domains":
            value = _coerce_domains(value)
        kwargs[name] = value
    return Settings(**kwargs)


def _coerce_domains(value: Any) -> frozenset[str]:
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, list | tuple | set | frozenset):
        raise SettingsError(f"enabled_domains must be a list of strings, got {type(value).__name__}")
    domains = set()
    for item in value:
        if not isinstance(item, str):
            raise SettingsError(f"enabled_domains entries must be strings, got {type(item).__name__}")
        item = item.strip().lower()
        if item:
            domains.add(item)
    return frozenset(domains)


def read_settings_file(path: Path) -> dict[str, Any]:
    """Parse a JSON or YAML settings file into a dict (empty file -> {})."""
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SettingsError(f"Cannot read settings file {path}: {e}") from e

    try:
        if path.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(raw)
        else:
            data = json.loads(raw) if raw.strip() else None
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise SettingsError(f"Invalid settings file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SettingsError(f"Settings file {path} must contain a mapping")
    return data


def apply_env_overrides(settings: Settings, environ: Mapping[str, str] | None = None) -> Settings:
    """Apply FEEDGUARD_* environment overrides on top of a snapshot."""
    env = os.environ if environ is None else environ
    overrides: dict[str, str] = {}
    api_key = env.get("FEEDGUARD_API_KEY", "").strip()
    if api_key:
        overrides["api_key"] = api_key
    model = env.get("FEEDGUARD_MODEL", "").strip()
    if model:
        overrides["model"] = model
    api_url = env.get("FEEDGUARD_API_URL", "").strip()
    if api_url:
        overrides["api_url"] = api_url
    if not overrides:
        return settings
    return replace(settings, **overrides)


def load_settings(path: str | Path | None = None, *, environ: Mapping[str, str] | None = None) -> Settings:
    """Load a snapshot from *path* (missing file -> defaults) plus env overrides."""
    if path is None:
        settings = DEFAULT_SETTINGS
    else:
        p = Path(path)
        settings = settings_from_mapping(read_settings_file(p)) if p.exists() else DEFAULT_SETTINGS
    return apply_env_overrides(settings, environ)


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class SettingsProvider(Protocol):
    """Read side of settings storage; called once per evaluation."""

    def get(self) -> Settings: ...


class StaticSettingsProvider:
    """Always returns the same snapshot."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or DEFAULT_SETTINGS

    def get(self) -> Settings:
        return self._settings


class FileSettingsProvider:
    """Settings file re-read when its mtime changes.

    A missing file yields defaults.  Parse errors propagate as SettingsError;
    the engine turns them into fail-open verdicts.
    """

    def __init__(self, path: str | Path, *, environ: Mapping[str, str] | None = None) -> None:
        self._path = Path(path)
        self._environ = environ
        self._mtime: float | None = None
        self._cached: Settings | None = None

    def get(self) -> Settings:
        try:
            mtime = self._path.stat().st_mtime
        except FileNotFoundError:
            self._mtime = None
            self._cached = None
            return apply_env_overrides(DEFAULT_SETTINGS, self._environ)

        if self._cached is None or mtime != self._mtime:
            self._cached = apply_env_overrides(
                settings_from_mapping(read_settings_file(self._path)),
                self._environ,
            )
            self._mtime = mtime
            logger.debug("Loaded settings from %s", self._path)
        return self._cached


# ---------------------------------------------------------------------------
# Domain gate
# ---------------------------------------------------------------------------


def is_domain_enabled(hostname: str, enabled_domains: frozenset[str] | set[str]) -> bool:
    """Exact or subdomain match of *hostname* against the enabled list."""
    host = hostname.strip().lower().rstrip(".")
    if not host:
        return False
    for domain in enabled_domains:
        d = domain.lower()
        if host == d or host.endswith("." + d):
            return True
    return False
