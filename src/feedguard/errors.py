# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""FeedGuard exception hierarchy.

All FeedGuard-specific errors inherit from FeedGuardError, allowing callers
to catch the base class for any FeedGuard failure or specific subclasses
for targeted handling.  The classification engine never lets these escape;
they surface as the ``error`` field of an allow verdict.
"""

from __future__ import annotations


class FeedGuardError(Exception):
    """Base exception for all FeedGuard errors."""


class SettingsError(FeedGuardError):
    """Settings snapshot could not be read or has wrongly typed values."""


class ClassifierError(FeedGuardError):
    """AI classification request failed (network, HTTP status, or parse)."""

    def __init__(self, message: str, *, status_code: int | None = None, detail: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class InvalidTransitionError(FeedGuardError):
    """An element lifecycle state was asked to move backwards."""
