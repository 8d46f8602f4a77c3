# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""One page load: domain gate, initial scan, change feed, teardown.

The domain gate is evaluated once, at ``start()``; a session on a host that
is not enabled never scans.  All state lives in this object's scheduler and
is discarded by ``close()``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable
from types import TracebackType
from urllib.parse import urlparse

import lxml.html

from .engine import ClassificationEngine
from .logging_config import bind_session
from .presentation import DomPresenter, PresentationSink
from .scheduler import Clock, ScanScheduler, ScanStats, SchedulerConfig
from .settings import DEFAULT_SETTINGS, Settings, is_domain_enabled

logger = logging.getLogger(__name__)


def hostname_of(url: str) -> str:
    """Lowercased host of *url*, "" if none.  A bare ``host/path`` is read as https."""
    url = url.strip()
    if url and "://" not in url and not url.startswith("//"):
        url = "https://" + url
    try:
        host = urlparse(url).hostname or ""
    except ValueError:
        return ""
    if any(ch.isspace() for ch in host):
        return ""
    return host.lower()


class FilterSession:
    """Filters one parsed document.

    Usage::

        async with FilterSession(doc, url, settings, engine) as session:
            if await session.start():
                await session.watch(feed)
    """

    def __init__(
        self,
        document: lxml.html.HtmlElement,
        url: str,
        settings: Settings | None,
        engine: ClassificationEngine,
        *,
        sink: PresentationSink | None = None,
        config: SchedulerConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.document = document
        self.url = url
        self.hostname = hostname_of(url)
        self.settings = settings or DEFAULT_SETTINGS
        self.presenter = sink or DomPresenter(allow_reveal=self.settings.allow_reveal)
        self.scheduler = ScanScheduler(engine, self.presenter, config=config, clock=clock)
        self.enabled = False
        self._started = False

    @property
    def stats(self) -> ScanStats:
        return self.scheduler.stats

    async def start(self) -> bool:
        """Check the domain gate and run the initial full-document scan.

        Returns whether filtering is active for this page.
        """
        if self._started:
            return self.enabled
        self._started = True
        bind_session(host=self.hostname)

        if not is_domain_enabled(self.hostname, self.settings.enabled_domains):
            logger.info("Not enabled on %s, skipping", self.hostname or "<no host>")
            return False

        self.enabled = True
        logger.info("Initializing on %s; running initial scan", self.hostname)
        self.scheduler.scan(self.document)
        return True

    def notify_inserted(self, root: lxml.html.HtmlElement) -> None:
        if self.enabled:
            self.scheduler.notify_inserted(root)

    async def watch(self, feed: AsyncIterable[lxml.html.HtmlElement]) -> None:
        """Consume a change feed of inserted subtrees until it ends, then settle."""
        if not self.enabled:
            return
        logger.info("Now monitoring for new content")
        async for root in feed:
            if self.scheduler.closed:
                break
            self.notify_inserted(root)
        await self.scheduler.wait_idle()

    async def wait_idle(self) -> None:
        await self.scheduler.wait_idle()

    def reveal(self, element: lxml.html.HtmlElement) -> bool:
        """Unblock *element* when reveal is allowed."""
        if not self.settings.allow_reveal or not self.scheduler.store.is_blocked(element):
            return False
        reveal = getattr(self.presenter, "reveal", None)
        if reveal is not None and not reveal(element):
            return False
        self.scheduler.store.reveal(element)
        return True

    def close(self) -> None:
        self.scheduler.close()

    async def __aenter__(self) -> FilterSession:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
