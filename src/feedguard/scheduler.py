# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Scan scheduling: debounced change handling, batched classification.

Triggers:
- ``scan(root)``: initial full-document scan
- ``notify_inserted(root)``: change notifications, coalesced by a
  trailing-window ``ChangeCoalescer`` (IDLE/ARMED) into one scan over the
  union of affected subtrees
- nothing else (no periodic re-scan)

Queued fragments are classified in groups of ``batch_size`` concurrently,
with ``batch_delay`` seconds between groups so a long queue never monopolises
the loop.  Time goes through an injectable ``Clock``.

Enqueue is idempotent and synchronous: the session store is checked and
updated before any task suspends, so two tasks never claim the same element
or the same content hash.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

import lxml.html

from . import Fragment, Verdict
from .engine import ClassificationEngine
from .presentation import PresentationSink
from .scanner import find_candidates
from .session_store import ElementState, SessionStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class Clock(Protocol):
    def now(self) -> float: ...

    async def sleep(self, seconds: float) -> None: ...


class MonotonicClock:
    """Wall clock: ``time.monotonic()`` + ``asyncio.sleep``."""

    def now(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SchedulerConfig:
    """Immutable scheduling parameters."""

    batch_size: int = 5
    batch_delay: float = 0.1  # seconds between groups
    debounce_window: float = 0.5  # seconds of quiet before a coalesced scan

    def __post_init__(self) -> None:
        if self.batch_size <= 0:
            raise ValueError(f"batch_size must be > 0, got {self.batch_size}")
        if self.batch_delay < 0:
            raise ValueError(f"batch_delay must be >= 0, got {self.batch_delay}")
        if self.debounce_window < 0:
            raise ValueError(f"debounce_window must be >= 0, got {self.debounce_window}")


# ---------------------------------------------------------------------------
# Change coalescing
# ---------------------------------------------------------------------------


class CoalescerState(StrEnum):
    IDLE = "idle"
    ARMED = "armed"


class ChangeCoalescer:
    """Trailing-window debounce over inserted subtrees.

    Each ``notify`` pushes the deadline to ``now + window``; once the deadline
    passes with no further notification the pending roots are drained
    together.  Pure state machine: the caller supplies the time.
    """

    def __init__(self, window: float = 0.5) -> None:
        self.window = window
        self.state = CoalescerState.IDLE
        self.deadline = 0.0
        self._pending: list[Any] = []
        self._pending_ids: set[int] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def notify(self, root: Any, now: float) -> None:
        if id(root) not in self._pending_ids:
            self._pending.append(root)
            self._pending_ids.add(id(root))
        self.deadline = now + self.window
        self.state = CoalescerState.ARMED

    def remaining(self, now: float) -> float:
        if self.state is CoalescerState.IDLE:
            return 0.0
        return max(0.0, self.deadline - now)

    def due(self, now: float) -> bool:
        return self.state is CoalescerState.ARMED and now >= self.deadline

    def drain(self) -> list[Any]:
        """Pending roots minus those nested inside another pending root; back to IDLE."""
        roots = [r for r in self._pending if not _has_pending_ancestor(r, self._pending_ids)]
        self.reset()
        return roots

    def reset(self) -> None:
        self._pending.clear()
        self._pending_ids.clear()
        self.state = CoalescerState.IDLE
        self.deadline = 0.0


def _has_pending_ancestor(root: Any, pending_ids: set[int]) -> bool:
    getparent = getattr(root, "getparent", None)
    if getparent is None:
        return False
    node = getparent()
    while node is not None:
        if id(node) in pending_ids:
            return True
        node = node.getparent()
    return False


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


@dataclass
class ScanStats:
    """Running counters for one session."""

    found: int = 0
    queued: int = 0
    duplicates: int = 0
    analyzed: int = 0
    blocked: int = 0
    errors: int = 0
    batches: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "found": self.found,
            "queued": self.queued,
            "duplicates": self.duplicates,
            "analyzed": self.analyzed,
            "blocked": self.blocked,
            "errors": self.errors,
            "batches": self.batches,
        }


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class ScanScheduler:
    """Drives discovery, classification and presentation for one session."""

    def __init__(
        self,
        engine: ClassificationEngine,
        sink: PresentationSink,
        *,
        store: SessionStore | None = None,
        config: SchedulerConfig | None = None,
        clock: Clock | None = None,
        on_batch: Callable[[list[Fragment]], None] | None = None,
    ) -> None:
        self.engine = engine
        self.sink = sink
        self.store = store or SessionStore()
        self.config = config or SchedulerConfig()
        self.clock = clock or MonotonicClock()
        self.stats = ScanStats()
        self._on_batch = on_batch
        self._coalescer = ChangeCoalescer(self.config.debounce_window)
        self._queue: deque[Fragment] = deque()
        self._worker: asyncio.Task[None] | None = None
        self._flusher: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def coalescer(self) -> ChangeCoalescer:
        return self._coalescer

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    # -- enqueue (synchronous) --

    def enqueue(self, fragment: Fragment) -> bool:
        """Queue *fragment* unless its element or content was already claimed."""
        if self._closed:
            return False
        el = fragment.element
        if self.store.is_claimed(el):
            return False
        if not self.store.claim_hash(fragment.content_hash):
            # Same text seen elsewhere: never re-sent for classification.
            self.store.advance(el, ElementState.DONE)
            self.stats.duplicates += 1
            return False
        self.store.advance(el, ElementState.PENDING)
        self._queue.append(fragment)
        self.stats.queued += 1
        return True

    def discover(self, root: lxml.html.HtmlElement) -> int:
        """Find candidates under *root* and enqueue them; returns how many were queued."""
        fragments = find_candidates(root, self.store)
        self.stats.found += len(fragments)
        queued = sum(1 for f in fragments if self.enqueue(f))
        if queued:
            logger.info("Found %d elements to analyze", queued)
        return queued

    # -- triggers --

    def scan(self, root: lxml.html.HtmlElement) -> int:
        """Discover under *root* now and start processing; returns queued count."""
        queued = self.discover(root)
        self._ensure_worker()
        return queued

    def notify_inserted(self, root: lxml.html.HtmlElement) -> None:
        """Record an inserted subtree; scanned once the debounce window is quiet."""
        if self._closed:
            return
        self._coalescer.notify(root, self.clock.now())
        if self._flusher is None or self._flusher.done():
            self._flusher = asyncio.create_task(self._run_flusher())

    async def wait_idle(self) -> None:
        """Wait until no debounce is armed and the queue is drained."""
        while True:
            tasks = [t for t in (self._flusher, self._worker) if t is not None and not t.done()]
            if not tasks:
                return
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    raise result

    def close(self) -> None:
        """Tear down: drop pending work.  In-flight calls finish unobserved."""
        self._closed = True
        self._coalescer.reset()
        self._queue.clear()
        if self._flusher is not None and not self._flusher.done():
            self._flusher.cancel()

    # -- internals --

    def _ensure_worker(self) -> None:
        if self._closed or not self._queue:
            return
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run_worker())

    async def _run_flusher(self) -> None:
        while self._coalescer.state is CoalescerState.ARMED and not self._closed:
            wait = self._coalescer.remaining(self.clock.now())
            if wait > 0:
                await self.clock.sleep(wait)
                continue
            roots = self._coalescer.drain()
            for root in roots:
                self.discover(root)
            self._ensure_worker()

    async def _run_worker(self) -> None:
        first = True
        while self._queue and not self._closed:
            if not first:
                await self.clock.sleep(self.config.batch_delay)
                if self._closed or not self._queue:
                    break
            n = min(self.config.batch_size, len(self._queue))
            group = [self._queue.popleft() for _ in range(n)]
            self.stats.batches += 1
            if self._on_batch is not None:
                self._on_batch(group)
            await asyncio.gather(*(self._process(f) for f in group))
            first = False
            logger.info("Analyzed %d items (%d blocked)", self.stats.analyzed, self.stats.blocked)

    async def _process(self, fragment: Fragment) -> None:
        el = fragment.element
        self.store.advance(el, ElementState.PROCESSING)
        logger.debug("Analyzing: %s", fragment.preview())

        verdict = await self.engine.evaluate(fragment.raw_text)

        if self._closed:
            logger.debug("Session closed; dropping late verdict for %s", fragment.content_hash)
            return
        self._record(fragment, verdict)

    def _record(self, fragment: Fragment, verdict: Verdict) -> None:
        el = fragment.element
        self.store.advance(el, ElementState.DONE)
        self.stats.analyzed += 1
        if verdict.error:
            self.stats.errors += 1
            logger.error("Classification error: %s", verdict.error)
        elif verdict.should_block:
            self.stats.blocked += 1
            self.store.mark_blocked(el)
            logger.info("Blocking matching content (%s)", verdict.matched_by)
        try:
            self.sink.apply(fragment, verdict)
        except Exception:
            logger.error("Presentation sink failed for %s", fragment.content_hash, exc_info=True)
