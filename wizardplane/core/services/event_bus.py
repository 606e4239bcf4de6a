"""
EventBus — thread-safe, in-process pub/sub with bounded replay.

Carries the control-plane → UI push channels (``step.progress``,
``step.completed``, ``navigation.changed``, ``detection.result``,
``env.persisted``).  Nothing publishes here directly: the gateway's
``emit`` checks the push whitelist and the payload schema first.

Thread safety model
───────────────────
- ``_lock`` protects ``_seq``, ``_buffer``, ``_subscribers`` and
  ``_latest``.
- Each subscriber owns a ``queue.Queue``; ``publish`` pushes into all
  of them under the lock.  A subscriber whose queue is full is dropped.

Message format (v1)::

    {
        "v": 1,
        "ts": 1739648400.123,       # server timestamp
        "seq": 47,                  # monotonic sequence
        "type": "step.progress",    # push channel name
        "key": "nodejs-install",    # resource identifier (step, component…)
        "data": { ... },            # channel payload (camelCase)
    }
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections import deque
from collections.abc import Generator
from typing import Any

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = 1


class EventBus:
    """In-process pub/sub with a replay ring buffer.

    Parameters
    ----------
    buffer_size : int
        Events kept for replay.  A subscriber resuming from a sequence
        number older than the buffer gets a ``state.snapshot`` instead.
    subscriber_queue_size : int
        Backlog per subscriber before it is dropped.
    """

    def __init__(
        self,
        *,
        buffer_size: int = 500,
        subscriber_queue_size: int = 200,
    ) -> None:
        self._lock = threading.Lock()
        self._seq: int = 0
        self._buffer: deque[dict] = deque(maxlen=buffer_size)
        self._subscribers: list[queue.Queue[dict]] = []
        self._subscriber_queue_size = subscriber_queue_size
        self._latest: dict[tuple[str, str], dict] = {}

    @property
    def seq(self) -> int:
        with self._lock:
            return self._seq

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    # ── Publishing ──────────────────────────────────────────────

    def publish(self, event_type: str, *, key: str = "", data: dict[str, Any] | None = None) -> dict:
        """Broadcast an event and return it with its ``seq`` assigned."""
        with self._lock:
            self._seq += 1
            event: dict[str, Any] = {
                "v": _SCHEMA_VERSION,
                "ts": time.time(),
                "seq": self._seq,
                "type": event_type,
                "key": key,
                "data": data or {},
            }
            self._buffer.append(event)
            self._latest[(event_type, key)] = event

            dead: list[queue.Queue[dict]] = []
            for q in self._subscribers:
                try:
                    q.put_nowait(event)
                except queue.Full:
                    dead.append(q)
            for q in dead:
                self._subscribers.remove(q)
                logger.info("Dropped unresponsive subscriber (queue full)")

        logger.debug("event %s key=%s seq=%d", event_type, key or "-", event["seq"])
        return event

    def history(self, *, since: int = 0) -> list[dict]:
        """Buffered events with ``seq > since`` (non-blocking)."""
        with self._lock:
            return [e for e in self._buffer if e["seq"] > since]

    # ── Subscribing ─────────────────────────────────────────────

    def subscribe(
        self,
        *,
        since: int = 0,
        heartbeat_interval: float = 30.0,
    ) -> Generator[dict, None, None]:
        """Yield events for one client; blocks between events.

        Replays buffered events after ``since`` when the buffer still
        covers it, otherwise starts with a ``state.snapshot``.  Sends a
        ``sys.heartbeat`` (not buffered) when idle.
        """
        q: queue.Queue[dict] = queue.Queue(maxsize=self._subscriber_queue_size)
        need_snapshot = True

        with self._lock:
            if since > 0 and self._buffer and since >= self._buffer[0]["seq"] - 1:
                missed = [e for e in self._buffer if e["seq"] > since]
                if len(missed) <= self._subscriber_queue_size:
                    need_snapshot = False
                    for event in missed:
                        q.put_nowait(event)
            self._subscribers.append(q)

        logger.info("Subscriber connected (since=%d, snapshot=%s)", since, need_snapshot)

        try:
            if need_snapshot:
                yield self._make_snapshot_event()
            while True:
                try:
                    yield q.get(timeout=heartbeat_interval)
                except queue.Empty:
                    yield {"v": _SCHEMA_VERSION, "ts": time.time(), "seq": self.seq,
                           "type": "sys.heartbeat", "key": "", "data": {}}
        finally:
            with self._lock:
                if q in self._subscribers:
                    self._subscribers.remove(q)
            logger.info("Subscriber disconnected")

    def _make_snapshot_event(self) -> dict:
        """Latest event per (type, key); sent only to the connecting client."""
        with self._lock:
            latest = sorted(self._latest.values(), key=lambda e: e["seq"])
            return {
                "v": _SCHEMA_VERSION,
                "ts": time.time(),
                "seq": self._seq,
                "type": "state.snapshot",
                "key": "",
                "data": {"events": latest},
            }
