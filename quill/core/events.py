"""
EventBus — thread-safe, in-process progress notifications.

Composer components publish milestones here instead of printing:
reading and listing a system, packing, cache downloads and unpacks,
install copies, every line a lifecycle script writes, and every
history update. Callers (CLI, tests, the watcher's owner) subscribe
with a callback for the event types they care about.

Thread safety model
───────────────────
- ``_lock`` protects ``_seq``, ``_buffer`` and ``_subscribers``.
- Callbacks run on the publishing thread, outside the lock, so a slow
  subscriber never blocks other publishers from assigning sequence
  numbers. Scripts stream on reader threads; subscribers must be
  thread-safe if they share state.

Message standard
────────────────
Every event is a dict::

    {
        "seq": 47,                  # monotonic sequence
        "ts": 1739648400.123,       # publish time
        "type": "run:stdout",       # <domain>:<milestone>
        "key": "nginx",             # system name (may be empty)
        "data": { ... },            # event-specific payload
    }
"""

from __future__ import annotations

import fnmatch
import logging
import threading
import time
from collections import deque
from typing import Any, Callable

logger = logging.getLogger(__name__)

Subscriber = Callable[[dict], None]


class EventBus:
    """In-process pub/sub with pattern subscriptions and a replay buffer.

    Parameters
    ----------
    buffer_size : int
        Number of recent events kept for ``recent()``.
    """

    def __init__(self, *, buffer_size: int = 500) -> None:
        self._lock = threading.Lock()
        self._seq: int = 0
        self._buffer: deque[dict] = deque(maxlen=buffer_size)
        self._subscribers: list[tuple[str, Subscriber]] = []

    @property
    def seq(self) -> int:
        """Current sequence number (monotonically increasing)."""
        with self._lock:
            return self._seq

    def subscribe(self, pattern: str, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` for event types matching ``pattern``.

        ``pattern`` is a glob over the event type (``run:*``, ``*``).
        Returns a function that removes the subscription.
        """
        entry = (pattern, callback)
        with self._lock:
            self._subscribers.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return unsubscribe

    def publish(
        self,
        event_type: str,
        *,
        key: str = "",
        data: dict[str, Any] | None = None,
    ) -> dict:
        """Deliver an event to every matching subscriber.

        A subscriber that raises is logged and skipped; it never breaks
        the publishing component.
        """
        with self._lock:
            self._seq += 1
            event: dict[str, Any] = {
                "seq": self._seq,
                "ts": time.time(),
                "type": event_type,
                "key": key,
                "data": data or {},
            }
            self._buffer.append(event)
            targets = [cb for pattern, cb in self._subscribers
                       if fnmatch.fnmatchcase(event_type, pattern)]

        for callback in targets:
            try:
                callback(event)
            except Exception:
                logger.exception("Event subscriber failed on %s", event_type)

        return event

    def recent(self, pattern: str = "*", since: int = 0) -> list[dict]:
        """Buffered events with ``seq > since`` matching ``pattern``."""
        with self._lock:
            return [
                e for e in self._buffer
                if e["seq"] > since and fnmatch.fnmatchcase(e["type"], pattern)
            ]
