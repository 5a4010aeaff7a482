"""Process-local cache of granted metric permissions.

Grants are sticky until ``clear()``; denials are never cached, so a kind the
user declined is asked for again on the next collection run.
"""

from __future__ import annotations

import asyncio
import logging
import threading

from lifelog.telemetry.base import MetricKind

logger = logging.getLogger("lifelog.telemetry.permissions")


class PermissionCache:
    """Tracks which metric kinds have been authorized.

    Reads and writes are guarded by a lock so the cache can be shared by
    concurrent fetches (and threads); granting the same kind twice is a no-op.

    Usage::

        cache = PermissionCache()
        if not cache.is_authorized(MetricKind.STEP_COUNT):
            ...request permission...
            cache.grant(MetricKind.STEP_COUNT)
    """

    def __init__(self) -> None:
        self._authorized: set[MetricKind] = set()
        self._lock = threading.Lock()
        self._request_locks: dict[MetricKind, asyncio.Lock] = {}

    def is_authorized(self, kind: MetricKind) -> bool:
        with self._lock:
            return kind in self._authorized

    def grant(self, kind: MetricKind) -> None:
        with self._lock:
            self._authorized.add(kind)

    def authorized_kinds(self) -> list[MetricKind]:
        """Return every granted kind, in declaration order."""
        with self._lock:
            return [k for k in MetricKind if k in self._authorized]

    def clear(self) -> None:
        """Forget every grant.  The next fetch of each kind prompts again."""
        with self._lock:
            self._authorized.clear()
            self._request_locks.clear()
        logger.info("Permission cache cleared")

    def lock_for(self, kind: MetricKind) -> asyncio.Lock:
        """Per-kind lock serializing first-time permission requests."""
        with self._lock:
            lock = self._request_locks.get(kind)
            if lock is None:
                lock = self._request_locks[kind] = asyncio.Lock()
            return lock

    def __len__(self) -> int:
        with self._lock:
            return len(self._authorized)
