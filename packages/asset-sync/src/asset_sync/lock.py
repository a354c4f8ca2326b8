"""Timed advisory locks keyed by resource id.

Locks live in the memory of one process and one event loop. They guard
against two requests updating the same record at once (for example two
admins editing ``asset-12``), and expire on their own so a holder that never
releases cannot lock a resource out for good.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import NamedTuple

from .config import DEFAULT_LOCK_TIMEOUT, MAX_LOCK_TIMEOUT, SyncConfig
from .exceptions import ResourceBusyError
from .models import LockGrant
from .notifications import LOCK_ACQUIRED, LOCK_EXPIRED, LOCK_RELEASED, EventBus

logger = logging.getLogger(__name__)


def resource_key(kind: str, resource_id: object) -> str:
    """Build a lock key such as ``asset-12``."""
    return f"{kind}-{resource_id}"


class _HeldLock(NamedTuple):
    grant: LockGrant
    timer: asyncio.TimerHandle


class LockService:
    """Grants at most one holder per resource id, with automatic expiry.

    Contention is reported by `acquire_lock` returning False, never by an
    exception. The one error is calling `acquire_lock` outside a running
    event loop, which raises RuntimeError and leaves no lock behind.
    Timeouts are clamped to 0..MAX_LOCK_TIMEOUT seconds; NaN means the
    default. Not reentrant and not thread-safe.
    """

    def __init__(
        self,
        default_timeout: float = DEFAULT_LOCK_TIMEOUT,
        events: EventBus | None = None,
    ) -> None:
        self.default_timeout = default_timeout
        self.events = events or EventBus()
        self._locks: dict[str, _HeldLock] = {}

    @classmethod
    def from_config(cls, config: SyncConfig, events: EventBus | None = None) -> LockService:
        return cls(default_timeout=config.lock_timeout, events=events)

    def acquire_lock(self, resource_id: str, timeout: float | None = None) -> bool:
        """Lock `resource_id` for `timeout` seconds.

        Returns False, changing nothing, if the resource is already locked.
        Must be called from inside a running event loop, which runs the
        expiry timer.
        """
        if resource_id in self._locks:
            logger.debug("Lock on %s is already held", resource_id)
            return False

        timeout = self._clamp_timeout(timeout)
        now = datetime.now(timezone.utc)
        grant = LockGrant(
            resource_id=resource_id,
            timeout=timeout,
            acquired_at=now,
            expires_at=now + timedelta(seconds=timeout),
        )
        timer = asyncio.get_running_loop().call_later(
            timeout, self._expire, resource_id, grant
        )
        self._locks[resource_id] = _HeldLock(grant, timer)
        logger.debug("Acquired lock on %s for %ss", resource_id, timeout)
        self.events.emit(LOCK_ACQUIRED, grant=grant)
        return True

    def release_lock(self, resource_id: str) -> None:
        """Release `resource_id`. A no-op if it is not locked."""
        held = self._locks.pop(resource_id, None)
        if held is None:
            return
        held.timer.cancel()
        logger.debug("Released lock on %s", resource_id)
        self.events.emit(LOCK_RELEASED, grant=held.grant)

    def is_locked(self, resource_id: str) -> bool:
        return resource_id in self._locks

    def grant_for(self, resource_id: str) -> LockGrant | None:
        held = self._locks.get(resource_id)
        return held.grant if held else None

    def held_locks(self) -> list[LockGrant]:
        return [held.grant for held in self._locks.values()]

    def close(self) -> None:
        """Cancel every expiry timer and drop all locks."""
        for held in self._locks.values():
            held.timer.cancel()
        self._locks.clear()

    @asynccontextmanager
    async def hold(
        self, resource_id: str, timeout: float | None = None
    ) -> AsyncIterator[LockGrant]:
        """Hold `resource_id` for the body of an ``async with`` block.

        Raises ResourceBusyError if it is already locked. On exit only the
        grant taken here is released: if it expired and someone else locked
        the resource meanwhile, their lock is left alone.
        """
        if not self.acquire_lock(resource_id, timeout):
            raise ResourceBusyError(resource_id)
        grant = self._locks[resource_id].grant
        try:
            yield grant
        finally:
            if self.grant_for(resource_id) is grant:
                self.release_lock(resource_id)

    def _clamp_timeout(self, timeout: float | None) -> float:
        if timeout is None or math.isnan(timeout):
            timeout = self.default_timeout
        if math.isnan(timeout):
            timeout = DEFAULT_LOCK_TIMEOUT
        return min(max(timeout, 0.0), MAX_LOCK_TIMEOUT)

    def _expire(self, resource_id: str, grant: LockGrant) -> None:
        if self.grant_for(resource_id) is not grant:
            return
        logger.info("Lock on %s expired after %ss", resource_id, grant.timeout)
        self.release_lock(resource_id)
        self.events.emit(LOCK_EXPIRED, grant=grant)
