"""Tests for the timed resource lock service."""

from __future__ import annotations

import asyncio
import math

import pytest

from asset_sync import (
    LOCK_ACQUIRED,
    LOCK_EXPIRED,
    LOCK_RELEASED,
    LockService,
    ResourceBusyError,
    SyncConfig,
    resource_key,
)
from asset_sync.config import DEFAULT_LOCK_TIMEOUT, MAX_LOCK_TIMEOUT


class TestLockService:
    def setup_method(self) -> None:
        self.locks = LockService()

    def teardown_method(self) -> None:
        self.locks.close()

    @pytest.mark.asyncio
    async def test_acquire_contend_release(self) -> None:
        assert self.locks.acquire_lock("r1") is True
        assert self.locks.acquire_lock("r1") is False
        self.locks.release_lock("r1")
        assert self.locks.acquire_lock("r1") is True

    @pytest.mark.asyncio
    async def test_failed_acquire_leaves_existing_grant(self) -> None:
        self.locks.acquire_lock("r1", 5)
        grant = self.locks.grant_for("r1")

        assert self.locks.acquire_lock("r1", 10) is False
        assert self.locks.grant_for("r1") is grant
        assert grant.timeout == 5

    @pytest.mark.asyncio
    async def test_lock_expires(self) -> None:
        assert self.locks.acquire_lock("r2", 0.05) is True
        assert self.locks.acquire_lock("r2") is False

        await asyncio.sleep(0.1)

        assert not self.locks.is_locked("r2")
        assert self.locks.acquire_lock("r2") is True

    @pytest.mark.asyncio
    async def test_expiry_goes_through_release(self, monkeypatch) -> None:
        released: list[str] = []
        original = self.locks.release_lock

        def tracking_release(resource_id: str) -> None:
            released.append(resource_id)
            original(resource_id)

        monkeypatch.setattr(self.locks, "release_lock", tracking_release)
        self.locks.acquire_lock("3", 0.02)
        await asyncio.sleep(0.05)

        assert released == ["3"]

    @pytest.mark.asyncio
    async def test_release_unlocked_is_noop(self) -> None:
        assert self.locks.release_lock("never-locked") is None
        self.locks.release_lock("never-locked")
        assert not self.locks.is_locked("never-locked")
        assert self.locks.held_locks() == []

    @pytest.mark.asyncio
    async def test_independent_resources(self) -> None:
        assert self.locks.acquire_lock("r3") is True
        assert self.locks.acquire_lock("r4") is True

        self.locks.release_lock("r3")

        assert not self.locks.is_locked("r3")
        assert self.locks.is_locked("r4")
        assert self.locks.acquire_lock("r4") is False
        assert self.locks.acquire_lock("r3") is True

    @pytest.mark.asyncio
    async def test_release_cancels_expiry(self) -> None:
        self.locks.acquire_lock("r5", 0.03)
        self.locks.release_lock("r5")
        self.locks.acquire_lock("r5", 1)

        await asyncio.sleep(0.06)

        # The first timer must not release the second grant
        assert self.locks.is_locked("r5")

    @pytest.mark.asyncio
    async def test_default_timeout_and_grant(self) -> None:
        self.locks.acquire_lock("asset-1")
        grant = self.locks.grant_for("asset-1")

        assert grant is not None
        assert grant.resource_id == "asset-1"
        assert grant.timeout == DEFAULT_LOCK_TIMEOUT
        assert grant.expires_at > grant.acquired_at
        assert not grant.is_expired()
        assert self.locks.held_locks() == [grant]

    @pytest.mark.asyncio
    async def test_from_config(self) -> None:
        locks = LockService.from_config(SyncConfig(lock_timeout=7))
        locks.acquire_lock("asset-9")
        assert locks.grant_for("asset-9").timeout == 7
        locks.close()

    @pytest.mark.asyncio
    async def test_close_drops_everything(self) -> None:
        self.locks.acquire_lock("a", 0.02)
        self.locks.acquire_lock("b", 0.02)

        self.locks.close()
        await asyncio.sleep(0.04)

        assert self.locks.held_locks() == []
        assert self.locks.acquire_lock("a") is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("timeout", [math.inf, 1e15, MAX_LOCK_TIMEOUT * 2])
    async def test_huge_timeout_is_clamped(self, timeout: float) -> None:
        assert self.locks.acquire_lock("big", timeout) is True
        assert self.locks.grant_for("big").timeout == MAX_LOCK_TIMEOUT

    @pytest.mark.asyncio
    async def test_nan_timeout_uses_default(self) -> None:
        assert self.locks.acquire_lock("nan", math.nan) is True
        assert self.locks.grant_for("nan").timeout == DEFAULT_LOCK_TIMEOUT

    @pytest.mark.asyncio
    async def test_negative_timeout_expires_immediately(self) -> None:
        assert self.locks.acquire_lock("neg", -math.inf) is True
        assert self.locks.grant_for("neg").timeout == 0.0
        await asyncio.sleep(0.01)
        assert not self.locks.is_locked("neg")

    def test_acquire_requires_running_loop(self) -> None:
        with pytest.raises(RuntimeError):
            self.locks.acquire_lock("no-loop")
        assert not self.locks.is_locked("no-loop")


class TestHold:
    def setup_method(self) -> None:
        self.locks = LockService()

    def teardown_method(self) -> None:
        self.locks.close()

    @pytest.mark.asyncio
    async def test_hold_releases_on_exit(self) -> None:
        async with self.locks.hold("asset-12", 1) as grant:
            assert grant.resource_id == "asset-12"
            assert self.locks.is_locked("asset-12")
        assert not self.locks.is_locked("asset-12")

    @pytest.mark.asyncio
    async def test_hold_releases_on_error(self) -> None:
        with pytest.raises(ValueError):
            async with self.locks.hold("asset-12"):
                raise ValueError("update failed")
        assert not self.locks.is_locked("asset-12")

    @pytest.mark.asyncio
    async def test_hold_busy_resource(self) -> None:
        self.locks.acquire_lock("asset-12")

        with pytest.raises(ResourceBusyError) as exc_info:
            async with self.locks.hold("asset-12"):
                pytest.fail("body must not run")

        assert exc_info.value.resource_id == "asset-12"
        assert exc_info.value.status_code == 409
        assert self.locks.is_locked("asset-12")

    @pytest.mark.asyncio
    async def test_hold_leaves_newer_grant_alone(self) -> None:
        async with self.locks.hold("asset-12", 0.02):
            await asyncio.sleep(0.05)
            # Expired while held, then taken by another request
            assert self.locks.acquire_lock("asset-12", 1) is True
            newer = self.locks.grant_for("asset-12")

        assert self.locks.grant_for("asset-12") is newer


class TestLockEvents:
    @pytest.mark.asyncio
    async def test_lifecycle_events(self) -> None:
        locks = LockService()
        events: list[tuple[str, str]] = []
        for name in (LOCK_ACQUIRED, LOCK_RELEASED, LOCK_EXPIRED):
            locks.events.on(name, lambda grant, name=name: events.append((name, grant.resource_id)))

        locks.acquire_lock("a", 1)
        locks.release_lock("a")
        locks.acquire_lock("b", 0.02)
        await asyncio.sleep(0.05)

        assert events == [
            (LOCK_ACQUIRED, "a"),
            (LOCK_RELEASED, "a"),
            (LOCK_ACQUIRED, "b"),
            (LOCK_RELEASED, "b"),
            (LOCK_EXPIRED, "b"),
        ]
        locks.close()


def test_resource_key() -> None:
    assert resource_key("asset", 12) == "asset-12"
    assert resource_key("assignment", "a1") == "assignment-a1"
