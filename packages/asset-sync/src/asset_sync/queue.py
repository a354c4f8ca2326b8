"""Serial action queue: one worker, submission order, per-action results."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from .exceptions import ActionFailedError, QueueClosedError
from .models import ActionOutcome, Operation, QueuedAction
from .notifications import (
    ACTION_COMPLETED,
    ACTION_FAILED,
    ACTION_SUBMITTED,
    EventBus,
)

logger = logging.getLogger(__name__)


class ActionQueue:
    """Runs submitted actions strictly one at a time, in submission order.

    Typical use from a request handler::

        action = queue.create_action(lambda: service.create_assignment(dto))
        queue.submit(action)
        return await queue.wait(action.id)

    Each submitted id owns a single-use future. The worker resolves it once
    the operation settles and the first `wait` for that id consumes it. A
    failing operation is reported only to its own waiter and never stops the
    worker. The pending sequence is unbounded.
    """

    def __init__(self, name: str = "actions", events: EventBus | None = None) -> None:
        self.name = name
        self.events = events or EventBus()
        self._pending: asyncio.Queue[QueuedAction] = asyncio.Queue()
        self._results: dict[str, asyncio.Future[ActionOutcome]] = {}
        self._in_flight: set[str] = set()
        self._waiters: dict[str, int] = {}
        self._worker: asyncio.Task[None] | None = None
        self._closed = False

    async def __aenter__(self) -> ActionQueue:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def pending(self) -> int:
        """Number of submitted actions the worker has not started yet."""
        return self._pending.qsize()

    @property
    def closed(self) -> bool:
        return self._closed

    # ── Submission ──

    def create_action(self, operation: Operation) -> QueuedAction:
        """Wrap an operation with a fresh id. Nothing is scheduled."""
        return QueuedAction(operation=operation)

    def submit(self, action: QueuedAction) -> None:
        """Append an action to the pending sequence.

        Must be called from inside a running event loop; the worker task is
        started on first use.
        """
        if self._closed:
            raise QueueClosedError(self.name)
        self._ensure_worker()
        self._future_for(action.id)
        self._in_flight.add(action.id)
        self._pending.put_nowait(action)
        logger.debug(
            "Queued action %s on %s (%d pending)", action.id, self.name, self.pending
        )
        self.events.emit(ACTION_SUBMITTED, action=action)

    async def wait(self, action_id: str) -> Any:
        """Wait for the outcome of `action_id` and return its value.

        Raises ActionFailedError if the operation failed. Blocks forever for
        an id that is never submitted; wrap in `asyncio.wait_for` for a
        deadline. A cancelled wait on a submitted action leaves the outcome in
        place for a later call; one on an unknown id leaves nothing behind.
        """
        future = self._future_for(action_id)
        self._waiters[action_id] = self._waiters.get(action_id, 0) + 1
        try:
            outcome = await asyncio.shield(future)
        except asyncio.CancelledError:
            if (
                self._waiters[action_id] == 1
                and action_id not in self._in_flight
                and not future.done()
                and self._results.get(action_id) is future
            ):
                del self._results[action_id]
            raise
        finally:
            self._waiters[action_id] -= 1
            if not self._waiters[action_id]:
                del self._waiters[action_id]

        if self._results.get(action_id) is future:
            del self._results[action_id]

        if outcome.is_failed:
            raise ActionFailedError(action_id, outcome.error) from outcome.error
        return outcome.value

    async def run(self, operation: Operation) -> Any:
        """Create, submit and wait for an operation in one call."""
        action = self.create_action(operation)
        self.submit(action)
        return await self.wait(action.id)

    async def close(self) -> None:
        """Stop accepting work, let queued actions finish, stop the worker."""
        self._closed = True
        if self._worker is None:
            return
        await self._pending.join()
        self._worker.cancel()
        await asyncio.gather(self._worker, return_exceptions=True)
        self._worker = None
        logger.debug("Closed action queue %s", self.name)

    # ── Worker ──

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            loop = asyncio.get_running_loop()
            self._worker = loop.create_task(self._drain(), name=f"{self.name}-worker")

    def _future_for(self, action_id: str) -> asyncio.Future[ActionOutcome]:
        future = self._results.get(action_id)
        if future is None:
            future = asyncio.get_running_loop().create_future()
            self._results[action_id] = future
        return future

    async def _drain(self) -> None:
        while True:
            action = await self._pending.get()
            try:
                self._publish(await self._execute(action))
            finally:
                self._pending.task_done()

    async def _execute(self, action: QueuedAction) -> ActionOutcome:
        logger.debug("Running action %s", action.id)
        try:
            value = await action.operation()
        except asyncio.CancelledError as exc:
            # Only a cancellation of the worker itself should stop the loop
            if asyncio.current_task().cancelling():
                raise
            return ActionOutcome.failure(action.id, exc)
        except (KeyboardInterrupt, SystemExit):
            raise
        except BaseException as exc:
            logger.debug("Action %s failed: %r", action.id, exc)
            return ActionOutcome.failure(action.id, exc)
        return ActionOutcome.success(action.id, value)

    def _publish(self, outcome: ActionOutcome) -> None:
        self._in_flight.discard(outcome.action_id)
        future = self._future_for(outcome.action_id)
        if future.done():
            logger.warning(
                "Dropping outcome for action %s: an earlier outcome is unconsumed",
                outcome.action_id,
            )
            return
        future.set_result(outcome)

        event = ACTION_COMPLETED if outcome.is_completed else ACTION_FAILED
        self.events.emit(event, outcome=outcome)
