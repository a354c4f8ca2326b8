"""Data models for queued actions and resource locks."""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

Operation = Callable[[], Awaitable[Any]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OutcomeStatus(Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class QueuedAction(BaseModel):
    """One unit of asynchronous work waiting for the serial worker.

    `operation` takes no arguments and returns an awaitable. It is not
    invoked until the worker reaches this action.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    operation: Callable[[], Awaitable[Any]]
    created_at: datetime = Field(default_factory=_utcnow)


class ActionOutcome(BaseModel):
    """The settled result of a single queued action."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    action_id: str
    status: OutcomeStatus
    value: Any = None
    error: BaseException | None = None
    completed_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def success(cls, action_id: str, value: Any) -> ActionOutcome:
        return cls(action_id=action_id, status=OutcomeStatus.COMPLETED, value=value)

    @classmethod
    def failure(cls, action_id: str, error: BaseException) -> ActionOutcome:
        return cls(action_id=action_id, status=OutcomeStatus.FAILED, error=error)

    @property
    def is_completed(self) -> bool:
        return self.status == OutcomeStatus.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status == OutcomeStatus.FAILED


class LockGrant(BaseModel):
    """An active lock on a named resource."""

    resource_id: str
    timeout: float
    acquired_at: datetime = Field(default_factory=_utcnow)
    expires_at: datetime

    def is_expired(self) -> bool:
        return _utcnow() >= self.expires_at
