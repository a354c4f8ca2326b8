"""Asset Sync: serial action queue and timed resource locks for the asset backend."""

from .config import SyncConfig, configure_logging, load_config
from .exceptions import (
    ActionFailedError,
    AssetSyncError,
    ConfigError,
    QueueClosedError,
    ResourceBusyError,
)
from .lock import LockService, resource_key
from .models import ActionOutcome, LockGrant, OutcomeStatus, QueuedAction
from .notifications import (
    ACTION_COMPLETED,
    ACTION_FAILED,
    ACTION_SUBMITTED,
    LOCK_ACQUIRED,
    LOCK_EXPIRED,
    LOCK_RELEASED,
    EventBus,
)
from .queue import ActionQueue

__all__ = [
    "ActionQueue",
    "LockService",
    "resource_key",
    "QueuedAction",
    "ActionOutcome",
    "OutcomeStatus",
    "LockGrant",
    "EventBus",
    "SyncConfig",
    "load_config",
    "configure_logging",
    "AssetSyncError",
    "ActionFailedError",
    "QueueClosedError",
    "ResourceBusyError",
    "ConfigError",
    "ACTION_SUBMITTED",
    "ACTION_COMPLETED",
    "ACTION_FAILED",
    "LOCK_ACQUIRED",
    "LOCK_RELEASED",
    "LOCK_EXPIRED",
]
