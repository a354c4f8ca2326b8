"""Custom exceptions for the asset sync primitives."""

from __future__ import annotations

from pathlib import Path


class AssetSyncError(Exception):
    """Base exception for asset sync errors."""


class ActionFailedError(AssetSyncError):
    """Raised to the caller awaiting an action whose operation failed.

    The original failure is kept on `error` and chained as `__cause__`.
    """

    status_code = 400

    def __init__(self, action_id: str, error: BaseException) -> None:
        self.action_id = action_id
        self.error = error
        self.detail = str(error) or type(error).__name__
        super().__init__(f"Action {action_id} failed: {self.detail}")


class QueueClosedError(AssetSyncError):
    """Raised when submitting to a queue that has been closed."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Action queue is closed: {name}")
        self.name = name


class ResourceBusyError(AssetSyncError):
    """Raised when a resource is already locked by another holder."""

    status_code = 409

    def __init__(self, resource_id: str) -> None:
        super().__init__(f"Resource is locked: {resource_id}")
        self.resource_id = resource_id


class ConfigError(AssetSyncError):
    """Raised when a config file cannot be read or validated."""

    def __init__(self, path: str | Path, reason: str) -> None:
        super().__init__(f"Invalid config {path}: {reason}")
        self.path = Path(path)
        self.reason = reason
