from __future__ import annotations

from typing import Iterable


class BackupError(Exception):
    """Base class for backup engine failures that are shown to the user."""

    title = "Backup Error"
    remediation = "Try again in a few moments."


class QuotaExceeded(BackupError):
    title = "Backup Limit Reached"
    remediation = "Delete an old backup with `/backup delete` before creating a new one."

    def __init__(self, limit: int) -> None:
        self.limit = int(limit)
        super().__init__(f"You have reached the maximum of {self.limit} backups for this server.")


class SnapshotNotFound(BackupError):
    title = "Backup Not Found"
    remediation = "Check the ID with `/backup list`. Only your own backups of this server are visible."

    def __init__(self, snapshot_id: str) -> None:
        self.snapshot_id = snapshot_id
        super().__init__(f"No backup found with ID: `{snapshot_id}`")


class InsufficientPermissions(BackupError):
    title = "Insufficient Bot Permissions"
    remediation = "Ask a server administrator to grant the bot these permissions in Server Settings > Roles."

    def __init__(self, missing: Iterable[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Bot is missing required permissions: {', '.join(self.missing)}")


class InvalidSnapshot(BackupError):
    title = "Invalid Backup Data"
    remediation = "The stored backup is malformed. Create a fresh backup."


class ItemApplyError(BackupError):
    """A single role, channel or setting that could not be applied during a restore."""

    title = "Restore Item Failed"

    def __init__(self, item_kind: str, item_name: str, reason: str) -> None:
        self.item_kind = item_kind
        self.item_name = item_name
        self.reason = reason
        super().__init__(reason)
