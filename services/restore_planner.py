from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from services.backup_errors import InvalidSnapshot
from services.snapshot_schema import EVERYONE_ROLE_NAME, SnapshotPayload, infer_kind, payload_from_dict


# Channels a restore never creates or touches.
RESERVED_CHANNEL_NAMES = frozenset({"general"})


@dataclass(frozen=True, slots=True)
class RestorePlan:
    to_add: int
    to_update: int
    # Restore never deletes live roles or channels.
    to_remove: int = 0


def coerce_payload(payload: SnapshotPayload | Mapping[str, Any], *, kind: str | None = None) -> SnapshotPayload:
    if isinstance(payload, SnapshotPayload):
        return payload.validate()
    if not isinstance(payload, Mapping):
        raise InvalidSnapshot("Backup data must be an object.")
    return payload_from_dict(kind or infer_kind(payload), payload)


def _live_names(items: Any) -> set[str]:
    return {str(item.name) for item in items or [] if getattr(item, "name", None)}


def plan_restore(guild: Any, payload: SnapshotPayload | Mapping[str, Any], *, kind: str | None = None) -> RestorePlan:
    snapshot = coerce_payload(payload, kind=kind)
    to_add = 0
    to_update = 0

    role_names = _live_names(getattr(guild, "roles", None))
    for role in snapshot.roles or []:
        if role.name == EVERYONE_ROLE_NAME:
            continue
        if role.name in role_names:
            to_update += 1
        else:
            to_add += 1

    channel_names = _live_names(getattr(guild, "channels", None))
    for channel in snapshot.channels or []:
        if channel.name in RESERVED_CHANNEL_NAMES:
            continue
        if channel.name in channel_names:
            to_update += 1
        else:
            to_add += 1

    return RestorePlan(to_add=to_add, to_update=to_update)
