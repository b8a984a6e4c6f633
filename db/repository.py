from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol

from services.snapshot_schema import SnapshotPayload, decode_payload


@dataclass(frozen=True, slots=True)
class SnapshotRecord:
    snapshot_id: str
    guild_id: int
    guild_name: str
    owner_user_id: int
    kind: str
    description: str
    created_at_ms: int
    payload_json: str
    size_bytes: int

    @property
    def payload(self) -> SnapshotPayload:
        return decode_payload(self.kind, self.payload_json)


@dataclass(slots=True)
class ScheduleRecord:
    guild_id: int
    frequency: str
    created_by_user_id: int
    next_backup_at_ms: int
    last_backup_at_ms: int | None = None
    enabled: bool = True


class SnapshotRepository(Protocol):
    async def count_snapshots(self, guild_id: int, owner_user_id: int) -> int: ...

    async def insert_snapshot(self, record: SnapshotRecord) -> None: ...

    async def list_snapshots(self, guild_id: int, owner_user_id: int) -> List[SnapshotRecord]: ...

    async def get_snapshot(self, snapshot_id: str, guild_id: int, owner_user_id: int) -> Optional[SnapshotRecord]: ...

    async def delete_snapshot(self, snapshot_id: str, guild_id: int, owner_user_id: int) -> bool: ...

    async def upsert_schedule(self, record: ScheduleRecord) -> None: ...

    async def get_schedule(self, guild_id: int) -> Optional[ScheduleRecord]: ...

    async def delete_schedule(self, guild_id: int) -> bool: ...

    async def list_schedules(self) -> List[ScheduleRecord]: ...


class InMemoryRepository:
    def __init__(self) -> None:
        self.snapshots: Dict[str, SnapshotRecord] = {}
        self.schedules: Dict[int, ScheduleRecord] = {}

    @staticmethod
    def _owned(record: SnapshotRecord, guild_id: int, owner_user_id: int) -> bool:
        return record.guild_id == int(guild_id) and record.owner_user_id == int(owner_user_id)

    async def count_snapshots(self, guild_id: int, owner_user_id: int) -> int:
        return sum(1 for row in self.snapshots.values() if self._owned(row, guild_id, owner_user_id))

    async def insert_snapshot(self, record: SnapshotRecord) -> None:
        if record.snapshot_id in self.snapshots:
            raise ValueError(f"Duplicate snapshot id: {record.snapshot_id}")
        self.snapshots[record.snapshot_id] = record

    async def list_snapshots(self, guild_id: int, owner_user_id: int) -> List[SnapshotRecord]:
        rows = [row for row in self.snapshots.values() if self._owned(row, guild_id, owner_user_id)]
        rows.sort(key=lambda row: (row.created_at_ms, row.snapshot_id), reverse=True)
        return rows

    async def get_snapshot(self, snapshot_id: str, guild_id: int, owner_user_id: int) -> Optional[SnapshotRecord]:
        row = self.snapshots.get(str(snapshot_id))
        if row is None or not self._owned(row, guild_id, owner_user_id):
            return None
        return row

    async def delete_snapshot(self, snapshot_id: str, guild_id: int, owner_user_id: int) -> bool:
        row = await self.get_snapshot(snapshot_id, guild_id, owner_user_id)
        if row is None:
            return False
        del self.snapshots[row.snapshot_id]
        return True

    async def upsert_schedule(self, record: ScheduleRecord) -> None:
        self.schedules[int(record.guild_id)] = record

    async def get_schedule(self, guild_id: int) -> Optional[ScheduleRecord]:
        return self.schedules.get(int(guild_id))

    async def delete_schedule(self, guild_id: int) -> bool:
        return self.schedules.pop(int(guild_id), None) is not None

    async def list_schedules(self) -> List[ScheduleRecord]:
        return sorted(self.schedules.values(), key=lambda row: row.guild_id)
