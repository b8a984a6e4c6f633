from __future__ import annotations

from typing import List, Optional

from sqlalchemy import delete, func, select

from bot.config import BotConfig
from db.models import BackupSchedule, GuildSnapshot
from db.repository import ScheduleRecord, SnapshotRecord
from db.session import SessionManager


class SqlRepository:
    """Snapshot and schedule storage on top of the async SQLAlchemy session."""

    def __init__(self, config: BotConfig, *, session_manager: SessionManager | None = None) -> None:
        self.session_manager = session_manager or SessionManager(config)

    async def create_schema(self) -> None:
        await self.session_manager.create_schema()

    async def dispose(self) -> None:
        await self.session_manager.dispose()

    @staticmethod
    def _snapshot_record(row: GuildSnapshot) -> SnapshotRecord:
        return SnapshotRecord(
            snapshot_id=row.snapshot_id,
            guild_id=int(row.guild_id),
            guild_name=row.guild_name,
            owner_user_id=int(row.owner_user_id),
            kind=row.kind,
            description=row.description,
            created_at_ms=int(row.created_at_ms),
            payload_json=row.payload_json,
            size_bytes=int(row.size_bytes),
        )

    @staticmethod
    def _schedule_record(row: BackupSchedule) -> ScheduleRecord:
        return ScheduleRecord(
            guild_id=int(row.guild_id),
            frequency=row.frequency,
            created_by_user_id=int(row.created_by_user_id),
            next_backup_at_ms=int(row.next_backup_at_ms),
            last_backup_at_ms=int(row.last_backup_at_ms) if row.last_backup_at_ms is not None else None,
            enabled=bool(row.enabled),
        )

    @staticmethod
    def _owned_clause(guild_id: int, owner_user_id: int):
        return (GuildSnapshot.guild_id == int(guild_id)) & (GuildSnapshot.owner_user_id == int(owner_user_id))

    async def count_snapshots(self, guild_id: int, owner_user_id: int) -> int:
        async with self.session_manager.session_scope() as session:
            result = await session.execute(
                select(func.count()).select_from(GuildSnapshot).where(self._owned_clause(guild_id, owner_user_id))
            )
            return int(result.scalar_one())

    async def insert_snapshot(self, record: SnapshotRecord) -> None:
        async with self.session_manager.session_scope() as session:
            session.add(
                GuildSnapshot(
                    snapshot_id=record.snapshot_id,
                    guild_id=record.guild_id,
                    guild_name=record.guild_name,
                    owner_user_id=record.owner_user_id,
                    kind=record.kind,
                    description=record.description,
                    created_at_ms=record.created_at_ms,
                    payload_json=record.payload_json,
                    size_bytes=record.size_bytes,
                )
            )

    async def list_snapshots(self, guild_id: int, owner_user_id: int) -> List[SnapshotRecord]:
        async with self.session_manager.session_scope() as session:
            result = await session.execute(
                select(GuildSnapshot)
                .where(self._owned_clause(guild_id, owner_user_id))
                .order_by(GuildSnapshot.created_at_ms.desc(), GuildSnapshot.snapshot_id.desc())
            )
            return [self._snapshot_record(row) for row in result.scalars().all()]

    async def get_snapshot(self, snapshot_id: str, guild_id: int, owner_user_id: int) -> Optional[SnapshotRecord]:
        async with self.session_manager.session_scope() as session:
            result = await session.execute(
                select(GuildSnapshot).where(
                    (GuildSnapshot.snapshot_id == str(snapshot_id)) & self._owned_clause(guild_id, owner_user_id)
                )
            )
            row = result.scalar_one_or_none()
            return self._snapshot_record(row) if row is not None else None

    async def delete_snapshot(self, snapshot_id: str, guild_id: int, owner_user_id: int) -> bool:
        async with self.session_manager.session_scope() as session:
            result = await session.execute(
                delete(GuildSnapshot).where(
                    (GuildSnapshot.snapshot_id == str(snapshot_id)) & self._owned_clause(guild_id, owner_user_id)
                )
            )
            return int(result.rowcount or 0) == 1

    async def upsert_schedule(self, record: ScheduleRecord) -> None:
        async with self.session_manager.session_scope() as session:
            row = await session.get(BackupSchedule, int(record.guild_id))
            if row is None:
                row = BackupSchedule(guild_id=int(record.guild_id))
                session.add(row)
            row.frequency = record.frequency
            row.created_by_user_id = int(record.created_by_user_id)
            row.next_backup_at_ms = int(record.next_backup_at_ms)
            row.last_backup_at_ms = record.last_backup_at_ms
            row.enabled = bool(record.enabled)

    async def get_schedule(self, guild_id: int) -> Optional[ScheduleRecord]:
        async with self.session_manager.session_scope() as session:
            row = await session.get(BackupSchedule, int(guild_id))
            return self._schedule_record(row) if row is not None else None

    async def delete_schedule(self, guild_id: int) -> bool:
        async with self.session_manager.session_scope() as session:
            result = await session.execute(delete(BackupSchedule).where(BackupSchedule.guild_id == int(guild_id)))
            return int(result.rowcount or 0) > 0

    async def list_schedules(self) -> List[ScheduleRecord]:
        async with self.session_manager.session_scope() as session:
            result = await session.execute(select(BackupSchedule).order_by(BackupSchedule.guild_id))
            return [self._schedule_record(row) for row in result.scalars().all()]
