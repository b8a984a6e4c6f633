from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Callable

from db.repository import ScheduleRecord, SnapshotRepository
from services.backup_errors import InvalidSnapshot, QuotaExceeded
from services.backup_store import BackupStore, now_ms
from services.snapshot_serializer import serialize_guild


log = logging.getLogger("guildvault.backup")

DAY_MS = 24 * 60 * 60 * 1000
SCHEDULE_INTERVALS_MS = {
    "daily": DAY_MS,
    "weekly": 7 * DAY_MS,
    "monthly": 30 * DAY_MS,
}
SCHEDULE_FREQUENCIES = tuple(SCHEDULE_INTERVALS_MS)
SCHEDULED_BACKUP_KIND = "full"


def require_frequency(frequency: str) -> str:
    normalized = str(frequency or "").strip().lower()
    if normalized not in SCHEDULE_INTERVALS_MS:
        raise InvalidSnapshot(f"Unknown schedule frequency: {frequency!r}")
    return normalized


def next_backup_at(frequency: str, from_ms: int) -> int:
    return int(from_ms) + SCHEDULE_INTERVALS_MS[require_frequency(frequency)]


class ScheduleService:
    def __init__(self, repo: SnapshotRepository) -> None:
        self.repo = repo

    async def set_schedule(self, guild_id: int, frequency: str, user_id: int, *, now: int | None = None) -> ScheduleRecord:
        frequency = require_frequency(frequency)
        at_ms = now if now is not None else now_ms()
        record = ScheduleRecord(
            guild_id=int(guild_id),
            frequency=frequency,
            created_by_user_id=int(user_id),
            next_backup_at_ms=next_backup_at(frequency, at_ms),
        )
        await self.repo.upsert_schedule(record)
        log.info("Backup schedule set guild_id=%s frequency=%s user_id=%s", guild_id, frequency, user_id)
        return record

    async def disable(self, guild_id: int) -> bool:
        removed = await self.repo.delete_schedule(int(guild_id))
        if removed:
            log.info("Backup schedule disabled guild_id=%s", guild_id)
        return removed

    async def get(self, guild_id: int) -> ScheduleRecord | None:
        return await self.repo.get_schedule(int(guild_id))

    async def due_schedules(self, *, now: int | None = None) -> list[ScheduleRecord]:
        at_ms = now if now is not None else now_ms()
        return [row for row in await self.repo.list_schedules() if row.enabled and row.next_backup_at_ms <= at_ms]

    async def mark_ran(self, guild_id: int, *, now: int | None = None) -> ScheduleRecord | None:
        record = await self.repo.get_schedule(int(guild_id))
        if record is None:
            return None
        at_ms = now if now is not None else now_ms()
        record.last_backup_at_ms = at_ms
        record.next_backup_at_ms = next_backup_at(record.frequency, at_ms)
        await self.repo.upsert_schedule(record)
        return record


@dataclass(slots=True)
class ScheduledRunResult:
    created: int = 0
    skipped: int = 0
    failed: int = 0


class ScheduledBackupRunner:
    """Creates the full snapshots for every schedule that is due."""

    def __init__(
        self,
        schedules: ScheduleService,
        store: BackupStore,
        guild_lookup: Callable[[int], Any],
    ) -> None:
        self.schedules = schedules
        self.store = store
        self.guild_lookup = guild_lookup

    async def run_once(self, *, now: int | None = None) -> ScheduledRunResult:
        at_ms = now if now is not None else now_ms()
        result = ScheduledRunResult()
        for schedule in await self.schedules.due_schedules(now=at_ms):
            guild = self.guild_lookup(schedule.guild_id)
            if guild is None:
                log.info("Scheduled backup skipped guild_id=%s reason=guild_unavailable", schedule.guild_id)
                result.skipped += 1
                continue

            try:
                payload = serialize_guild(guild, SCHEDULED_BACKUP_KIND)
                await self.store.create(
                    guild_id=schedule.guild_id,
                    guild_name=str(guild.name),
                    owner_user_id=schedule.created_by_user_id,
                    kind=SCHEDULED_BACKUP_KIND,
                    payload=payload,
                    description=f"Scheduled {schedule.frequency} backup",
                    created_at_ms=at_ms,
                )
                result.created += 1
            except QuotaExceeded as exc:
                log.warning(
                    "Scheduled backup skipped guild_id=%s user_id=%s: %s",
                    schedule.guild_id,
                    schedule.created_by_user_id,
                    exc,
                )
                result.skipped += 1
            except Exception:
                log.exception("Scheduled backup failed guild_id=%s", schedule.guild_id)
                result.failed += 1

            await self.schedules.mark_ran(schedule.guild_id, now=at_ms)
        return result
