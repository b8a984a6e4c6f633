from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass, field
import logging
import time
import uuid
from typing import Iterable

from bot.config import DEFAULT_BACKUP_MAX_PER_USER
from db.repository import SnapshotRecord, SnapshotRepository
from services.backup_errors import InvalidSnapshot, QuotaExceeded, SnapshotNotFound
from services.snapshot_schema import SnapshotPayload, encode_payload, payload_size_bytes, require_kind


log = logging.getLogger("guildvault.backup")

DEFAULT_DESCRIPTION = "No description provided"
MAX_DESCRIPTION_LENGTH = 200


def now_ms() -> int:
    return int(time.time() * 1000)


def generate_snapshot_id(created_at_ms: int) -> str:
    return f"backup_{int(created_at_ms)}_{uuid.uuid4().hex[:9]}"


def normalize_description(raw: str | None) -> str:
    text = " ".join((raw or "").split())
    if not text:
        return DEFAULT_DESCRIPTION
    return text[:MAX_DESCRIPTION_LENGTH]


@dataclass(slots=True)
class SnapshotStats:
    count: int
    total_size_bytes: int
    kinds: dict[str, int] = field(default_factory=dict)
    oldest_at_ms: int | None = None
    newest_at_ms: int | None = None


def snapshot_stats(records: Iterable[SnapshotRecord]) -> SnapshotStats:
    rows = list(records)
    kinds = Counter(row.kind for row in rows)
    created = [row.created_at_ms for row in rows]
    return SnapshotStats(
        count=len(rows),
        total_size_bytes=sum(row.size_bytes for row in rows),
        kinds=dict(sorted(kinds.items())),
        oldest_at_ms=min(created) if created else None,
        newest_at_ms=max(created) if created else None,
    )


class BackupStore:
    def __init__(self, repo: SnapshotRepository, *, max_per_user: int = DEFAULT_BACKUP_MAX_PER_USER) -> None:
        self.repo = repo
        self.max_per_user = int(max_per_user)
        self._write_lock = asyncio.Lock()

    async def remaining_quota(self, guild_id: int, owner_user_id: int) -> int:
        used = await self.repo.count_snapshots(guild_id, owner_user_id)
        return max(0, self.max_per_user - used)

    async def create(
        self,
        *,
        guild_id: int,
        guild_name: str,
        owner_user_id: int,
        kind: str,
        payload: SnapshotPayload,
        description: str | None = None,
        created_at_ms: int | None = None,
    ) -> SnapshotRecord:
        kind = require_kind(kind)
        if payload.kind != kind:
            raise InvalidSnapshot(f"Backup data was captured as '{payload.kind}', not '{kind}'.")
        payload.validate()
        payload_json = encode_payload(payload)

        async with self._write_lock:
            used = await self.repo.count_snapshots(guild_id, owner_user_id)
            if used >= self.max_per_user:
                log.info(
                    "Backup quota reached guild_id=%s user_id=%s used=%s limit=%s",
                    guild_id,
                    owner_user_id,
                    used,
                    self.max_per_user,
                )
                raise QuotaExceeded(self.max_per_user)

            created = int(created_at_ms) if created_at_ms is not None else now_ms()
            record = SnapshotRecord(
                snapshot_id=generate_snapshot_id(created),
                guild_id=int(guild_id),
                guild_name=str(guild_name),
                owner_user_id=int(owner_user_id),
                kind=kind,
                description=normalize_description(description),
                created_at_ms=created,
                payload_json=payload_json,
                size_bytes=payload_size_bytes(payload_json),
            )
            await self.repo.insert_snapshot(record)

        log.info(
            "Backup created id=%s guild_id=%s user_id=%s kind=%s size=%s",
            record.snapshot_id,
            record.guild_id,
            record.owner_user_id,
            record.kind,
            record.size_bytes,
        )
        return record

    async def list_for_owner(self, guild_id: int, owner_user_id: int) -> list[SnapshotRecord]:
        return await self.repo.list_snapshots(guild_id, owner_user_id)

    async def get(self, snapshot_id: str, guild_id: int, owner_user_id: int) -> SnapshotRecord:
        snapshot_id = str(snapshot_id or "").strip()
        record = await self.repo.get_snapshot(snapshot_id, guild_id, owner_user_id)
        if record is None:
            raise SnapshotNotFound(snapshot_id)
        return record

    async def delete(self, snapshot_id: str, guild_id: int, owner_user_id: int) -> None:
        snapshot_id = str(snapshot_id or "").strip()
        async with self._write_lock:
            deleted = await self.repo.delete_snapshot(snapshot_id, guild_id, owner_user_id)
        if not deleted:
            raise SnapshotNotFound(snapshot_id)
        log.info("Backup deleted id=%s guild_id=%s user_id=%s", snapshot_id, guild_id, owner_user_id)
