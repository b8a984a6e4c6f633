from __future__ import annotations

import re

import pytest

from services.backup_errors import InvalidSnapshot, QuotaExceeded, SnapshotNotFound
from services.backup_store import DEFAULT_DESCRIPTION, BackupStore, generate_snapshot_id, snapshot_stats
from services.snapshot_schema import encode_payload, payload_size_bytes
from services.snapshot_serializer import serialize_guild
from tests.fakes import FakeRole


GUILD_ID = 1000
OWNER_ID = 42
OTHER_ID = 43


async def _create(store, guild, *, owner=OWNER_ID, kind="full", created_at_ms=None, description=None):
    return await store.create(
        guild_id=guild.id,
        guild_name=guild.name,
        owner_user_id=owner,
        kind=kind,
        payload=serialize_guild(guild, kind),
        description=description,
        created_at_ms=created_at_ms,
    )


def test_generated_ids_embed_creation_time():
    snapshot_id = generate_snapshot_id(1700000000000)
    assert re.fullmatch(r"backup_1700000000000_[0-9a-f]{9}", snapshot_id)
    assert generate_snapshot_id(1700000000000) != snapshot_id


@pytest.mark.asyncio
async def test_quota_blocks_eleventh_snapshot_without_persisting(store, repo, source_guild):
    for index in range(10):
        await _create(store, source_guild, created_at_ms=1000 + index)

    with pytest.raises(QuotaExceeded) as exc_info:
        await _create(store, source_guild)

    assert exc_info.value.limit == 10
    assert await repo.count_snapshots(GUILD_ID, OWNER_ID) == 10
    assert len(repo.snapshots) == 10


@pytest.mark.asyncio
async def test_quota_is_counted_per_owner(store, source_guild):
    for index in range(10):
        await _create(store, source_guild, created_at_ms=1000 + index)

    record = await _create(store, source_guild, owner=OTHER_ID)
    assert record.owner_user_id == OTHER_ID
    assert await store.remaining_quota(GUILD_ID, OWNER_ID) == 0
    assert await store.remaining_quota(GUILD_ID, OTHER_ID) == 9


@pytest.mark.asyncio
async def test_configured_quota_is_respected(repo, source_guild):
    small_store = BackupStore(repo, max_per_user=2)
    await _create(small_store, source_guild)
    await _create(small_store, source_guild)
    with pytest.raises(QuotaExceeded, match="maximum of 2"):
        await _create(small_store, source_guild)


@pytest.mark.asyncio
async def test_other_users_cannot_see_or_delete_snapshot(store, source_guild):
    record = await _create(store, source_guild)

    with pytest.raises(SnapshotNotFound):
        await store.get(record.snapshot_id, GUILD_ID, OTHER_ID)
    with pytest.raises(SnapshotNotFound):
        await store.delete(record.snapshot_id, GUILD_ID, OTHER_ID)
    with pytest.raises(SnapshotNotFound):
        await store.get(record.snapshot_id, GUILD_ID + 1, OWNER_ID)

    assert (await store.get(record.snapshot_id, GUILD_ID, OWNER_ID)).snapshot_id == record.snapshot_id


@pytest.mark.asyncio
async def test_delete_removes_exactly_one(store, source_guild):
    first = await _create(store, source_guild, created_at_ms=1)
    second = await _create(store, source_guild, created_at_ms=2)

    await store.delete(first.snapshot_id, GUILD_ID, OWNER_ID)

    remaining = await store.list_for_owner(GUILD_ID, OWNER_ID)
    assert [row.snapshot_id for row in remaining] == [second.snapshot_id]
    with pytest.raises(SnapshotNotFound):
        await store.delete(first.snapshot_id, GUILD_ID, OWNER_ID)


@pytest.mark.asyncio
async def test_list_is_newest_first(store, source_guild):
    older = await _create(store, source_guild, created_at_ms=1_000)
    newer = await _create(store, source_guild, created_at_ms=2_000)

    rows = await store.list_for_owner(GUILD_ID, OWNER_ID)
    assert [row.snapshot_id for row in rows] == [newer.snapshot_id, older.snapshot_id]


@pytest.mark.asyncio
async def test_size_matches_payload_and_survives_guild_changes(store, source_guild):
    payload = serialize_guild(source_guild, "full")
    record = await store.create(
        guild_id=GUILD_ID,
        guild_name=source_guild.name,
        owner_user_id=OWNER_ID,
        kind="full",
        payload=payload,
    )

    assert record.size_bytes == payload_size_bytes(encode_payload(payload))
    source_guild.roles.append(FakeRole("Brand New", position=4))
    stored = await store.get(record.snapshot_id, GUILD_ID, OWNER_ID)
    assert stored.size_bytes == record.size_bytes
    assert "Brand New" not in [role.name for role in stored.payload.roles]


@pytest.mark.asyncio
async def test_description_defaults_and_is_trimmed(store, source_guild):
    blank = await _create(store, source_guild, description="   ")
    long = await _create(store, source_guild, description="x" * 500)

    assert blank.description == DEFAULT_DESCRIPTION
    assert len(long.description) == 200


@pytest.mark.asyncio
async def test_mismatched_payload_is_rejected(store, source_guild):
    payload = serialize_guild(source_guild, "roles")
    with pytest.raises(InvalidSnapshot):
        await store.create(
            guild_id=GUILD_ID,
            guild_name=source_guild.name,
            owner_user_id=OWNER_ID,
            kind="full",
            payload=payload,
        )


@pytest.mark.asyncio
async def test_snapshot_stats_summarize_records(store, source_guild):
    await _create(store, source_guild, kind="full", created_at_ms=1_000)
    await _create(store, source_guild, kind="roles", created_at_ms=3_000)
    await _create(store, source_guild, kind="roles", created_at_ms=2_000)
    rows = await store.list_for_owner(GUILD_ID, OWNER_ID)

    stats = snapshot_stats(rows)
    assert stats.count == 3
    assert stats.total_size_bytes == sum(row.size_bytes for row in rows)
    assert stats.kinds == {"full": 1, "roles": 2}
    assert (stats.oldest_at_ms, stats.newest_at_ms) == (1_000, 3_000)
    assert snapshot_stats([]).oldest_at_ms is None
