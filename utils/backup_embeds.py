from __future__ import annotations

from datetime import UTC, datetime
from typing import Sequence

import discord

from db.repository import ScheduleRecord, SnapshotRecord
from services.backup_errors import BackupError
from services.backup_store import SnapshotStats
from services.restore_planner import RestorePlan
from services.restore_service import RestorePhase, RestoreReport
from utils.backup_text import (
    data_summary,
    discord_timestamp,
    error_summary,
    format_bytes,
    kind_label,
    progress_bar,
    snapshot_statistics,
)


FIELD_VALUE_LIMIT = 1024

_RESTORE_PHASE_STEPS = {
    RestorePhase.PERMISSION_CHECK: (1, "Checking bot permissions"),
    RestorePhase.APPLYING_SETTINGS: (2, "Applying server settings"),
    RestorePhase.APPLYING_ROLES: (3, "Restoring roles"),
    RestorePhase.APPLYING_CHANNELS: (4, "Restoring channels"),
    RestorePhase.COMPLETED: (5, "Finishing up"),
}


def _clip(text: str, limit: int = FIELD_VALUE_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def _embed(title: str, description: str | None, color: discord.Color) -> discord.Embed:
    return discord.Embed(title=title, description=description, color=color, timestamp=datetime.now(UTC))


def error_embed(exc: BackupError) -> discord.Embed:
    embed = _embed(f"❌ {exc.title}", str(exc), discord.Color.red())
    if exc.remediation:
        embed.add_field(name="What you can do", value=exc.remediation, inline=False)
    return embed


def unexpected_error_embed(action: str) -> discord.Embed:
    return _embed(
        "❌ Something went wrong",
        f"An unexpected error occurred while trying to {action}. Please try again later.",
        discord.Color.red(),
    )


def snapshot_created_embed(record: SnapshotRecord, *, remaining: int) -> discord.Embed:
    payload = record.payload
    embed = _embed(
        "✅ Backup Created Successfully",
        f"**{kind_label(record.kind)}** backup has been created for **{record.guild_name}**",
        discord.Color.green(),
    )
    embed.add_field(
        name="📋 Backup Information",
        value=(
            f"**ID:** `{record.snapshot_id}`\n"
            f"**Type:** {kind_label(record.kind)}\n"
            f"**Size:** {format_bytes(record.size_bytes)}\n"
            f"**Created:** {discord_timestamp(record.created_at_ms)}"
        ),
        inline=True,
    )
    embed.add_field(name="📊 Data Included", value=data_summary(payload), inline=True)
    embed.add_field(name="📈 Statistics", value=_clip(snapshot_statistics(payload)), inline=False)
    embed.add_field(name="📝 Description", value=record.description, inline=False)
    embed.set_footer(text=f"Backups remaining for this server: {remaining}")
    return embed


def snapshot_info_embed(record: SnapshotRecord) -> discord.Embed:
    payload = record.payload
    embed = _embed(f"ℹ️ Backup Details: {record.snapshot_id}", record.description, discord.Color.blurple())
    embed.add_field(name="Server", value=record.guild_name, inline=True)
    embed.add_field(name="Type", value=kind_label(record.kind), inline=True)
    embed.add_field(name="Size", value=format_bytes(record.size_bytes), inline=True)
    embed.add_field(name="Created", value=discord_timestamp(record.created_at_ms), inline=False)
    embed.add_field(name="Statistics", value=_clip(snapshot_statistics(payload)), inline=False)
    return embed


def share_embed(record: SnapshotRecord) -> discord.Embed:
    embed = _embed("🔗 Share Backup", "Backups stay private to you. Share the ID so you can find it again.", discord.Color.blurple())
    embed.add_field(name="Backup ID", value=f"`{record.snapshot_id}`", inline=False)
    embed.add_field(name="Restore Command", value=f"`/backup restore backup_id:{record.snapshot_id}`", inline=False)
    return embed


def snapshot_list_embed(
    records: Sequence[SnapshotRecord],
    stats: SnapshotStats,
    *,
    guild_name: str,
    page: int,
    page_size: int,
) -> discord.Embed:
    if not records:
        return _embed(
            "📦 Your Backups",
            "You have no backups for this server yet. Create one with `/backup create`.",
            discord.Color.blurple(),
        )

    page_count = max(1, (len(records) + page_size - 1) // page_size)
    page = max(0, min(page, page_count - 1))
    embed = _embed("📦 Your Backups", f"Backups for **{guild_name}**", discord.Color.blurple())
    kinds = "\n".join(f"• {kind_label(kind)}: {count}" for kind, count in stats.kinds.items())
    embed.add_field(
        name="📊 Overview",
        value=(
            f"**Total:** {stats.count}\n"
            f"**Total Size:** {format_bytes(stats.total_size_bytes)}\n"
            f"**Oldest:** {discord_timestamp(stats.oldest_at_ms, 'R')}\n"
            f"**Newest:** {discord_timestamp(stats.newest_at_ms, 'R')}"
        ),
        inline=True,
    )
    embed.add_field(name="🗂️ By Type", value=kinds or "-", inline=True)

    start = page * page_size
    for record in records[start : start + page_size]:
        embed.add_field(
            name=f"{kind_label(record.kind)} · {format_bytes(record.size_bytes)}",
            value=_clip(
                f"**ID:** `{record.snapshot_id}`\n"
                f"**Created:** {discord_timestamp(record.created_at_ms, 'R')}\n"
                f"{record.description}"
            ),
            inline=False,
        )
    embed.set_footer(text=f"Page {page + 1}/{page_count}")
    return embed


def restore_preview_embed(record: SnapshotRecord, plan: RestorePlan) -> discord.Embed:
    embed = _embed(
        "🔍 Restore Preview",
        f"Restoring **{kind_label(record.kind)}** `{record.snapshot_id}` will make these changes:",
        discord.Color.gold(),
    )
    embed.add_field(
        name="Planned Changes",
        value=(
            f"**To add:** {plan.to_add}\n"
            f"**To update:** {plan.to_update}\n"
            f"**To remove:** {plan.to_remove}"
        ),
        inline=True,
    )
    embed.add_field(name="Backup Contents", value=data_summary(record.payload), inline=True)
    embed.add_field(
        name="⚠️ Warning",
        value="Existing roles with the same name are overwritten. Nothing is deleted.",
        inline=False,
    )
    return embed


def restore_progress_embed(phase: RestorePhase) -> discord.Embed:
    step, label = _RESTORE_PHASE_STEPS.get(phase, (0, "Preparing restore"))
    embed = _embed("🔄 Restoring Backup", label, discord.Color.blurple())
    embed.add_field(name="Progress", value=progress_bar(step, len(_RESTORE_PHASE_STEPS)), inline=False)
    return embed


def restore_result_embed(record: SnapshotRecord, report: RestoreReport) -> discord.Embed:
    if report.has_errors:
        embed = _embed(
            "⚠️ Backup Partially Restored",
            f"`{record.snapshot_id}` was restored with {len(report.errors)} error(s).",
            discord.Color.orange(),
        )
    else:
        embed = _embed("✅ Backup Restored", f"`{record.snapshot_id}` was restored successfully.", discord.Color.green())
    embed.add_field(
        name="📊 Results",
        value=(
            f"**Restored:** {report.restored_count}\n"
            f"**Updated:** {report.updated_count}\n"
            f"**Created:** {report.created_count}\n"
            f"**Duration:** {report.duration_ms} ms"
        ),
        inline=False,
    )
    if report.has_errors:
        embed.add_field(name="Errors", value=_clip(error_summary(report.errors)), inline=False)
    return embed


def delete_confirm_embed(record: SnapshotRecord) -> discord.Embed:
    embed = _embed(
        "🗑️ Delete Backup?",
        f"This permanently deletes `{record.snapshot_id}` ({kind_label(record.kind)}).",
        discord.Color.red(),
    )
    embed.add_field(name="Description", value=record.description, inline=False)
    return embed


def deleted_embed(snapshot_id: str) -> discord.Embed:
    return _embed("🗑️ Backup Deleted", f"Backup `{snapshot_id}` has been deleted.", discord.Color.green())


def schedule_embed(record: ScheduleRecord | None) -> discord.Embed:
    if record is None:
        return _embed("⏰ Automatic Backups Disabled", "No scheduled backups will be created for this server.", discord.Color.greyple())
    embed = _embed(
        "⏰ Automatic Backups Scheduled",
        f"A full backup will be created **{record.frequency}**.",
        discord.Color.green(),
    )
    embed.add_field(name="Next Backup", value=discord_timestamp(record.next_backup_at_ms), inline=False)
    return embed


def cancelled_embed(action: str) -> discord.Embed:
    return _embed("❎ Cancelled", f"{action} was cancelled.", discord.Color.greyple())
