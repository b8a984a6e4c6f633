from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import discord
from discord import app_commands

from interactions.safety import safe_defer, safe_edit_interaction_original, safe_send_initial
from services.backup_errors import BackupError, InsufficientPermissions
from services.backup_store import snapshot_stats
from services.restore_service import missing_bot_permissions
from services.snapshot_serializer import serialize_guild
from utils.backup_embeds import error_embed, schedule_embed, snapshot_created_embed, unexpected_error_embed
from views.backup_views import (
    BackupActionsView,
    BackupListView,
    original_response_or_none,
    run_restore,
    send_error,
    send_unexpected_error,
    show_delete_confirm,
    show_restore_preview,
)

if TYPE_CHECKING:
    from bot.runtime import GuildVaultBot


log = logging.getLogger("guildvault.backup")

KIND_CHOICES = [
    app_commands.Choice(name="Full Backup", value="full"),
    app_commands.Choice(name="Settings Only", value="settings"),
    app_commands.Choice(name="Roles & Permissions", value="roles"),
    app_commands.Choice(name="Channels & Categories", value="channels"),
    app_commands.Choice(name="Custom Backup", value="custom"),
]

FREQUENCY_CHOICES = [
    app_commands.Choice(name="Daily", value="daily"),
    app_commands.Choice(name="Weekly", value="weekly"),
    app_commands.Choice(name="Monthly", value="monthly"),
    app_commands.Choice(name="Disable", value="disable"),
]


def _log_command(interaction: Any, name: str, **fields: Any) -> None:
    extra = " ".join(f"{key}={value}" for key, value in fields.items())
    log.info(
        "Backup command=%s guild_id=%s user_id=%s %s",
        name,
        getattr(getattr(interaction, "guild", None), "id", None),
        getattr(getattr(interaction, "user", None), "id", None),
        extra,
    )


def register_backup_commands(bot: "GuildVaultBot") -> app_commands.Group:
    group = app_commands.Group(
        name="backup",
        description="Create, restore and manage server backups",
        guild_only=True,
        default_permissions=discord.Permissions(administrator=True),
    )

    @group.command(name="create", description="Create a backup of this server")
    @app_commands.rename(kind="type")
    @app_commands.describe(kind="What to include in the backup", description="Optional note for this backup")
    @app_commands.choices(kind=KIND_CHOICES)
    async def create_cmd(
        interaction: discord.Interaction,
        kind: app_commands.Choice[str],
        description: str | None = None,
    ):
        _log_command(interaction, "create", kind=kind.value)
        guild = interaction.guild
        missing = missing_bot_permissions(guild)
        if missing:
            await send_error(interaction, InsufficientPermissions(missing))
            return

        await safe_defer(interaction, ephemeral=True, thinking=True)
        try:
            payload = serialize_guild(guild, kind.value)
            record = await bot.store.create(
                guild_id=guild.id,
                guild_name=guild.name,
                owner_user_id=interaction.user.id,
                kind=kind.value,
                payload=payload,
                description=description,
            )
            remaining = await bot.store.remaining_quota(guild.id, interaction.user.id)
        except BackupError as exc:
            await safe_edit_interaction_original(interaction, embed=error_embed(exc))
            return
        except Exception:
            log.exception("Backup create failed guild_id=%s", guild.id)
            await safe_edit_interaction_original(interaction, embed=unexpected_error_embed("create the backup"))
            return

        view = BackupActionsView(bot, snapshot_id=record.snapshot_id, owner_user_id=interaction.user.id)
        await safe_edit_interaction_original(
            interaction,
            embed=snapshot_created_embed(record, remaining=remaining),
            view=view,
        )
        view.message = await original_response_or_none(interaction)

    @group.command(name="list", description="List your backups for this server")
    async def list_cmd(interaction: discord.Interaction):
        _log_command(interaction, "list")
        try:
            records = await bot.store.list_for_owner(interaction.guild.id, interaction.user.id)
        except Exception:
            log.exception("Backup list failed guild_id=%s", interaction.guild.id)
            await send_unexpected_error(interaction, "list your backups")
            return

        view = BackupListView(
            bot,
            records=records,
            stats=snapshot_stats(records),
            guild_name=interaction.guild.name,
            owner_user_id=interaction.user.id,
        )
        if not records:
            await safe_send_initial(interaction, embed=view.embed(), ephemeral=True)
            return
        await safe_send_initial(interaction, embed=view.embed(), view=view, ephemeral=True)
        view.message = await original_response_or_none(interaction)

    @group.command(name="restore", description="Restore one of your backups to this server")
    @app_commands.describe(backup_id="ID of the backup to restore", preview="Show the planned changes before restoring")
    async def restore_cmd(interaction: discord.Interaction, backup_id: str, preview: bool = True):
        _log_command(interaction, "restore", snapshot_id=backup_id, preview=preview)
        try:
            record = await bot.store.get(backup_id, interaction.guild.id, interaction.user.id)
        except BackupError as exc:
            await send_error(interaction, exc)
            return

        if preview:
            await show_restore_preview(bot, interaction, record)
            return
        await safe_defer(interaction, ephemeral=True, thinking=True)
        await run_restore(bot, interaction, record)

    @group.command(name="delete", description="Delete one of your backups")
    @app_commands.describe(backup_id="ID of the backup to delete")
    async def delete_cmd(interaction: discord.Interaction, backup_id: str):
        _log_command(interaction, "delete", snapshot_id=backup_id)
        try:
            record = await bot.store.get(backup_id, interaction.guild.id, interaction.user.id)
        except BackupError as exc:
            await send_error(interaction, exc)
            return
        await show_delete_confirm(bot, interaction, record)

    @group.command(name="schedule", description="Create full backups of this server automatically")
    @app_commands.describe(frequency="How often to create a backup")
    @app_commands.choices(frequency=FREQUENCY_CHOICES)
    async def schedule_cmd(interaction: discord.Interaction, frequency: app_commands.Choice[str]):
        _log_command(interaction, "schedule", frequency=frequency.value)
        try:
            if frequency.value == "disable":
                await bot.schedules.disable(interaction.guild.id)
                record = None
            else:
                record = await bot.schedules.set_schedule(interaction.guild.id, frequency.value, interaction.user.id)
        except BackupError as exc:
            await send_error(interaction, exc)
            return
        except Exception:
            log.exception("Backup schedule failed guild_id=%s", interaction.guild.id)
            await send_unexpected_error(interaction, "update the backup schedule")
            return
        await safe_send_initial(interaction, embed=schedule_embed(record), ephemeral=True)

    bot.tree.add_command(group)
    return group
