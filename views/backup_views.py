from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING, Any, Sequence

import discord

from db.repository import SnapshotRecord
from interactions.safety import (
    InteractionAcker,
    safe_defer,
    safe_edit_interaction_original,
    safe_edit_message,
    safe_followup,
    safe_send_initial,
)
from services.backup_errors import BackupError
from services.backup_store import SnapshotStats
from services.packaging_service import archive_filename, build_snapshot_archive
from services.restore_planner import plan_restore
from services.restore_service import RestorePhase
from utils.backup_embeds import (
    cancelled_embed,
    delete_confirm_embed,
    deleted_embed,
    error_embed,
    restore_preview_embed,
    restore_progress_embed,
    restore_result_embed,
    share_embed,
    snapshot_info_embed,
    snapshot_list_embed,
    unexpected_error_embed,
)
from utils.backup_text import format_bytes

if TYPE_CHECKING:
    from bot.runtime import GuildVaultBot


log = logging.getLogger("guildvault.backup")

LIST_PAGE_SIZE = 5


async def send_error(interaction: Any, exc: BackupError) -> None:
    await safe_send_initial(interaction, embed=error_embed(exc), ephemeral=True)


async def send_unexpected_error(interaction: Any, action: str) -> None:
    await safe_send_initial(interaction, embed=unexpected_error_embed(action), ephemeral=True)


def member_can_manage_guild(member: Any) -> bool:
    perms = getattr(member, "guild_permissions", None)
    return bool(getattr(perms, "manage_guild", False) or getattr(perms, "administrator", False))


async def send_snapshot_archive(bot: "GuildVaultBot", interaction: Any, snapshot_id: str) -> None:
    await safe_defer(interaction, ephemeral=True, thinking=True)
    try:
        record = await bot.store.get(snapshot_id, interaction.guild.id, interaction.user.id)
        data = build_snapshot_archive(record, requested_by=str(interaction.user))
    except BackupError as exc:
        await safe_followup(interaction, embed=error_embed(exc), ephemeral=True)
        return
    except Exception:
        log.exception("Backup download failed snapshot_id=%s", snapshot_id)
        await safe_followup(interaction, embed=unexpected_error_embed("export the backup"), ephemeral=True)
        return

    await safe_followup(
        interaction,
        f"📦 Backup archive `{record.snapshot_id}` ({format_bytes(len(data))})",
        file=discord.File(io.BytesIO(data), filename=archive_filename(record)),
        ephemeral=True,
    )


async def run_restore(bot: "GuildVaultBot", interaction: Any, record: SnapshotRecord) -> None:
    """Runs the restore and keeps the original response updated with progress."""

    async def on_phase(phase: RestorePhase) -> None:
        if phase in (RestorePhase.ABORTED, RestorePhase.COMPLETED):
            return
        await safe_edit_interaction_original(interaction, embed=restore_progress_embed(phase), view=None)

    log.info(
        "Restore requested snapshot_id=%s guild_id=%s user_id=%s",
        record.snapshot_id,
        interaction.guild.id,
        interaction.user.id,
    )
    try:
        report = await bot.executor.restore(interaction.guild, record.payload, on_phase=on_phase)
    except BackupError as exc:
        await safe_edit_interaction_original(interaction, embed=error_embed(exc), view=None)
        return
    except Exception:
        log.exception("Restore failed snapshot_id=%s guild_id=%s", record.snapshot_id, interaction.guild.id)
        await safe_edit_interaction_original(interaction, embed=unexpected_error_embed("restore the backup"), view=None)
        return

    await safe_edit_interaction_original(interaction, embed=restore_result_embed(record, report), view=None)


async def show_restore_preview(bot: "GuildVaultBot", interaction: Any, record: SnapshotRecord) -> None:
    try:
        plan = plan_restore(interaction.guild, record.payload, kind=record.kind)
    except BackupError as exc:
        await send_error(interaction, exc)
        return
    view = RestorePreviewView(bot, record=record, owner_user_id=interaction.user.id)
    await safe_send_initial(interaction, embed=restore_preview_embed(record, plan), view=view, ephemeral=True)
    view.message = await original_response_or_none(interaction)


async def show_delete_confirm(bot: "GuildVaultBot", interaction: Any, record: SnapshotRecord) -> None:
    view = DeleteConfirmView(bot, record=record, owner_user_id=interaction.user.id)
    await safe_send_initial(interaction, embed=delete_confirm_embed(record), view=view, ephemeral=True)
    view.message = await original_response_or_none(interaction)


async def original_response_or_none(interaction: Any) -> Any:
    fetch = getattr(interaction, "original_response", None)
    if fetch is None:
        return None
    try:
        return await fetch()
    except discord.HTTPException:
        return None


class OwnerOnlyView(discord.ui.View):
    """Buttons that only the invoking user may press; disabled once the view times out."""

    def __init__(self, bot: "GuildVaultBot", *, owner_user_id: int):
        super().__init__(timeout=bot.config.interaction_timeout_seconds)
        self.bot = bot
        self.owner_user_id = int(owner_user_id)
        self.message: Any = None
        self.acker = InteractionAcker()

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if int(interaction.user.id) != self.owner_user_id:
            await safe_send_initial(interaction, "❌ Only the person who ran this command can use these buttons.", ephemeral=True)
            return False
        return True

    async def claim(self, interaction: Any, action: str) -> bool:
        if await self.acker.mark_or_get(action):
            return True
        await safe_send_initial(interaction, "⏳ This action is already being handled.", ephemeral=True)
        return False

    def disable_all(self) -> None:
        for item in self.children:
            item.disabled = True

    async def on_timeout(self) -> None:
        self.disable_all()
        await safe_edit_message(self.message, view=self)


class BackupActionsView(OwnerOnlyView):
    def __init__(self, bot: "GuildVaultBot", *, snapshot_id: str, owner_user_id: int):
        super().__init__(bot, owner_user_id=owner_user_id)
        self.snapshot_id = snapshot_id

    async def _load(self, interaction: Any) -> SnapshotRecord | None:
        try:
            return await self.bot.store.get(self.snapshot_id, interaction.guild.id, interaction.user.id)
        except BackupError as exc:
            await send_error(interaction, exc)
            return None

    @discord.ui.button(label="Download", emoji="📥", style=discord.ButtonStyle.primary, row=0)
    async def download(self, interaction: discord.Interaction, button: discord.ui.Button):
        await send_snapshot_archive(self.bot, interaction, self.snapshot_id)

    @discord.ui.button(label="Restore", emoji="🔄", style=discord.ButtonStyle.success, row=0)
    async def restore(self, interaction: discord.Interaction, button: discord.ui.Button):
        record = await self._load(interaction)
        if record is not None:
            await show_restore_preview(self.bot, interaction, record)

    @discord.ui.button(label="Delete", emoji="🗑️", style=discord.ButtonStyle.danger, row=0)
    async def delete(self, interaction: discord.Interaction, button: discord.ui.Button):
        record = await self._load(interaction)
        if record is not None:
            await show_delete_confirm(self.bot, interaction, record)

    @discord.ui.button(label="Share", emoji="🔗", style=discord.ButtonStyle.secondary, row=1)
    async def share(self, interaction: discord.Interaction, button: discord.ui.Button):
        record = await self._load(interaction)
        if record is not None:
            await safe_send_initial(interaction, embed=share_embed(record), ephemeral=True)

    @discord.ui.button(label="Info", emoji="ℹ️", style=discord.ButtonStyle.secondary, row=1)
    async def info(self, interaction: discord.Interaction, button: discord.ui.Button):
        record = await self._load(interaction)
        if record is not None:
            await safe_send_initial(interaction, embed=snapshot_info_embed(record), ephemeral=True)


class RestorePreviewView(OwnerOnlyView):
    def __init__(self, bot: "GuildVaultBot", *, record: SnapshotRecord, owner_user_id: int):
        super().__init__(bot, owner_user_id=owner_user_id)
        self.record = record

    @discord.ui.button(label="Confirm Restore", emoji="✅", style=discord.ButtonStyle.danger)
    async def confirm(self, interaction: discord.Interaction, button: discord.ui.Button):
        if not member_can_manage_guild(interaction.user):
            await safe_send_initial(interaction, "❌ You need the Manage Server permission to restore backups.", ephemeral=True)
            return
        if not await self.claim(interaction, "confirm"):
            return
        self.disable_all()
        self.stop()
        await interaction.response.edit_message(embed=restore_progress_embed(RestorePhase.IDLE), view=None)
        await run_restore(self.bot, interaction, self.record)

    @discord.ui.button(label="Cancel", emoji="❌", style=discord.ButtonStyle.secondary)
    async def cancel(self, interaction: discord.Interaction, button: discord.ui.Button):
        self.stop()
        await interaction.response.edit_message(embed=cancelled_embed("Restore"), view=None)


class DeleteConfirmView(OwnerOnlyView):
    def __init__(self, bot: "GuildVaultBot", *, record: SnapshotRecord, owner_user_id: int):
        super().__init__(bot, owner_user_id=owner_user_id)
        self.record = record

    @discord.ui.button(label="Delete", emoji="🗑️", style=discord.ButtonStyle.danger)
    async def confirm(self, interaction: discord.Interaction, button: discord.ui.Button):
        if not await self.claim(interaction, "confirm"):
            return
        self.stop()
        try:
            await self.bot.store.delete(self.record.snapshot_id, interaction.guild.id, interaction.user.id)
        except BackupError as exc:
            await interaction.response.edit_message(embed=error_embed(exc), view=None)
            return
        await interaction.response.edit_message(embed=deleted_embed(self.record.snapshot_id), view=None)

    @discord.ui.button(label="Cancel", emoji="❌", style=discord.ButtonStyle.secondary)
    async def cancel(self, interaction: discord.Interaction, button: discord.ui.Button):
        self.stop()
        await interaction.response.edit_message(embed=cancelled_embed("Deletion"), view=None)


class BackupListView(OwnerOnlyView):
    def __init__(
        self,
        bot: "GuildVaultBot",
        *,
        records: Sequence[SnapshotRecord],
        stats: SnapshotStats,
        guild_name: str,
        owner_user_id: int,
        page_size: int = LIST_PAGE_SIZE,
    ):
        super().__init__(bot, owner_user_id=owner_user_id)
        self.records = list(records)
        self.stats = stats
        self.guild_name = guild_name
        self.page_size = page_size
        self.page = 0
        self._sync_buttons()

    @property
    def page_count(self) -> int:
        return max(1, (len(self.records) + self.page_size - 1) // self.page_size)

    def embed(self) -> discord.Embed:
        return snapshot_list_embed(
            self.records,
            self.stats,
            guild_name=self.guild_name,
            page=self.page,
            page_size=self.page_size,
        )

    def _sync_buttons(self) -> None:
        self.previous_page.disabled = self.page <= 0
        self.next_page.disabled = self.page >= self.page_count - 1

    async def _show(self, interaction: discord.Interaction) -> None:
        self._sync_buttons()
        await interaction.response.edit_message(embed=self.embed(), view=self)

    @discord.ui.button(label="Previous", emoji="◀️", style=discord.ButtonStyle.secondary)
    async def previous_page(self, interaction: discord.Interaction, button: discord.ui.Button):
        self.page = max(0, self.page - 1)
        await self._show(interaction)

    @discord.ui.button(label="Next", emoji="▶️", style=discord.ButtonStyle.secondary)
    async def next_page(self, interaction: discord.Interaction, button: discord.ui.Button):
        self.page = min(self.page_count - 1, self.page + 1)
        await self._show(interaction)
