from __future__ import annotations

from types import SimpleNamespace

import pytest

from commands.backup_commands import register_backup_commands
from services.restore_service import RestoreExecutor
from services.snapshot_serializer import serialize_guild
from tests.fakes import FakeGuild
from views.backup_views import RestorePreviewView, run_restore


class _FakeResponse:
    def __init__(self):
        self.sent = []
        self.edited = []
        self.deferred = []

    def is_done(self) -> bool:
        return bool(self.sent or self.edited or self.deferred)

    async def send_message(self, content=None, *, ephemeral: bool = False, **kwargs):
        self.sent.append((content, ephemeral, kwargs))

    async def edit_message(self, **kwargs):
        self.edited.append(kwargs)

    async def defer(self, *, ephemeral: bool = False, thinking: bool = False):
        self.deferred.append((ephemeral, thinking))


class _FakeFollowup:
    def __init__(self):
        self.sent = []

    async def send(self, content=None, *, ephemeral: bool = False, **kwargs):
        self.sent.append((content, ephemeral, kwargs))


class _FakeInteraction:
    def __init__(self, guild: FakeGuild, *, user_id: int = 42, manage_guild: bool = True):
        self.guild = guild
        self.user = SimpleNamespace(
            id=user_id,
            guild_permissions=SimpleNamespace(manage_guild=manage_guild, administrator=False),
        )
        self.response = _FakeResponse()
        self.followup = _FakeFollowup()
        self.original_edits = []

    async def edit_original_response(self, **kwargs):
        self.original_edits.append(kwargs)

    async def original_response(self):
        return SimpleNamespace(id=1)


def _bot(config, store):
    return SimpleNamespace(
        config=config,
        store=store,
        executor=RestoreExecutor(),
        tree=SimpleNamespace(add_command=lambda command: None),
    )


async def _roles_record(store, source_guild):
    return await store.create(
        guild_id=source_guild.id,
        guild_name=source_guild.name,
        owner_user_id=42,
        kind="roles",
        payload=serialize_guild(source_guild, "roles"),
    )


def _restore_command(bot):
    group = register_backup_commands(bot)
    return next(command for command in group.commands if command.name == "restore")


@pytest.mark.asyncio
async def test_confirm_requires_manage_server(config, store, source_guild):
    record = await _roles_record(store, source_guild)
    target = FakeGuild()
    view = RestorePreviewView(_bot(config, store), record=record, owner_user_id=42)
    interaction = _FakeInteraction(target, manage_guild=False)

    await view.confirm.callback(interaction)

    assert "Manage Server permission" in interaction.response.sent[0][0]
    assert interaction.original_edits == []
    assert target.created_roles == []
    assert view.is_finished() is False


@pytest.mark.asyncio
async def test_confirm_restores_with_progress_and_runs_once(config, store, source_guild):
    record = await _roles_record(store, source_guild)
    target = FakeGuild()
    view = RestorePreviewView(_bot(config, store), record=record, owner_user_id=42)
    interaction = _FakeInteraction(target)

    await view.confirm.callback(interaction)

    assert interaction.response.edited[0]["embed"].description == "Preparing restore"
    progress = [edit["embed"].description for edit in interaction.original_edits[:-1]]
    assert progress == ["Checking bot permissions", "Applying server settings", "Restoring roles"]
    assert interaction.original_edits[-1]["embed"].title == "✅ Backup Restored"
    assert [row["name"] for row in target.created_roles] == ["Muted", "Members", "Moderators"]

    again = _FakeInteraction(target)
    await view.confirm.callback(again)

    assert "already being handled" in again.response.sent[0][0]
    assert len(target.created_roles) == 3


@pytest.mark.asyncio
async def test_missing_bot_permissions_render_error_embed(config, store, source_guild):
    record = await _roles_record(store, source_guild)
    target = FakeGuild(bot_permissions=("manage_guild", "manage_channels"))
    interaction = _FakeInteraction(target)

    await run_restore(_bot(config, store), interaction, record)

    assert [edit["embed"].description for edit in interaction.original_edits[:-1]] == ["Checking bot permissions"]
    final = interaction.original_edits[-1]["embed"]
    assert final.title == "❌ Insufficient Bot Permissions"
    assert "manage_roles" in final.description
    assert target.created_roles == []


@pytest.mark.asyncio
async def test_restore_command_hides_other_users_backups(config, store, source_guild):
    record = await _roles_record(store, source_guild)
    target = FakeGuild()
    restore = _restore_command(_bot(config, store))
    stranger = _FakeInteraction(target, user_id=99)

    await restore.callback(stranger, record.snapshot_id, False)

    embed = stranger.response.sent[0][2]["embed"]
    assert embed.title == "❌ Backup Not Found"
    assert stranger.original_edits == []
    assert target.created_roles == []


@pytest.mark.asyncio
async def test_restore_command_previews_planned_changes(config, store, source_guild):
    record = await _roles_record(store, source_guild)
    restore = _restore_command(_bot(config, store))
    owner = _FakeInteraction(FakeGuild())

    await restore.callback(owner, record.snapshot_id, True)

    _, ephemeral, kwargs = owner.response.sent[0]
    assert ephemeral is True
    assert kwargs["embed"].title == "🔍 Restore Preview"
    assert "**To add:** 3" in kwargs["embed"].fields[0].value
    assert isinstance(kwargs["view"], RestorePreviewView)
    assert kwargs["view"].message is not None
