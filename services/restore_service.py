from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Mapping

import discord

from interactions.task_registry import GuildLockRegistry
from services.backup_errors import InsufficientPermissions, ItemApplyError
from services.restore_planner import RESERVED_CHANNEL_NAMES, coerce_payload
from services.snapshot_schema import (
    EVERYONE_ROLE_NAME,
    ChannelSnapshot,
    GuildProfile,
    GuildSettingsSnapshot,
    RoleSnapshot,
    SnapshotPayload,
)
from services.snapshot_serializer import enum_value


log = logging.getLogger("guildvault.backup")

REQUIRED_BOT_PERMISSIONS = ("manage_guild", "manage_roles", "manage_channels")
DEFAULT_RESTORE_REASON = "Backup restoration"
DEFAULT_VOICE_BITRATE = 64000

VOICE_CHANNEL_TYPE = discord.ChannelType.voice.value
STAGE_CHANNEL_TYPE = discord.ChannelType.stage_voice.value
CATEGORY_CHANNEL_TYPE = discord.ChannelType.category.value
FORUM_CHANNEL_TYPE = discord.ChannelType.forum.value


class RestorePhase(str, Enum):
    IDLE = "idle"
    PERMISSION_CHECK = "permission_check"
    ABORTED = "aborted"
    APPLYING_SETTINGS = "applying_settings"
    APPLYING_ROLES = "applying_roles"
    APPLYING_CHANNELS = "applying_channels"
    COMPLETED = "completed"


PhaseCallback = Callable[[RestorePhase], Awaitable[None] | None]


class OutcomeStatus(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(slots=True)
class ItemOutcome:
    status: OutcomeStatus
    item_kind: str
    item_name: str
    error: ItemApplyError | None = None

    @classmethod
    def failed(cls, item_kind: str, item_name: str, reason: str) -> "ItemOutcome":
        return cls(OutcomeStatus.FAILED, item_kind, item_name, ItemApplyError(item_kind, item_name, reason))


@dataclass(slots=True)
class RestoreReport:
    updated_count: int = 0
    created_count: int = 0
    skipped_count: int = 0
    duration_ms: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def restored_count(self) -> int:
        return self.updated_count + self.created_count

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def record(self, outcome: ItemOutcome) -> None:
        if outcome.status is OutcomeStatus.CREATED:
            self.created_count += 1
        elif outcome.status is OutcomeStatus.UPDATED:
            self.updated_count += 1
        elif outcome.status is OutcomeStatus.SKIPPED:
            self.skipped_count += 1
        elif outcome.error is not None:
            self.errors.append(str(outcome.error))


def missing_bot_permissions(guild: Any) -> list[str]:
    me = getattr(guild, "me", None)
    perms = getattr(me, "guild_permissions", None)
    if perms is None:
        return list(REQUIRED_BOT_PERMISSIONS)
    return [name for name in REQUIRED_BOT_PERMISSIONS if not bool(getattr(perms, name, False))]


def _error_text(exc: Exception) -> str:
    text = getattr(exc, "text", None) or str(exc)
    return text or exc.__class__.__name__


@dataclass(slots=True)
class _GuildSetting:
    label: str
    edit_key: str
    value: Any
    live: Any
    convert: Callable[[Any], Any] | None = None


@dataclass(slots=True)
class _RestoreContext:
    guild: Any
    bot_top_position: int
    roles_by_name: dict[str, Any]
    channels_by_name: dict[str, Any]


class RestoreExecutor:
    """Applies a stored snapshot to a live guild without deleting anything.

    Every role, channel and setting is its own step: a failure is recorded in
    the report and the remaining steps still run.
    """

    def __init__(self, *, reason: str = DEFAULT_RESTORE_REASON, locks: GuildLockRegistry | None = None) -> None:
        self.reason = reason
        self.locks = locks or GuildLockRegistry()

    async def restore(
        self,
        guild: Any,
        payload: SnapshotPayload | Mapping[str, Any],
        *,
        kind: str | None = None,
        on_phase: PhaseCallback | None = None,
    ) -> RestoreReport:
        snapshot = coerce_payload(payload, kind=kind)
        started = time.monotonic()

        await self._emit(on_phase, RestorePhase.PERMISSION_CHECK)
        missing = missing_bot_permissions(guild)
        if missing:
            await self._emit(on_phase, RestorePhase.ABORTED)
            log.info("Restore aborted guild_id=%s missing=%s", getattr(guild, "id", None), ",".join(missing))
            raise InsufficientPermissions(missing)

        report = RestoreReport()
        async with self.locks.hold(int(getattr(guild, "id", 0) or 0)):
            await self._emit(on_phase, RestorePhase.APPLYING_SETTINGS)
            for outcome in await self._apply_settings(guild, snapshot.guild, snapshot.settings):
                report.record(outcome)

            ctx = self._context(guild)
            if snapshot.roles is not None:
                await self._emit(on_phase, RestorePhase.APPLYING_ROLES)
                for role in snapshot.roles:
                    report.record(await self._apply_role(ctx, role))

            if snapshot.channels is not None:
                await self._emit(on_phase, RestorePhase.APPLYING_CHANNELS)
                for channel in snapshot.channels:
                    report.record(await self._apply_channel(ctx, channel))

        report.duration_ms = int((time.monotonic() - started) * 1000)
        await self._emit(on_phase, RestorePhase.COMPLETED)
        log.info(
            "Restore finished guild_id=%s updated=%s created=%s errors=%s duration_ms=%s",
            getattr(guild, "id", None),
            report.updated_count,
            report.created_count,
            len(report.errors),
            report.duration_ms,
        )
        return report

    @staticmethod
    async def _emit(on_phase: PhaseCallback | None, phase: RestorePhase) -> None:
        if on_phase is None:
            return
        result = on_phase(phase)
        if inspect.isawaitable(result):
            await result

    @staticmethod
    def _context(guild: Any) -> _RestoreContext:
        me = getattr(guild, "me", None)
        top_role = getattr(me, "top_role", None)
        return _RestoreContext(
            guild=guild,
            bot_top_position=int(getattr(top_role, "position", 0) or 0),
            roles_by_name={str(role.name): role for role in getattr(guild, "roles", None) or []},
            channels_by_name={str(ch.name): ch for ch in getattr(guild, "channels", None) or []},
        )

    def _guild_settings(self, guild: Any, profile: GuildProfile, settings: GuildSettingsSnapshot | None) -> list[_GuildSetting]:
        items = [
            _GuildSetting("guild name", "name", profile.name, getattr(guild, "name", None)),
            _GuildSetting("guild description", "description", profile.description, getattr(guild, "description", None)),
            _GuildSetting(
                "verification level",
                "verification_level",
                profile.verification_level,
                enum_value(getattr(guild, "verification_level", None)),
                discord.VerificationLevel,
            ),
            _GuildSetting(
                "content filter",
                "explicit_content_filter",
                profile.explicit_content_filter,
                enum_value(getattr(guild, "explicit_content_filter", None)),
                discord.ContentFilter,
            ),
            _GuildSetting(
                "message notifications",
                "default_notifications",
                profile.default_notifications,
                enum_value(getattr(guild, "default_notifications", None)),
                discord.NotificationLevel,
            ),
        ]
        if settings is not None:
            items.append(
                _GuildSetting("AFK timeout", "afk_timeout", settings.afk_timeout_seconds, getattr(guild, "afk_timeout", None))
            )
        return items

    async def _apply_settings(
        self,
        guild: Any,
        profile: GuildProfile,
        settings: GuildSettingsSnapshot | None,
    ) -> list[ItemOutcome]:
        outcomes: list[ItemOutcome] = []
        for item in self._guild_settings(guild, profile, settings):
            if item.value is None or item.value == item.live:
                continue
            try:
                value = item.convert(item.value) if item.convert else item.value
                await guild.edit(reason=self.reason, **{item.edit_key: value})
            except Exception as exc:
                reason = f"Failed to update {item.label}: {_error_text(exc)}"
                log.warning("Restore setting failed guild_id=%s: %s", getattr(guild, "id", None), reason)
                outcomes.append(ItemOutcome.failed("setting", item.label, reason))
                continue
            outcomes.append(ItemOutcome(OutcomeStatus.UPDATED, "setting", item.label))
        return outcomes

    async def _apply_role(self, ctx: _RestoreContext, role: RoleSnapshot) -> ItemOutcome:
        if role.name == EVERYONE_ROLE_NAME:
            return ItemOutcome(OutcomeStatus.SKIPPED, "role", role.name)
        existing = ctx.roles_by_name.get(role.name)
        try:
            if role.position >= ctx.bot_top_position:
                return ItemOutcome.failed("role", role.name, f'Cannot manage role "{role.name}" - position too high')
            if existing is not None:
                if not self._role_editable(ctx, existing):
                    return ItemOutcome.failed(
                        "role", role.name, f'Cannot edit role "{role.name}" - insufficient permissions'
                    )
                await existing.edit(
                    colour=discord.Colour(role.color),
                    hoist=role.hoisted,
                    mentionable=role.mentionable,
                    permissions=discord.Permissions(role.permissions),
                    reason=self.reason,
                )
                return ItemOutcome(OutcomeStatus.UPDATED, "role", role.name)

            created = await ctx.guild.create_role(
                name=role.name,
                colour=discord.Colour(role.color),
                hoist=role.hoisted,
                mentionable=role.mentionable,
                permissions=discord.Permissions(role.permissions),
                reason=self.reason,
            )
        except Exception as exc:
            reason = f'Failed to restore role "{role.name}": {_error_text(exc)}'
            log.warning("Restore role failed guild_id=%s: %s", getattr(ctx.guild, "id", None), reason)
            return ItemOutcome.failed("role", role.name, reason)

        ctx.roles_by_name[role.name] = created
        return ItemOutcome(OutcomeStatus.CREATED, "role", role.name)

    @staticmethod
    def _role_editable(ctx: _RestoreContext, role: Any) -> bool:
        managed = getattr(role, "managed", None)
        if callable(managed):
            managed = managed()
        if managed:
            return False
        return int(getattr(role, "position", 0) or 0) < ctx.bot_top_position

    def _overwrites(self, ctx: _RestoreContext, channel: ChannelSnapshot) -> dict[Any, discord.PermissionOverwrite]:
        overwrites: dict[Any, discord.PermissionOverwrite] = {}
        for override in channel.permission_overrides:
            if override.target_type != "role":
                continue
            target = ctx.roles_by_name.get(override.target_name)
            if override.target_name == EVERYONE_ROLE_NAME:
                target = getattr(ctx.guild, "default_role", None) or target
            if target is None:
                continue
            overwrites[target] = discord.PermissionOverwrite.from_pair(
                discord.Permissions(override.allow),
                discord.Permissions(override.deny),
            )
        return overwrites

    @staticmethod
    def _voice_bitrate(guild: Any, bitrate: int | None) -> int:
        value = int(bitrate or DEFAULT_VOICE_BITRATE)
        limit = getattr(guild, "bitrate_limit", None)
        if limit:
            value = min(value, int(limit))
        return value

    async def _apply_channel(self, ctx: _RestoreContext, channel: ChannelSnapshot) -> ItemOutcome:
        if channel.name in RESERVED_CHANNEL_NAMES or channel.name in ctx.channels_by_name:
            return ItemOutcome(OutcomeStatus.SKIPPED, "channel", channel.name)

        guild = ctx.guild
        try:
            common: dict[str, Any] = {"overwrites": self._overwrites(ctx, channel), "reason": self.reason}
            if channel.type == CATEGORY_CHANNEL_TYPE:
                created = await guild.create_category(channel.name, **common)
            else:
                parent = ctx.channels_by_name.get(channel.parent_name) if channel.parent_name else None
                if parent is not None and enum_value(getattr(parent, "type", None)) == CATEGORY_CHANNEL_TYPE:
                    common["category"] = parent
                created = await self._create_child_channel(guild, channel, common)
        except Exception as exc:
            reason = f'Failed to restore channel "{channel.name}": {_error_text(exc)}'
            log.warning("Restore channel failed guild_id=%s: %s", getattr(guild, "id", None), reason)
            return ItemOutcome.failed("channel", channel.name, reason)

        ctx.channels_by_name[channel.name] = created
        return ItemOutcome(OutcomeStatus.CREATED, "channel", channel.name)

    async def _create_child_channel(self, guild: Any, channel: ChannelSnapshot, common: dict[str, Any]) -> Any:
        if channel.type in (VOICE_CHANNEL_TYPE, STAGE_CHANNEL_TYPE):
            create = guild.create_stage_channel if channel.type == STAGE_CHANNEL_TYPE else guild.create_voice_channel
            return await create(
                channel.name,
                bitrate=self._voice_bitrate(guild, channel.bitrate),
                user_limit=int(channel.user_limit or 0),
                **common,
            )

        options = dict(common, nsfw=channel.nsfw, slowmode_delay=channel.slow_mode_seconds)
        if channel.topic:
            options["topic"] = channel.topic
        if channel.type == FORUM_CHANNEL_TYPE:
            return await guild.create_forum(channel.name, **options)
        return await guild.create_text_channel(channel.name, **options)
