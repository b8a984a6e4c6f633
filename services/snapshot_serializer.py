from __future__ import annotations

from typing import Any

import discord

from services.snapshot_schema import (
    KIND_SECTIONS,
    ChannelSnapshot,
    EmojiSnapshot,
    GuildProfile,
    GuildSettingsSnapshot,
    PermissionOverride,
    RoleSnapshot,
    SnapshotPayload,
    require_kind,
)


CATEGORY_CHANNEL_TYPE = discord.ChannelType.category.value


def enum_value(value: Any) -> int | None:
    if value is None:
        return None
    raw = getattr(value, "value", value)
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _asset_ref(asset: Any) -> str | None:
    if asset is None:
        return None
    url = getattr(asset, "url", asset)
    return str(url) if url else None


def _name_of(obj: Any) -> str | None:
    if obj is None:
        return None
    name = getattr(obj, "name", None)
    return str(name) if name else None


def capture_guild_profile(guild: Any) -> GuildProfile:
    return GuildProfile(
        name=str(guild.name),
        description=getattr(guild, "description", None),
        icon_ref=_asset_ref(getattr(guild, "icon", None)),
        banner_ref=_asset_ref(getattr(guild, "banner", None)),
        verification_level=enum_value(getattr(guild, "verification_level", None)),
        explicit_content_filter=enum_value(getattr(guild, "explicit_content_filter", None)),
        default_notifications=enum_value(getattr(guild, "default_notifications", None)),
    )


def capture_roles(guild: Any) -> list[RoleSnapshot]:
    roles = sorted(getattr(guild, "roles", None) or [], key=lambda role: int(getattr(role, "position", 0)))
    out: list[RoleSnapshot] = []
    for role in roles:
        colour = getattr(role, "colour", None)
        if colour is None:
            colour = getattr(role, "color", 0)
        out.append(
            RoleSnapshot(
                name=str(role.name),
                color=enum_value(colour) or 0,
                hoisted=bool(getattr(role, "hoist", False)),
                mentionable=bool(getattr(role, "mentionable", False)),
                permissions=enum_value(getattr(role, "permissions", 0)) or 0,
                position=int(getattr(role, "position", 0)),
            )
        )
    return out


def _override_target_type(target: Any) -> str:
    if isinstance(target, (discord.Member, discord.User)):
        return "member"
    return "role"


def _capture_overrides(channel: Any) -> list[PermissionOverride]:
    overwrites = getattr(channel, "overwrites", None) or {}
    out: list[PermissionOverride] = []
    for target, overwrite in overwrites.items():
        allow, deny = overwrite.pair()
        out.append(
            PermissionOverride(
                target_name=_name_of(target) or str(getattr(target, "id", "")),
                target_type=_override_target_type(target),
                allow=enum_value(allow) or 0,
                deny=enum_value(deny) or 0,
            )
        )
    return out


def capture_channels(guild: Any) -> list[ChannelSnapshot]:
    channels = list(getattr(guild, "channels", None) or [])
    # Categories first so a restore can attach children to recreated parents.
    channels.sort(
        key=lambda ch: (
            0 if enum_value(getattr(ch, "type", None)) == CATEGORY_CHANNEL_TYPE else 1,
            int(getattr(ch, "position", 0)),
        )
    )
    out: list[ChannelSnapshot] = []
    for channel in channels:
        out.append(
            ChannelSnapshot(
                name=str(channel.name),
                type=enum_value(getattr(channel, "type", None)) or 0,
                parent_name=_name_of(getattr(channel, "category", None)),
                position=int(getattr(channel, "position", 0)),
                topic=getattr(channel, "topic", None),
                nsfw=bool(getattr(channel, "nsfw", False)),
                bitrate=getattr(channel, "bitrate", None),
                user_limit=getattr(channel, "user_limit", None),
                slow_mode_seconds=int(getattr(channel, "slowmode_delay", 0) or 0),
                permission_overrides=_capture_overrides(channel),
            )
        )
    return out


def capture_emojis(guild: Any) -> list[EmojiSnapshot]:
    return [
        EmojiSnapshot(
            name=str(emoji.name),
            image_ref=_asset_ref(getattr(emoji, "url", None)),
            animated=bool(getattr(emoji, "animated", False)),
        )
        for emoji in getattr(guild, "emojis", None) or []
    ]


def capture_settings(guild: Any) -> GuildSettingsSnapshot:
    afk_timeout = getattr(guild, "afk_timeout", None)
    return GuildSettingsSnapshot(
        system_channel_name=_name_of(getattr(guild, "system_channel", None)),
        rules_channel_name=_name_of(getattr(guild, "rules_channel", None)),
        public_updates_channel_name=_name_of(getattr(guild, "public_updates_channel", None)),
        afk_channel_name=_name_of(getattr(guild, "afk_channel", None)),
        afk_timeout_seconds=int(afk_timeout) if afk_timeout is not None else None,
        boost_tier=int(getattr(guild, "premium_tier", 0) or 0),
        boost_count=int(getattr(guild, "premium_subscription_count", 0) or 0),
    )


_SECTION_CAPTURE = {
    "roles": capture_roles,
    "channels": capture_channels,
    "emojis": capture_emojis,
    "settings": capture_settings,
}


def serialize_guild(guild: Any, kind: str) -> SnapshotPayload:
    """Build a storage-ready payload from the guild's cached state.

    Reads only what the guild handle already holds, so no API calls are made.
    """
    kind = require_kind(kind)
    payload = SnapshotPayload(kind=kind, guild=capture_guild_profile(guild))
    for section in sorted(KIND_SECTIONS[kind]):
        setattr(payload, section, _SECTION_CAPTURE[section](guild))
    return payload.validate()
