from __future__ import annotations

from dataclasses import asdict, dataclass, field
import json
from typing import Any, Mapping

from services.backup_errors import InvalidSnapshot


SNAPSHOT_KINDS = ("full", "settings", "roles", "channels", "custom")
SECTION_NAMES = ("roles", "channels", "emojis", "settings")

# Every kind carries the guild header; these are the extra sections per kind.
KIND_SECTIONS: dict[str, frozenset[str]] = {
    "full": frozenset({"roles", "channels", "emojis", "settings"}),
    "settings": frozenset({"settings"}),
    "roles": frozenset({"roles"}),
    "channels": frozenset({"channels"}),
    "custom": frozenset({"roles", "settings"}),
}

EVERYONE_ROLE_NAME = "@everyone"


@dataclass(slots=True)
class GuildProfile:
    name: str
    description: str | None = None
    icon_ref: str | None = None
    banner_ref: str | None = None
    verification_level: int | None = None
    explicit_content_filter: int | None = None
    default_notifications: int | None = None


@dataclass(slots=True)
class RoleSnapshot:
    name: str
    color: int = 0
    hoisted: bool = False
    mentionable: bool = False
    permissions: int = 0
    position: int = 0


@dataclass(slots=True)
class PermissionOverride:
    target_name: str
    target_type: str
    allow: int = 0
    deny: int = 0


@dataclass(slots=True)
class ChannelSnapshot:
    name: str
    type: int = 0
    parent_name: str | None = None
    position: int = 0
    topic: str | None = None
    nsfw: bool = False
    bitrate: int | None = None
    user_limit: int | None = None
    slow_mode_seconds: int = 0
    permission_overrides: list[PermissionOverride] = field(default_factory=list)


@dataclass(slots=True)
class EmojiSnapshot:
    name: str
    image_ref: str | None = None
    animated: bool = False


@dataclass(slots=True)
class GuildSettingsSnapshot:
    system_channel_name: str | None = None
    rules_channel_name: str | None = None
    public_updates_channel_name: str | None = None
    afk_channel_name: str | None = None
    afk_timeout_seconds: int | None = None
    boost_tier: int = 0
    boost_count: int = 0


@dataclass(slots=True)
class SnapshotPayload:
    """Captured guild state. Which optional sections are set depends on ``kind``."""

    kind: str
    guild: GuildProfile
    roles: list[RoleSnapshot] | None = None
    channels: list[ChannelSnapshot] | None = None
    emojis: list[EmojiSnapshot] | None = None
    settings: GuildSettingsSnapshot | None = None

    def present_sections(self) -> frozenset[str]:
        return frozenset(name for name in SECTION_NAMES if getattr(self, name) is not None)

    def validate(self) -> "SnapshotPayload":
        required = KIND_SECTIONS.get(self.kind)
        if required is None:
            raise InvalidSnapshot(f"Unknown backup type: {self.kind!r}")
        present = self.present_sections()
        missing = sorted(required - present)
        if missing:
            raise InvalidSnapshot(f"Backup type '{self.kind}' is missing sections: {', '.join(missing)}")
        extra = sorted(present - required)
        if extra and self.kind != "custom":
            raise InvalidSnapshot(f"Backup type '{self.kind}' must not contain sections: {', '.join(extra)}")
        return self

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"guild": asdict(self.guild)}
        for name in SECTION_NAMES:
            value = getattr(self, name)
            if value is None:
                continue
            data[name] = [asdict(item) for item in value] if isinstance(value, list) else asdict(value)
        return data


def require_kind(kind: str) -> str:
    normalized = str(kind or "").strip().lower()
    if normalized not in KIND_SECTIONS:
        raise InvalidSnapshot(f"Unknown backup type: {kind!r}")
    return normalized


def infer_kind(data: Mapping[str, Any]) -> str:
    present = frozenset(name for name in SECTION_NAMES if data.get(name) is not None)
    for kind, sections in KIND_SECTIONS.items():
        if sections == present:
            return kind
    raise InvalidSnapshot(f"Cannot determine backup type from sections: {', '.join(sorted(present)) or 'none'}")


def encode_payload(payload: SnapshotPayload) -> str:
    """Canonical JSON used for storage and size accounting."""
    return json.dumps(payload.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def payload_size_bytes(payload_json: str) -> int:
    return len(payload_json.encode("utf-8"))


def decode_payload(kind: str, raw: str | Mapping[str, Any]) -> SnapshotPayload:
    if isinstance(raw, str):
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise InvalidSnapshot(f"Backup data is not valid JSON: {exc}") from exc
    else:
        data = raw
    return payload_from_dict(kind, data)


def payload_from_dict(kind: str, data: Any) -> SnapshotPayload:
    if not isinstance(data, Mapping):
        raise InvalidSnapshot("Backup data must be an object.")
    guild_raw = data.get("guild")
    if not isinstance(guild_raw, Mapping):
        raise InvalidSnapshot("Backup data has no guild section.")

    payload = SnapshotPayload(
        kind=require_kind(kind),
        guild=_build(GuildProfile, guild_raw, "guild"),
        roles=_build_list(RoleSnapshot, data.get("roles"), "roles"),
        channels=_build_channels(data.get("channels")),
        emojis=_build_list(EmojiSnapshot, data.get("emojis"), "emojis"),
        settings=(
            _build(GuildSettingsSnapshot, data["settings"], "settings")
            if data.get("settings") is not None
            else None
        ),
    )
    return payload.validate()


_SCALAR_TYPES: dict[str, type] = {"str": str, "int": int, "bool": bool}


def _check_field(section: str, name: str, annotation: str, value: Any) -> None:
    optional = annotation.endswith(" | None")
    expected = _SCALAR_TYPES.get(annotation.removesuffix(" | None"))
    if expected is None:
        return
    if value is None:
        if optional:
            return
        raise InvalidSnapshot(f"Section '{section}' field '{name}' must not be null.")
    # bool is an int subclass; JSON true/false must not pass as a number.
    if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
        raise InvalidSnapshot(f"Section '{section}' field '{name}' must be {expected.__name__}, got {type(value).__name__}.")


def _build(cls, raw: Any, section: str):
    if not isinstance(raw, Mapping):
        raise InvalidSnapshot(f"Section '{section}' must be an object.")
    fields = cls.__dataclass_fields__
    if "name" in fields and (not isinstance(raw.get("name"), str) or not raw.get("name")):
        raise InvalidSnapshot(f"Section '{section}' contains an entry without a name.")
    known = {name: raw[name] for name in fields if name in raw}
    for name, value in known.items():
        _check_field(section, name, str(fields[name].type), value)
    try:
        return cls(**known)
    except TypeError as exc:
        raise InvalidSnapshot(f"Section '{section}' is malformed: {exc}") from exc


def _build_list(cls, raw: Any, section: str) -> list | None:
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise InvalidSnapshot(f"Section '{section}' must be a list.")
    return [_build(cls, item, section) for item in raw]


def _build_channels(raw: Any) -> list[ChannelSnapshot] | None:
    channels = _build_list(ChannelSnapshot, raw, "channels")
    if channels is None:
        return None
    for channel in channels:
        overrides = channel.permission_overrides or []
        if not isinstance(overrides, list):
            raise InvalidSnapshot(f"Channel '{channel.name}' has malformed permission overrides.")
        channel.permission_overrides = [
            item if isinstance(item, PermissionOverride) else _build(PermissionOverride, item, "permission_overrides")
            for item in overrides
        ]
    return channels
