from __future__ import annotations

from datetime import UTC, datetime
from typing import Iterable

from services.snapshot_schema import SnapshotPayload


KIND_LABELS = {
    "full": "Full Backup",
    "settings": "Settings Only",
    "roles": "Roles & Permissions",
    "channels": "Channels & Categories",
    "custom": "Custom Backup",
}

_BYTE_UNITS = ("Bytes", "KB", "MB", "GB")
MAX_LISTED_ERRORS = 5

TEXT_CHANNEL_TYPE = 0
VOICE_CHANNEL_TYPE = 2
CATEGORY_CHANNEL_TYPE = 4


def kind_label(kind: str) -> str:
    return KIND_LABELS.get(kind, kind)


def format_bytes(size: int) -> str:
    size = int(size or 0)
    if size <= 0:
        return "0 Bytes"
    exponent = 0
    while size >= 1024 ** (exponent + 1) and exponent < len(_BYTE_UNITS) - 1:
        exponent += 1
    value = round(size / (1024**exponent), 2)
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_BYTE_UNITS[exponent]}"


def data_summary(payload: SnapshotPayload) -> str:
    lines: list[str] = []
    if payload.roles is not None:
        lines.append(f"• {len(payload.roles)} Roles")
    if payload.channels is not None:
        lines.append(f"• {len(payload.channels)} Channels")
    if payload.emojis is not None:
        lines.append(f"• {len(payload.emojis)} Emojis")
    if payload.settings is not None:
        lines.append("• Server Settings")
    return "\n".join(lines) or "No data included"


def snapshot_statistics(payload: SnapshotPayload) -> str:
    lines: list[str] = []
    if payload.roles is not None:
        colored = sum(1 for role in payload.roles if role.color)
        hoisted = sum(1 for role in payload.roles if role.hoisted)
        lines.append(f"**Roles:** {len(payload.roles)} total ({colored} colored, {hoisted} hoisted)")
    if payload.channels is not None:
        text = sum(1 for ch in payload.channels if ch.type == TEXT_CHANNEL_TYPE)
        voice = sum(1 for ch in payload.channels if ch.type == VOICE_CHANNEL_TYPE)
        categories = sum(1 for ch in payload.channels if ch.type == CATEGORY_CHANNEL_TYPE)
        lines.append(
            f"**Channels:** {len(payload.channels)} total "
            f"({text} text, {voice} voice, {categories} categories)"
        )
    if payload.emojis is not None:
        animated = sum(1 for emoji in payload.emojis if emoji.animated)
        lines.append(
            f"**Emojis:** {len(payload.emojis)} total ({animated} animated, {len(payload.emojis) - animated} static)"
        )
    if payload.settings is not None:
        lines.append("**Settings:** Server configuration included")
    return "\n".join(lines) or "No data available"


def progress_bar(current: int, total: int, *, width: int = 20) -> str:
    percentage = round(current / total * 100) if total > 0 else 0
    percentage = max(0, min(100, percentage))
    filled = round(percentage / 100 * width)
    return f"{'█' * filled}{'░' * (width - filled)} {percentage}%"


def error_summary(errors: Iterable[str], *, limit: int = MAX_LISTED_ERRORS) -> str:
    items = list(errors)
    if not items:
        return ""
    text = "\n".join(items[:limit])
    if len(items) > limit:
        text += f"\n... and {len(items) - limit} more errors"
    return text


def discord_timestamp(at_ms: int | None, style: str = "F") -> str:
    if at_ms is None:
        return "-"
    return f"<t:{int(at_ms) // 1000}:{style}>"


def iso_timestamp(at_ms: int) -> str:
    return datetime.fromtimestamp(int(at_ms) / 1000, tz=UTC).isoformat().replace("+00:00", "Z")
