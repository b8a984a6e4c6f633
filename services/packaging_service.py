from __future__ import annotations

import io
import json
import re
import zipfile
from typing import Any

from db.repository import SnapshotRecord
from services.backup_store import now_ms
from utils.backup_text import iso_timestamp, kind_label


_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9]")


def archive_filename(record: SnapshotRecord) -> str:
    safe_name = _UNSAFE_FILENAME_CHARS.sub("_", record.guild_name)
    return f"backup_{safe_name}_{record.snapshot_id}.zip"


def snapshot_metadata(record: SnapshotRecord) -> dict[str, Any]:
    return {
        "snapshot_id": record.snapshot_id,
        "guild_id": str(record.guild_id),
        "guild_name": record.guild_name,
        "kind": record.kind,
        "description": record.description,
        "created_at": iso_timestamp(record.created_at_ms),
        "size_bytes": record.size_bytes,
    }


def render_readme(record: SnapshotRecord, *, requested_by: str | None = None, generated_at_ms: int | None = None) -> str:
    generated = iso_timestamp(generated_at_ms if generated_at_ms is not None else now_ms())
    lines = [
        f"# Server Backup: {record.guild_name}",
        "",
        f"**Backup ID:** {record.snapshot_id}",
        f"**Type:** {kind_label(record.kind)}",
        f"**Created:** {iso_timestamp(record.created_at_ms)}",
        f"**Description:** {record.description}",
        "",
        "## Files in this backup:",
        "- `backup.json` - Complete backup data",
        "- `metadata.json` - Backup metadata and information",
        "",
        "## How to use:",
        "1. Extract this ZIP file",
        "2. Use the backup data to restore your server settings",
        "3. The backup contains the sections listed in `metadata.json` for this backup type",
        "",
    ]
    if requested_by:
        lines.append(f"**Note:** This archive was exported by {requested_by} on {generated}")
    else:
        lines.append(f"**Note:** This archive was exported on {generated}")
    return "\n".join(lines) + "\n"


def build_snapshot_archive(
    record: SnapshotRecord,
    *,
    requested_by: str | None = None,
    generated_at_ms: int | None = None,
) -> bytes:
    """Pack a stored snapshot into an in-memory ZIP for download."""
    payload = record.payload.to_dict()
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr("backup.json", json.dumps(payload, indent=2, ensure_ascii=False))
        archive.writestr("metadata.json", json.dumps(snapshot_metadata(record), indent=2, ensure_ascii=False))
        archive.writestr(
            "README.md",
            render_readme(record, requested_by=requested_by, generated_at_ms=generated_at_ms),
        )
    return buffer.getvalue()
