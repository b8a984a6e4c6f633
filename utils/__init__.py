from utils.backup_text import data_summary, error_summary, format_bytes, kind_label, progress_bar, snapshot_statistics

__all__ = [
    "data_summary",
    "error_summary",
    "format_bytes",
    "kind_label",
    "progress_bar",
    "snapshot_statistics",
]
