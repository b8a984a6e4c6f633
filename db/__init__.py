from db.repository import InMemoryRepository, ScheduleRecord, SnapshotRecord, SnapshotRepository
from db.session import SessionManager

__all__ = [
    "InMemoryRepository",
    "ScheduleRecord",
    "SessionManager",
    "SnapshotRecord",
    "SnapshotRepository",
]
