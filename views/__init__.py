from views.backup_views import BackupActionsView, BackupListView, DeleteConfirmView, RestorePreviewView

__all__ = [
    "BackupActionsView",
    "BackupListView",
    "DeleteConfirmView",
    "RestorePreviewView",
]
