from interactions.safety import (
    InteractionAcker,
    safe_defer,
    safe_edit_interaction_original,
    safe_edit_message,
    safe_followup,
    safe_send_initial,
)
from interactions.task_registry import GuildLockRegistry, SingletonTaskRegistry

__all__ = [
    "InteractionAcker",
    "safe_defer",
    "safe_edit_interaction_original",
    "safe_edit_message",
    "safe_followup",
    "safe_send_initial",
    "GuildLockRegistry",
    "SingletonTaskRegistry",
]
