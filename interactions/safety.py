from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Any, Hashable

import discord


log = logging.getLogger("guildvault.runtime")

_RESPONSE_ERRORS = (discord.InteractionResponded, discord.HTTPException)


@dataclass(slots=True)
class InteractionAckState:
    key: Hashable
    acknowledged: bool = False


class InteractionAcker:
    """Ack guard so an action (a confirm button, an interaction id) is handled once."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._states: dict[Hashable, InteractionAckState] = {}

    async def mark_or_get(self, key: Hashable) -> bool:
        async with self._lock:
            state = self._states.get(key)
            if state is None:
                self._states[key] = InteractionAckState(key=key, acknowledged=True)
                return True
            if state.acknowledged:
                return False
            state.acknowledged = True
            return True


def _log_response_error(action: str, exc: Exception) -> None:
    if isinstance(exc, _RESPONSE_ERRORS):
        log.debug("Interaction %s failed: %s", action, exc)
    else:
        log.warning("Unexpected error during interaction %s", action, exc_info=exc)


def _response_done(interaction: Any) -> bool:
    response = getattr(interaction, "response", None)
    is_done = getattr(response, "is_done", None)
    return bool(callable(is_done) and is_done())


async def safe_defer(interaction: Any, *, ephemeral: bool = False, thinking: bool = False) -> bool:
    response = getattr(interaction, "response", None)
    if response is None or _response_done(interaction):
        return False
    try:
        await response.defer(ephemeral=ephemeral, thinking=thinking)
        return True
    except Exception as exc:
        _log_response_error("defer", exc)
        return False


async def safe_send_initial(
    interaction: Any,
    content: str | None = None,
    *,
    ephemeral: bool = False,
    **kwargs: Any,
) -> bool:
    response = getattr(interaction, "response", None)
    if response is None:
        return False
    if _response_done(interaction):
        return await safe_followup(interaction, content, ephemeral=ephemeral, **kwargs)

    try:
        await response.send_message(content, ephemeral=ephemeral, **kwargs)
        return True
    except discord.InteractionResponded:
        return await safe_followup(interaction, content, ephemeral=ephemeral, **kwargs)
    except Exception as exc:
        _log_response_error("send", exc)
        return False


async def safe_followup(interaction: Any, content: str | None = None, *, ephemeral: bool = False, **kwargs: Any) -> bool:
    followup = getattr(interaction, "followup", None)
    if followup is None:
        return False
    try:
        await followup.send(content, ephemeral=ephemeral, **kwargs)
        return True
    except Exception as exc:
        _log_response_error("followup", exc)
        return False


async def safe_edit_interaction_original(interaction: Any, **kwargs: Any) -> bool:
    edit_fn = getattr(interaction, "edit_original_response", None)
    if edit_fn is None:
        return False
    try:
        await edit_fn(**kwargs)
        return True
    except Exception as exc:
        _log_response_error("edit original", exc)
        return False


async def safe_edit_message(message: Any, **kwargs: Any) -> bool:
    if message is None:
        return False
    try:
        await message.edit(**kwargs)
        return True
    except Exception as exc:
        _log_response_error("edit message", exc)
        return False
