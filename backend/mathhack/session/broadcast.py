"""Shared broadcast utility for sending messages to bound connections."""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from mathhack.session.models import Player


async def broadcast_to_players(players: dict[str, Player], message: dict[str, Any]) -> None:
    """Broadcast a message to every bound connection of a session.

    Snapshot the dict values via list() to avoid RuntimeError if a
    concurrent disconnect mutates the dict while we yield on send_message.
    """
    for player in list(players.values()):
        with contextlib.suppress(RuntimeError, OSError):
            await player.connection.send_message(message)


async def send_to_player(players: dict[str, Player], player_id: str, message: dict[str, Any]) -> None:
    """Send a message to every connection bound to one player."""
    for player in list(players.values()):
        if player.player_id == player_id:
            with contextlib.suppress(RuntimeError, OSError):
                await player.connection.send_message(message)
