"""Host relay, message handling and full-state reconciliation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from .models import PenduState, PenduUpdate, Player
from .protocol import (
    RELAY_TYPES,
    ChangeGame,
    ChatBroadcast,
    FullSync,
    PenduUpdateMessage,
    PlayerSync,
    RequestSync,
    decode_message,
    full_sync,
)

if TYPE_CHECKING:
    from .session import PeerSession

logger = logging.getLogger(__name__)


def reconcile_full_sync(
    current: PenduState, incoming: PenduState, has_remote_players: bool
) -> PenduState:
    """Adjust an incoming snapshot before it replaces ``current``.

    A room with remote players is never solo, and a known host is never erased.
    """
    changes = {}
    if has_remote_players and incoming.mode == "solo":
        changes["mode"] = "versus"
    if not incoming.host_id and current.host_id:
        changes["host_id"] = current.host_id
    return incoming.model_copy(update=changes) if changes else incoming


class Relay:
    """
    Applies incoming peer messages to the session store.
    While the local peer is host it also forwards relayable messages to
    everyone except the sender, since non-host peers only reach the host.
    """

    def __init__(self, session: "PeerSession"):
        self.session = session
        self._handlers = {
            ChangeGame: self._on_change_game,
            PenduUpdateMessage: self._on_pendu_update,
            ChatBroadcast: self._on_chat_message,
            PlayerSync: self._on_player_sync,
            RequestSync: self._on_request_sync,
            FullSync: self._on_full_sync,
        }

    @property
    def store(self):
        return self.session.store

    def handle_data(self, data: Any, sender_id: Optional[str] = None) -> None:
        message = decode_message(data)
        if message is None:
            return
        self.handle(message, sender_id)
        if sender_id and self.store.is_host and message.type in RELAY_TYPES:
            self.relay_to_others(data, sender_id)

    def handle(self, message, sender_id: Optional[str] = None) -> None:
        self._handlers[type(message)](message, sender_id)

    def relay_to_others(self, data: Any, exclude_peer_id: str) -> int:
        """Forward ``data`` verbatim to every open channel but the sender's."""
        count = 0
        for peer_id, channel in list(self.session.connections.items()):
            if peer_id != exclude_peer_id and channel.open:
                channel.send(data)
                count += 1
        return count

    def full_sync_message(self) -> FullSync:
        return full_sync(self.store.pendu, self.store.current_game)

    def request_sync(self) -> None:
        self.session.broadcast(RequestSync())

    def broadcast_safety_net(self) -> bool:
        """Periodic host broadcast of the whole snapshot; covers lost updates."""
        store = self.store
        if not (store.is_host and store.pendu.mode == "versus"):
            return False
        if not any(c.open for c in self.session.connections.values()):
            return False
        self.session.broadcast(self.full_sync_message())
        return True

    # ---- handlers ----

    def _on_change_game(self, message: ChangeGame, sender_id: Optional[str]) -> None:
        host_id = self.store.pendu.host_id
        if sender_id and host_id and sender_id != host_id:
            logger.warning(f"Ignoring CHANGE_GAME from {sender_id}: only the host {host_id} may switch views")
            return
        self.store.set_current_game(message.game)
        if message.game == "HUB":
            self.store.reset_pendu()

    def _on_pendu_update(self, message: PenduUpdateMessage, sender_id: Optional[str]) -> None:
        self.store.update_pendu(message.payload)

    def _on_chat_message(self, message: ChatBroadcast, sender_id: Optional[str]) -> None:
        self.store.add_chat_message(message.payload)

    def _on_player_sync(self, message: PlayerSync, sender_id: Optional[str]) -> None:
        identity = message.payload
        if not identity.id or identity.id == self.store.my_id:
            return
        self.store.add_player(Player(id=identity.id, name=identity.name, is_host=False))

    def _on_request_sync(self, message: RequestSync, sender_id: Optional[str]) -> None:
        reply = self.full_sync_message()
        if sender_id and self.session.send_to(sender_id, reply):
            return
        self.session.broadcast(reply)

    def _on_full_sync(self, message: FullSync, sender_id: Optional[str]) -> None:
        store = self.store
        incoming = reconcile_full_sync(
            store.pendu, message.payload.pendu, has_remote_players=bool(store.players)
        )
        if incoming != store.pendu:
            store.update_pendu(PenduUpdate.from_state(incoming))
        if store.current_game != message.payload.game:
            store.set_current_game(message.payload.game)
