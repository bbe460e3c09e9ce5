"""Shared state store: the single writer for session and game state."""

from __future__ import annotations

from typing import Callable, List, Optional, Tuple

from .models import ChatMessage, GameView, PenduState, PenduUpdate, Player, merge_pendu
from .preferences import NAME_KEY, LocalPreferences


Listener = Callable[["SessionStore"], None]

DEFAULT_CHAT_LIMIT = 100


def default_name(peer_id: str) -> str:
    return f"Player_{peer_id[:5]}"


class SessionStore:
    """
    Holds the current snapshot of the local session.

    Every mutation publishes a new value (lists and models are replaced,
    never edited in place) and then notifies subscribers, so a handler that
    read a snapshot keeps a consistent view while it computes.
    """

    def __init__(
        self,
        preferences: Optional[LocalPreferences] = None,
        chat_limit: int = DEFAULT_CHAT_LIMIT,
    ):
        self.preferences = preferences or LocalPreferences()
        self.chat_limit = chat_limit
        self.my_id: str = ""
        self.my_name: str = self.preferences.get(NAME_KEY, "")
        self.current_game: GameView = "HUB"
        self.pendu: PenduState = PenduState()
        self._players: Tuple[Player, ...] = ()
        self._chat: Tuple[ChatMessage, ...] = ()
        self._listeners: List[Listener] = []

    # ---- read side ----

    @property
    def players(self) -> Tuple[Player, ...]:
        return self._players

    @property
    def chat_messages(self) -> Tuple[ChatMessage, ...]:
        return self._chat

    @property
    def display_name(self) -> str:
        return self.my_name or default_name(self.my_id)

    @property
    def is_host(self) -> bool:
        return bool(self.my_id) and self.pendu.host_id == self.my_id

    def participants(self) -> List[str]:
        """Local id first, then remote players in arrival order."""
        return [self.my_id] + [p.id for p in self._players]

    def player_name(self, player_id: str) -> str:
        if player_id == self.my_id:
            return self.display_name
        for p in self._players:
            if p.id == player_id:
                return p.name
        return default_name(player_id)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ---- write side ----

    def set_my_id(self, peer_id: str) -> None:
        self.my_id = peer_id
        self._publish()

    def set_my_name(self, name: str) -> None:
        self.preferences.set(NAME_KEY, name)
        self.my_name = name
        self._publish()

    def add_player(self, player: Player) -> None:
        """Add ``player``, or replace the entry with the same id in place."""
        if any(p.id == player.id for p in self._players):
            self._players = tuple(player if p.id == player.id else p for p in self._players)
        else:
            self._players = self._players + (player,)
        self._publish()

    def remove_player(self, player_id: str) -> None:
        self._players = tuple(p for p in self._players if p.id != player_id)
        self._publish()

    def set_current_game(self, game: GameView) -> None:
        self.current_game = game
        self._publish()

    def update_pendu(self, update: PenduUpdate) -> None:
        merged = merge_pendu(self.pendu, update)
        if merged is self.pendu:
            return
        self.pendu = merged
        self._publish()

    def reset_pendu(self) -> None:
        self.pendu = PenduState()
        self._publish()

    def add_chat_message(self, message: ChatMessage) -> None:
        self._chat = (self._chat + (message,))[-self.chat_limit :]
        self._publish()

    def clear_chat(self) -> None:
        self._chat = ()
        self._publish()

    def _publish(self) -> None:
        for listener in list(self._listeners):
            listener(self)
