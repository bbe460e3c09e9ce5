"""Player actions for a hangman room, applied locally and shared with peers."""

from __future__ import annotations

import logging
import random
from typing import Optional

from . import game
from .models import PenduUpdate
from .protocol import ChangeGame, PenduUpdateMessage
from .session import PeerSession
from .words import WordBank

logger = logging.getLogger(__name__)


class PenduRoom:
    """Actions the local player can take, bound to one peer session."""

    def __init__(
        self,
        session: PeerSession,
        words: Optional[WordBank] = None,
        rng: Optional[random.Random] = None,
    ):
        self.session = session
        self.words = words or WordBank.default()
        self.rng = rng or random.Random()

    @property
    def store(self):
        return self.session.store

    def create(self) -> None:
        """Open the hangman lobby from the hub, pulling connected peers along."""
        store = self.store
        has_players = bool(store.players)
        store.update_pendu(game.open_room(store.pendu, store.my_id, has_players))
        store.set_current_game("PENDU")
        if has_players:
            self.session.broadcast(
                PenduUpdateMessage(
                    payload=PenduUpdate(phase="LOBBY", host_id=store.my_id, mode="versus")
                )
            )
            self.session.broadcast(ChangeGame(game="PENDU"))

    def launch(self, difficulty: str, mode: str) -> PenduUpdate:
        store = self.store
        if not game.can_launch(store.pendu, store.my_id):
            raise game.InvalidAction("Only the host can launch the round")
        update = game.launch_round(
            store.pendu,
            store.participants(),
            store.my_id,
            difficulty,
            mode,
            self.words,
            self.rng,
        )
        logger.info(f"Launching round {update.round_number} ({difficulty}, {mode})")
        return self._commit(update, share=mode == "versus")

    def next_round(self, difficulty: str) -> PenduUpdate:
        store = self.store
        if not game.can_relaunch(store.pendu, store.my_id):
            raise game.InvalidAction("Only the winner or the host can start the next round")
        participants = store.participants()
        if not store.is_host and store.pendu.mode == "versus":
            participants = game.current_roster(store.pendu, participants)
        update = game.next_round(
            store.pendu, participants, store.my_id, difficulty, self.words, self.rng
        )
        return self._commit(update, share=store.pendu.mode != "solo")

    def guess_letter(self, letter: str) -> PenduUpdate:
        store = self.store
        update = game.guess_letter(store.pendu, store.my_id, letter)
        return self._commit(update, share=store.pendu.mode != "solo")

    def guess_word(self, text: str) -> PenduUpdate:
        store = self.store
        update = game.guess_word(store.pendu, store.my_id, text)
        return self._commit(update, share=store.pendu.mode != "solo")

    def back_to_hub(self) -> None:
        self.store.reset_pendu()
        self.store.set_current_game("HUB")
        self.session.broadcast(ChangeGame(game="HUB"))

    def _commit(self, update: PenduUpdate, share: bool) -> PenduUpdate:
        self.store.update_pendu(update)
        if share:
            self.session.broadcast(PenduUpdateMessage(payload=update))
        return update
