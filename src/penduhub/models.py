"""Shared session and game snapshots exchanged between peers."""

from __future__ import annotations

import copy
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_serializer

Phase = Literal["LOBBY", "CHOOSING", "PLAYING", "ROUND_WON", "ROUND_LOST", "GAME_OVER"]
Mode = Literal["solo", "versus"]
Difficulty = Literal["facile", "moyen", "difficile"]
GameView = Literal["HUB", "PENDU"]

DIFFICULTIES: tuple = ("facile", "moyen", "difficile")


class Player(BaseModel):
    """A remote participant; the local player is tracked by the store itself."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    is_host: bool = Field(default=False, alias="isHost")


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    sender_id: str = Field(alias="senderId")
    sender_name: str = Field(alias="senderName")
    text: str
    timestamp: int  # epoch milliseconds


class PenduPlayerState(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    player_id: str = Field(alias="playerId")
    mistakes: int = Field(default=0, ge=0)
    word_attempts: int = Field(default=0, ge=0, alias="wordAttempts")
    eliminated: bool = False


class PenduState(BaseModel):
    """Authoritative hangman snapshot.

    ``word`` is stored normalized (see :func:`penduhub.game.normalize`) and
    ``masked_word`` holds one entry per character of ``word``, ``"_"`` while hidden.
    ``CHOOSING`` and ``GAME_OVER`` are reserved phases that no transition produces.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    word: str = ""
    masked_word: List[str] = Field(default_factory=list, alias="maskedWord")
    guessed_letters: List[str] = Field(default_factory=list, alias="guessedLetters")
    wrong_letters: List[str] = Field(default_factory=list, alias="wrongLetters")
    phase: Phase = "LOBBY"
    mode: Mode = "solo"
    difficulty: Difficulty = "facile"
    host_id: str = Field(default="", alias="hostId")
    chooser_id: str = Field(default="", alias="chooserId")
    current_turn_id: str = Field(default="", alias="currentTurnId")
    player_states: List[PenduPlayerState] = Field(
        default_factory=list, alias="playerStates"
    )
    winner_id: str = Field(default="", alias="winnerId")
    round_number: int = Field(default=0, alias="roundNumber")

    def player_state(self, player_id: str) -> Optional[PenduPlayerState]:
        for ps in self.player_states:
            if ps.player_id == player_id:
                return ps
        return None


class PenduUpdate(BaseModel):
    """Field mask over :class:`PenduState`.

    Only the attributes that were explicitly given are serialized and merged;
    everything else is left untouched on the receiving side.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    word: Optional[str] = None
    masked_word: Optional[List[str]] = Field(default=None, alias="maskedWord")
    guessed_letters: Optional[List[str]] = Field(default=None, alias="guessedLetters")
    wrong_letters: Optional[List[str]] = Field(default=None, alias="wrongLetters")
    phase: Optional[Phase] = None
    mode: Optional[Mode] = None
    difficulty: Optional[Difficulty] = None
    host_id: Optional[str] = Field(default=None, alias="hostId")
    chooser_id: Optional[str] = Field(default=None, alias="chooserId")
    current_turn_id: Optional[str] = Field(default=None, alias="currentTurnId")
    player_states: Optional[List[PenduPlayerState]] = Field(
        default=None, alias="playerStates"
    )
    winner_id: Optional[str] = Field(default=None, alias="winnerId")
    round_number: Optional[int] = Field(default=None, alias="roundNumber")

    @classmethod
    def from_state(cls, state: PenduState) -> "PenduUpdate":
        """Mask covering every field of ``state``."""
        return cls(**{name: getattr(state, name) for name in PenduState.model_fields})

    def changes(self) -> Dict[str, Any]:
        """Set fields keyed by attribute name, skipping explicit ``None`` values."""
        return {
            name: getattr(self, name)
            for name in self.model_fields_set
            if getattr(self, name) is not None
        }

    @model_serializer(mode="wrap")
    def _dump_set_fields(self, handler) -> Dict[str, Any]:
        data = handler(self)
        keep = set()
        for name, value in self.changes().items():
            keep.add(name)
            alias = type(self).model_fields[name].alias
            if alias:
                keep.add(alias)
        return {key: value for key, value in data.items() if key in keep}


def merge_pendu(state: PenduState, update: PenduUpdate) -> PenduState:
    """Shallow field-wise overwrite; returns a new snapshot and never aliases ``update``."""
    changes = update.changes()
    if not changes:
        return state
    return state.model_copy(update=copy.deepcopy(changes))
