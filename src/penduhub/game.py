"""Hangman ("pendu") rules expressed as pure reducers over PenduState."""

from __future__ import annotations

import random
import unicodedata
from typing import List, Optional, Sequence

from .models import DIFFICULTIES, PenduPlayerState, PenduState, PenduUpdate
from .words import WordBank

MAX_MISTAKES = 5
MAX_WORD_ATTEMPTS = 3
BLANK = "_"


class InvalidAction(ValueError):
    """The requested action is not allowed in the current state."""


def normalize(text: str) -> str:
    """Strip diacritics and uppercase, e.g. ``"éléphant" -> "ELEPHANT"``."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c)).upper()


# ---------- Turn helpers ----------


def active_players(
    player_states: Sequence[PenduPlayerState], chooser_id: str
) -> List[PenduPlayerState]:
    """Players still allowed to guess this round."""
    return [
        ps for ps in player_states if not ps.eliminated and ps.player_id != chooser_id
    ]


def next_turn(
    player_states: Sequence[PenduPlayerState], chooser_id: str, current_id: str
) -> str:
    """Next non-eliminated, non-chooser player after ``current_id``, wrapping.

    Returns ``""`` when nobody can play.
    """
    order = [ps.player_id for ps in player_states]
    start = order.index(current_id) if current_id in order else -1
    count = len(order)
    for offset in range(1, count + 1):
        ps = player_states[(start + offset) % count]
        if not ps.eliminated and ps.player_id != chooser_id:
            return ps.player_id
    return ""


def _penalize(
    player_states: Sequence[PenduPlayerState], actor: str, counter: str, limit: int
) -> List[PenduPlayerState]:
    out: List[PenduPlayerState] = []
    for ps in player_states:
        if ps.player_id == actor:
            value = getattr(ps, counter) + 1
            ps = ps.model_copy(
                update={counter: value, "eliminated": ps.eliminated or value >= limit}
            )
        out.append(ps)
    return out


def _check_can_act(state: PenduState, actor: str) -> None:
    if state.phase != "PLAYING":
        raise InvalidAction("No round in progress")
    if state.mode != "solo" and (
        state.current_turn_id != actor or actor == state.chooser_id
    ):
        raise InvalidAction("Not this player's turn")
    me = state.player_state(actor)
    if me is not None and me.eliminated:
        raise InvalidAction("Player is eliminated")


# ---------- Round setup ----------


def _start_round(
    state: PenduState,
    players: List[str],
    actor: str,
    difficulty: str,
    mode: str,
    chooser: str,
    words: WordBank,
    rng,
) -> PenduUpdate:
    word = normalize(words.pick(difficulty, rng))
    if mode == "solo":
        first = actor
    else:
        first = next((p for p in players if p != chooser), chooser)
    return PenduUpdate(
        word=word,
        masked_word=[BLANK] * len(word),
        guessed_letters=[],
        wrong_letters=[],
        phase="PLAYING",
        mode=mode,
        difficulty=difficulty,
        host_id=state.host_id or actor,
        chooser_id=chooser,
        current_turn_id=first,
        player_states=[PenduPlayerState(player_id=p) for p in players],
        winner_id="",
        round_number=state.round_number + 1,
    )


def _round_players(participants: Sequence[str], actor: str, mode: str) -> List[str]:
    if mode == "solo":
        return [actor]
    players: List[str] = []
    for p in participants:
        if p and p not in players:
            players.append(p)
    if len(players) < 2:
        raise InvalidAction("Versus mode needs at least two players")
    return players


def _check_difficulty(difficulty: str) -> None:
    if difficulty not in DIFFICULTIES:
        raise InvalidAction(f"Unknown difficulty {difficulty!r}")


def launch_round(
    state: PenduState,
    participants: Sequence[str],
    actor: str,
    difficulty: str,
    mode: str,
    words: WordBank,
    rng: Optional[random.Random] = None,
) -> PenduUpdate:
    """Start the first round of a room from the lobby."""
    if state.phase != "LOBBY":
        raise InvalidAction("Rounds are launched from the lobby")
    if mode not in ("solo", "versus"):
        raise InvalidAction(f"Unknown mode {mode!r}")
    _check_difficulty(difficulty)
    rng = rng or random
    players = _round_players(participants, actor, mode)
    chooser = "" if mode == "solo" else rng.choice(players)
    return _start_round(state, players, actor, difficulty, mode, chooser, words, rng)


def next_round(
    state: PenduState,
    participants: Sequence[str],
    actor: str,
    difficulty: str,
    words: WordBank,
    rng: Optional[random.Random] = None,
) -> PenduUpdate:
    """Start another round in the current mode; the last winner chooses next."""
    if state.phase not in ("ROUND_WON", "ROUND_LOST"):
        raise InvalidAction("The current round is not finished")
    _check_difficulty(difficulty)
    rng = rng or random
    players = _round_players(participants, actor, state.mode)
    if state.mode == "solo":
        chooser = ""
    elif state.winner_id in players:
        chooser = state.winner_id
    else:
        chooser = rng.choice(players)
    return _start_round(state, players, actor, difficulty, state.mode, chooser, words, rng)


def open_room(state: PenduState, my_id: str, has_remote_players: bool) -> PenduUpdate:
    return PenduUpdate(
        phase="LOBBY",
        host_id=my_id,
        mode="versus" if has_remote_players else "solo",
    )


# ---------- Guesses ----------


def guess_letter(state: PenduState, actor: str, letter: str) -> PenduUpdate:
    """Apply one letter guess.

    A hit reveals every matching position and keeps the turn; a miss records
    the letter and counts a mistake for ``actor``. Completing the word wins
    before the all-eliminated check is made.
    """
    _check_can_act(state, actor)
    guess = normalize(letter.strip())
    if len(guess) != 1 or not guess.isalpha():
        raise InvalidAction(f"Not a single letter: {letter!r}")
    if guess in state.guessed_letters:
        raise InvalidAction(f"Letter {guess} was already guessed")

    target = normalize(state.word)
    correct = guess in target
    masked = list(state.masked_word)
    wrong = list(state.wrong_letters)
    player_states = list(state.player_states)

    if correct:
        for i, ch in enumerate(target):
            if ch == guess:
                masked[i] = state.word[i]
    else:
        wrong.append(guess)
        player_states = _penalize(player_states, actor, "mistakes", MAX_MISTAKES)

    phase = "PLAYING"
    winner = ""
    if BLANK not in masked:
        phase = "ROUND_WON"
        winner = actor
    elif not active_players(player_states, state.chooser_id):
        phase = "ROUND_LOST"

    if phase != "PLAYING":
        turn = state.current_turn_id
    elif state.mode == "solo" or correct:
        turn = actor
    else:
        turn = next_turn(player_states, state.chooser_id, actor)

    return PenduUpdate(
        guessed_letters=list(state.guessed_letters) + [guess],
        masked_word=masked,
        wrong_letters=wrong,
        player_states=player_states,
        current_turn_id=turn,
        phase=phase,
        winner_id=winner,
    )


def guess_word(state: PenduState, actor: str, text: str) -> PenduUpdate:
    """Try the whole word; a miss always consumes the turn."""
    _check_can_act(state, actor)
    guess = normalize(text.strip())
    if not guess:
        raise InvalidAction("Empty word guess")

    if guess == normalize(state.word):
        return PenduUpdate(masked_word=list(state.word), phase="ROUND_WON", winner_id=actor)

    player_states = _penalize(
        state.player_states, actor, "word_attempts", MAX_WORD_ATTEMPTS
    )
    if not active_players(player_states, state.chooser_id):
        return PenduUpdate(
            player_states=player_states,
            current_turn_id=state.current_turn_id,
            phase="ROUND_LOST",
        )
    turn = actor if state.mode == "solo" else next_turn(
        player_states, state.chooser_id, actor
    )
    return PenduUpdate(player_states=player_states, current_turn_id=turn, phase="PLAYING")


# ---------- Departures and permissions ----------


def player_left(state: PenduState, player_id: str) -> Optional[PenduUpdate]:
    """Eliminate a departed player in place during a versus round.

    Returns ``None`` when the departure does not affect the round.
    """
    if state.mode != "versus" or state.phase != "PLAYING":
        return None
    if state.player_state(player_id) is None:
        return None

    player_states = [
        ps.model_copy(update={"eliminated": True}) if ps.player_id == player_id else ps
        for ps in state.player_states
    ]
    if not active_players(player_states, state.chooser_id):
        return PenduUpdate(player_states=player_states, phase="ROUND_LOST")
    if state.current_turn_id == player_id:
        return PenduUpdate(
            player_states=player_states,
            current_turn_id=next_turn(player_states, state.chooser_id, player_id),
        )
    return PenduUpdate(player_states=player_states)


def departed_players(state: PenduState) -> List[str]:
    """Players eliminated by :func:`player_left` rather than by their counters."""
    return [
        ps.player_id
        for ps in state.player_states
        if ps.eliminated
        and ps.mistakes < MAX_MISTAKES
        and ps.word_attempts < MAX_WORD_ATTEMPTS
    ]


def current_roster(state: PenduState, participants: Sequence[str]) -> List[str]:
    """Participants still seated at the table of the last round.

    Peers that only reach the room through the host learn of departures from
    ``playerStates``, not from a closed channel.
    """
    listed = {ps.player_id for ps in state.player_states}
    gone = set(departed_players(state))
    return [p for p in participants if p in listed and p not in gone]


def can_launch(state: PenduState, my_id: str) -> bool:
    return state.mode == "solo" or state.host_id in ("", my_id)


def can_relaunch(state: PenduState, my_id: str) -> bool:
    """Solo players, the winner and the host may start the next round.

    After a loss the first listed player may too.
    """
    if state.phase not in ("ROUND_WON", "ROUND_LOST"):
        return False
    if state.mode == "solo" or my_id in (state.winner_id, state.host_id):
        return True
    if state.phase == "ROUND_LOST" and state.player_states:
        return state.player_states[0].player_id == my_id
    return False
