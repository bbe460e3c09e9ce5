"""Unit tests for the hangman reducers."""

import pytest

from penduhub import game
from penduhub.game import InvalidAction
from penduhub.models import PenduPlayerState, PenduState, merge_pendu
from penduhub.words import WordBank


class FirstChoice:
    """Deterministic stand-in for ``random.Random``."""

    def choice(self, seq):
        return seq[0]


WORDS = WordBank({"facile": ["chat"], "moyen": ["éléphant"], "difficile": ["sphinx"]})


def solo_round(difficulty="facile"):
    state = PenduState(host_id="P1")
    update = game.launch_round(state, ["P1"], "P1", difficulty, "solo", WORDS, FirstChoice())
    return merge_pendu(state, update)


def versus_round():
    state = PenduState(host_id="P1", mode="versus")
    update = game.launch_round(
        state, ["P1", "P2", "P3"], "P1", "facile", "versus", WORDS, FirstChoice()
    )
    return merge_pendu(state, update)


def play(state, actor, letters):
    for letter in letters:
        state = merge_pendu(state, game.guess_letter(state, actor, letter))
    return state


def test_solo_round_is_won_by_guessing_every_letter():
    state = solo_round()
    assert state.word == "CHAT"
    assert state.masked_word == ["_", "_", "_", "_"]
    assert state.current_turn_id == "P1"
    assert state.round_number == 1

    state = play(state, "P1", "CHAT")
    assert state.phase == "ROUND_WON"
    assert state.masked_word == ["C", "H", "A", "T"]
    assert state.winner_id == "P1"
    assert state.player_state("P1").mistakes == 0


def test_solo_miss_keeps_turn_and_counts_mistake():
    state = play(solo_round(), "P1", "z")
    assert state.wrong_letters == ["Z"]
    assert state.guessed_letters == ["Z"]
    assert state.current_turn_id == "P1"
    assert state.player_state("P1").mistakes == 1
    assert state.phase == "PLAYING"


def test_solo_five_misses_lose_the_round():
    state = play(solo_round(), "P1", "BDEFG")
    assert state.phase == "ROUND_LOST"
    assert state.player_state("P1").eliminated is True
    assert state.player_state("P1").mistakes == game.MAX_MISTAKES


def test_guessed_letters_split_between_hits_and_misses():
    state = play(solo_round(), "P1", "CZAX")
    assert set(state.wrong_letters) <= set(state.guessed_letters)
    hits = set(state.guessed_letters) - set(state.wrong_letters)
    assert hits == {"C", "A"}
    assert not hits & set(state.wrong_letters)


def test_letter_cannot_be_guessed_twice():
    state = play(solo_round(), "P1", "C")
    with pytest.raises(InvalidAction):
        game.guess_letter(state, "P1", "c")


@pytest.mark.parametrize("letter", ["", "ab", "3", " "])
def test_rejects_anything_but_one_letter(letter):
    with pytest.raises(InvalidAction):
        game.guess_letter(solo_round(), "P1", letter)


def test_accented_guess_reveals_normalized_letter():
    state = solo_round("moyen")
    assert state.word == "ELEPHANT"
    state = play(state, "P1", "é")
    assert state.masked_word == ["E", "_", "E", "_", "_", "_", "_", "_"]


def test_versus_round_excludes_chooser_from_turns():
    state = versus_round()
    assert state.chooser_id == "P1"
    assert state.current_turn_id == "P2"
    assert [ps.player_id for ps in state.player_states] == ["P1", "P2", "P3"]
    with pytest.raises(InvalidAction):
        game.guess_letter(state, "P1", "C")
    with pytest.raises(InvalidAction):
        game.guess_letter(state, "P3", "C")


def test_versus_hit_keeps_turn_miss_passes_it():
    state = play(versus_round(), "P2", "C")
    assert state.current_turn_id == "P2"
    state = play(state, "P2", "B")
    assert state.current_turn_id == "P3"


def test_versus_elimination_passes_turn_to_remaining_player():
    state = versus_round()
    for i, letter in enumerate("BDEFGIJKL"):
        actor = "P2" if i % 2 == 0 else "P3"
        state = play(state, actor, letter)

    p2, p3 = state.player_state("P2"), state.player_state("P3")
    assert p2.mistakes == 5 and p2.eliminated is True
    assert p3.mistakes == 4 and p3.eliminated is False
    assert state.phase == "PLAYING"
    assert state.current_turn_id == "P3"

    state = play(state, "P3", "M")
    assert state.phase == "ROUND_LOST"
    assert state.winner_id == ""


def test_correct_word_wins_round():
    update = game.guess_word(versus_round(), "P2", "chat")
    assert update.phase == "ROUND_WON"
    assert update.winner_id == "P2"
    assert update.masked_word == ["C", "H", "A", "T"]


def test_wrong_word_consumes_turn_and_attempt():
    state = versus_round()
    state = merge_pendu(state, game.guess_word(state, "P2", "CHIEN"))
    assert state.player_state("P2").word_attempts == 1
    assert state.current_turn_id == "P3"
    assert state.phase == "PLAYING"


def test_three_wrong_words_eliminate_solo_player():
    state = solo_round()
    for _ in range(game.MAX_WORD_ATTEMPTS):
        state = merge_pendu(state, game.guess_word(state, "P1", "CHIEN"))
    assert state.player_state("P1").eliminated is True
    assert state.phase == "ROUND_LOST"
    with pytest.raises(InvalidAction):
        game.guess_word(state, "P1", "CHAT")


def test_next_round_lets_winner_choose():
    state = versus_round()
    state = merge_pendu(state, game.guess_word(state, "P2", "CHAT"))
    assert game.can_relaunch(state, "P2")
    assert game.can_relaunch(state, "P1")
    assert not game.can_relaunch(state, "P3")

    update = game.next_round(state, ["P1", "P2", "P3"], "P2", "difficile", WORDS, FirstChoice())
    state = merge_pendu(state, update)
    assert state.round_number == 2
    assert state.chooser_id == "P2"
    assert state.current_turn_id == "P1"
    assert state.word == "SPHINX"
    assert state.winner_id == ""
    assert all(ps.mistakes == 0 for ps in state.player_states)


def test_next_round_requires_finished_round():
    with pytest.raises(InvalidAction):
        game.next_round(versus_round(), ["P1", "P2", "P3"], "P1", "facile", WORDS)


def test_launch_rules():
    with pytest.raises(InvalidAction):
        game.launch_round(PenduState(), ["P1"], "P1", "facile", "versus", WORDS)
    with pytest.raises(InvalidAction):
        game.launch_round(PenduState(), ["P1"], "P1", "expert", "solo", WORDS)
    with pytest.raises(InvalidAction):
        game.launch_round(versus_round(), ["P1", "P2"], "P1", "facile", "versus", WORDS)


def test_can_launch_only_for_host_in_versus():
    state = PenduState(host_id="P1", mode="versus")
    assert game.can_launch(state, "P1")
    assert not game.can_launch(state, "P2")
    assert game.can_launch(PenduState(mode="solo"), "P2")


def test_player_left_passes_turn():
    update = game.player_left(versus_round(), "P2")
    assert update.current_turn_id == "P3"
    assert [ps.eliminated for ps in update.player_states] == [False, True, False]


def test_last_guesser_leaving_loses_round():
    state = merge_pendu(versus_round(), game.player_left(versus_round(), "P2"))
    update = game.player_left(state, "P3")
    assert update.phase == "ROUND_LOST"


def test_player_left_ignored_outside_versus_round():
    assert game.player_left(solo_round(), "P1") is None
    assert game.player_left(PenduState(mode="versus"), "P2") is None
    assert game.player_left(versus_round(), "P9") is None


def test_next_turn_wraps_and_skips_chooser_and_eliminated():
    states = [
        PenduPlayerState(player_id="A"),
        PenduPlayerState(player_id="B", eliminated=True),
        PenduPlayerState(player_id="C"),
        PenduPlayerState(player_id="D"),
    ]
    assert game.next_turn(states, "D", "C") == "A"
    assert game.next_turn(states, "A", "A") == "C"
    assert game.next_turn(states[1:2], "", "B") == ""


def test_normalize_strips_diacritics():
    assert game.normalize("Crème brûlée") == "CREME BRULEE"


def test_first_listed_player_may_relaunch_after_loss():
    state = PenduState(
        phase="ROUND_LOST",
        mode="versus",
        host_id="H",
        player_states=[PenduPlayerState(player_id="A"), PenduPlayerState(player_id="B")],
    )
    assert game.can_relaunch(state, "A")
    assert game.can_relaunch(state, "H")
    assert not game.can_relaunch(state, "B")
    assert not game.can_relaunch(state.model_copy(update={"phase": "PLAYING"}), "H")


def test_roster_drops_players_who_left_but_keeps_losers():
    state = versus_round()
    state = merge_pendu(state, game.player_left(state, "P3"))
    for letter in "BDEFG":
        state = merge_pendu(state, game.guess_letter(state, "P2", letter))
    assert state.phase == "ROUND_LOST"
    assert state.player_state("P2").eliminated is True

    assert game.departed_players(state) == ["P3"]
    assert game.current_roster(state, ["P2", "P1", "P3", "P4"]) == ["P2", "P1"]
