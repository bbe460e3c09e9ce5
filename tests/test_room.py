"""Tests for the local player's room actions."""

import pytest

from penduhub.game import InvalidAction
from penduhub.models import PenduState, PenduUpdate
from penduhub.room import PenduRoom
from penduhub.words import WordBank

WORDS = WordBank({"facile": ["chat"], "moyen": ["chien"], "difficile": ["sphinx"]})


class FirstChoice:
    def choice(self, seq):
        return seq[0]


def test_create_alone_opens_solo_lobby(make_session):
    session = make_session("P1")
    PenduRoom(session, WORDS).create()
    assert session.store.current_game == "PENDU"
    assert session.store.pendu.phase == "LOBBY"
    assert session.store.pendu.mode == "solo"
    assert session.store.pendu.host_id == "P1"


def test_create_with_peers_pulls_them_into_the_room(make_session):
    session = make_session("P1", peers=("P2",))
    PenduRoom(session, WORDS).create()
    assert session.store.pendu.mode == "versus"
    assert session.connections["P2"].sent == [
        {"type": "PENDU_UPDATE", "payload": {"phase": "LOBBY", "hostId": "P1", "mode": "versus"}},
        {"type": "CHANGE_GAME", "game": "PENDU"},
    ]


def test_solo_game_from_lobby_to_next_round(make_session):
    session = make_session("P1")
    room = PenduRoom(session, WORDS, FirstChoice())
    room.create()
    room.launch("facile", "solo")
    for letter in "chat":
        room.guess_letter(letter)
    assert session.store.pendu.phase == "ROUND_WON"

    room.next_round("moyen")
    pendu = session.store.pendu
    assert pendu.phase == "PLAYING"
    assert pendu.word == "CHIEN"
    assert pendu.round_number == 2
    assert pendu.guessed_letters == []


def test_versus_launch_is_shared(make_session):
    session = make_session("P1", host_id="P1", peers=("P2",))
    room = PenduRoom(session, WORDS, FirstChoice())
    update = room.launch("facile", "versus")
    sent = session.connections["P2"].sent[-1]
    assert sent["type"] == "PENDU_UPDATE"
    assert sent["payload"]["word"] == "CHAT"
    assert sent["payload"]["currentTurnId"] == "P2"
    assert update.chooser_id == "P1"


def test_only_host_launches_versus(make_session):
    session = make_session("P2", host_id="P1", peers=("P1",))
    with pytest.raises(InvalidAction):
        PenduRoom(session, WORDS).launch("facile", "versus")
    assert session.connections["P1"].sent == []


def test_next_round_needs_winner_or_host(make_session):
    session = make_session("P3", host_id="P1", peers=("P1", "P2"))
    session.store.update_pendu(PenduUpdate(phase="ROUND_WON", winner_id="P2"))
    with pytest.raises(InvalidAction):
        PenduRoom(session, WORDS).next_round("facile")


def test_guess_out_of_turn_changes_nothing(make_session):
    session = make_session("P1", host_id="P1", peers=("P2",))
    room = PenduRoom(session, WORDS, FirstChoice())
    room.launch("facile", "versus")
    before = session.store.pendu
    with pytest.raises(InvalidAction):
        room.guess_letter("c")
    assert session.store.pendu == before


def test_back_to_hub_resets_and_tells_peers(make_session):
    session = make_session("P1", host_id="P1", peers=("P2",))
    room = PenduRoom(session, WORDS, FirstChoice())
    room.create()
    room.launch("facile", "versus")
    room.back_to_hub()
    assert session.store.current_game == "HUB"
    assert session.store.pendu == PenduState()
    assert session.connections["P2"].sent[-1] == {"type": "CHANGE_GAME", "game": "HUB"}
