"""Tests for the word bank."""

import json

import pytest

from penduhub.words import DEFAULT_WORDS, WordBank


def test_default_bank_covers_every_difficulty():
    bank = WordBank.default()
    for difficulty in ("facile", "moyen", "difficile"):
        assert bank.pick(difficulty) in DEFAULT_WORDS[difficulty]


def test_bank_loads_from_file(tmp_path):
    path = tmp_path / "words.json"
    path.write_text(json.dumps({"facile": ["chat"]}), encoding="utf-8")
    bank = WordBank.from_file(str(path))
    assert bank.pick("facile") == "chat"
    with pytest.raises(KeyError):
        bank.pick("moyen")


def test_file_must_hold_an_object(tmp_path):
    path = tmp_path / "words.json"
    path.write_text(json.dumps(["chat"]), encoding="utf-8")
    with pytest.raises(ValueError):
        WordBank.from_file(str(path))
