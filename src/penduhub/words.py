"""Word lists used to pick the secret word of a round."""

from __future__ import annotations

import json
import random
from typing import Dict, List, Mapping, Optional, Sequence

DEFAULT_WORDS: Dict[str, List[str]] = {
    "facile": [
        "chat", "chien", "maison", "pomme", "soleil", "livre", "table", "fleur",
        "arbre", "poisson", "lune", "velo", "piano", "jardin", "gateau",
    ],
    "moyen": [
        "elephant", "parapluie", "chocolat", "montagne", "bibliotheque", "papillon",
        "ordinateur", "dinosaure", "crocodile", "telephone", "aventure", "boulanger",
    ],
    "difficile": [
        "anticonstitutionnellement", "hippopotame", "kaleidoscope", "xylophone",
        "labyrinthe", "rhododendron", "ornithorynque", "quintessence", "sphinx",
        "chrysantheme", "metamorphose",
    ],
}


class WordBank:
    """
    Word lists keyed by difficulty.
    """

    def __init__(self, words: Mapping[str, Sequence[str]]):
        self.words = {
            difficulty: [w.strip() for w in entries if w and w.strip()]
            for difficulty, entries in words.items()
        }

    @classmethod
    def from_file(cls, filepath: str):
        with open(filepath, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{filepath}: expected an object of word lists")
        return cls(data)

    @classmethod
    def default(cls):
        return cls(DEFAULT_WORDS)

    def pick(self, difficulty: str, rng: Optional[random.Random] = None) -> str:
        entries = self.words.get(difficulty)
        if not entries:
            raise KeyError(f"No words for difficulty {difficulty!r}")
        return (rng or random).choice(entries)
