"""Small string-keyed preference store backed by a JSON file."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

NAME_KEY = "myName"


class LocalPreferences:
    """
    Keeps local values such as the display name.
    Without a path the values only live in memory.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else None
        self._values: Dict[str, str] = {}
        if self.path is not None and self.path.exists():
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Ignoring unreadable preferences at {self.path}: {e}")
                data = {}
            if isinstance(data, dict):
                self._values = {str(k): str(v) for k, v in data.items()}

    def get(self, key: str, default: str = "") -> str:
        return self._values.get(key, default)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self._values, f, indent=2)
