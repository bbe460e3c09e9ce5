"""PenduHub package exposing the peer session, hangman rules, and the signaling broker."""

from .config import PeerConfig
from .room import PenduRoom
from .session import PeerSession, create_session
from .signaling import app
from .store import SessionStore

__all__ = ["PeerConfig", "PeerSession", "PenduRoom", "SessionStore", "app", "create_session"]
