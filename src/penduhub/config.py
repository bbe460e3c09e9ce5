"""Runtime configuration for peer sessions and the signaling broker."""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field


class IceServer(BaseModel):
    """STUN/TURN endpoint handed to transports that negotiate direct links."""

    urls: str
    username: Optional[str] = None
    credential: Optional[str] = None


ICE_SERVERS: List[IceServer] = [
    IceServer(urls="stun:stun.l.google.com:19302"),
    IceServer(urls="stun:stun1.l.google.com:19302"),
    IceServer(urls="stun:stun2.l.google.com:19302"),
    IceServer(urls="stun:stun3.l.google.com:19302"),
    IceServer(urls="stun:stun4.l.google.com:19302"),
    IceServer(urls="stun:stun.stunprotocol.org:3478"),
    IceServer(urls="stun:stun.voipbuster.com:3478"),
    IceServer(
        urls="turn:openrelay.metered.ca:80",
        username="openrelayproject",
        credential="openrelayproject",
    ),
    IceServer(
        urls="turn:openrelay.metered.ca:443",
        username="openrelayproject",
        credential="openrelayproject",
    ),
    IceServer(
        urls="turn:openrelay.metered.ca:443?transport=tcp",
        username="openrelayproject",
        credential="openrelayproject",
    ),
]

TRANSIENT_SIGNALING_ERRORS = frozenset(
    {"network", "server-error", "socket-error", "socket-closed"}
)
PEER_UNAVAILABLE = "peer-unavailable"


class PeerConfig(BaseModel):
    signaling_url: str = "ws://localhost:9000/ws/peer"
    ice_servers: List[IceServer] = Field(default_factory=lambda: list(ICE_SERVERS))

    # Signaling reconnection: delay = min(base * attempt, max), capped attempts
    reconnect_base_delay: float = Field(default=2.0, gt=0)
    reconnect_max_delay: float = Field(default=10.0, gt=0)
    max_reconnect_attempts: int = Field(default=5, ge=0)

    sync_interval: float = Field(default=5.0, gt=0)
    settle_delay: float = Field(default=0.3, ge=0)
    connect_timeout: float = Field(default=10.0, gt=0)
    chat_history_limit: int = Field(default=100, gt=0)
    preferences_path: Optional[Path] = None

    @classmethod
    def from_env(cls) -> "PeerConfig":
        """Build a config from ``PENDUHUB_*`` environment variables."""

        overrides = {}
        url = os.environ.get("PENDUHUB_SIGNALING_URL")
        if url:
            overrides["signaling_url"] = url
        prefs = os.environ.get("PENDUHUB_PREFERENCES")
        if prefs:
            overrides["preferences_path"] = Path(prefs).expanduser()
        for name in ("sync_interval", "settle_delay", "connect_timeout"):
            value = os.environ.get(f"PENDUHUB_{name.upper()}")
            if value:
                overrides[name] = float(value)
        attempts = os.environ.get("PENDUHUB_MAX_RECONNECT_ATTEMPTS")
        if attempts:
            overrides["max_reconnect_attempts"] = int(attempts)
        return cls(**overrides)

    def reconnect_delay(self, attempt: int) -> float:
        return min(self.reconnect_base_delay * attempt, self.reconnect_max_delay)
