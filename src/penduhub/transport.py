"""Transport boundary used by peer sessions.

A transport owns the signaling link and hands out ordered, reliable data
channels to remote peers. It reports everything that happens through event
objects passed to a single handler, always on the running asyncio loop.
"""

from __future__ import annotations

import asyncio
import itertools
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .config import PEER_UNAVAILABLE


# ---------- Events ----------


@dataclass(frozen=True)
class SignalingOpen:
    peer_id: str


@dataclass(frozen=True)
class SignalingError:
    kind: str
    message: str = ""
    peer: Optional[str] = None  # remote id for connect failures


@dataclass(frozen=True)
class SignalingDisconnected:
    pass


@dataclass(frozen=True)
class ChannelOpen:
    channel: "Channel"


@dataclass(frozen=True)
class ChannelData:
    channel: "Channel"
    data: Any


@dataclass(frozen=True)
class ChannelClosed:
    channel: "Channel"


EventHandler = Callable[[Any], None]


# ---------- Interfaces ----------


class Channel(ABC):
    """Ordered, reliable message channel to one remote peer."""

    def __init__(self, peer: str, inbound: bool):
        self.peer = peer
        self.inbound = inbound
        self.open = False

    @abstractmethod
    def send(self, message: Dict[str, Any]) -> None:
        """Queue a JSON-compatible message for the remote end."""

    @abstractmethod
    def close(self) -> None:
        """Close both ends; each side then sees :class:`ChannelClosed`."""

    def __repr__(self) -> str:
        direction = "in" if self.inbound else "out"
        return f"<{type(self).__name__} {direction} peer={self.peer} open={self.open}>"


class Transport(ABC):
    def __init__(self, handler: EventHandler):
        self.handler = handler
        self.destroyed = False

    @abstractmethod
    def open(self, peer_id: Optional[str] = None) -> None:
        """Bring the signaling link up, asking for ``peer_id`` when given.

        Completion is reported with :class:`SignalingOpen` or :class:`SignalingError`.
        """

    @abstractmethod
    def connect(self, remote_id: str) -> Channel:
        """Start a channel to ``remote_id``; it is usable once :class:`ChannelOpen` fires."""

    @abstractmethod
    def reconnect(self) -> None:
        """Re-establish a dropped signaling link under the same identity."""

    @abstractmethod
    def destroy(self) -> None:
        """Close every channel and the signaling link for good."""

    def emit(self, event: Any) -> None:
        if not self.destroyed or isinstance(event, ChannelClosed):
            self.handler(event)


TransportFactory = Callable[[EventHandler], Transport]


# ---------- In-process loopback ----------


class LoopbackNetwork:
    """
    In-process signaling service connecting loopback transports on one loop.
    Messages go through a JSON round trip so peers never share objects.
    """

    def __init__(self):
        self.peers: Dict[str, "LoopbackTransport"] = {}
        self.open_errors: List[str] = []  # queued failures for upcoming open() calls
        self._ids = itertools.count(1)

    def transport(self, handler: EventHandler) -> "LoopbackTransport":
        return LoopbackTransport(self, handler)

    def next_id(self) -> str:
        return f"peer-{next(self._ids):04d}"


class LoopbackChannel(Channel):
    def __init__(self, owner: "LoopbackTransport", peer: str, inbound: bool):
        super().__init__(peer, inbound)
        self.owner = owner
        self.remote: Optional["LoopbackChannel"] = None
        self.sent: List[Dict[str, Any]] = []

    def send(self, message: Dict[str, Any]) -> None:
        if not self.open or self.remote is None:
            raise ConnectionError(f"Channel to {self.peer} is not open")
        wire = json.dumps(message)
        self.sent.append(json.loads(wire))
        remote = self.remote
        asyncio.get_running_loop().call_soon(
            remote.owner.emit, ChannelData(remote, json.loads(wire))
        )

    def close(self) -> None:
        if not self.open:
            return
        loop = asyncio.get_running_loop()
        for end in (self, self.remote):
            if end is None or not end.open:
                continue
            end.open = False
            end.owner.channels.discard(end)
            loop.call_soon(end.owner.emit, ChannelClosed(end))


class LoopbackTransport(Transport):
    def __init__(self, network: LoopbackNetwork, handler: EventHandler):
        super().__init__(handler)
        self.network = network
        self.peer_id: Optional[str] = None
        self.channels: set = set()
        self.online = False

    def open(self, peer_id: Optional[str] = None) -> None:
        asyncio.get_running_loop().call_soon(self._finish_open, peer_id)

    def _finish_open(self, peer_id: Optional[str]) -> None:
        if self.destroyed:
            return
        if self.network.open_errors:
            kind = self.network.open_errors.pop(0)
            self.emit(SignalingError(kind, "loopback open failure"))
            return
        assigned = peer_id or self.network.next_id()
        current = self.network.peers.get(assigned)
        if current is not None and current is not self and not current.destroyed:
            self.emit(SignalingError("unavailable-id", f"{assigned} is taken"))
            return
        self.peer_id = assigned
        self.online = True
        self.network.peers[assigned] = self
        self.emit(SignalingOpen(assigned))

    def connect(self, remote_id: str) -> LoopbackChannel:
        channel = LoopbackChannel(self, remote_id, inbound=False)
        asyncio.get_running_loop().call_soon(self._finish_connect, channel)
        return channel

    def _finish_connect(self, channel: LoopbackChannel) -> None:
        if self.destroyed:
            return
        target = self.network.peers.get(channel.peer)
        if target is None or target.destroyed or not target.online:
            self.emit(SignalingError(PEER_UNAVAILABLE, "no such peer", peer=channel.peer))
            return
        incoming = LoopbackChannel(target, self.peer_id or "", inbound=True)
        channel.remote, incoming.remote = incoming, channel
        channel.open = incoming.open = True
        self.channels.add(channel)
        target.channels.add(incoming)
        target.emit(ChannelOpen(incoming))
        self.emit(ChannelOpen(channel))

    def drop_signaling(self) -> None:
        """Simulate losing the signaling link while channels stay up."""
        self.online = False
        self.emit(SignalingDisconnected())

    def reconnect(self) -> None:
        if not self.destroyed:
            self.open(self.peer_id)

    def destroy(self) -> None:
        if self.destroyed:
            return
        for channel in list(self.channels):
            channel.close()
        self.destroyed = True
        self.online = False
        if self.peer_id and self.network.peers.get(self.peer_id) is self:
            del self.network.peers[self.peer_id]
