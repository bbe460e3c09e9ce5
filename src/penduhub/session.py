"""Peer session: signaling lifecycle, channel table and reconnection."""

from __future__ import annotations

import asyncio
import logging
import time
from functools import partial
from typing import Dict, List, Optional

from pydantic import BaseModel

from . import game
from .config import PEER_UNAVAILABLE, TRANSIENT_SIGNALING_ERRORS, PeerConfig
from .models import ChatMessage, PenduUpdate, Player
from .preferences import LocalPreferences
from .protocol import ChatBroadcast, PenduUpdateMessage, PlayerIdentity, PlayerSync, encode_message
from .relay import Relay
from .store import SessionStore, default_name
from .transport import (
    Channel,
    ChannelClosed,
    ChannelData,
    ChannelOpen,
    SignalingDisconnected,
    SignalingError,
    SignalingOpen,
    Transport,
    TransportFactory,
)
from .websocket import WebSocketTransport

logger = logging.getLogger(__name__)


class PeerUnavailableError(ConnectionError):
    """The signaling service does not know the requested remote id."""


class SignalingUnavailableError(ConnectionError):
    """Signaling could not be (re-)established within the attempt cap."""


class ConnectTimeout(ConnectionError):
    pass


class PeerSession:
    """
    The process-wide peer endpoint.

    Owns the transport and the table of open channels, feeds incoming data to
    the relay and keeps the store's player list in step with the channels.
    All events are handled on the asyncio loop that called ``initialize``.
    """

    def __init__(
        self,
        store: SessionStore,
        transport_factory: TransportFactory,
        config: Optional[PeerConfig] = None,
    ):
        self.store = store
        self.config = config or PeerConfig()
        self.transport_factory = transport_factory
        self.relay = Relay(self)
        self.connections: Dict[str, Channel] = {}
        self.transport: Optional[Transport] = None
        self.online = False
        self.signaling_failed = False
        self.reconnect_attempts = 0

        self._initialized = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._sync_task: Optional[asyncio.Task] = None
        self._link_waiters: List[asyncio.Future] = []
        self._pending_connects: Dict[str, asyncio.Future] = {}
        self._handlers = {
            SignalingOpen: self._on_signaling_open,
            SignalingError: self._on_signaling_error,
            SignalingDisconnected: self._on_signaling_disconnected,
            ChannelOpen: lambda ev: self.on_connection_open(ev.channel),
            ChannelData: lambda ev: self.relay.handle_data(ev.data, ev.channel.peer),
            ChannelClosed: self._on_channel_closed_event,
        }

    # ---- lifecycle ----

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def initialize(self) -> None:
        """Open the signaling link once; later calls are no-ops."""
        if self._initialized:
            return
        self._initialized = True
        self._start_transport()
        self._sync_task = self.loop.create_task(self._resync_loop())

    def close(self) -> None:
        """Tear the session down and stop every timer it owns."""
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
        if self._sync_task is not None:
            self._sync_task.cancel()
            self._sync_task = None
        if self.transport is not None:
            self.transport.destroy()
            self.transport = None
        self.connections = {}
        self.online = False
        self.reconnect_attempts = 0
        self._initialized = False
        self._fail_waiters(SignalingUnavailableError("Session closed"))

    def dispatch(self, event) -> None:
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.debug(f"Ignoring unknown transport event {event!r}")
            return
        handler(event)

    def _start_transport(self) -> None:
        self.online = False
        self.transport = self.transport_factory(self.dispatch)
        self.transport.open(self.store.my_id or None)

    # ---- outbound ----

    async def connect_to(self, remote_id: str) -> Channel:
        """Open a channel to ``remote_id`` and wait until it is usable."""
        remote_id = remote_id.strip()
        if not remote_id:
            raise ValueError("remote id is required")
        if not self._initialized:
            self.initialize()
        if self.transport is None or self.transport.destroyed or self.signaling_failed:
            logger.error("No signaling link, reconnecting before connecting")
            if self.transport is not None:
                self.transport.destroy()
            self.signaling_failed = False
            self.reconnect_attempts = 0
            self._start_transport()
        if not self.online:
            await self._wait_until_online()

        existing = self._pending_connects.get(remote_id)
        if existing is not None and not existing.done():
            existing.set_exception(ConnectionError(f"Connect to {remote_id} superseded"))
        future = self.loop.create_future()
        self._pending_connects[remote_id] = future
        self.transport.connect(remote_id)
        try:
            return await asyncio.wait_for(future, self.config.connect_timeout)
        except asyncio.TimeoutError:
            raise ConnectTimeout(f"Timed out connecting to {remote_id}") from None
        finally:
            if self._pending_connects.get(remote_id) is future:
                del self._pending_connects[remote_id]

    async def _wait_until_online(self) -> None:
        if self.signaling_failed:
            raise SignalingUnavailableError("Signaling reconnection gave up")
        waiter = self.loop.create_future()
        self._link_waiters.append(waiter)
        try:
            await asyncio.wait_for(waiter, self.config.connect_timeout)
        except asyncio.TimeoutError:
            raise ConnectTimeout("Timed out waiting for the signaling link") from None
        finally:
            if waiter in self._link_waiters:
                self._link_waiters.remove(waiter)

    def broadcast(self, message: BaseModel) -> None:
        data = encode_message(message)
        for channel in list(self.connections.values()):
            if channel.open:
                channel.send(data)

    def send_to(self, peer_id: str, message: BaseModel) -> bool:
        channel = self.connections.get(peer_id)
        if channel is None or not channel.open:
            return False
        channel.send(encode_message(message))
        return True

    def send_chat(self, text: str) -> Optional[ChatMessage]:
        text = text.strip()
        if not text:
            return None
        now = int(time.time() * 1000)
        message = ChatMessage(
            id=f"{self.store.my_id}-{now}",
            sender_id=self.store.my_id,
            sender_name=self.store.display_name,
            text=text,
            timestamp=now,
        )
        self.store.add_chat_message(message)
        self.broadcast(ChatBroadcast(payload=message))
        return message

    def disconnect_all(self) -> None:
        """Leave the room: close every channel and forget remote players."""
        channels, self.connections = list(self.connections.values()), {}
        for channel in channels:
            channel.close()
        for player in self.store.players:
            self.store.remove_player(player.id)

    # ---- channel events ----

    def on_connection_open(self, channel: Channel) -> None:
        peer_id = channel.peer
        self.connections[peer_id] = channel
        store = self.store
        store.add_player(Player(id=peer_id, name=default_name(peer_id), is_host=False))
        channel.send(
            encode_message(
                PlayerSync(payload=PlayerIdentity(id=store.my_id, name=store.display_name))
            )
        )
        logger.info(f"Channel open with {peer_id} ({'inbound' if channel.inbound else 'outbound'})")

        if channel.inbound and store.pendu.phase == "LOBBY":
            store.update_pendu(
                PenduUpdate(mode="versus", host_id=store.pendu.host_id or store.my_id)
            )
            self.loop.call_later(self.config.settle_delay, self._send_settled_sync, channel)

        pending = self._pending_connects.get(peer_id)
        if pending is not None and not pending.done():
            pending.set_result(channel)

    def _send_settled_sync(self, channel: Channel) -> None:
        if channel.open and self.connections.get(channel.peer) is channel:
            channel.send(encode_message(self.relay.full_sync_message()))

    def _on_channel_closed_event(self, event: ChannelClosed) -> None:
        channel = event.channel
        current = self.connections.get(channel.peer)
        if current is not None and current is not channel:
            # A newer channel to the same peer replaced this one.
            return
        self.on_channel_closed(channel.peer)

    def on_channel_closed(self, remote_id: str) -> None:
        store = self.store
        store.remove_player(remote_id)
        self.connections.pop(remote_id, None)
        logger.info(f"Channel with {remote_id} closed")

        pending = self._pending_connects.get(remote_id)
        if pending is not None and not pending.done():
            pending.set_exception(ConnectionError(f"Channel to {remote_id} closed before opening"))

        if remote_id and remote_id == store.pendu.host_id:
            logger.warning(f"Host {remote_id} left, returning to the hub")
            store.reset_pendu()
            store.set_current_game("HUB")
            return

        update = game.player_left(store.pendu, remote_id)
        if update is None:
            return
        store.update_pendu(update)
        if store.is_host:
            self.broadcast(PenduUpdateMessage(payload=update))

    # ---- signaling events ----

    def _on_signaling_open(self, event: SignalingOpen) -> None:
        self.reconnect_attempts = 0
        self.signaling_failed = False
        self.online = True
        self.store.set_my_id(event.peer_id)
        if not self.store.my_name:
            self.store.set_my_name(default_name(event.peer_id))
        logger.info(f"Connected to signaling, id: {event.peer_id}")
        waiters, self._link_waiters = self._link_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)

    def _on_signaling_error(self, event: SignalingError) -> None:
        logger.error(f"Signaling error: {event.kind} {event.message}")
        if event.kind in TRANSIENT_SIGNALING_ERRORS:
            self.online = False
            self.schedule_reconnect()
        elif event.kind == PEER_UNAVAILABLE:
            logger.warning(f"Remote peer {event.peer} not found, check the id")
            pending = self._pending_connects.get(event.peer or "")
            if pending is not None and not pending.done():
                pending.set_exception(PeerUnavailableError(f"Peer {event.peer} is unavailable"))
        elif not self.online:
            self.signaling_failed = True
            self._fail_waiters(SignalingUnavailableError(f"Signaling refused: {event.kind}"))

    def _on_signaling_disconnected(self, event: SignalingDisconnected) -> None:
        logger.warning("Disconnected from signaling server")
        self.online = False
        if self.transport is not None and not self.transport.destroyed:
            self.transport.reconnect()

    # ---- reconnection ----

    def schedule_reconnect(self) -> Optional[float]:
        """Arm the single reconnect timer; returns its delay or ``None``."""
        if self._reconnect_handle is not None:
            return None
        if self.reconnect_attempts >= self.config.max_reconnect_attempts:
            logger.error(f"Giving up after {self.config.max_reconnect_attempts} attempts")
            self.signaling_failed = True
            self._fail_waiters(SignalingUnavailableError("Signaling reconnection gave up"))
            return None
        self.reconnect_attempts += 1
        delay = self.config.reconnect_delay(self.reconnect_attempts)
        logger.info(
            f"Reconnecting in {delay:.1f}s "
            f"(attempt {self.reconnect_attempts}/{self.config.max_reconnect_attempts})"
        )
        self._reconnect_handle = self.loop.call_later(delay, self._reconnect)
        return delay

    def _reconnect(self) -> None:
        self._reconnect_handle = None
        if self.transport is not None:
            self.transport.destroy()
        self._start_transport()

    def _fail_waiters(self, exc: Exception) -> None:
        waiters, self._link_waiters = self._link_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_exception(exc)
        pending, self._pending_connects = self._pending_connects, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(exc)

    async def _resync_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.sync_interval)
            self.relay.broadcast_safety_net()


def create_session(
    config: Optional[PeerConfig] = None,
    transport_factory: Optional[TransportFactory] = None,
) -> PeerSession:
    """Build a session whose store and transport follow ``config``.

    Without a factory the session talks to the broker at ``config.signaling_url``.
    """
    config = config or PeerConfig.from_env()
    store = SessionStore(
        LocalPreferences(config.preferences_path), chat_limit=config.chat_history_limit
    )
    if transport_factory is None:
        transport_factory = partial(WebSocketTransport, config=config)
    return PeerSession(store, transport_factory, config)
