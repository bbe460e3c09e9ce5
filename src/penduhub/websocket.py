"""aiohttp transport talking to the PenduHub signaling broker.

Channels are relayed by the broker over the peer's signaling socket, so a
dropped socket also drops every channel it carried.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any, Dict, Optional

import aiohttp

from .config import PeerConfig
from .transport import (
    Channel,
    ChannelClosed,
    ChannelData,
    ChannelOpen,
    EventHandler,
    SignalingDisconnected,
    SignalingError,
    SignalingOpen,
    Transport,
)

logger = logging.getLogger(__name__)


class WebSocketChannel(Channel):
    def __init__(self, transport: "WebSocketTransport", peer: str, connection_id: str, inbound: bool):
        super().__init__(peer, inbound)
        self.transport = transport
        self.connection_id = connection_id

    def send(self, message: Dict[str, Any]) -> None:
        if not self.open:
            raise ConnectionError(f"Channel to {self.peer} is not open")
        self.transport.enqueue(
            {"type": "data", "connectionId": self.connection_id, "payload": message}
        )

    def close(self) -> None:
        if not self.open:
            return
        self.open = False
        self.transport.enqueue({"type": "close", "connectionId": self.connection_id})
        self.transport.forget(self)
        asyncio.get_running_loop().call_soon(self.transport.emit, ChannelClosed(self))


class WebSocketTransport(Transport):
    """
    Transport backed by one aiohttp websocket to the broker.
    A reader loop turns broker frames into transport events and a writer
    loop drains the outbound queue so frames leave in the order they were queued.
    """

    def __init__(
        self,
        handler: EventHandler,
        config: Optional[PeerConfig] = None,
        url: Optional[str] = None,
    ):
        super().__init__(handler)
        self.config = config or PeerConfig()
        self.url = url or self.config.signaling_url
        self.peer_id: Optional[str] = None
        self.channels: Dict[str, WebSocketChannel] = {}
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._requested_id: Optional[str] = None
        self._open_failed = False

    # ---- Transport API ----

    def open(self, peer_id: Optional[str] = None) -> None:
        if self.destroyed:
            return
        if self._task is not None and not self._task.done():
            return
        self._requested_id = peer_id or self.peer_id
        self._task = asyncio.get_running_loop().create_task(self._run())

    def connect(self, remote_id: str) -> WebSocketChannel:
        channel = WebSocketChannel(self, remote_id, uuid.uuid4().hex, inbound=False)
        self.channels[channel.connection_id] = channel
        self.enqueue({"type": "connect", "peer": remote_id, "connectionId": channel.connection_id})
        return channel

    def reconnect(self) -> None:
        self.open(self.peer_id)

    def destroy(self) -> None:
        if self.destroyed:
            return
        self.destroyed = True
        self._drop_channels()
        if self._task is not None:
            self._task.cancel()
            self._task = None

    # ---- helpers used by channels ----

    def enqueue(self, frame: Dict[str, Any]) -> None:
        self._outbox.put_nowait(frame)

    def forget(self, channel: WebSocketChannel) -> None:
        self.channels.pop(channel.connection_id, None)

    # ---- socket loops ----

    async def _run(self) -> None:
        params = {"id": self._requested_id} if self._requested_id else None
        self._open_failed = False
        self._outbox = asyncio.Queue()
        opened = False
        try:
            async with aiohttp.ClientSession() as http:
                async with http.ws_connect(self.url, params=params, heartbeat=30) as ws:
                    writer = asyncio.create_task(self._write_loop(ws, self._outbox))
                    try:
                        async for msg in ws:
                            if msg.type == aiohttp.WSMsgType.TEXT:
                                try:
                                    frame = json.loads(msg.data)
                                except json.JSONDecodeError:
                                    logger.debug("Ignoring non-JSON frame from broker")
                                    continue
                                self.handle_frame(frame)
                                opened = opened or self.peer_id is not None
                            elif msg.type == aiohttp.WSMsgType.ERROR:
                                break
                    finally:
                        writer.cancel()
                        for result in await asyncio.gather(writer, return_exceptions=True):
                            if isinstance(result, Exception):
                                logger.error(f"Broker writer failed: {result!r}")
        except aiohttp.ClientError as e:
            if not self.destroyed:
                self.emit(SignalingError("network", str(e)))
            return

        if self.destroyed or self._open_failed:
            return
        self._drop_channels()
        if opened:
            self.emit(SignalingDisconnected())
        else:
            self.emit(SignalingError("socket-closed", "Broker closed the connection"))

    async def _write_loop(self, ws: aiohttp.ClientWebSocketResponse, outbox: asyncio.Queue) -> None:
        """Send queued frames in order; a failed send closes the socket so the reader ends."""
        while True:
            frame = await outbox.get()
            try:
                await ws.send_json(frame)
            except (ConnectionError, aiohttp.ClientError) as e:
                logger.warning(f"Could not send {frame.get('type')!r} frame to broker: {e}")
                await ws.close()
                return

    def handle_frame(self, frame: Dict[str, Any]) -> None:
        """Turn one broker frame into transport events."""
        if not isinstance(frame, dict):
            return
        kind = frame.get("type")
        cid = frame.get("connectionId")
        if kind == "open":
            self.peer_id = frame.get("id")
            self.emit(SignalingOpen(self.peer_id))
        elif kind == "channel-open":
            channel = self.channels.get(cid)
            if channel is None:
                channel = WebSocketChannel(self, frame.get("peer", ""), cid, inbound=True)
                self.channels[cid] = channel
            channel.open = True
            self.emit(ChannelOpen(channel))
        elif kind == "data":
            channel = self.channels.get(cid)
            if channel is not None and channel.open:
                self.emit(ChannelData(channel, frame.get("payload")))
        elif kind == "close":
            channel = self.channels.pop(cid, None)
            if channel is not None and channel.open:
                channel.open = False
                self.emit(ChannelClosed(channel))
        elif kind == "error":
            if cid:
                self.channels.pop(cid, None)
            if self.peer_id is None:
                self._open_failed = True
            self.emit(
                SignalingError(frame.get("kind", "server-error"), frame.get("message", ""), frame.get("peer"))
            )
        else:
            logger.debug(f"Ignoring broker frame {kind!r}")

    def _drop_channels(self) -> None:
        channels, self.channels = list(self.channels.values()), {}
        for channel in channels:
            if channel.open:
                channel.open = False
                self.emit(ChannelClosed(channel))
