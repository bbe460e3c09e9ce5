"""FastAPI signaling broker: assigns peer ids and brokers data channels."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import ICE_SERVERS, PEER_UNAVAILABLE

logger = logging.getLogger(__name__)

app = FastAPI(title="PenduHub", description="Signaling broker for PenduHub peers")

PEER_ID_LENGTH = 16


@dataclass
class PeerLink:
    """A peer connected to the broker over its signaling socket."""

    peer_id: str
    websocket: WebSocket = field(repr=False)
    channels: Set[str] = field(default_factory=set)


@dataclass
class ChannelLink:
    """Brokered channel between an initiator and a target peer."""

    connection_id: str
    initiator: str
    target: str

    def other(self, peer_id: str) -> Optional[str]:
        if peer_id == self.initiator:
            return self.target
        if peer_id == self.target:
            return self.initiator
        return None


PEERS: Dict[str, PeerLink] = {}
CHANNELS: Dict[str, ChannelLink] = {}
BROKER_LOCK = asyncio.Lock()


class ConnectFrame(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    peer: str = Field(min_length=1)
    connection_id: str = Field(alias="connectionId", min_length=1)


class DataFrame(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    connection_id: str = Field(alias="connectionId", min_length=1)
    payload: Any = None


class CloseFrame(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    connection_id: str = Field(alias="connectionId", min_length=1)


def _generate_peer_id() -> str:
    return uuid.uuid4().hex[:PEER_ID_LENGTH]


async def _send(peer_id: Optional[str], frame: Dict[str, Any]) -> None:
    """Best-effort delivery to a connected peer."""
    if peer_id is None:
        return
    link = PEERS.get(peer_id)
    if link is None:
        return
    try:
        await link.websocket.send_json(frame)
    except RuntimeError:
        pass


async def _register(websocket: WebSocket, requested: Optional[str]) -> Optional[str]:
    async with BROKER_LOCK:
        if requested:
            if requested in PEERS:
                return None
            peer_id = requested
        else:
            peer_id = _generate_peer_id()
            while peer_id in PEERS:
                peer_id = _generate_peer_id()
        PEERS[peer_id] = PeerLink(peer_id=peer_id, websocket=websocket)
        return peer_id


async def _unregister(peer_id: str) -> List[ChannelLink]:
    async with BROKER_LOCK:
        link = PEERS.pop(peer_id, None)
        if link is None:
            return []
        closed = [CHANNELS.pop(cid) for cid in list(link.channels) if cid in CHANNELS]
        for channel in closed:
            other = PEERS.get(channel.other(peer_id) or "")
            if other is not None:
                other.channels.discard(channel.connection_id)
        return closed


async def _open_channel(peer_id: str, frame: ConnectFrame) -> None:
    async with BROKER_LOCK:
        target = PEERS.get(frame.peer)
        source = PEERS.get(peer_id)
        available = (
            target is not None
            and source is not None
            and frame.peer != peer_id
            and frame.connection_id not in CHANNELS
        )
        if available:
            CHANNELS[frame.connection_id] = ChannelLink(
                connection_id=frame.connection_id, initiator=peer_id, target=frame.peer
            )
            source.channels.add(frame.connection_id)
            target.channels.add(frame.connection_id)

    if not available:
        await _send(
            peer_id,
            {
                "type": "error",
                "kind": PEER_UNAVAILABLE,
                "message": f"Could not connect to peer {frame.peer}",
                "peer": frame.peer,
                "connectionId": frame.connection_id,
            },
        )
        return

    await _send(
        frame.peer,
        {"type": "channel-open", "connectionId": frame.connection_id, "peer": peer_id, "inbound": True},
    )
    await _send(
        peer_id,
        {"type": "channel-open", "connectionId": frame.connection_id, "peer": frame.peer, "inbound": False},
    )


async def _forward_data(peer_id: str, frame: DataFrame) -> None:
    async with BROKER_LOCK:
        channel = CHANNELS.get(frame.connection_id)
        target = channel.other(peer_id) if channel else None
    await _send(
        target,
        {"type": "data", "connectionId": frame.connection_id, "peer": peer_id, "payload": frame.payload},
    )


async def _close_channel(peer_id: str, frame: CloseFrame) -> None:
    async with BROKER_LOCK:
        channel = CHANNELS.get(frame.connection_id)
        target = channel.other(peer_id) if channel else None
        if target is None:
            return
        CHANNELS.pop(frame.connection_id, None)
        for end in (peer_id, target):
            link = PEERS.get(end)
            if link is not None:
                link.channels.discard(frame.connection_id)
    await _send(target, {"type": "close", "connectionId": frame.connection_id, "peer": peer_id})


FRAME_HANDLERS = {
    "connect": (ConnectFrame, _open_channel),
    "data": (DataFrame, _forward_data),
    "close": (CloseFrame, _close_channel),
}


@app.get("/api/peers/{peer_id}")
async def inspect_peer(peer_id: str) -> Dict[str, object]:
    async with BROKER_LOCK:
        link = PEERS.get(peer_id)
    if link is None:
        raise HTTPException(status_code=404, detail="Peer not found")
    return {"peerId": link.peer_id, "online": True, "channels": len(link.channels)}


@app.get("/api/ice")
def ice_servers() -> Dict[str, object]:
    return {"iceServers": [s.model_dump(exclude_none=True) for s in ICE_SERVERS]}


@app.websocket("/ws/peer")
async def peer_signaling(
    websocket: WebSocket, requested_id: Optional[str] = Query(default=None, alias="id")
) -> None:
    await websocket.accept()
    requested = requested_id.strip() if requested_id else None
    peer_id = await _register(websocket, requested)
    if peer_id is None:
        await websocket.send_json(
            {"type": "error", "kind": "unavailable-id", "message": f"ID {requested} is taken"}
        )
        await websocket.close()
        return

    logger.info(f"Peer {peer_id} online")
    await websocket.send_json({"type": "open", "id": peer_id})

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                message = None
            kind = message.get("type") if isinstance(message, dict) else None
            entry = FRAME_HANDLERS.get(kind)
            if entry is None:
                await websocket.send_json(
                    {"type": "error", "kind": "bad-frame", "message": f"Unknown frame {kind!r}"}
                )
                continue
            model, handler = entry
            try:
                frame = model.model_validate(message)
            except ValidationError as exc:
                await websocket.send_json(
                    {"type": "error", "kind": "bad-frame", "message": str(exc)}
                )
                continue
            await handler(peer_id, frame)
    except WebSocketDisconnect:
        pass
    finally:
        closed = await _unregister(peer_id)
        logger.info(f"Peer {peer_id} offline, closing {len(closed)} channel(s)")
        for channel in closed:
            await _send(
                channel.other(peer_id),
                {"type": "close", "connectionId": channel.connection_id, "peer": peer_id},
            )
