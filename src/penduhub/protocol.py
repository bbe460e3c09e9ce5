"""Peer message envelopes and their JSON wire codec.

Every message is a JSON object tagged by ``type``. Field names follow the
wire contract used by compatible peers, so models carry camelCase aliases.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .models import ChatMessage, GameView, PenduState, PenduUpdate

logger = logging.getLogger(__name__)


class ChangeGame(BaseModel):
    type: Literal["CHANGE_GAME"] = "CHANGE_GAME"
    game: GameView


class PenduUpdateMessage(BaseModel):
    type: Literal["PENDU_UPDATE"] = "PENDU_UPDATE"
    payload: PenduUpdate


class ChatBroadcast(BaseModel):
    type: Literal["CHAT_MESSAGE"] = "CHAT_MESSAGE"
    payload: ChatMessage


class PlayerIdentity(BaseModel):
    id: str
    name: str


class PlayerSync(BaseModel):
    type: Literal["PLAYER_SYNC"] = "PLAYER_SYNC"
    payload: PlayerIdentity


class RequestSync(BaseModel):
    type: Literal["REQUEST_SYNC"] = "REQUEST_SYNC"


class FullSyncPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pendu: PenduState
    game: GameView


class FullSync(BaseModel):
    type: Literal["FULL_SYNC"] = "FULL_SYNC"
    payload: FullSyncPayload


PeerMessage = Annotated[
    Union[
        ChangeGame,
        PenduUpdateMessage,
        ChatBroadcast,
        PlayerSync,
        RequestSync,
        FullSync,
    ],
    Field(discriminator="type"),
]

# Host forwards these to everyone but the sender; non-host peers only see the host.
RELAY_TYPES = frozenset({"PENDU_UPDATE", "CHAT_MESSAGE", "PLAYER_SYNC"})

_ADAPTER: TypeAdapter = TypeAdapter(PeerMessage)


def encode_message(message: BaseModel) -> Dict[str, Any]:
    """Return the JSON-compatible wire form of ``message``."""
    return message.model_dump(mode="json", by_alias=True)


def decode_message(data: Union[Dict[str, Any], str, bytes]) -> Optional[BaseModel]:
    """Parse a wire message, or return ``None`` when it is malformed or unknown."""
    try:
        if isinstance(data, (str, bytes, bytearray)):
            return _ADAPTER.validate_json(data)
        return _ADAPTER.validate_python(data)
    except ValidationError as exc:
        kind = data.get("type") if isinstance(data, dict) else None
        logger.debug(f"Dropping malformed message (type={kind!r}): {exc.error_count()} errors")
        return None


def full_sync(state: PenduState, game: GameView) -> FullSync:
    return FullSync(payload=FullSyncPayload(pendu=state, game=game))
