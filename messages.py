"""
TowerDuel
Copyright (C) 2024 thiccaxe

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU Affero General Public License as published
by the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU Affero General Public License for more details.

You should have received a copy of the GNU Affero General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

import dataclasses
import json
from typing import ClassVar, Optional, Union

import voluptuous.error
from voluptuous import Schema, Required, Optional as OptionalKey, Any, All, Coerce, Length

MAX_NAME_LENGTH = 24


class MalformedMessageError(Exception): pass


def _is_block_id(value):
    if isinstance(value, bool) or not isinstance(value, int):
        raise voluptuous.error.Invalid("blockId must be an integer")
    return value


def _name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip()[:MAX_NAME_LENGTH] or None


# ---- inbound (client -> server) ----

@dataclasses.dataclass(frozen=True)
class CreateRoom:
    type: ClassVar[str] = "create-room"
    name: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class JoinRoom:
    type: ClassVar[str] = "join-room"
    room_code: str = ""
    name: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class RemoveBlock:
    type: ClassVar[str] = "remove-block"
    block_id: int


@dataclasses.dataclass(frozen=True)
class Restart:
    type: ClassVar[str] = "restart"


InboundMessage = Union[CreateRoom, JoinRoom, RemoveBlock, Restart]

_name_field = Any(None, All(str, _name))

INBOUND_SCHEMAS = {
    CreateRoom.type: Schema({
        Required("type"): CreateRoom.type,
        OptionalKey("name"): _name_field,
    }, extra=voluptuous.REMOVE_EXTRA),
    JoinRoom.type: Schema({
        Required("type"): JoinRoom.type,
        OptionalKey("name"): _name_field,
        OptionalKey("roomCode", default=""): Any(None, All(Coerce(str), Length(max=64))),
    }, extra=voluptuous.REMOVE_EXTRA),
    RemoveBlock.type: Schema({
        Required("type"): RemoveBlock.type,
        Required("blockId"): _is_block_id,
    }, extra=voluptuous.REMOVE_EXTRA),
    Restart.type: Schema({
        Required("type"): Restart.type,
    }, extra=voluptuous.REMOVE_EXTRA),
}


def parse_message(raw) -> InboundMessage:
    """
    Turn a raw text frame into one of the inbound message variants.
    Anything unusable raises MalformedMessageError, callers drop those without telling the client.
    """
    if not isinstance(raw, str):
        raise MalformedMessageError("Binary frames are not accepted")
    try:
        packet = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedMessageError("Not JSON") from e
    if not isinstance(packet, dict):
        raise MalformedMessageError("Not a JSON object")

    message_type = packet.get("type")
    schema = INBOUND_SCHEMAS.get(message_type) if isinstance(message_type, str) else None
    if schema is None:
        raise MalformedMessageError(f"Unknown message type {message_type!r}")
    try:
        packet = schema(packet)
    except voluptuous.error.Invalid as e:
        raise MalformedMessageError(f"Invalid {message_type} message: {e}") from e

    if message_type == CreateRoom.type:
        return CreateRoom(name=packet.get("name"))
    elif message_type == JoinRoom.type:
        return JoinRoom(room_code=packet.get("roomCode") or "", name=packet.get("name"))
    elif message_type == RemoveBlock.type:
        return RemoveBlock(block_id=packet["blockId"])
    elif message_type == Restart.type:
        return Restart()
    raise AssertionError(f"No variant for {message_type}")


# ---- outbound (server -> client) ----

@dataclasses.dataclass(frozen=True)
class RoomCreated:
    type: ClassVar[str] = "room-created"
    room_code: str
    player_number: int

    def to_packet(self) -> dict:
        return {"type": self.type, "roomCode": self.room_code, "playerNumber": self.player_number}


@dataclasses.dataclass(frozen=True)
class RoomJoined:
    type: ClassVar[str] = "room-joined"
    room_code: str
    player_number: int

    def to_packet(self) -> dict:
        return {"type": self.type, "roomCode": self.room_code, "playerNumber": self.player_number}


@dataclasses.dataclass(frozen=True)
class Error:
    type: ClassVar[str] = "error"
    message: str

    def to_packet(self) -> dict:
        return {"type": self.type, "message": self.message}


@dataclasses.dataclass(frozen=True)
class GameStart:
    type: ClassVar[str] = "game-start"
    message: str

    def to_packet(self) -> dict:
        return {"type": self.type, "message": self.message}


@dataclasses.dataclass(frozen=True)
class RoomState:
    type: ClassVar[str] = "room-state"
    room_code: str
    players: list
    blocks: list
    current_turn: int
    game_started: bool
    game_over: bool
    winner: Optional[int]

    @classmethod
    def of(cls, room) -> "RoomState":
        return cls(
            room_code=room.code,
            players=room.scores(),
            blocks=room.tower.to_packet(),
            current_turn=room.current_turn,
            game_started=room.game_started,
            game_over=room.game_over,
            winner=room.winner,
        )

    def to_packet(self) -> dict:
        return {
            "type": self.type,
            "roomCode": self.room_code,
            "players": self.players,
            "blocks": self.blocks,
            "currentTurn": self.current_turn,
            "gameStarted": self.game_started,
            "gameOver": self.game_over,
            "winner": self.winner,
        }


@dataclasses.dataclass(frozen=True)
class BlockRemoved:
    type: ClassVar[str] = "block-removed"
    block_id: int
    removed_by: int
    player_name: str

    def to_packet(self) -> dict:
        return {"type": self.type, "blockId": self.block_id, "removedBy": self.removed_by,
                "playerName": self.player_name}


@dataclasses.dataclass(frozen=True)
class TowerCollapsed:
    type: ClassVar[str] = "tower-collapsed"
    collapsed_by: int
    winner: Optional[int]
    winner_name: str
    scores: list

    def to_packet(self) -> dict:
        return {"type": self.type, "collapsedBy": self.collapsed_by, "winner": self.winner,
                "winnerName": self.winner_name, "scores": self.scores}


@dataclasses.dataclass(frozen=True)
class GameRestart:
    type: ClassVar[str] = "game-restart"

    def to_packet(self) -> dict:
        return {"type": self.type}


@dataclasses.dataclass(frozen=True)
class PlayerLeft:
    type: ClassVar[str] = "player-left"
    message: str = "Opponent disconnected!"

    def to_packet(self) -> dict:
        return {"type": self.type, "message": self.message}


OutboundMessage = Union[RoomCreated, RoomJoined, Error, GameStart, RoomState, BlockRemoved,
                        TowerCollapsed, GameRestart, PlayerLeft]
