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

import asyncio
import logging
import random
from typing import Optional

from broadcaster import Broadcaster
from messages import (
    BlockRemoved,
    GameRestart,
    GameStart,
    PlayerLeft,
    RoomCreated,
    RoomJoined,
    RoomState,
    TowerCollapsed,
)
from server_data import Player, Room, ServerData, Session
from stacking.collapse import CollapseResolver
from stacking.room_codes import generate_room_code, normalize_room_code
from stacking.tower import DEFAULT_BLOCKS_PER_LAYER, DEFAULT_LAYERS, InvalidMoveError, Tower

MAX_PLAYERS = 2
DEFAULT_ANNOUNCE_DELAY = 0.5


class TowerGameError(Exception):
    """Base for errors reported back to the offending connection. str(error) is what the player sees."""


class RoomNotFoundError(TowerGameError): pass


class RoomFullError(TowerGameError): pass


class NotYourTurnError(TowerGameError): pass


class GameNotReadyError(TowerGameError): pass


PLAYER_ERRORS = (TowerGameError, InvalidMoveError)


class TowerManager:
    """
    Owns the room registry and runs the room state machine:

    Lobby (one seat) -> Active (two seats) -> Finished (collapse or opponent left) -> Active (restart)
    and Destroyed once the last seat disconnects.

    Every operation validates before it mutates. Work on a room, including its sends and the delayed
    collapse announcement, runs under that room's lock, so rooms never wait on each other. Registry
    inserts and deletes happen without awaiting anything in between.
    """

    def __init__(self, data: ServerData, broadcaster: Broadcaster,
                 resolver: Optional[CollapseResolver] = None,
                 layers: int = DEFAULT_LAYERS, blocks_per_layer: int = DEFAULT_BLOCKS_PER_LAYER,
                 announce_delay: float = DEFAULT_ANNOUNCE_DELAY,
                 rng: Optional[random.Random] = None,
                 sleep=asyncio.sleep):
        self._data = data
        self._broadcaster = broadcaster
        self._resolver = resolver or CollapseResolver()
        self._layers = layers
        self._blocks_per_layer = blocks_per_layer
        self._announce_delay = announce_delay
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._deferred: set[asyncio.Task] = set()

    def get_room(self, code: Optional[str]) -> Optional[Room]:
        if code is None:
            return None
        return self._data.rooms.get(normalize_room_code(code))

    def _is_registered(self, room: Room) -> bool:
        return self._data.rooms.get(room.code) is room

    def _build_tower(self) -> Tower:
        return Tower.build(self._layers, self._blocks_per_layer)

    def _room_of(self, session: Session) -> Room:
        room = self.get_room(session.room_code)
        if room is None:
            raise RoomNotFoundError("You are not in a room!")
        return room

    def _reset_game(self, room: Room):
        room.tower = self._build_tower()
        room.current_turn = 1
        room.game_over = False
        room.winner = None
        room.games_played += 1
        for player in room.players:
            player.score = 0

    async def create_room(self, session: Session, name: Optional[str] = None) -> Room:
        if session.seated:
            await self._leave_room(session)

        code = generate_room_code(self._data.rooms, self._rng)
        room = Room(code=code, tower=self._build_tower())
        room.players.append(Player(number=1, name=name or "Player 1", connection=session.connection))
        self._data.rooms[code] = room
        session.room_code, session.player_number = code, 1
        logging.info(f"Room {code} created by {room.players[0].name!r}")

        async with room.lock:
            await self._broadcaster.send(session.connection, RoomCreated(room_code=code, player_number=1))
        return room

    async def join_room(self, session: Session, room_code: str, name: Optional[str] = None) -> Room:
        room = self.get_room(room_code)
        if room is None:
            raise RoomNotFoundError("Room not found!")
        if session.seated:
            await self._leave_room(session)

        async with room.lock:
            if not self._is_registered(room):
                raise RoomNotFoundError("Room not found!")
            if len(room.players) >= MAX_PLAYERS:
                raise RoomFullError("Room is full!")

            number = room.free_seat()
            if room.game_over:
                # previous opponent left, start over with a fresh tower
                self._reset_game(room)
            player = Player(number=number, name=name or f"Player {number}", connection=session.connection)
            room.players.append(player)
            room.players.sort(key=lambda seat: seat.number)
            room.game_started = True
            room.current_turn = 1
            session.room_code, session.player_number = room.code, number
            logging.info(f"Room {room.code}: {player.name!r} joined as player {number}, game started")

            await self._broadcaster.send(session.connection, RoomJoined(room_code=room.code, player_number=number))
            await self._broadcaster.send_to_room(room, RoomState.of(room))
            first = room.player(1)
            await self._broadcaster.send_to_room(room, GameStart(message=f"Game started! {first.name} goes first."))
            return room

    async def remove_block(self, session: Session, block_id) -> bool:
        """
        Pull a block for the session's seat. Returns whether the tower collapsed.
        """
        room = self._room_of(session)
        async with room.lock:
            if not self._is_registered(room):
                raise RoomNotFoundError("You are not in a room!")
            number = session.player_number
            if not room.is_active:
                raise NotYourTurnError("Game is not in progress!")
            if room.current_turn != number:
                raise NotYourTurnError("Not your turn!")

            block = room.tower.remove(block_id, number)
            mover = room.player(number)
            mover.score += block.points
            collapsed = self._resolver.resolve(room.tower, block, room.tower.removed_count())
            removal = BlockRemoved(block_id=block.id, removed_by=number, player_name=mover.name)

            if collapsed:
                room.game_over = True
                other = room.opponent_of(number)
                room.winner = other.number if other else None
                logging.info(f"Room {room.code}: tower collapsed on player {number}, winner {room.winner}")

                await self._broadcaster.send_to_room(room, removal)
                self._schedule_collapse_announcement(room, number, other.name if other else "Nobody")
            else:
                room.current_turn = 2 if number == 1 else 1
                logging.debug(f"Room {room.code}: player {number} pulled block {block.id}, "
                              f"turn passes to {room.current_turn}")

                await self._broadcaster.send_to_room(room, removal)
                await self._broadcaster.send_to_room(room, RoomState.of(room))
            return collapsed

    async def restart(self, session: Session):
        room = self._room_of(session)
        async with room.lock:
            if not self._is_registered(room):
                raise RoomNotFoundError("You are not in a room!")
            if len(room.players) < MAX_PLAYERS:
                raise GameNotReadyError("Waiting for an opponent!")

            self._reset_game(room)
            room.game_started = True
            logging.info(f"Room {room.code} restarted by player {session.player_number}")

            await self._broadcaster.send_to_room(room, GameRestart())
            await self._broadcaster.send_to_room(room, RoomState.of(room))

    async def connection_closed(self, session: Session):
        await self._leave_room(session)

    async def _leave_room(self, session: Session):
        """Give up the session's seat: destroy the room if it empties, otherwise end the game for the other seat."""
        if not session.seated:
            return
        room = self.get_room(session.room_code)
        session.leave()
        if room is None:
            return

        async with room.lock:
            room.players = [player for player in room.players if player.connection is not session.connection]
            if not room.players:
                if self._is_registered(room):
                    del self._data.rooms[room.code]
                logging.info(f"Room {room.code} destroyed")
                return

            room.game_started = False
            room.game_over = True
            logging.info(f"Room {room.code}: a player left, {len(room.players)} remaining")
            await self._broadcaster.send_to_room(room, PlayerLeft())

    def _schedule_collapse_announcement(self, room: Room, collapsed_by: int, winner_name: str):
        task = asyncio.create_task(
            self._announce_collapse(room, room.games_played, collapsed_by, winner_name)
        )
        self._deferred.add(task)
        task.add_done_callback(self._deferred.discard)

    async def _announce_collapse(self, room: Room, games_played: int, collapsed_by: int, winner_name: str):
        await self._sleep(self._announce_delay)
        async with room.lock:
            if not self._is_registered(room):
                logging.debug(f"Room {room.code} is gone, dropping collapse announcement")
                return
            if room.games_played != games_played:
                logging.debug(f"Room {room.code} restarted, dropping stale collapse announcement")
                return
            await self._broadcaster.send_to_room(room, TowerCollapsed(
                collapsed_by=collapsed_by,
                winner=room.winner,
                winner_name=winner_name,
                scores=room.scores(),
            ))

    async def wait_deferred(self):
        while self._deferred:
            await asyncio.gather(*list(self._deferred))
