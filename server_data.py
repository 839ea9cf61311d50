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
import dataclasses
from typing import Any, Optional

from stacking.tower import Tower


@dataclasses.dataclass(eq=False)
class Player:
    number: int
    name: str
    connection: Any
    score: int = 0

    def to_packet(self) -> dict:
        return {"name": self.name, "score": self.score, "number": self.number}


@dataclasses.dataclass(eq=False)
class Room:
    code: str
    tower: Tower
    players: list[Player] = dataclasses.field(default_factory=list)
    current_turn: int = 1
    game_started: bool = False
    game_over: bool = False
    winner: Optional[int] = None
    games_played: int = 0  # bumped on every fresh tower, stale announcements compare against it
    lock: asyncio.Lock = dataclasses.field(default_factory=asyncio.Lock, repr=False)

    def player(self, number: int) -> Optional[Player]:
        for player in self.players:
            if player.number == number:
                return player
        return None

    def opponent_of(self, number: int) -> Optional[Player]:
        for player in self.players:
            if player.number != number:
                return player
        return None

    def free_seat(self) -> int:
        taken = {player.number for player in self.players}
        return 1 if 1 not in taken else 2

    @property
    def is_active(self) -> bool:
        return self.game_started and not self.game_over

    def scores(self) -> list[dict]:
        return [player.to_packet() for player in self.players]


@dataclasses.dataclass
class Session:
    """What a single connection knows about where it sits."""
    connection: Any
    room_code: Optional[str] = None
    player_number: Optional[int] = None

    @property
    def seated(self) -> bool:
        return self.room_code is not None

    def leave(self):
        self.room_code = None
        self.player_number = None


class ServerData:

    def __init__(self):
        self.rooms: dict[str, Room] = dict()
        self.shutdown_event = asyncio.Event()
