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

import json
import logging

import websockets
from websockets.protocol import State as WebsocketState

from messages import OutboundMessage
from server_data import Room


class Broadcaster:
    """
    Serializes outbound messages and writes them to room members in call order.
    Closed or closing connections are skipped, a send that fails because the peer went away is
    logged and ignored; the disconnect path cleans the seat up.
    """

    async def send(self, connection, message: OutboundMessage) -> bool:
        if connection is None or connection.state in (WebsocketState.CLOSING, WebsocketState.CLOSED):
            logging.debug(f"Skipping {message.type} to a closed connection")
            return False
        try:
            await connection.send(json.dumps(message.to_packet()))
        except websockets.exceptions.ConnectionClosed:
            logging.debug(f"Connection closed while sending {message.type}")
            return False
        return True

    async def send_to_room(self, room: Room, message: OutboundMessage, exclude=None) -> int:
        delivered = 0
        for player in list(room.players):
            if exclude is not None and player.connection is exclude:
                continue
            if await self.send(player.connection, message):
                delivered += 1
        return delivered
