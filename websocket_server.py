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
from typing import Optional

import websockets
from websockets.asyncio.server import Server, ServerConnection, serve

from broadcaster import Broadcaster
from messages import CreateRoom, Error, InboundMessage, JoinRoom, MalformedMessageError, RemoveBlock, Restart, \
    parse_message
from server_data import ServerData, Session
from tower_manager import PLAYER_ERRORS, TowerManager


class WebsocketServer:

    def __init__(self, config, data: ServerData, manager: TowerManager, broadcaster: Broadcaster):
        self._config = config
        self._data = data
        self._manager = manager
        self._broadcaster = broadcaster
        self._websocket_server = None
        self._server: Optional[Server] = None

    @property
    def port(self) -> int:
        return self._server.sockets[0].getsockname()[1]

    async def handler(self, websocket: ServerConnection):
        session = Session(connection=websocket)
        logging.debug(f"Connection from {websocket.remote_address}")
        shutdown_wait_task = asyncio.create_task(self._data.shutdown_event.wait())
        try:
            while True:
                receive_task = asyncio.create_task(websocket.recv())
                await asyncio.wait([receive_task, shutdown_wait_task], return_when=asyncio.FIRST_COMPLETED)

                # shutdown case
                if self._data.shutdown_event.is_set():
                    if receive_task.done():
                        # retrieve a ConnectionClosed so asyncio does not report it as never retrieved
                        receive_task.exception()
                    else:
                        receive_task.cancel()
                    await websocket.close()
                    break

                await self._handle_frame(session, receive_task.result())
        except websockets.exceptions.ConnectionClosed:
            logging.debug(f"Websocket connection closed")
        finally:
            shutdown_wait_task.cancel()
            await self._manager.connection_closed(session)

    async def _handle_frame(self, session: Session, frame):
        try:
            message = parse_message(frame)
        except MalformedMessageError as e:
            logging.debug(f"Dropping malformed message: {e}")
            return

        logging.debug(f"Received {message.type} from room={session.room_code} seat={session.player_number}")
        try:
            await self._dispatch(session, message)
        except PLAYER_ERRORS as e:
            logging.debug(f"Rejected {message.type}: {e}")
            await self._broadcaster.send(session.connection, Error(message=str(e)))

    async def _dispatch(self, session: Session, message: InboundMessage):
        if isinstance(message, CreateRoom):
            await self._manager.create_room(session, message.name)
        elif isinstance(message, JoinRoom):
            await self._manager.join_room(session, message.room_code, message.name)
        elif isinstance(message, RemoveBlock):
            await self._manager.remove_block(session, message.block_id)
        elif isinstance(message, Restart):
            await self._manager.restart(session)
        else:
            raise AssertionError(f"No handler for {message!r}")

    async def __aenter__(self):
        logging.debug(f"Starting websocket server")
        self._websocket_server = serve(self.handler, self._config["server"]["host"],
                                       int(self._config["server"]["port"]))
        self._server = await self._websocket_server.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        logging.debug(f"Stopping websocket server")
        return await self._websocket_server.__aexit__(exc_type, exc_val, exc_tb)
