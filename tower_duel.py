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
import os
import random

from broadcaster import Broadcaster
from config import Config, ConfigurationLoadError
from logger import setup_logging
from server_data import ServerData
from stacking.collapse import CollapseResolver
from tower_manager import TowerManager
from websocket_server import WebsocketServer


class TowerDuel:

    def __init__(self, config: Config):
        self._config = config
        self._data = ServerData()
        self._broadcaster = Broadcaster()
        rng = random.Random()
        self._manager = TowerManager(
            self._data,
            self._broadcaster,
            resolver=CollapseResolver(self._config.collapse_settings(), rng),
            layers=self._config.config["tower"]["layers"],
            blocks_per_layer=self._config.config["tower"]["blocks_per_layer"],
            announce_delay=self._config.announce_delay,
            rng=rng,
        )
        self._websocket_server = WebsocketServer(self._config.config, self._data, self._manager, self._broadcaster)

    async def begin(self):
        logging.info("Starting TowerDuel Websocket Server")
        async with self._websocket_server:
            server = self._config.config["server"]
            logging.info(f"Listening on ws://{server['host']}:{self._websocket_server.port}")
            try:
                logging.info("Ctrl^C to quit")
                await self._data.shutdown_event.wait()
            except asyncio.CancelledError:
                logging.info("Cancelled ...")
            finally:
                logging.info("Stopping Server ...")
                self._data.shutdown_event.set()
                await self._manager.wait_deferred()


async def main():
    logging.info("Starting tower duel ...")

    config = Config(os.environ.get("TOWER_DUEL_CONFIG", "./config.toml"))

    try:
        await config.initialize()
    except ConfigurationLoadError:
        logging.error("Could not load configuration. Exiting")
        return

    tower_duel = TowerDuel(config)
    await tower_duel.begin()


def run():
    setup_logging()
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logging.info("Cancelled ...")


if __name__ == "__main__":
    run()
