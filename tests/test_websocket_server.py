import asyncio
import gc
import json
import random

import pytest
import websockets
from websockets.asyncio.client import connect
from websockets.protocol import State as WebsocketState

from broadcaster import Broadcaster
from conftest import NEVER_COLLAPSE
from server_data import ServerData
from stacking.collapse import CollapseResolver
from tower_manager import TowerManager
from websocket_server import WebsocketServer


async def receive(client) -> dict:
    return json.loads(await asyncio.wait_for(client.recv(), timeout=5))


async def send(client, **packet):
    await client.send(json.dumps(packet))


@pytest.fixture
async def server():
    data = ServerData()
    broadcaster = Broadcaster()
    manager = TowerManager(data, broadcaster, resolver=CollapseResolver(NEVER_COLLAPSE), rng=random.Random(5))
    websocket_server = WebsocketServer({"server": {"host": "127.0.0.1", "port": 0}}, data, manager, broadcaster)
    async with websocket_server:
        yield websocket_server, data
        data.shutdown_event.set()


async def test_two_players_over_websockets(server):
    websocket_server, data = server
    url = f"ws://127.0.0.1:{websocket_server.port}"

    async with connect(url) as alice, connect(url) as bob:
        await send(alice, type="create-room", name="Alice")
        created = await receive(alice)
        assert created["type"] == "room-created"
        assert created["playerNumber"] == 1
        code = created["roomCode"]

        await send(bob, type="join-room", name="Bob", roomCode=code.lower())
        assert await receive(bob) == {"type": "room-joined", "roomCode": code, "playerNumber": 2}
        bob_state = await receive(bob)
        alice_state = await receive(alice)
        assert bob_state == alice_state
        assert bob_state["gameStarted"] is True
        assert bob_state["currentTurn"] == 1
        assert (await receive(bob))["type"] == "game-start"
        assert (await receive(alice))["type"] == "game-start"

        # garbage is dropped silently, the next reply belongs to the next real message
        await alice.send("definitely not json")
        await send(alice, type="remove-block", blockId="0")
        await send(alice, type="remove-block", blockId=52)
        assert await receive(alice) == {"type": "error", "message": "Can't remove from top layer!"}

        await send(bob, type="remove-block", blockId=0)
        assert await receive(bob) == {"type": "error", "message": "Not your turn!"}

        await send(alice, type="remove-block", blockId=0)
        for client in (alice, bob):
            removed = await receive(client)
            assert removed == {"type": "block-removed", "blockId": 0, "removedBy": 1, "playerName": "Alice"}
            state = await receive(client)
            assert state["type"] == "room-state"
            assert state["currentTurn"] == 2
            assert state["players"][0]["score"] == 10

        await bob.close()
        assert await receive(alice) == {"type": "player-left", "message": "Opponent disconnected!"}
        room = data.rooms[code]
        assert room.game_over and not room.game_started

    for _ in range(50):
        if not data.rooms:
            break
        await asyncio.sleep(0.05)
    assert data.rooms == {}


async def test_join_unknown_room_reports_error(server):
    websocket_server, data = server

    async with connect(f"ws://127.0.0.1:{websocket_server.port}") as client:
        await send(client, type="join-room", name="Ghost", roomCode="ZZZZ")

        assert await receive(client) == {"type": "error", "message": "Room not found!"}
    assert data.rooms == {}


class ClosingWebsocket:
    """A connection whose peer is already gone: recv fails straight away."""

    remote_address = ("127.0.0.1", 0)

    def __init__(self):
        self.state = WebsocketState.OPEN
        self.closed = False

    async def recv(self):
        raise websockets.exceptions.ConnectionClosedError(None, None)

    async def close(self):
        self.closed = True


async def test_shutdown_racing_a_closed_connection_leaves_no_unretrieved_error():
    data = ServerData()
    broadcaster = Broadcaster()
    manager = TowerManager(data, broadcaster, resolver=CollapseResolver(NEVER_COLLAPSE))
    websocket_server = WebsocketServer({"server": {"host": "127.0.0.1", "port": 0}}, data, manager, broadcaster)
    loop = asyncio.get_running_loop()
    reported = []
    loop.set_exception_handler(lambda _loop, context: reported.append(context))
    websocket = ClosingWebsocket()
    data.shutdown_event.set()

    try:
        await websocket_server.handler(websocket)
        gc.collect()
        await asyncio.sleep(0)
    finally:
        loop.set_exception_handler(None)

    assert websocket.closed
    assert not [context for context in reported if "never retrieved" in context.get("message", "")]
