import asyncio
import json
import random

import pytest
import websockets
from websockets.protocol import State as WebsocketState

from broadcaster import Broadcaster
from server_data import ServerData, Session
from stacking.collapse import CollapseResolver, CollapseSettings
from tower_manager import TowerManager

NEVER_COLLAPSE = CollapseSettings(structural_probability=0.0, hazard_slope=0.0, layer_danger_bonus=0.0)
STRUCTURAL_ALWAYS = CollapseSettings(structural_probability=1.0, hazard_slope=0.0, layer_danger_bonus=0.0)


class MockConnection:
    """Stands in for a websocket connection, records every packet it is sent."""

    def __init__(self, name: str = "conn"):
        self.name = name
        self.state = WebsocketState.OPEN
        self.sent: list[dict] = []
        self.drop_on_send = False

    async def send(self, message: str):
        if self.drop_on_send:
            raise websockets.exceptions.ConnectionClosedError(None, None)
        self.sent.append(json.loads(message))

    def types(self) -> list[str]:
        return [packet["type"] for packet in self.sent]

    def of_type(self, message_type: str) -> list[dict]:
        return [packet for packet in self.sent if packet["type"] == message_type]


class StalledConnection(MockConnection):
    """A peer that stopped reading: every send waits until released."""

    def __init__(self, name: str = "stalled"):
        super().__init__(name)
        self.unblock = asyncio.Event()

    async def send(self, message: str):
        await self.unblock.wait()
        await super().send(message)


class ScriptedRandom(random.Random):
    """random() hands out the scripted values in order, then falls back to a fixed 0.99."""

    def __init__(self, values=()):
        super().__init__(0)
        self.values = list(values)
        self.calls = 0

    def random(self):
        self.calls += 1
        if self.values:
            return self.values.pop(0)
        return 0.99


class GatedSleep:
    """Replacement for asyncio.sleep that records the delay and waits until released."""

    def __init__(self):
        self.delays: list[float] = []
        self.gate = asyncio.Event()

    async def __call__(self, delay: float):
        self.delays.append(delay)
        await self.gate.wait()

    def release(self):
        self.gate.set()


@pytest.fixture
def data():
    return ServerData()


@pytest.fixture
def sleep():
    return GatedSleep()


@pytest.fixture
def make_manager(data, sleep):
    def factory(settings: CollapseSettings = NEVER_COLLAPSE, **kwargs) -> TowerManager:
        kwargs.setdefault("sleep", sleep)
        kwargs.setdefault("rng", random.Random(1234))
        return TowerManager(data, Broadcaster(), resolver=CollapseResolver(settings, random.Random(99)), **kwargs)
    return factory


@pytest.fixture
def manager(make_manager):
    return make_manager()


@pytest.fixture
def alice():
    return Session(connection=MockConnection("alice"))


@pytest.fixture
def bob():
    return Session(connection=MockConnection("bob"))


@pytest.fixture
def carol():
    return Session(connection=MockConnection("carol"))
