"""Shared test fixtures for the milestone bridge."""

import asyncio
import json

import pytest
from websockets.exceptions import ConnectionClosedError
from websockets.protocol import State

from milestone_bridge.broadcast import Broadcaster
from milestone_bridge.errors import DecodeError
from milestone_bridge.registry import ConnectionRegistry
from milestone_bridge.state import Event, StateStore


class FakeSocket:
    """Stands in for a websockets ServerConnection."""

    def __init__(self, fail=False, stall=False, gate=None, port=50000):
        self.sent = []
        self.gate = gate
        self.state = State.OPEN
        self.fail = fail
        self.stall = stall
        self.close_code = None
        self.remote_address = ("127.0.0.1", port)

    async def send(self, message):
        if self.state is not State.OPEN or self.fail:
            raise ConnectionClosedError(None, None)
        if self.stall:
            await asyncio.sleep(3600)
        if self.gate is not None:
            await self.gate.wait()
        self.sent.append(message)

    async def close(self, code=1000, reason=""):
        self.state = State.CLOSED
        self.close_code = code

    @property
    def messages(self):
        return [json.loads(m) for m in self.sent]


class FakeLedgerClient:
    """In-memory ledger: a head height plus (block, payload) log entries.

    A payload is a (percentage, window_name) tuple, or anything else to
    simulate an entry that fails to decode.
    """

    def __init__(self, height=100):
        self.height = height
        self.logs = []
        self.fetches = []
        self.error = None
        self.height_reads = 0

    def block_number(self):
        if self.error:
            raise self.error
        height = self.height
        self.height_reads += 1
        return height

    def fetch_logs(self, from_block, to_block):
        self.fetches.append((from_block, to_block))
        return [payload for block, payload in self.logs if from_block <= block <= to_block]

    def decode(self, log):
        if not isinstance(log, tuple):
            raise DecodeError(f"bad entry {log!r}")
        return Event(*log)

    def mine(self, *payloads):
        """Append one block holding the given log payloads."""
        self.height += 1
        for payload in payloads:
            self.logs.append((self.height, payload))


@pytest.fixture
def store() -> StateStore:
    return StateStore()


@pytest.fixture
def registry(store) -> ConnectionRegistry:
    return ConnectionRegistry(store, max_subscribers=0, snapshot_timeout=0.2)


@pytest.fixture
def broadcaster(store, registry) -> Broadcaster:
    return Broadcaster(store, registry, send_timeout=0.2)


@pytest.fixture
def ledger_client() -> FakeLedgerClient:
    return FakeLedgerClient()
