"""
Shared fixtures for shard pool tests.

Tests run against an in-memory fake network instead of live Redis servers.
"""

import asyncio
import tempfile
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from shardpool import PoolConfig, RoundRobinPool, ShardEndpoint


class FakeShardClient:
    """In-memory stand-in for a Redis client bound to one shard."""

    def __init__(self, endpoint: ShardEndpoint, network: "FakeShardNetwork"):
        self.endpoint = endpoint
        self.network = network
        self.connected = False
        self.authenticated_with: str | None = None
        self.quit_called = False
        self.disconnect_calls = 0
        self.ping_response: Any = "PONG"
        self.ping_delay = 0.0
        self.fail_quit = False
        self.fail_disconnect = False

    async def connect(self) -> None:
        if self.network.connect_gate is not None:
            await self.network.connect_gate.wait()
        if self.endpoint.host in self.network.down_hosts:
            raise ConnectionRefusedError(f"{self.endpoint.name} refused connection")
        self.connected = True

    async def authenticate(self, credential: str) -> str:
        expected = self.network.passwords.get(self.endpoint.host)
        if expected is not None and credential != expected:
            raise PermissionError("WRONGPASS invalid username-password pair")
        self.authenticated_with = credential
        return "OK"

    async def ping(self) -> Any:
        if self.ping_delay:
            await asyncio.sleep(self.ping_delay)
        if not self.connected:
            raise ConnectionError(f"Connection to {self.endpoint.name} is closed")
        return self.ping_response

    async def quit(self) -> str:
        if self.fail_quit or not self.connected:
            raise ConnectionError("QUIT failed")
        self.quit_called = True
        return "OK"

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        if self.fail_disconnect:
            raise OSError("socket already closed")
        self.connected = False

    async def execute_command(self, *args: Any) -> Any:
        if not self.connected:
            raise ConnectionError(f"Connection to {self.endpoint.name} is closed")
        return f"{self.endpoint.name}:{' '.join(map(str, args))}"


class FakeShardNetwork:
    """Tracks every fake client created and lets tests take shards down."""

    def __init__(self):
        self.clients: list[FakeShardClient] = []
        self.down_hosts: set[str] = set()
        self.passwords: dict[str, str] = {}
        # When set, connects wait until the event fires
        self.connect_gate: asyncio.Event | None = None

    def client_factory(self, endpoint: ShardEndpoint) -> FakeShardClient:
        client = FakeShardClient(endpoint, self)
        self.clients.append(client)
        return client


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def network() -> FakeShardNetwork:
    return FakeShardNetwork()


@pytest.fixture
def shards() -> list[ShardEndpoint]:
    return [
        ShardEndpoint("shard-a", 6379),
        ShardEndpoint("shard-b", 6380),
        ShardEndpoint("shard-c", 6381, password="secret"),
    ]


@pytest.fixture
def make_pool(network, shards):
    """Build a RoundRobinPool on the fake network."""

    def _make(endpoints=None, **config: Any) -> RoundRobinPool:
        return RoundRobinPool(
            shards if endpoints is None else endpoints,
            config=PoolConfig(**config),
            client_factory=network.client_factory,
            validation_timeout=0.05,
        )

    return _make
