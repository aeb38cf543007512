"""
Shard clients and pooled connection handles.

The pool treats the network client as an opaque capability: anything that can
connect, authenticate, answer a liveness probe, quit and disconnect satisfies
ShardClient. RedisShardClient is the default implementation and drives one
dedicated redis-py connection per handle.
"""

import logging
import time
from typing import Any, Protocol, runtime_checkable

from redis.asyncio.connection import Connection
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.utils import str_if_bytes

from .endpoints import ShardEndpoint

logger = logging.getLogger(__name__)

PING_RESPONSE = "PONG"


@runtime_checkable
class ShardClient(Protocol):
    """Capabilities the pool needs from a backend client."""

    async def connect(self) -> None: ...

    async def authenticate(self, credential: str) -> Any: ...

    async def ping(self) -> Any: ...

    async def quit(self) -> Any: ...

    async def disconnect(self) -> None: ...


class RedisShardClient:
    """Single Redis connection bound to one shard endpoint."""

    def __init__(
        self,
        endpoint: ShardEndpoint,
        connect_timeout: float = 2.0,
        socket_timeout: float = 2.0,
    ):
        self.endpoint = endpoint
        self._connection = Connection(
            host=endpoint.host,
            port=endpoint.port,
            socket_connect_timeout=connect_timeout,
            socket_timeout=socket_timeout,
            # Nothing may be sent before AUTH on password-protected shards:
            # no HELLO (RESP3) and no CLIENT SETINFO
            protocol=2,
            lib_name=None,
            lib_version=None,
        )
        self._disconnected = False

    async def connect(self) -> None:
        await self._connection.connect()
        self._disconnected = False

    async def authenticate(self, credential: str) -> Any:
        return await self.execute_command("AUTH", credential)

    async def ping(self) -> str:
        return str_if_bytes(await self.execute_command("PING"))

    async def quit(self) -> Any:
        return await self.execute_command("QUIT")

    async def disconnect(self) -> None:
        self._disconnected = True
        await self._connection.disconnect()

    async def execute_command(self, *args: Any) -> Any:
        """Send one command and read its reply on this connection."""
        # redis-py reconnects transparently; a handle that was closed must stay closed
        if self._disconnected or not self._connection.is_connected:
            raise RedisConnectionError(f"Connection to {self.endpoint.name} is closed")

        await self._connection.send_command(*args)
        return await self._connection.read_response()


class ShardConnection:
    """A live client bound to the shard it was created for, plus lifecycle metadata."""

    def __init__(self, endpoint: ShardEndpoint, client: ShardClient):
        self.endpoint = endpoint
        self.client = client
        self.created_at = time.time()
        self.last_used = self.created_at
        self.borrow_count = 0
        self.closed = False

    def mark_borrowed(self) -> None:
        self.last_used = time.time()
        self.borrow_count += 1

    @property
    def idle_time(self) -> float:
        """Time since last borrow"""
        return time.time() - self.last_used

    @property
    def age(self) -> float:
        return time.time() - self.created_at

    async def execute_command(self, *args: Any) -> Any:
        return await self.client.execute_command(*args)

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<ShardConnection {self.endpoint.name} {state} id={id(self):#x}>"
