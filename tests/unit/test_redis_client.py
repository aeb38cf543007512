"""
Tests for RedisShardClient against a real socket.

A small in-process RESP server stands in for Redis so the connection
handshake redis-py performs is exercised end to end.
"""

import asyncio

import pytest

from shardpool import (
    ConnectionSetupError,
    RoundRobinAssigner,
    RoundRobinConnectionFactory,
    ShardEndpoint,
)


class FakeRedisServer:
    """Minimal RESP2 server: AUTH, PING, QUIT; everything else answers +OK."""

    def __init__(self, password: str | None = None):
        self.password = password
        self.commands: list[list[str]] = []
        self.connections = 0
        self.port: int | None = None
        self._server: asyncio.AbstractServer | None = None
        self._writers: set[asyncio.StreamWriter] = set()

    async def __aenter__(self) -> "FakeRedisServer":
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self._server.close()
        for writer in list(self._writers):
            writer.close()
        await self._server.wait_closed()

    def endpoint(self, password: str | None = None) -> ShardEndpoint:
        return ShardEndpoint("127.0.0.1", self.port, password)

    async def _read_command(self, reader: asyncio.StreamReader) -> list[str] | None:
        header = await reader.readline()
        if not header:
            return None

        args = []
        for _ in range(int(header[1:])):
            length = int((await reader.readline())[1:])
            data = await reader.readexactly(length + 2)
            args.append(data[:-2].decode())
        return args

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.connections += 1
        self._writers.add(writer)
        authenticated = self.password is None
        try:
            while True:
                command = await self._read_command(reader)
                if command is None:
                    break
                self.commands.append(command)

                name = command[0].upper()
                if name == "AUTH":
                    authenticated = command[-1] == self.password
                    reply = b"+OK\r\n" if authenticated else b"-WRONGPASS invalid password\r\n"
                elif not authenticated:
                    reply = b"-NOAUTH Authentication required.\r\n"
                elif name == "PING":
                    reply = b"+PONG\r\n"
                else:
                    reply = b"+OK\r\n"

                writer.write(reply)
                await writer.drain()
                if name == "QUIT":
                    break
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            self._writers.discard(writer)
            writer.close()


def make_factory(endpoint: ShardEndpoint) -> RoundRobinConnectionFactory:
    return RoundRobinConnectionFactory(RoundRobinAssigner([endpoint]), validation_timeout=0.5)


class TestRedisHandshake:
    """Test connecting and authenticating with redis-py."""

    @pytest.mark.asyncio
    async def test_password_protected_shard(self):
        async with FakeRedisServer(password="secret") as server:
            factory = make_factory(server.endpoint("secret"))

            connection = await factory.create()

            assert server.commands[0] == ["AUTH", "secret"]
            assert await factory.validate(connection) is True
            await factory.destroy(connection)

        assert server.commands[-1] == ["QUIT"]

    @pytest.mark.asyncio
    async def test_wrong_password_fails_setup(self):
        async with FakeRedisServer(password="secret") as server:
            factory = make_factory(server.endpoint("guess"))

            with pytest.raises(ConnectionSetupError):
                await factory.create()

    @pytest.mark.asyncio
    async def test_open_shard_sends_nothing_on_connect(self):
        async with FakeRedisServer() as server:
            factory = make_factory(server.endpoint())

            connection = await factory.create()
            assert server.commands == []

            assert await factory.validate(connection) is True
            assert server.commands == [["PING"]]
            await factory.destroy(connection)

    @pytest.mark.asyncio
    async def test_execute_command_round_trip(self):
        async with FakeRedisServer(password="secret") as server:
            factory = make_factory(server.endpoint("secret"))
            connection = await factory.create()

            assert await connection.execute_command("SET", "key", "value") in (b"OK", "OK")
            assert server.commands[-1] == ["SET", "key", "value"]
            await factory.destroy(connection)


class TestClosedTransport:
    """A handle whose transport went away must not silently reconnect."""

    @pytest.mark.asyncio
    async def test_transport_closed_out_of_band_is_invalid(self):
        async with FakeRedisServer(password="secret") as server:
            factory = make_factory(server.endpoint("secret"))
            connection = await factory.create()

            await connection.client._connection.disconnect()

            assert await factory.validate(connection) is False
            assert server.connections == 1
            await factory.destroy(connection)
