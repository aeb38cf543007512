"""
Round-robin connection factory.

Creates, validates and destroys ShardConnection handles for the bounded pool.
Each new handle is bound to the shard the assigner hands out next.
validate() and destroy() never raise: they run on cleanup paths where the
error that triggered them must stay the one reported.
"""

import asyncio
import logging
from collections.abc import Callable

from opentelemetry import trace

from .assigner import RoundRobinAssigner
from .client import PING_RESPONSE, RedisShardClient, ShardClient, ShardConnection
from .endpoints import ShardEndpoint
from .exceptions import ConnectionSetupError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

ClientFactory = Callable[[ShardEndpoint], ShardClient]


class RoundRobinConnectionFactory:
    """Builds connections to shards in round-robin order."""

    def __init__(
        self,
        assigner: RoundRobinAssigner,
        client_factory: ClientFactory | None = None,
        validation_timeout: float = 1.0,
    ):
        self.assigner = assigner
        self.client_factory: ClientFactory = client_factory or RedisShardClient
        self.validation_timeout = validation_timeout

    async def create(self, endpoint: ShardEndpoint | None = None) -> ShardConnection:
        """Open and authenticate a connection to the next shard in rotation.

        Passing an endpoint binds the connection to it without moving the
        rotation; add_shard uses this to pre-warm newly added shards.

        Raises:
            EmptyShardSetError: no shards are configured.
            ConnectionSetupError: connecting or authenticating failed.
        """
        if endpoint is None:
            endpoint = self.assigner.next()

        with tracer.start_as_current_span("shardpool.create_connection") as span:
            span.set_attribute("shard.host", endpoint.host)
            span.set_attribute("shard.port", endpoint.port)

            client = self.client_factory(endpoint)
            try:
                await client.connect()
                if endpoint.requires_auth:
                    await client.authenticate(endpoint.password)
            except Exception as e:
                span.record_exception(e)
                logger.error(f"Failed to create connection to shard {endpoint.name}: {e}")
                await self._close_quietly(client, endpoint)
                raise ConnectionSetupError(
                    f"Could not connect to shard {endpoint.name}", endpoint=endpoint, cause=e
                ) from e

        logger.debug(f"Created connection to shard {endpoint.name}")
        return ShardConnection(endpoint, client)

    async def validate(self, connection: ShardConnection) -> bool:
        """Probe the connection; True only when the shard answers PONG."""
        if connection.closed:
            return False

        try:
            response = await asyncio.wait_for(
                connection.client.ping(), timeout=self.validation_timeout
            )
        except Exception as e:
            logger.debug(f"Liveness probe failed for {connection!r}: {e}")
            return False

        if isinstance(response, bytes):
            response = response.decode("utf-8", errors="replace")
        if response != PING_RESPONSE:
            logger.debug(f"Unexpected liveness response from {connection!r}: {response!r}")
            return False
        return True

    async def destroy(self, connection: ShardConnection) -> None:
        """Quit gracefully, then force the transport closed. Never raises."""
        connection.closed = True

        try:
            await connection.client.quit()
        except Exception as e:
            logger.debug(f"QUIT failed on {connection!r}: {e}")

        await self._close_quietly(connection.client, connection.endpoint)
        logger.debug(f"Destroyed connection to shard {connection.endpoint.name}")

    async def _close_quietly(self, client: ShardClient, endpoint: ShardEndpoint) -> None:
        try:
            await client.disconnect()
        except Exception as e:
            logger.warning(f"Error closing connection to shard {endpoint.name}: {e}")
