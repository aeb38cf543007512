"""
Round-Robin Shard Pool

Caller-facing pool that spreads connections across interchangeable shards
(for example a primary and its read replicas). New connections bind to shards
in round-robin order and idle connections are served oldest first, so work
cycles through every shard.

Example:
    pool = RoundRobinPool([ShardEndpoint("10.0.0.1"), ShardEndpoint("10.0.0.2")])
    await pool.start()
    async with pool.connection() as conn:
        await conn.execute_command("GET", "key")
    await pool.shutdown()
"""

import functools
import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from .assigner import RoundRobinAssigner
from .client import RedisShardClient, ShardConnection
from .endpoints import ShardEndpoint
from .exceptions import (
    ConnectionSetupError,
    PoolExhaustedError,
    PoolReturnError,
    PoolShutdownError,
    ShardPoolError,
)
from .factory import ClientFactory, RoundRobinConnectionFactory
from .pool import BoundedPool, ExhaustedAction, PoolConfig

if TYPE_CHECKING:
    from .config import ShardPoolSettings

logger = logging.getLogger(__name__)


class RoundRobinPool:
    """Pool of connections handed out round-robin across a list of shards"""

    def __init__(
        self,
        shards: Iterable[ShardEndpoint],
        config: PoolConfig | None = None,
        client_factory: ClientFactory | None = None,
        validation_timeout: float = 1.0,
    ):
        self.assigner = RoundRobinAssigner(shards)
        self.factory = RoundRobinConnectionFactory(
            self.assigner, client_factory=client_factory, validation_timeout=validation_timeout
        )
        self.pool = BoundedPool(self.factory, config or PoolConfig())
        self._started = False

    @classmethod
    def from_settings(
        cls, settings: "ShardPoolSettings", client_factory: ClientFactory | None = None
    ) -> "RoundRobinPool":
        """Build a pool from loaded settings; Redis clients use its timeouts."""
        if client_factory is None:
            client_factory = functools.partial(
                RedisShardClient,
                connect_timeout=settings.connect_timeout,
                socket_timeout=settings.socket_timeout,
            )

        return cls(
            settings.endpoints(),
            config=settings.pool_config(),
            client_factory=client_factory,
            validation_timeout=settings.validation_timeout,
        )

    async def __aenter__(self) -> "RoundRobinPool":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()

    async def start(self) -> None:
        """Pre-warm one idle connection per shard, then fill up to min_idle."""
        if self._started:
            return
        self._started = True

        shards = self.assigner.shards
        for _ in shards:
            await self._prewarm()
        await self._fill_min_idle()

        logger.info(
            f"Round-robin pool '{self.pool.config.name}' started with {len(shards)} shard(s), "
            f"{self.pool.num_idle} idle connection(s)"
        )

    async def _prewarm(self, endpoint: ShardEndpoint | None = None) -> None:
        try:
            await self.pool.add_object(endpoint)
        except ConnectionSetupError as e:
            logger.warning(f"Skipping pre-warm connection: {e}")

    async def _fill_min_idle(self) -> None:
        try:
            await self.pool.ensure_min_idle()
        except ShardPoolError as e:
            logger.warning(f"Could not fill pool to min_idle: {e}")

    async def get_connection(self) -> ShardConnection:
        """Borrow a connection.

        Raises:
            PoolExhaustedError: no connection could be obtained; the
                underlying error is kept as the cause.
        """
        try:
            return await self.pool.borrow()
        except PoolExhaustedError:
            raise
        except Exception as e:
            raise PoolExhaustedError("Could not get a connection from the pool", cause=e) from e

    async def return_connection(self, connection: ShardConnection) -> None:
        """Return a healthy connection to the idle set."""
        try:
            await self.pool.release(connection)
        except Exception as e:
            raise PoolReturnError("Could not return the connection to the pool", cause=e) from e

    async def return_broken_connection(self, connection: ShardConnection) -> None:
        """Destroy a connection known to be bad instead of returning it."""
        try:
            await self.pool.invalidate(connection)
        except Exception as e:
            raise PoolReturnError(
                "Could not return the broken connection to the pool", cause=e
            ) from e

        if not self.pool.closed:
            await self._fill_min_idle()

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[ShardConnection]:
        """Borrow a connection for the duration of a block.

        The connection is returned broken if the block raises.
        """
        connection = await self.get_connection()
        try:
            yield connection
        except BaseException:
            await self.return_broken_connection(connection)
            raise
        await self.return_connection(connection)

    async def add_shard(self, *endpoints: ShardEndpoint) -> None:
        """Add shards to the rotation and pre-warm one connection for each."""
        self.assigner.add_shard(*endpoints)
        for endpoint in endpoints:
            await self._prewarm(endpoint)

    async def shutdown(self) -> None:
        """Destroy every connection and close the pool."""
        try:
            await self.pool.close()
        except Exception as e:
            raise PoolShutdownError("Could not destroy the pool", cause=e) from e

    # Tuning

    def set_min_idle(self, min_idle: int) -> None:
        if min_idle < 0:
            raise ValueError("min_idle must be >= 0")
        if min_idle > self.pool.config.max_idle:
            raise ValueError(
                f"min_idle ({min_idle}) exceeds max_idle ({self.pool.config.max_idle})"
            )
        self.pool.config.min_idle = min_idle

    def set_max_idle(self, max_idle: int) -> None:
        if max_idle < 0:
            raise ValueError("max_idle must be >= 0")
        if max_idle < self.pool.config.min_idle:
            raise ValueError(
                f"max_idle ({max_idle}) is below min_idle ({self.pool.config.min_idle})"
            )
        self.pool.config.max_idle = max_idle

    def set_max_total(self, max_total: int) -> None:
        if max_total < 1:
            raise ValueError("max_total must be >= 1")
        self.pool.config.max_total = max_total

    def set_max_wait(self, max_wait: float) -> None:
        if max_wait <= 0:
            raise ValueError("max_wait must be > 0")
        self.pool.config.max_wait = max_wait

    def set_test_on_borrow(self, test_on_borrow: bool) -> None:
        self.pool.config.test_on_borrow = test_on_borrow

    def set_test_on_return(self, test_on_return: bool) -> None:
        self.pool.config.test_on_return = test_on_return

    def set_when_exhausted_grow(self, grow: bool) -> None:
        self.pool.config.when_exhausted = ExhaustedAction.GROW if grow else ExhaustedAction.BLOCK

    def set_lifo(self, lifo: bool) -> None:
        self.pool.config.lifo = lifo

    # Introspection

    @property
    def shards(self) -> tuple[ShardEndpoint, ...]:
        return self.assigner.shards

    @property
    def num_idle(self) -> int:
        return self.pool.num_idle

    @property
    def num_active(self) -> int:
        return self.pool.num_active

    def get_metrics(self) -> dict[str, Any]:
        metrics = self.pool.get_metrics()
        metrics["shards"] = [endpoint.name for endpoint in self.assigner.shards]
        return metrics
