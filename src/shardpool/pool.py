"""
Bounded Connection Pool

An asyncio pool of ShardConnection handles with capacity limits, a
configurable exhaustion policy, FIFO or LIFO serving order and optional
validation on borrow and return. Connections are created, validated and
destroyed through a RoundRobinConnectionFactory; network I/O always happens
outside the pool lock.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .client import ShardConnection
from .endpoints import ShardEndpoint
from .exceptions import ConnectionSetupError, PoolClosedError, PoolExhaustedError
from .factory import RoundRobinConnectionFactory

logger = logging.getLogger(__name__)


class ExhaustedAction(Enum):
    """What borrow() does when no connection is idle and the pool is at max_total"""

    BLOCK = "block"  # Wait up to max_wait for a connection
    GROW = "grow"  # Create a connection beyond max_total
    FAIL = "fail"  # Fail immediately


@dataclass
class PoolConfig:
    """Bounded pool configuration"""

    # Capacity
    max_total: int = 8
    max_idle: int = 8
    min_idle: int = 0

    # Exhaustion
    max_wait: float = 0.1  # seconds
    when_exhausted: ExhaustedAction = ExhaustedAction.BLOCK

    # Serving order; FIFO cycles idle connections evenly across shards
    lifo: bool = False

    # Validation
    test_on_borrow: bool = False
    test_on_return: bool = False

    name: str = "default"


class BoundedPool:
    """Bounded pool of shard connections"""

    def __init__(self, factory: RoundRobinConnectionFactory, config: PoolConfig | None = None):
        self.factory = factory
        self.config = config or PoolConfig()
        self._idle: deque[ShardConnection] = deque()
        self._active: set[ShardConnection] = set()
        self._creating = 0
        self._condition = asyncio.Condition()
        self._closed = False
        self._retired: set[ShardConnection] = set()

        # Metrics
        self.total_connections_created = 0
        self.total_connections_destroyed = 0
        self.total_borrowed = 0
        self.total_returned = 0
        self.total_invalidated = 0
        self.validation_failures = 0
        self.exhausted_count = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def num_idle(self) -> int:
        return len(self._idle)

    @property
    def num_active(self) -> int:
        return len(self._active)

    @property
    def total(self) -> int:
        """Idle, borrowed and in-flight connections"""
        return len(self._idle) + len(self._active) + self._creating

    def idle_connections(self) -> list[ShardConnection]:
        """Snapshot of idle connections in serving order"""
        idle = list(self._idle)
        return idle[::-1] if self.config.lifo else idle

    def _ensure_open(self) -> None:
        if self._closed:
            raise PoolClosedError(f"Connection pool '{self.config.name}' is closed")

    async def borrow(self) -> ShardConnection:
        """Borrow a connection, creating one or waiting per the exhaustion policy.

        Raises:
            PoolExhaustedError: nothing became available within policy.
            PoolClosedError: the pool is closed.
            EmptyShardSetError, ConnectionSetupError: creating a connection failed.
        """
        deadline = asyncio.get_running_loop().time() + self.config.max_wait

        while True:
            connection = await self._take_idle_or_reserve(deadline)
            created = connection is None
            if created:
                connection = await self._create_reserved(into_idle=False)

            if self.config.test_on_borrow and not await self.factory.validate(connection):
                self.validation_failures += 1
                await self._discard(connection)
                if created:
                    raise ConnectionSetupError(
                        f"New connection to shard {connection.endpoint.name} failed validation",
                        endpoint=connection.endpoint,
                    )
                logger.debug(f"Idle connection {connection!r} failed validation, replacing it")
                continue

            connection.mark_borrowed()
            self.total_borrowed += 1
            return connection

    async def _take_idle_or_reserve(self, deadline: float) -> ShardConnection | None:
        """Pop an idle connection, or reserve a creation slot and return None."""
        loop = asyncio.get_running_loop()

        async with self._condition:
            while True:
                self._ensure_open()

                if self._idle:
                    connection = self._idle.pop() if self.config.lifo else self._idle.popleft()
                    self._active.add(connection)
                    return connection

                if (
                    self.total < self.config.max_total
                    or self.config.when_exhausted is ExhaustedAction.GROW
                ):
                    self._creating += 1
                    return None

                if self.config.when_exhausted is ExhaustedAction.FAIL:
                    self.exhausted_count += 1
                    raise PoolExhaustedError(
                        f"Connection pool '{self.config.name}' exhausted "
                        f"({self.config.max_total} connections in use)"
                    )

                remaining = deadline - loop.time()
                if remaining > 0:
                    try:
                        await asyncio.wait_for(self._condition.wait(), timeout=remaining)
                        continue
                    except asyncio.TimeoutError:
                        pass

                self.exhausted_count += 1
                raise PoolExhaustedError(
                    f"Timed out after {self.config.max_wait}s waiting for a connection "
                    f"from pool '{self.config.name}'"
                )

    async def _create_reserved(
        self, into_idle: bool, endpoint: ShardEndpoint | None = None
    ) -> ShardConnection:
        """Create a connection into a slot already counted in _creating."""
        try:
            connection = await self.factory.create(endpoint)
        except BaseException:
            async with self._condition:
                self._creating -= 1
                self._condition.notify()
            raise

        overflow = False
        async with self._condition:
            self._creating -= 1
            self.total_connections_created += 1
            closed = self._closed
            if not closed:
                if not into_idle:
                    self._active.add(connection)
                elif len(self._idle) < self.config.max_idle:
                    self._idle.append(connection)
                    self._condition.notify()
                else:
                    overflow = True

        if closed or overflow:
            await self._destroy(connection)
        if closed:
            raise PoolClosedError(f"Connection pool '{self.config.name}' closed during create")
        return connection

    async def add_object(self, endpoint: ShardEndpoint | None = None) -> None:
        """Create one connection and park it in the idle set.

        Capacity is not checked against max_total; a connection that would
        push the idle set past max_idle is destroyed straight away.
        """
        async with self._condition:
            self._ensure_open()
            self._creating += 1

        await self._create_reserved(into_idle=True, endpoint=endpoint)

    async def ensure_min_idle(self) -> int:
        """Top the idle set up to min_idle without exceeding max_total or max_idle."""
        created = 0
        while True:
            async with self._condition:
                self._ensure_open()
                target = min(self.config.min_idle, self.config.max_idle)
                if (
                    len(self._idle) + self._creating >= target
                    or self.total >= self.config.max_total
                ):
                    return created
                self._creating += 1

            connection = await self._create_reserved(into_idle=True)
            if connection.closed:
                # Overflowed max_idle; the idle set is already full
                return created
            created += 1

    async def release(self, connection: ShardConnection) -> None:
        """Return a borrowed connection to the idle set.

        Raises:
            ValueError: the connection is not currently borrowed from this pool.
        """
        async with self._condition:
            closed = self._closed
            if not closed and connection not in self._active:
                raise ValueError(f"{connection!r} is not borrowed from this pool")

        if closed:
            self._check_retired(connection)
            return

        valid = True
        if self.config.test_on_return:
            valid = await self.factory.validate(connection)
            if not valid:
                self.validation_failures += 1

        destroy = False
        async with self._condition:
            if connection not in self._active:
                self._check_retired(connection)
            else:
                self._active.discard(connection)
                self.total_returned += 1
                if valid and not self._closed and len(self._idle) < self.config.max_idle:
                    self._idle.append(connection)
                else:
                    destroy = True
            self._condition.notify()

        if destroy:
            await self._destroy(connection)

    async def invalidate(self, connection: ShardConnection) -> None:
        """Destroy a borrowed connection instead of returning it.

        Raises:
            ValueError: the connection is not currently borrowed from this pool.
        """
        async with self._condition:
            if self._closed:
                closed = True
            elif connection not in self._active:
                raise ValueError(f"{connection!r} is not borrowed from this pool")
            else:
                closed = False
                self._active.discard(connection)
                self.total_invalidated += 1
                self._condition.notify()

        if closed:
            self._check_retired(connection)
        else:
            await self._destroy(connection)

    async def _discard(self, connection: ShardConnection) -> None:
        async with self._condition:
            self._active.discard(connection)
            self._condition.notify()
        await self._destroy(connection)

    async def _destroy(self, connection: ShardConnection) -> None:
        await self.factory.destroy(connection)
        self.total_connections_destroyed += 1

    def _check_retired(self, connection: ShardConnection) -> None:
        # close() already destroyed everything it tracked; anything else is foreign
        if connection not in self._retired:
            raise ValueError(f"{connection!r} is not borrowed from this pool")

    async def close(self) -> None:
        """Destroy idle and borrowed connections and refuse further borrowing.

        Raises:
            PoolClosedError: the pool was already closed.
        """
        async with self._condition:
            self._ensure_open()
            self._closed = True
            connections = list(self._idle) + list(self._active)
            self._retired.update(connections)
            self._idle.clear()
            self._active.clear()
            self._condition.notify_all()

        for connection in connections:
            await self._destroy(connection)

        logger.info(
            f"Connection pool '{self.config.name}' closed, "
            f"destroyed {len(connections)} connection(s)"
        )

    def get_metrics(self) -> dict[str, Any]:
        """Get pool metrics"""
        return {
            "pool_name": self.config.name,
            "closed": self._closed,
            "idle_connections": len(self._idle),
            "active_connections": len(self._active),
            "pending_creates": self._creating,
            "total_connections_created": self.total_connections_created,
            "total_connections_destroyed": self.total_connections_destroyed,
            "total_borrowed": self.total_borrowed,
            "total_returned": self.total_returned,
            "total_invalidated": self.total_invalidated,
            "validation_failures": self.validation_failures,
            "exhausted_count": self.exhausted_count,
            "max_total": self.config.max_total,
            "max_idle": self.config.max_idle,
            "min_idle": self.config.min_idle,
            "when_exhausted": self.config.when_exhausted.value,
        }
