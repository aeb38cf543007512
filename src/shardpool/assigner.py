"""
Round-robin shard assignment.

The assigner owns the ordered shard list and a cyclic cursor over it. Adding
shards restarts the rotation from the first shard so new shards join the
rotation immediately; this briefly favours the front of the list.
"""

import logging
import threading
from collections.abc import Iterable

from .endpoints import ShardEndpoint
from .exceptions import EmptyShardSetError

logger = logging.getLogger(__name__)


class RoundRobinAssigner:
    """Hands out shard endpoints in list order, wrapping after the last one."""

    def __init__(self, shards: Iterable[ShardEndpoint] = ()):
        self._shards: list[ShardEndpoint] = list(shards)
        self._cursor = 0
        self._lock = threading.Lock()

    def next(self) -> ShardEndpoint:
        """Return the endpoint under the cursor and advance the cursor by one."""
        with self._lock:
            if not self._shards:
                raise EmptyShardSetError("No shards configured for round-robin assignment")

            endpoint = self._shards[self._cursor]
            self._cursor = (self._cursor + 1) % len(self._shards)
            return endpoint

    def add_shard(self, *endpoints: ShardEndpoint) -> None:
        """Append endpoints and restart the rotation at the first shard."""
        with self._lock:
            self._shards.extend(endpoints)
            self._cursor = 0

        logger.info(
            f"Added {len(endpoints)} shard(s) to rotation: "
            f"{', '.join(e.name for e in endpoints)}"
        )

    @property
    def shards(self) -> tuple[ShardEndpoint, ...]:
        with self._lock:
            return tuple(self._shards)

    def __len__(self) -> int:
        with self._lock:
            return len(self._shards)
