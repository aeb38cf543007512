"""
Round-robin shard connection pool.

Hands out connections to a set of interchangeable backend shards (a primary
and its read replicas, for example) in round-robin order, with bounded
capacity, an exhaustion policy and liveness validation.
"""

from .assigner import RoundRobinAssigner
from .client import RedisShardClient, ShardClient, ShardConnection
from .config import ShardPoolSettings, ShardSettings, load_settings
from .endpoints import ShardEndpoint
from .exceptions import (
    ConnectionSetupError,
    EmptyShardSetError,
    PoolClosedError,
    PoolExhaustedError,
    PoolReturnError,
    PoolShutdownError,
    ShardPoolError,
)
from .factory import RoundRobinConnectionFactory
from .logging import setup_logging
from .pool import BoundedPool, ExhaustedAction, PoolConfig
from .round_robin import RoundRobinPool

__version__ = "0.1.0"

__all__ = [
    "BoundedPool",
    "ConnectionSetupError",
    "EmptyShardSetError",
    "ExhaustedAction",
    "PoolClosedError",
    "PoolConfig",
    "PoolExhaustedError",
    "PoolReturnError",
    "PoolShutdownError",
    "RedisShardClient",
    "RoundRobinAssigner",
    "RoundRobinConnectionFactory",
    "RoundRobinPool",
    "ShardClient",
    "ShardConnection",
    "ShardEndpoint",
    "ShardPoolError",
    "ShardPoolSettings",
    "ShardSettings",
    "load_settings",
    "setup_logging",
]
