"""
Shard pool error taxonomy.

Every error raised to callers derives from ShardPoolError and keeps the
underlying error on ``cause`` (and as ``__cause__`` when chained).
"""


class ShardPoolError(Exception):
    """Base class for shard pool errors."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class EmptyShardSetError(ShardPoolError):
    """No shard endpoints are configured."""


class ConnectionSetupError(ShardPoolError):
    """Opening or authenticating a connection to a shard failed."""

    def __init__(self, message: str, endpoint=None, cause: BaseException | None = None):
        super().__init__(message, cause)
        self.endpoint = endpoint


class PoolExhaustedError(ShardPoolError):
    """No connection became available within the exhaustion policy."""


class PoolClosedError(ShardPoolError):
    """The pool has been shut down."""


class PoolReturnError(ShardPoolError):
    """The pool rejected a returned or invalidated connection."""


class PoolShutdownError(ShardPoolError):
    """Shutting the pool down failed."""
