"""
Shard endpoint descriptors.
"""

from dataclasses import dataclass
from urllib.parse import unquote, urlparse

DEFAULT_PORT = 6379


@dataclass(frozen=True)
class ShardEndpoint:
    """Immutable description of one shard: where it lives and how to authenticate."""

    host: str
    port: int = DEFAULT_PORT
    password: str | None = None

    def __post_init__(self):
        if not self.host:
            raise ValueError("Shard host must not be empty")
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid shard port: {self.port}")

    @property
    def name(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def requires_auth(self) -> bool:
        """True when the endpoint carries a non-empty credential."""
        return bool(self.password)

    @classmethod
    def from_url(cls, url: str) -> "ShardEndpoint":
        """Parse ``redis://[:password@]host[:port]`` into an endpoint."""
        parsed = urlparse(url)
        if parsed.scheme not in ("redis", "rediss"):
            raise ValueError(f"Unsupported shard URL scheme: {parsed.scheme!r}")
        if not parsed.hostname:
            raise ValueError(f"Shard URL has no host: {url!r}")

        password = unquote(parsed.password) if parsed.password else None
        return cls(host=parsed.hostname, port=parsed.port or DEFAULT_PORT, password=password)

    def __repr__(self) -> str:
        # Keep credentials out of logs
        masked = "***" if self.password else None
        return f"ShardEndpoint(host={self.host!r}, port={self.port}, password={masked!r})"
