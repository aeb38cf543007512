"""
Shard pool settings.

Settings come from an optional YAML file; SHARD_POOL_* environment variables
override it (nested fields use ``__``, e.g. ``SHARD_POOL_MAX_TOTAL=16``).
Shards may be given as mappings or as ``redis://`` URLs.
"""

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .endpoints import DEFAULT_PORT, ShardEndpoint
from .pool import ExhaustedAction, PoolConfig

logger = logging.getLogger(__name__)


class ShardSettings(BaseModel):
    """One shard entry"""

    host: str = Field(min_length=1)
    port: int = Field(default=DEFAULT_PORT, gt=0, lt=65536)
    password: str | None = None

    def to_endpoint(self) -> ShardEndpoint:
        return ShardEndpoint(host=self.host, port=self.port, password=self.password)


class ShardPoolSettings(BaseSettings):
    """Round-robin pool settings"""

    model_config = SettingsConfigDict(
        env_prefix="SHARD_POOL_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    name: str = "default"
    shards: list[ShardSettings] = Field(default_factory=list)

    # Pool sizing
    max_total: int = Field(default=8, ge=1)
    max_idle: int = Field(default=8, ge=0)
    min_idle: int = Field(default=0, ge=0)

    # Exhaustion and ordering
    max_wait: float = Field(default=0.1, gt=0)
    when_exhausted: ExhaustedAction = ExhaustedAction.BLOCK
    lifo: bool = False

    # Validation
    test_on_borrow: bool = False
    test_on_return: bool = False
    validation_timeout: float = Field(default=1.0, gt=0)

    # Client timeouts
    connect_timeout: float = Field(default=2.0, gt=0)
    socket_timeout: float = Field(default=2.0, gt=0)

    # Logging
    service_name: str = "shardpool"
    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def settings_customise_sources(
        cls, settings_cls, init_settings, env_settings, dotenv_settings, file_secret_settings
    ):
        # Environment overrides values read from the YAML file
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @field_validator("shards", mode="before")
    @classmethod
    def parse_shard_urls(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value

        shards = []
        for item in value:
            if isinstance(item, str):
                endpoint = ShardEndpoint.from_url(item)
                item = {"host": endpoint.host, "port": endpoint.port, "password": endpoint.password}
            shards.append(item)
        return shards

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return value.upper()

    @model_validator(mode="after")
    def check_idle_bounds(self) -> "ShardPoolSettings":
        if self.min_idle > self.max_idle:
            raise ValueError(f"min_idle ({self.min_idle}) exceeds max_idle ({self.max_idle})")
        return self

    def endpoints(self) -> list[ShardEndpoint]:
        return [shard.to_endpoint() for shard in self.shards]

    def pool_config(self) -> PoolConfig:
        return PoolConfig(
            max_total=self.max_total,
            max_idle=self.max_idle,
            min_idle=self.min_idle,
            max_wait=self.max_wait,
            when_exhausted=self.when_exhausted,
            lifo=self.lifo,
            test_on_borrow=self.test_on_borrow,
            test_on_return=self.test_on_return,
            name=self.name,
        )


def load_settings(path: str | Path | None = None) -> ShardPoolSettings:
    """Load settings from a YAML file (if given) with environment overrides."""
    data: dict[str, Any] = {}
    if path is not None:
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        logger.debug(f"Loaded shard pool config from {path}")

    return ShardPoolSettings(**data)
