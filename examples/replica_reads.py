"""Round-Robin Replica Reads Example

Spreads reads over a primary and two read replicas. Expects Redis servers on
the configured ports; point SHARD_POOL_CONFIG at another YAML file to change
them.
"""

import asyncio
import logging
import os

from shardpool import PoolExhaustedError, RoundRobinPool, load_settings, setup_logging

logger = logging.getLogger("shardpool.examples")


async def read_keys(pool: RoundRobinPool, keys: list[str]) -> dict[str, str | None]:
    """Read each key on whichever shard the pool hands out."""
    results = {}
    for key in keys:
        async with pool.connection() as connection:
            value = await connection.execute_command("GET", key)
            logger.info(f"GET {key} from {connection.endpoint.name}")
            results[key] = value
    return results


async def main():
    default_path = os.path.join(os.path.dirname(__file__), "replicas.yaml")
    config_path = os.getenv("SHARD_POOL_CONFIG", default_path)
    settings = load_settings(config_path)
    setup_logging(settings.service_name, settings.log_level, json_format=settings.log_json)

    async with RoundRobinPool.from_settings(settings) as pool:
        try:
            await read_keys(pool, [f"user:{i}" for i in range(6)])
        except PoolExhaustedError as e:
            logger.error(f"Pool exhausted: {e} (cause: {e.cause!r})")

        logger.info(f"Pool metrics: {pool.get_metrics()}")


if __name__ == "__main__":
    asyncio.run(main())
