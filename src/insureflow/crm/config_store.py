"""Persisted connection configuration -- a single key-value entry.

The stored value is the JSON object {"clientId", "apiKey", "spreadsheetId"}.
It is written after wizard step 1 (keys only) and again after step 3 (with
the spreadsheet id), and deleted on disconnect.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import redis.asyncio as aioredis
import structlog
from pydantic import ValidationError

from src.insureflow.config import ConfigStoreBackend, get_settings
from src.insureflow.crm.schemas import ConnectionConfig

logger = structlog.get_logger(__name__)


class ConfigStore(ABC):
    """Raw string storage for the connection configuration entry."""

    @abstractmethod
    async def read(self) -> str | None:
        ...

    @abstractmethod
    async def write(self, value: str) -> None:
        ...

    @abstractmethod
    async def delete(self) -> None:
        ...

    async def load(self) -> ConnectionConfig | None:
        """Return the persisted configuration, or None if absent or unreadable.

        A corrupt entry is logged and treated as absent so startup never
        fails on it.
        """
        raw = await self.read()
        if not raw:
            return None
        try:
            return ConnectionConfig.model_validate_json(raw)
        except ValidationError as exc:
            logger.error("config_store.parse_failed", error=str(exc))
            return None

    async def save(self, config: ConnectionConfig) -> None:
        await self.write(config.model_dump_json(by_alias=True))
        logger.info(
            "config_store.saved",
            has_spreadsheet=bool(config.spreadsheet_id),
        )

    async def clear(self) -> None:
        await self.delete()
        logger.info("config_store.cleared")


class RedisConfigStore(ConfigStore):
    """Configuration entry stored under one Redis key."""

    def __init__(self, redis_client: aioredis.Redis, key: str | None = None) -> None:
        self._redis = redis_client
        self._key = key or get_settings().CONFIG_STORE_KEY

    async def read(self) -> str | None:
        return await self._redis.get(self._key)

    async def write(self, value: str) -> None:
        await self._redis.set(self._key, value)

    async def delete(self) -> None:
        await self._redis.delete(self._key)


class InMemoryConfigStore(ConfigStore):
    """Process-local store for development and tests."""

    def __init__(self, initial: str | None = None) -> None:
        self._value = initial

    async def read(self) -> str | None:
        return self._value

    async def write(self, value: str) -> None:
        self._value = value

    async def delete(self) -> None:
        self._value = None


def create_config_store() -> ConfigStore:
    """Build the store selected by CONFIG_STORE_BACKEND."""
    settings = get_settings()
    if settings.CONFIG_STORE_BACKEND == ConfigStoreBackend.memory:
        return InMemoryConfigStore()

    from src.insureflow.core.redis import get_redis_pool

    return RedisConfigStore(get_redis_pool(), settings.CONFIG_STORE_KEY)
