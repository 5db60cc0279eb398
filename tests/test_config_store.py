"""Tests for the persisted connection configuration store."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from src.insureflow.crm.config_store import InMemoryConfigStore, RedisConfigStore
from src.insureflow.crm.schemas import ConnectionConfig


class TestInMemoryConfigStore:
    @pytest.mark.asyncio
    async def test_empty_store_loads_none(self):
        assert await InMemoryConfigStore().load() is None

    @pytest.mark.asyncio
    async def test_saved_json_uses_camel_case_keys(self):
        store = InMemoryConfigStore()

        await store.save(ConnectionConfig(client_id="x", api_key="y", spreadsheet_id=""))

        assert json.loads(await store.read()) == {
            "clientId": "x",
            "apiKey": "y",
            "spreadsheetId": "",
        }

    @pytest.mark.asyncio
    async def test_load_parses_stored_entry(self):
        store = InMemoryConfigStore('{"clientId": "x", "apiKey": "y", "spreadsheetId": "s"}')

        config = await store.load()

        assert config == ConnectionConfig(client_id="x", api_key="y", spreadsheet_id="s")
        assert config.has_keys()

    @pytest.mark.asyncio
    async def test_missing_fields_default_to_empty(self):
        config = await InMemoryConfigStore('{"clientId": "x"}').load()

        assert config.api_key == ""
        assert not config.has_keys()

    @pytest.mark.asyncio
    async def test_corrupt_entry_treated_as_absent(self):
        assert await InMemoryConfigStore("{not json").load() is None

    @pytest.mark.asyncio
    async def test_clear_removes_entry(self):
        store = InMemoryConfigStore('{"clientId": "x", "apiKey": "y"}')

        await store.clear()

        assert await store.load() is None


class TestRedisConfigStore:
    @pytest.mark.asyncio
    async def test_uses_single_key(self):
        redis_client = AsyncMock()
        redis_client.get.return_value = '{"clientId": "x", "apiKey": "y", "spreadsheetId": ""}'
        store = RedisConfigStore(redis_client, key="cfg")

        config = await store.load()
        await store.save(config)
        await store.clear()

        redis_client.get.assert_awaited_once_with("cfg")
        assert redis_client.set.await_args.args[0] == "cfg"
        assert json.loads(redis_client.set.await_args.args[1])["clientId"] == "x"
        redis_client.delete.assert_awaited_once_with("cfg")
