"""Tests for pushrelay.server."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiohttp import test_utils

from pushrelay.dispatcher import Dispatcher
from pushrelay.platforms import PushResult, PushStatus
from pushrelay.refresher import BackgroundRefresher
from pushrelay.registry import DeviceRecord, DeviceRegistry, Platform
from pushrelay.server import create_app
from pushrelay.store import MemoryStore
from tests.conftest import TENANT


@pytest.fixture
def registry() -> DeviceRegistry:
    return DeviceRegistry(MemoryStore())


@pytest.fixture
def dispatcher() -> MagicMock:
    mock = MagicMock(spec=Dispatcher)
    mock.dispatch = AsyncMock(return_value=[])
    return mock


@pytest.fixture
async def client(registry, dispatcher) -> AsyncIterator[test_utils.TestClient[Any, Any]]:
    async with test_utils.TestClient(test_utils.TestServer(create_app(registry, dispatcher))) as c:
        yield c


class TestHealth:
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status == 200
        data = await resp.json()
        assert data["ok"] is True
        assert data["status"] == "healthy"
        assert "timestamp" in data
        assert data["timestamp"].endswith("Z")
        assert resp.headers["cache-control"] == "no-store"


class TestRouting:
    async def test_unknown_path(self, client):
        resp = await client.get("/nope")
        assert resp.status == 404
        assert await resp.json() == {"ok": False, "error": "Not found"}

    async def test_wrong_method(self, client):
        resp = await client.get("/push")
        assert resp.status == 404


class TestRegister:
    async def test_registers_device(self, client, registry):
        resp = await client.post(
            "/register",
            json={
                "relay_token": TENANT,
                "device_token": "abc",
                "platform": "ios",
                "bundle_id": "com.example.app",
            },
        )

        assert resp.status == 200
        assert await resp.json() == {"ok": True, "message": "Device registered"}
        devices = await registry.list(TENANT)
        assert [(d.platform, d.device_token, d.bundle_id) for d in devices] == [
            (Platform.IOS, "abc", "com.example.app")
        ]

    async def test_reregistration_dedups(self, client, registry):
        payload = {"relay_token": TENANT, "device_token": "abc", "platform": "android"}
        await client.post("/register", json=payload)
        await client.post("/register", json=payload)
        assert len(await registry.list(TENANT)) == 1

    async def test_invalid_json(self, client):
        resp = await client.post("/register", data=b"{not json")
        assert resp.status == 400
        assert await resp.json() == {"ok": False, "error": "Invalid JSON body"}

    async def test_missing_fields(self, client):
        resp = await client.post("/register", json={"relay_token": TENANT})
        assert resp.status == 400
        assert (await resp.json())["error"] == (
            "Missing required fields: relay_token, device_token, platform"
        )

    async def test_short_relay_token(self, client, registry):
        resp = await client.post(
            "/register",
            json={"relay_token": "short", "device_token": "abc", "platform": "ios"},
        )
        assert resp.status == 400
        assert "minimum 32 characters" in (await resp.json())["error"]
        assert await registry.list("short") == []

    async def test_unknown_platform(self, client):
        resp = await client.post(
            "/register",
            json={"relay_token": TENANT, "device_token": "abc", "platform": "webos"},
        )
        assert resp.status == 400
        assert (await resp.json())["error"] == 'platform must be "ios" or "android"'

    async def test_non_string_bundle_id(self, client, registry):
        resp = await client.post(
            "/register",
            json={
                "relay_token": TENANT,
                "device_token": "abc",
                "platform": "ios",
                "bundle_id": {"a": 1},
            },
        )
        assert resp.status == 400
        assert (await resp.json())["error"] == "Field 'bundle_id' must be a string"
        assert await registry.list(TENANT) == []

    async def test_non_string_field(self, client):
        resp = await client.post(
            "/register",
            json={"relay_token": TENANT, "device_token": 12345, "platform": "ios"},
        )
        assert resp.status == 400


class TestUnregister:
    async def test_removes_device(self, client, registry):
        await registry.add(TENANT, DeviceRecord(Platform.IOS, "abc"))

        resp = await client.delete("/register", json={"relay_token": TENANT, "device_token": "abc"})

        assert await resp.json() == {"ok": True, "message": "Device removed"}
        assert await registry.list(TENANT) == []

    async def test_not_found(self, client):
        resp = await client.delete("/register", json={"relay_token": TENANT, "device_token": "abc"})
        assert resp.status == 200
        assert await resp.json() == {"ok": True, "message": "Device not found"}


class TestPush:
    async def test_no_devices(self, client, dispatcher):
        resp = await client.post("/push", json={"relay_token": TENANT, "title": "t", "body": "b"})

        assert await resp.json() == {"ok": True, "results": [], "message": "No devices registered"}
        dispatcher.dispatch.assert_awaited_once_with(TENANT, "t", "b")

    async def test_returns_results(self, client, dispatcher):
        dispatcher.dispatch.return_value = [
            PushResult(Platform.IOS, PushStatus.SENT),
            PushResult(Platform.ANDROID, PushStatus.REMOVED, "UNREGISTERED"),
        ]

        resp = await client.post("/push", json={"relay_token": TENANT, "title": "t", "body": "b"})

        assert await resp.json() == {
            "ok": True,
            "results": [
                {"platform": "ios", "status": "sent"},
                {"platform": "android", "status": "removed", "reason": "UNREGISTERED"},
            ],
        }

    async def test_missing_body(self, client, dispatcher):
        resp = await client.post("/push", json={"relay_token": TENANT, "title": "t"})
        assert resp.status == 400
        dispatcher.dispatch.assert_not_called()


class TestLifecycle:
    async def test_refresher_started_and_stopped(self, registry, dispatcher):
        refresher = MagicMock(spec=BackgroundRefresher)
        refresher.stop = AsyncMock()

        app = create_app(registry, dispatcher, refresher)
        async with test_utils.TestClient(test_utils.TestServer(app)):
            refresher.start.assert_called_once()
            refresher.stop.assert_not_called()

        refresher.stop.assert_awaited_once()
