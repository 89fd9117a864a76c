#!/usr/bin/env python3
"""
HTTP API Tests

Drives the FastAPI app in-process through httpx's ASGI transport, with a
MemoryStore and a fake completion client.
"""

import asyncio

import httpx
import pytest

from zabbix_assistant.services.assistant import AssistantAPIService
from zabbix_assistant.services.chat import FALLBACK_REPLY

USER = {"X-User-ID": "user-1"}


@pytest.fixture
async def service(assistant_config, store, completion_client):
    svc = AssistantAPIService(config=assistant_config, store=store, completion_client=completion_client)
    await svc.setup()
    yield svc
    await svc.teardown()


@pytest.fixture
async def client(service):
    transport = httpx.ASGITransport(app=service.get_app())
    async with httpx.AsyncClient(transport=transport, base_url="http://assistant.test") as http:
        yield http


async def wait_for_replies(service):
    await asyncio.wait_for(service.queue.join(), timeout=5)


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["storage"] == "memory"
        assert data["worker_running"] is True


class TestChat:

    @pytest.mark.asyncio
    async def test_send_and_read_history(self, client, service, completion_client):
        response = await client.post("/chat/messages", json={"message": "  What alerts do I have?  "}, headers=USER)
        assert response.status_code == 200
        turn_id = response.json()["turn_id"]

        await wait_for_replies(service)

        history = (await client.get("/chat/messages", headers=USER)).json()["turns"]
        assert [t["is_user_turn"] for t in history] == [True, False]
        assert history[0]["id"] == turn_id
        assert history[0]["text"] == "What alerts do I have?"
        assert history[0]["reply_text"] == "All systems nominal."
        assert history[1]["text"] == "All systems nominal."
        assert history[1]["reply_text"] == ""
        assert completion_client.calls[0][0] == "What alerts do I have?"

    @pytest.mark.asyncio
    async def test_failed_completion_shows_fallback(self, client, service, completion_client):
        completion_client.error = RuntimeError("upstream down")

        await client.post("/chat/messages", json={"message": "status?"}, headers=USER)
        await wait_for_replies(service)

        history = (await client.get("/chat/messages", headers=USER)).json()["turns"]
        assert len(history) == 1
        assert history[0]["reply_text"] == FALLBACK_REPLY

    @pytest.mark.asyncio
    async def test_send_without_identity(self, client, store):
        response = await client.post("/chat/messages", json={"message": "hello"})

        assert response.status_code == 401
        assert store._turns == {}

    @pytest.mark.asyncio
    async def test_missing_identity_wins_over_blank_message(self, client, store):
        response = await client.post("/chat/messages", json={"message": "   "})

        assert response.status_code == 401
        assert store._turns == {}

    @pytest.mark.asyncio
    async def test_missing_identity_wins_over_invalid_config(self, client):
        response = await client.put("/zabbix/config", json={"endpoint_url": ""})

        assert response.status_code == 401

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message", ["", "   "])
    async def test_blank_message_rejected(self, client, message):
        response = await client.post("/chat/messages", json={"message": message}, headers=USER)

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_history_without_identity_is_empty(self, client):
        await client.post("/chat/messages", json={"message": "hello"}, headers=USER)

        response = await client.get("/chat/messages")

        assert response.status_code == 200
        assert response.json() == {"turns": []}


class TestZabbixRoutes:

    @pytest.mark.asyncio
    async def test_config_round_trip_hides_password(self, client):
        body = {"endpoint_url": "http://zabbix.local/", "username": "Admin", "password": "zabbix"}
        saved = await client.put("/zabbix/config", json=body, headers=USER)
        assert saved.status_code == 200
        assert saved.json()["status"] == "saved"

        config = (await client.get("/zabbix/config", headers=USER)).json()
        assert config == {
            "id": saved.json()["id"],
            "endpoint_url": "http://zabbix.local",
            "username": "Admin",
            "active": True,
        }

    @pytest.mark.asyncio
    async def test_config_absent(self, client):
        response = await client.get("/zabbix/config", headers=USER)

        assert response.status_code == 200
        assert response.json() is None

    @pytest.mark.asyncio
    async def test_save_config_without_identity(self, client):
        body = {"endpoint_url": "http://zabbix.local", "username": "Admin", "password": "zabbix"}

        response = await client.put("/zabbix/config", json=body)

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_sync_then_chat_uses_snapshot(self, client, service, completion_client):
        body = {"endpoint_url": "http://zabbix.local", "username": "Admin", "password": "zabbix"}
        await client.put("/zabbix/config", json=body, headers=USER)

        sync = await client.post("/zabbix/sync", headers=USER)
        assert sync.json()["success"] is True

        await client.post("/chat/messages", json={"message": "Anything on fire?"}, headers=USER)
        await wait_for_replies(service)

        _, context = completion_client.calls[0]
        assert "- web-server-01: High CPU usage (warning)" in context
        assert "- Active: 2\n- Total: 2\n" in context

    @pytest.mark.asyncio
    async def test_sync_without_identity(self, client):
        response = await client.post("/zabbix/sync")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_probe_unreachable_returns_result(self, client):
        body = {"endpoint_url": "http://127.0.0.1:9", "username": "Admin", "password": "zabbix"}

        response = await client.post("/zabbix/test-connection", json=body)

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["message"].startswith("Connection failed:")
