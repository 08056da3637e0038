"""Tests for the HTTP front end, driven in-process through httpx.ASGITransport."""

import asyncio

import httpx
import pytest

from playground.client import GenerationClient
from playground.config import config
from playground.main import create_app
from playground.models import GenerationParameters
from playground.modes import Mode
from playground.session import ConversationSession

UPSTREAM = "http://upstream.test"


def upstream_handler(request):
    if request.url.path == "/v1/models":
        return httpx.Response(200, json={"object": "list", "data": [{"id": "tiny", "owned_by": "lab"}]})
    if request.url.path == "/v1/chat/completions":
        return httpx.Response(200, json={
            "choices": [{"message": {"content": "pong"}}],
            "usage": {"prompt_tokens": 1, "completion_tokens": 1},
        })
    return httpx.Response(404, text="")


@pytest.fixture
async def api():
    session = ConversationSession(
        GenerationClient(transport=httpx.MockTransport(upstream_handler)),
        base_url=UPSTREAM,
        mode=Mode.OPENAI_CHAT,
        params=GenerationParameters(),
        settle_flash_seconds=0.01,
    )
    app = create_app(session)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://playground") as client:
        yield client, session
    await session.close()


async def test_root(api):
    client, _ = api
    resp = await client.get("/")
    assert resp.status_code == 200
    assert resp.json()["endpoints"]["turns"] == "/turns"


async def test_health_reports_upstream(api):
    client, session = api
    resp = await client.get("/health")
    assert resp.json()["status"] == "healthy"

    session.set_mode(Mode.RAW_GENERATE)
    resp = await client.get("/health")
    assert resp.json()["status"] == "unreachable"


async def test_models_then_chat(api):
    client, _ = api

    resp = await client.post("/turns", json={"prompt": "ping"})
    assert resp.status_code == 400
    assert "Model ID is required" in resp.json()["detail"]

    resp = await client.get("/models")
    assert resp.json() == {"object": "list", "data": [{"id": "tiny", "owned_by": "lab"}], "selected": "tiny"}

    resp = await client.post("/turns", json={"prompt": "ping"})
    assert resp.status_code == 200
    turn = resp.json()
    assert turn["state"] == "complete"
    assert turn["content"] == "pong"
    assert turn["total_tokens"] == 2

    resp = await client.get("/turns")
    body = resp.json()
    assert [t["role"] for t in body["turns"]] == ["user", "assistant"]
    assert body["busy"] is False
    assert body["stats"]["completion_tokens"] == 1


async def test_settings_roundtrip(api):
    client, _ = api
    resp = await client.put("/settings", json={"mode": "raw-generate", "min_p": 0.1})
    assert resp.status_code == 200
    assert resp.json()["mode"] == "raw-generate"
    assert resp.json()["endpoint"] == "/generate"
    assert resp.json()["min_p"] == 0.1

    resp = await client.put("/settings", json={"top_p": 2})
    assert resp.status_code == 400


async def test_cancel_and_clear(api):
    client, session = api
    gate = asyncio.Event()

    async def slow(request):
        await gate.wait()
        return httpx.Response(200, json={"text": ["late"]})

    await session.client.close()
    session.client = GenerationClient(transport=httpx.MockTransport(slow))
    session.set_mode(Mode.RAW_GENERATE)

    resp = await client.post("/turns", json={"prompt": "wait", "wait": False})
    assert resp.json()["state"] == "pending"

    resp = await client.post("/turns", json={"prompt": "again", "wait": False})
    assert resp.status_code == 400

    resp = await client.post("/cancel")
    assert resp.json() == {"cancelled": True}
    await asyncio.sleep(0.01)
    assert session.turns[-1].state.value == "cancelled"

    resp = await client.delete("/turns")
    assert resp.json() == {"turns": []}
    assert session.turns == []
    gate.set()


async def test_blank_base_url_falls_back_to_configured(api):
    client, session = api
    resp = await client.put("/settings", json={"base_url": "   "})
    assert resp.status_code == 200
    assert resp.json()["base_url"] == config.api_base
    assert session.base_url == config.api_base


async def test_missing_base_url_is_bad_request(api, monkeypatch):
    client, session = api
    monkeypatch.setattr(config, "api_base", "")
    resp = await client.put("/settings", json={"base_url": ""})
    assert resp.json()["base_url"] == ""

    resp = await client.get("/health")
    assert resp.status_code == 400
    assert resp.json()["detail"] == "API base URL is required."

    resp = await client.get("/models")
    assert resp.status_code == 400
    assert resp.json()["detail"] == "API base URL is required."
