import httpx
import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from supplier_intel.config import AppSettings
from supplier_intel.main import create_app
from tests.fakes import FakeCompletionProvider


@pytest.mark.asyncio
async def test_health(client):
    res = await client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"ok": True}


@pytest.mark.asyncio
async def test_status_reports_cloud_provider(client):
    res = await client.get("/ollama-status")
    assert res.status_code == 200
    data = res.json()
    assert data["status"] == "online"
    assert data["provider"] == "Groq"
    assert data["message"] == "AI powered by Groq"


@pytest.mark.asyncio
async def test_status_reports_local_server(app_factory):
    ollama = FakeCompletionProvider(
        "ollama",
        "Ollama",
        local=True,
        probe_result={"url": "http://127.0.0.1:11434", "models": ["qwen3:30b-a3b"]},
    )
    app, _, _ = app_factory(completion={"ollama": ollama})
    async with LifespanManager(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            res = await client.get("/ollama-status")
    assert res.json() == {
        "status": "online",
        "provider": "Ollama",
        "url": "http://127.0.0.1:11434",
        "models": ["qwen3:30b-a3b"],
    }


@pytest.mark.asyncio
async def test_status_offline_without_providers(app_factory):
    app, _, _ = app_factory()
    async with LifespanManager(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            res = await client.get("/ollama-status")
    assert res.status_code == 200
    assert res.json() == {
        "status": "offline",
        "message": "No AI service configured. Add OPENAI_API_KEY or GROQ_API_KEY.",
    }


@pytest.mark.asyncio
async def test_unknown_route_uses_error_shape(client):
    res = await client.get("/missing")
    assert res.status_code == 404
    assert "error" in res.json()


@pytest.mark.asyncio
async def test_injected_http_client_left_open():
    http_client = httpx.AsyncClient()
    app = create_app(AppSettings(ollama_urls=[]), http_client=http_client, search_providers={}, completion_providers={})
    async with LifespanManager(app):
        assert app.state.http_client is http_client
    assert http_client.is_closed is False
    await http_client.aclose()


@pytest.mark.asyncio
async def test_owned_http_client_closed_on_shutdown(app_factory):
    app, _, _ = app_factory()
    async with LifespanManager(app):
        pass
    assert app.state.http_client.is_closed is True
