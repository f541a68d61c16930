from pathlib import Path

import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from supplier_intel.config import AppSettings
from supplier_intel.main import create_app
from tests.fakes import (
    FakeCompletionProvider,
    FakeSearchProvider,
    default_completion_providers,
    default_search_providers,
)


def make_settings(tmp_path: Path, **overrides) -> AppSettings:
    settings = AppSettings(
        groq_api_key=None,
        openai_api_key=None,
        anthropic_api_key=None,
        brave_api_key=None,
        tavily_api_key=None,
        ollama_urls=[],
        ollama_url=None,
        host="127.0.0.1",
        port=8000,
    )
    if overrides:
        settings = settings.model_copy(update=overrides)
    return settings


@pytest.fixture
def app_factory(tmp_path: Path):
    def _factory(
        *,
        search: dict[str, FakeSearchProvider] | None = None,
        completion: dict[str, FakeCompletionProvider] | None = None,
        **settings_overrides,
    ):
        settings = make_settings(tmp_path, **settings_overrides)
        search_providers = {**default_search_providers(), **(search or {})}
        completion_providers = {**default_completion_providers(), **(completion or {})}
        app = create_app(
            settings,
            search_providers=search_providers,
            completion_providers=completion_providers,
        )
        return app, search_providers, completion_providers

    return _factory


@pytest.fixture
async def client(app_factory):
    groq = FakeCompletionProvider("groq", "Groq", reply="Acme Corp has no open recalls on record.")
    app, search_providers, completion_providers = app_factory(completion={"groq": groq})
    async with LifespanManager(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as http_client:
            http_client.app = app  # type: ignore[attr-defined]
            http_client.fake_search = search_providers  # type: ignore[attr-defined]
            http_client.fake_completion = completion_providers  # type: ignore[attr-defined]
            yield http_client
