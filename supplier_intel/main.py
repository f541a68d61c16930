import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Mapping, Optional, Sequence, TypeVar

import httpx
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .chat import answer
from .config import AppSettings, load_settings
from .intel import gather_intel
from .llm import (
    AnthropicProvider,
    CompletionOrchestrator,
    CompletionProvider,
    OllamaProvider,
    groq_provider,
    openai_provider,
)
from .portfolio import analyze_portfolio
from .schemas import ChatRequest, PortfolioSupplier, SupplierIntel
from .search import (
    BraveSearchProvider,
    DuckDuckGoInstantProvider,
    GoogleNewsRssProvider,
    SearchOrchestrator,
    SearchProvider,
)
from .tavily import TavilySearchProvider


logger = logging.getLogger("uvicorn.error")

T = TypeVar("T")


def build_search_providers(settings_obj: AppSettings, client: httpx.AsyncClient) -> Dict[str, SearchProvider]:
    return {
        "google_news": GoogleNewsRssProvider(client, timeout=settings_obj.search_timeout_s),
        "duckduckgo": DuckDuckGoInstantProvider(client, timeout=settings_obj.instant_answer_timeout_s),
        "brave": BraveSearchProvider(client, settings_obj.brave_api_key, timeout=settings_obj.search_timeout_s),
        "tavily": TavilySearchProvider(client, settings_obj.tavily_api_key, timeout=settings_obj.search_timeout_s),
    }


def build_completion_providers(
    settings_obj: AppSettings, client: httpx.AsyncClient
) -> Dict[str, CompletionProvider]:
    return {
        "groq": groq_provider(client, settings_obj.groq_api_key, settings_obj.groq_model, settings_obj.cloud_timeout_s),
        "openai": openai_provider(
            client, settings_obj.openai_api_key, settings_obj.openai_model, settings_obj.cloud_timeout_s
        ),
        "anthropic": AnthropicProvider(
            client, settings_obj.anthropic_api_key, settings_obj.anthropic_model, settings_obj.cloud_timeout_s
        ),
        "ollama": OllamaProvider(
            client,
            settings_obj.local_model_urls(),
            settings_obj.ollama_preferred_models,
            timeout=settings_obj.local_timeout_s,
            probe_timeout=settings_obj.status_probe_timeout_s,
        ),
    }


def select_chain(providers: Mapping[str, T], names: Sequence[str]) -> List[T]:
    missing = [name for name in names if name not in providers]
    if missing:
        logger.warning("Unknown providers in chain: %s", ", ".join(missing))
    return [providers[name] for name in names if name in providers]


def get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_chat_search(request: Request) -> SearchOrchestrator:
    return request.app.state.chat_search


def get_intel_search(request: Request) -> SearchOrchestrator:
    return request.app.state.intel_search


def get_esg_search(request: Request) -> SearchOrchestrator:
    return request.app.state.esg_search


def get_completion(request: Request) -> CompletionOrchestrator:
    return request.app.state.completion


def get_portfolio_completion(request: Request) -> CompletionOrchestrator:
    return request.app.state.portfolio_completion


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        {"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
        status_code=400,
    )


router = APIRouter()


@router.get("/health")
async def health():
    return {"ok": True}


@router.get("/settings")
async def get_settings_route(settings: AppSettings = Depends(get_settings)):
    return {"settings": settings.to_safe_dict()}


@router.post("/chat")
async def chat(
    payload: ChatRequest,
    settings: AppSettings = Depends(get_settings),
    search: SearchOrchestrator = Depends(get_chat_search),
    completion: CompletionOrchestrator = Depends(get_completion),
):
    if not payload.message or not payload.message.strip():
        raise HTTPException(status_code=400, detail="Message required")
    if not completion.configured:
        raise HTTPException(status_code=500, detail="AI service not configured")
    try:
        reply = await answer(
            payload,
            search,
            completion,
            search_mode=settings.chat_search_mode,
            search_limit=settings.chat_search_limit,
            history_window=settings.chat_history_window,
        )
    except Exception:
        logger.exception("Chat error")
        raise HTTPException(status_code=500, detail="Failed to process chat")
    if reply is None:
        raise HTTPException(status_code=500, detail="AI service error")
    return {"reply": reply}


@router.get("/intel", response_model=SupplierIntel)
async def intel(
    supplier: Optional[str] = None,
    settings: AppSettings = Depends(get_settings),
    search: SearchOrchestrator = Depends(get_intel_search),
    esg_search: SearchOrchestrator = Depends(get_esg_search),
    completion: CompletionOrchestrator = Depends(get_completion),
):
    name = (supplier or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="Supplier name required")
    try:
        return await gather_intel(
            name,
            search,
            completion,
            esg_search=esg_search,
            limit=settings.intel_search_limit,
        )
    except Exception:
        logger.exception("Intel gathering error for %s", name)
        raise HTTPException(status_code=500, detail="Failed to gather supplier intelligence")


@router.post("/portfolio-analysis")
async def portfolio_analysis(
    request: Request,
    completion: CompletionOrchestrator = Depends(get_portfolio_completion),
):
    try:
        body: Any = await request.json()
    except ValueError:
        body = None
    raw_suppliers = body.get("suppliers") if isinstance(body, dict) else None
    if not isinstance(raw_suppliers, list):
        raise HTTPException(status_code=400, detail="Suppliers array required")
    try:
        suppliers = [PortfolioSupplier.model_validate(item) for item in raw_suppliers]
    except ValidationError:
        raise HTTPException(status_code=400, detail="Invalid supplier entry")
    try:
        return await analyze_portfolio(suppliers, completion)
    except Exception:
        logger.exception("Portfolio analysis error")
        raise HTTPException(status_code=500, detail="Failed to analyze portfolio")


@router.get("/ollama-status")
async def ollama_status(completion: CompletionOrchestrator = Depends(get_completion)):
    return await completion.status()


def create_app(
    settings: AppSettings,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
    search_providers: Optional[Mapping[str, SearchProvider]] = None,
    completion_providers: Optional[Mapping[str, CompletionProvider]] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            if owns_client and not app.state.http_client.is_closed:
                await app.state.http_client.aclose()

    app = FastAPI(title="Supplier Intel", lifespan=lifespan)
    owns_client = http_client is None
    # Share one connection pool across every provider call.
    client = http_client or httpx.AsyncClient(
        timeout=30,
        limits=httpx.Limits(max_connections=32, max_keepalive_connections=16),
        follow_redirects=True,
    )
    search_map = search_providers if search_providers is not None else build_search_providers(settings, client)
    completion_map = (
        completion_providers
        if completion_providers is not None
        else build_completion_providers(settings, client)
    )
    app.state.settings = settings
    app.state.http_client = client
    app.state.chat_search = SearchOrchestrator(select_chain(search_map, settings.chat_search_providers))
    app.state.intel_search = SearchOrchestrator(select_chain(search_map, settings.intel_search_providers))
    app.state.esg_search = SearchOrchestrator(select_chain(search_map, settings.esg_search_providers))
    app.state.completion = CompletionOrchestrator(select_chain(completion_map, settings.completion_providers))
    app.state.portfolio_completion = CompletionOrchestrator(
        select_chain(completion_map, settings.portfolio_providers)
    )

    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.include_router(router)
    return app


app = create_app(load_settings())


if __name__ == "__main__":
    import os
    import uvicorn

    settings = app.state.settings
    reload_enabled = os.getenv("SUPPLIER_INTEL_RELOAD", "").lower() in ("1", "true", "yes", "on")
    try:
        uvicorn.run(
            "supplier_intel.main:app",
            host=getattr(settings, "host", "0.0.0.0"),
            port=settings.port,
            reload=reload_enabled,
        )
    except KeyboardInterrupt:
        pass
