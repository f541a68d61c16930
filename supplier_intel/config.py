import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from dotenv import load_dotenv

CONFIG_PATH = Path("config.json")
ENV_OVERRIDE_KEY = "SUPPLIER_INTEL_ENV_OVERRIDES_CONFIG"
ENV_OVERRIDE_TRUE = {"1", "true", "yes", "on"}
SECRET_FIELDS = (
    "groq_api_key",
    "openai_api_key",
    "anthropic_api_key",
    "brave_api_key",
    "tavily_api_key",
)


class AppSettings(BaseModel):
    # Cloud text generation
    groq_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    groq_model: str = "llama-3.3-70b-versatile"
    openai_model: str = "gpt-4o-mini"
    anthropic_model: str = "claude-3-5-haiku-20241022"

    # Local model server
    ollama_urls: List[str] = Field(
        default_factory=lambda: ["http://127.0.0.1:11434", "http://localhost:11434"]
    )
    ollama_url: Optional[str] = None
    ollama_preferred_models: List[str] = Field(
        default_factory=lambda: ["qwen3:30b-a3b", "qwen3-coder:30b", "deepseek-r1:8b-0528-qwen3-q8_0"]
    )

    # Web search
    brave_api_key: Optional[str] = None
    tavily_api_key: Optional[str] = None

    # Fallback chains, tried in order
    completion_providers: List[str] = Field(default_factory=lambda: ["groq", "openai", "anthropic", "ollama"])
    portfolio_providers: List[str] = Field(default_factory=lambda: ["ollama"])
    chat_search_providers: List[str] = Field(default_factory=lambda: ["brave", "tavily"])
    intel_search_providers: List[str] = Field(
        default_factory=lambda: ["google_news", "duckduckgo", "brave", "tavily"]
    )
    esg_search_providers: List[str] = Field(default_factory=lambda: ["google_news"])
    chat_search_mode: str = "keywords"

    search_timeout_s: float = 8.0
    instant_answer_timeout_s: float = 5.0
    status_probe_timeout_s: float = 3.0
    cloud_timeout_s: float = 60.0
    local_timeout_s: float = 120.0

    chat_search_limit: int = 5
    intel_search_limit: int = 10
    chat_history_window: int = 10

    host: str = "0.0.0.0"
    port: int = 8000

    def local_model_urls(self) -> List[str]:
        urls = list(self.ollama_urls)
        if self.ollama_url and self.ollama_url not in urls:
            urls.append(self.ollama_url)
        return urls

    def to_safe_dict(self) -> dict:
        data = self.model_dump()
        for key in SECRET_FIELDS:
            if data.get(key):
                data[key] = "********"
        return data

    model_config = {"protected_namespaces": ()}


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _load_from_env() -> dict:
    load_dotenv()
    env_map = {
        "groq_api_key": os.getenv("GROQ_API_KEY"),
        "openai_api_key": os.getenv("OPENAI_API_KEY"),
        "anthropic_api_key": os.getenv("ANTHROPIC_API_KEY"),
        "brave_api_key": os.getenv("BRAVE_API_KEY"),
        "tavily_api_key": os.getenv("TAVILY_API_KEY"),
        "groq_model": os.getenv("GROQ_MODEL"),
        "openai_model": os.getenv("OPENAI_MODEL"),
        "anthropic_model": os.getenv("ANTHROPIC_MODEL"),
        "ollama_urls": os.getenv("OLLAMA_URLS"),
        "ollama_url": os.getenv("OLLAMA_URL"),
        "ollama_preferred_models": os.getenv("OLLAMA_PREFERRED_MODELS"),
        "completion_providers": os.getenv("COMPLETION_PROVIDERS"),
        "portfolio_providers": os.getenv("PORTFOLIO_PROVIDERS"),
        "chat_search_providers": os.getenv("CHAT_SEARCH_PROVIDERS"),
        "intel_search_providers": os.getenv("INTEL_SEARCH_PROVIDERS"),
        "esg_search_providers": os.getenv("ESG_SEARCH_PROVIDERS"),
        "chat_search_mode": os.getenv("CHAT_SEARCH_MODE"),
        "search_timeout_s": os.getenv("SEARCH_TIMEOUT_S"),
        "cloud_timeout_s": os.getenv("CLOUD_TIMEOUT_S"),
        "local_timeout_s": os.getenv("LOCAL_TIMEOUT_S"),
        "host": os.getenv("HOST"),
        "port": os.getenv("PORT"),
    }
    cleaned = {k: v for k, v in env_map.items() if v not in (None, "")}
    for key in (
        "ollama_urls",
        "ollama_preferred_models",
        "completion_providers",
        "portfolio_providers",
        "chat_search_providers",
        "intel_search_providers",
        "esg_search_providers",
    ):
        if key in cleaned:
            cleaned[key] = _split_list(cleaned[key])
    for key in ("search_timeout_s", "cloud_timeout_s", "local_timeout_s"):
        if key in cleaned:
            cleaned[key] = float(cleaned[key])
    if "port" in cleaned:
        cleaned["port"] = int(cleaned["port"])
    if "chat_search_mode" in cleaned:
        cleaned["chat_search_mode"] = cleaned["chat_search_mode"].strip().lower()
    return cleaned


def _env_overrides_config() -> bool:
    return str(os.getenv(ENV_OVERRIDE_KEY, "")).strip().lower() in ENV_OVERRIDE_TRUE


def load_settings(config_path: Optional[Path] = None) -> AppSettings:
    env_data = _load_from_env()
    path = config_path or CONFIG_PATH
    file_data: Dict[str, Any] = {}
    if path.exists():
        try:
            file_data = json.loads(path.read_text())
        except Exception:
            file_data = {}
    # Config wins by default; allow env overrides only when explicitly enabled.
    if _env_overrides_config():
        merged = {**file_data, **env_data}
    else:
        merged = {**env_data, **file_data}
    for key in SECRET_FIELDS:
        if not merged.get(key) and env_data.get(key):
            merged[key] = env_data[key]
    return AppSettings(**merged)
