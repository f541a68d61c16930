import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx


logger = logging.getLogger("uvicorn.error")

ALLOWED_ROLES = {"system", "user", "assistant"}
_THINK_RE = re.compile(r"<think>[\s\S]*?</think>", re.IGNORECASE)
_FENCE_RE = re.compile(r"```(?:json)?\s*|\s*```", re.IGNORECASE)
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


class ProviderError(Exception):
    pass


class ProviderNotConfigured(ProviderError):
    """No provider in the requested chain has credentials or an address."""


def strip_thinking(text: Optional[str]) -> str:
    return _THINK_RE.sub("", text or "").strip()


def extract_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    cleaned = _FENCE_RE.sub("", strip_thinking(text)).strip()
    match = _JSON_OBJECT_RE.search(cleaned)
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def sanitize_messages(messages: Any) -> List[Dict[str, str]]:
    if not isinstance(messages, list):
        return []
    sanitized: List[Dict[str, str]] = []
    for msg in messages:
        if not isinstance(msg, dict):
            continue
        role = msg.get("role")
        if role not in ALLOWED_ROLES:
            continue
        content = msg.get("content")
        if not isinstance(content, str) or not content.strip():
            continue
        sanitized.append({"role": role, "content": content})
    return sanitized


def select_model(preferred: Sequence[str], available: Sequence[str]) -> Optional[str]:
    """Pick the first preferred model present on the server, else the first listed one."""
    candidates = [mid for mid in available if mid and "embed" not in mid.lower()]
    if not candidates:
        return None
    for wanted in preferred:
        for mid in candidates:
            if wanted and wanted in mid:
                return mid
    return candidates[0]


@dataclass
class Completion:
    text: str
    provider: str
    parsed: Any = None


class CompletionProvider:
    name = "provider"
    label = "Provider"
    local = False
    timeout = 60.0

    def __init__(self, client: httpx.AsyncClient, timeout: Optional[float] = None) -> None:
        self.client = client
        if timeout is not None:
            self.timeout = timeout

    @property
    def configured(self) -> bool:
        return False

    async def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> str:
        raise NotImplementedError

    async def probe(self) -> Optional[Dict[str, Any]]:
        return None


class OpenAICompatibleProvider(CompletionProvider):
    """Chat-completions API shared by Groq and OpenAI."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        name: str,
        label: str,
        base_url: str,
        api_key: Optional[str],
        model: str,
        timeout: Optional[float] = None,
    ) -> None:
        super().__init__(client, timeout)
        self.name = name
        self.label = label
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> str:
        resp = await self.client.post(
            f"{self.base_url}/chat/completions",
            json={
                "model": self.model,
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        data = resp.json()
        choices = data.get("choices") or []
        if not choices:
            return ""
        message = choices[0].get("message") or {}
        return message.get("content") or ""


def groq_provider(client: httpx.AsyncClient, api_key: Optional[str], model: str, timeout: Optional[float] = None):
    return OpenAICompatibleProvider(
        client,
        name="groq",
        label="Groq",
        base_url="https://api.groq.com/openai/v1",
        api_key=api_key,
        model=model,
        timeout=timeout,
    )


def openai_provider(client: httpx.AsyncClient, api_key: Optional[str], model: str, timeout: Optional[float] = None):
    return OpenAICompatibleProvider(
        client,
        name="openai",
        label="OpenAI",
        base_url="https://api.openai.com/v1",
        api_key=api_key,
        model=model,
        timeout=timeout,
    )


class AnthropicProvider(CompletionProvider):
    name = "anthropic"
    label = "Anthropic"
    url = "https://api.anthropic.com/v1/messages"
    api_version = "2023-06-01"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: Optional[str],
        model: str,
        timeout: Optional[float] = None,
    ) -> None:
        super().__init__(client, timeout)
        self.api_key = api_key
        self.model = model

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> str:
        # The Messages API takes system text as a top-level field, not as a turn.
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        turns = [m for m in messages if m["role"] != "system"]
        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": turns,
        }
        if system:
            payload["system"] = system
        resp = await self.client.post(
            self.url,
            json=payload,
            headers={"x-api-key": self.api_key or "", "anthropic-version": self.api_version},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        data = resp.json()
        for block in data.get("content") or []:
            if isinstance(block, dict) and block.get("type", "text") == "text":
                return block.get("text") or ""
        return ""


class OllamaProvider(CompletionProvider):
    """Local model server reachable at one of several candidate addresses."""

    name = "ollama"
    label = "Ollama"
    local = True
    timeout = 120.0

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_urls: Sequence[str],
        preferred_models: Sequence[str] = (),
        timeout: Optional[float] = None,
        probe_timeout: float = 3.0,
    ) -> None:
        super().__init__(client, timeout)
        self.base_urls = [url.rstrip("/") for url in base_urls if url]
        self.preferred_models = list(preferred_models)
        self.probe_timeout = probe_timeout

    @property
    def configured(self) -> bool:
        return bool(self.base_urls)

    async def list_models(self, base_url: str) -> List[str]:
        resp = await self.client.get(f"{base_url}/api/tags", timeout=self.probe_timeout)
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            raise ValueError("model list is not an object")
        return [m.get("name") for m in data.get("models") or [] if isinstance(m, dict) and m.get("name")]

    async def probe(self) -> Optional[Dict[str, Any]]:
        for base_url in self.base_urls:
            try:
                models = await self.list_models(base_url)
            except (httpx.HTTPError, ValueError):
                continue
            return {"url": base_url, "models": models}
        return None

    async def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> str:
        for base_url in self.base_urls:
            try:
                model = select_model(self.preferred_models, await self.list_models(base_url))
                if not model:
                    logger.info("Ollama at %s has no usable models", base_url)
                    continue
                logger.info("Ollama at %s using model %s", base_url, model)
                resp = await self.client.post(
                    f"{base_url}/api/chat",
                    json={
                        "model": model,
                        "messages": messages,
                        "stream": False,
                        "options": {"temperature": temperature, "num_predict": max_tokens},
                    },
                    timeout=self.timeout,
                )
                resp.raise_for_status()
                data = resp.json()
                if not isinstance(data, dict):
                    raise ValueError("chat reply is not an object")
            except (httpx.HTTPError, ValueError) as exc:
                logger.info("Ollama at %s not available: %r", base_url, exc)
                continue
            message = data.get("message")
            if not isinstance(message, dict):
                message = {}
            text = strip_thinking(message.get("content") or data.get("response"))
            if text:
                return text
        return ""


class CompletionOrchestrator:
    """Ordered fallback chain over text generation providers.

    Providers are tried one after another; the first non-empty reply (that
    ``parse`` accepts, when given) wins. Failed providers are replaced, never
    retried.
    """

    def __init__(self, providers: Sequence[CompletionProvider]) -> None:
        self.providers = list(providers)

    def chain(self) -> List[CompletionProvider]:
        return [provider for provider in self.providers if provider.configured]

    @property
    def configured(self) -> bool:
        return bool(self.chain())

    async def complete(
        self,
        messages: List[Dict[str, str]],
        *,
        parse: Optional[Callable[[str], Any]] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> Optional[Completion]:
        chain = self.chain()
        if not chain:
            raise ProviderNotConfigured("no text generation provider configured")
        cleaned = sanitize_messages(messages)
        if not cleaned:
            raise ValueError("messages must include at least one non-empty entry")
        for provider in chain:
            try:
                raw = await provider.complete(cleaned, temperature=temperature, max_tokens=max_tokens)
            except Exception as exc:
                logger.warning("%s completion failed: %r", provider.label, exc)
                continue
            text = strip_thinking(raw)
            if not text:
                logger.info("%s returned an empty completion", provider.label)
                continue
            parsed = None
            if parse is not None:
                parsed = parse(text)
                if parsed is None:
                    logger.warning("%s reply could not be parsed; trying next provider", provider.label)
                    continue
            logger.info("Completion served by %s", provider.label)
            return Completion(text=text, provider=provider.name, parsed=parsed)
        return None

    async def status(self) -> Dict[str, Any]:
        cloud = [p.label for p in self.providers if not p.local and p.configured]
        if cloud:
            return {
                "status": "online",
                "provider": cloud[0],
                "providers": cloud,
                "message": f"AI powered by {', '.join(cloud)}",
            }
        for provider in self.providers:
            if not provider.local or not provider.configured:
                continue
            found = await provider.probe()
            if found:
                return {"status": "online", "provider": provider.label, **found}
        return {
            "status": "offline",
            "message": "No AI service configured. Add OPENAI_API_KEY or GROQ_API_KEY.",
        }
