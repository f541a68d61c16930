import logging
from typing import Dict, List, Optional, Sequence

from .llm import CompletionOrchestrator
from .schemas import ChatMessage, ChatRequest, SearchResult
from .search import SearchOrchestrator


logger = logging.getLogger("uvicorn.error")

SEARCH_TRIGGERS = (
    "fda", "epa", "osha", "warning", "recall", "inspection", "lawsuit",
    "recent", "latest", "news", "current", "today", "2024", "2025", "2026",
    "plant", "factory", "location", "facility", "manufacture",
    "competitor", "acquisition", "merger", "bankruptcy", "financial",
    "certification", "iso", "audit", "violation", "fine", "penalty",
)
SEARCH_MODES = {"keywords", "always"}
NO_REPLY = "Sorry, I could not generate a response."


def needs_web_search(message: str, mode: str = "keywords") -> bool:
    if not message or not message.strip():
        return False
    if mode == "always":
        return True
    lower = message.lower()
    return any(trigger in lower for trigger in SEARCH_TRIGGERS)


def format_search_results(results: Sequence[SearchResult]) -> str:
    return "\n".join(f"- {r.title}: {r.snippet or ''} (Source: {r.url})" for r in results)


def build_system_prompt(message: str, supplier_context: Optional[str], search_results: str = "") -> str:
    web_section = ""
    if search_results:
        web_section = f"""
RECENT WEB SEARCH RESULTS for "{message}":
{search_results}

Use these search results to provide current, accurate information. Always cite the source when using information from search results.
"""
    return f"""You are a supply chain intelligence assistant helping analyze suppliers.
You have access to the following supplier information:

{supplier_context or 'No specific supplier context provided.'}

{web_section}
Answer questions about this supplier based on:
1. The web search results above (if available) - prioritize this for current information
2. The provided supplier context
3. Your general knowledge about the company and industry

Be concise, factual, and helpful. When citing web search results, mention the source.
If you don't have specific information and no search results are available, say so clearly."""


def build_messages(
    system_prompt: str,
    history: Optional[Sequence[ChatMessage]],
    message: str,
    window: int = 10,
) -> List[Dict[str, str]]:
    messages = [{"role": "system", "content": system_prompt}]
    recent = list(history or [])[-window:] if window > 0 else []
    messages.extend({"role": turn.role, "content": turn.content} for turn in recent)
    messages.append({"role": "user", "content": message})
    return messages


async def answer(
    request: ChatRequest,
    search: SearchOrchestrator,
    completion: CompletionOrchestrator,
    *,
    search_mode: str = "keywords",
    search_limit: int = 5,
    history_window: int = 10,
) -> Optional[str]:
    """Run one chat turn; None means every configured provider failed."""
    message = request.message or ""
    web_results = ""
    if request.supplier_name and needs_web_search(message, search_mode):
        logger.info("Performing web search for: %s", message)
        results = await search.search(f"{request.supplier_name} {message}", search_limit)
        web_results = format_search_results(results)
        if web_results:
            logger.info("Web search returned %d results", len(results))

    system_prompt = build_system_prompt(message, request.supplier_context, web_results)
    messages = build_messages(system_prompt, request.history, message, history_window)
    result = await completion.complete(messages, temperature=0.7, max_tokens=1000)
    if result is None:
        return None
    return result.text or NO_REPLY
