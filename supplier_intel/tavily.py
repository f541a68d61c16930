from typing import Any, Dict, List, Optional

import httpx

from .search import SearchProvider, host_label
from .schemas import SearchResult


class TavilySearchProvider(SearchProvider):
    name = "tavily"
    url = "https://api.tavily.com/search"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: Optional[str],
        timeout: Optional[float] = None,
        search_depth: str = "basic",
        topic: Optional[str] = None,
    ) -> None:
        super().__init__(client, timeout)
        self.api_key = api_key
        self.search_depth = search_depth
        allowed_topics = {"general", "news", "finance"}
        cleaned = str(topic).strip().lower() if topic else ""
        self.topic = cleaned if cleaned in allowed_topics else None

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def _fetch(self, query: str, limit: int) -> List[SearchResult]:
        payload: Dict[str, Any] = {
            "query": query,
            "search_depth": self.search_depth,
            "max_results": limit,
        }
        if self.topic:
            payload["topic"] = self.topic
        data = await self._post(payload)
        results: List[SearchResult] = []
        for item in data.get("results") or []:
            if not isinstance(item, dict):
                continue
            url = item.get("url") or ""
            results.append(
                SearchResult(
                    title=item.get("title") or "",
                    url=url,
                    snippet=item.get("content") or "",
                    published_age=item.get("published_date"),
                    source=host_label(url),
                )
            )
        return results

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        # Tavily's dev keys expect the key in the JSON payload; include it there and keep the header for compatibility.
        payload = {**payload, "api_key": self.api_key}
        headers["X-API-Key"] = self.api_key or ""
        resp = await self.client.post(self.url, json=payload, headers=headers, timeout=self.timeout)
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            raise ValueError("unexpected Tavily payload")
        return data
