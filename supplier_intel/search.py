"""Web search providers and the ordered fallback chain that drives them.

Every provider adapts one external response shape (RSS XML, instant-answer
JSON, keyed search JSON) into ``SearchResult``. Provider failures never escape
``SearchProvider.search``: they are logged and reported as zero results, so the
chain simply moves on to the next source.
"""

import asyncio
import logging
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from .schemas import SearchResult


logger = logging.getLogger("uvicorn.error")

USER_AGENT = "Mozilla/5.0 (compatible; SupplierIntelBot/1.0)"


def host_label(url: str) -> str:
    try:
        host = urlparse(url).hostname or ""
    except ValueError:
        return ""
    return host[4:] if host.startswith("www.") else host


def _plain_text(value: Optional[str]) -> str:
    if not value:
        return ""
    return BeautifulSoup(value, "html.parser").get_text(" ", strip=True)


class SearchProvider:
    """Base class for one search source; subclasses implement ``_fetch``."""

    name = "search"
    timeout = 8.0

    def __init__(self, client: httpx.AsyncClient, timeout: Optional[float] = None) -> None:
        self.client = client
        if timeout is not None:
            self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return True

    async def search(self, query: str, limit: int = 10) -> List[SearchResult]:
        if not self.enabled:
            return []
        try:
            results = await self._fetch(query, limit)
        except httpx.HTTPStatusError as exc:
            logger.warning("%s search failed: HTTP %s", self.name, exc.response.status_code)
            return []
        except httpx.RequestError as exc:
            logger.warning("%s search request failed: %r", self.name, exc)
            return []
        except (ValueError, ET.ParseError) as exc:
            logger.warning("%s returned an unparseable response: %s", self.name, exc)
            return []
        return [item for item in results if item.is_usable][:limit]

    async def _fetch(self, query: str, limit: int) -> List[SearchResult]:
        raise NotImplementedError


class GoogleNewsRssProvider(SearchProvider):
    name = "google_news"
    url = "https://news.google.com/rss/search"

    async def _fetch(self, query: str, limit: int) -> List[SearchResult]:
        resp = await self.client.get(
            self.url,
            params={"q": query, "hl": "en-US", "gl": "US", "ceid": "US:en"},
            headers={"User-Agent": USER_AGENT},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return parse_rss(resp.content, limit)


def parse_rss(document: bytes, limit: int = 15) -> List[SearchResult]:
    root = ET.fromstring(document)
    results: List[SearchResult] = []
    for item in root.iter("item"):
        if len(results) >= limit:
            break
        title = (item.findtext("title") or "").strip()
        if not title:
            continue
        link = (item.findtext("link") or "").strip()
        publisher = (item.findtext("source") or "").strip()
        results.append(
            SearchResult(
                title=title,
                url=link,
                snippet=_plain_text(item.findtext("description")),
                published_age=(item.findtext("pubDate") or "").strip() or None,
                source=publisher or host_label(link),
            )
        )
    return results


class DuckDuckGoInstantProvider(SearchProvider):
    name = "duckduckgo"
    url = "https://api.duckduckgo.com/"
    timeout = 5.0

    async def _fetch(self, query: str, limit: int) -> List[SearchResult]:
        resp = await self.client.get(
            self.url,
            params={"q": query, "format": "json", "no_html": "1", "skip_disambig": "1"},
            headers={"User-Agent": USER_AGENT},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return parse_instant_answer(resp.json(), query)


def _flatten_topics(topics: Any) -> List[Dict[str, Any]]:
    flat: List[Dict[str, Any]] = []
    if not isinstance(topics, list):
        return flat
    for topic in topics:
        if not isinstance(topic, dict):
            continue
        # Disambiguation groups nest their entries under "Topics".
        if "Topics" in topic:
            flat.extend(_flatten_topics(topic.get("Topics")))
        else:
            flat.append(topic)
    return flat


def parse_instant_answer(data: Any, query: str = "") -> List[SearchResult]:
    if not isinstance(data, dict):
        raise ValueError("instant answer payload is not an object")
    results: List[SearchResult] = []
    abstract = (data.get("AbstractText") or "").strip()
    abstract_url = (data.get("AbstractURL") or "").strip()
    if abstract and abstract_url:
        results.append(
            SearchResult(
                title=(data.get("Heading") or query).strip(),
                url=abstract_url,
                snippet=abstract,
                source=(data.get("AbstractSource") or host_label(abstract_url)),
            )
        )
    for topic in _flatten_topics(data.get("RelatedTopics")):
        text = (topic.get("Text") or "").strip()
        url = (topic.get("FirstURL") or "").strip()
        if not text or not url:
            continue
        results.append(
            SearchResult(
                title=text.split(" - ", 1)[0],
                url=url,
                snippet=text,
                source=host_label(url),
            )
        )
    return results


class BraveSearchProvider(SearchProvider):
    name = "brave"
    url = "https://api.search.brave.com/res/v1/web/search"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: Optional[str],
        timeout: Optional[float] = None,
    ) -> None:
        super().__init__(client, timeout)
        self.api_key = api_key

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def _fetch(self, query: str, limit: int) -> List[SearchResult]:
        resp = await self.client.get(
            self.url,
            params={"q": query, "count": max(1, min(limit, 20))},
            headers={"Accept": "application/json", "X-Subscription-Token": self.api_key or ""},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        data = resp.json()
        web = data.get("web") or {}
        results: List[SearchResult] = []
        for item in web.get("results") or []:
            if not isinstance(item, dict):
                continue
            url = item.get("url") or ""
            results.append(
                SearchResult(
                    title=item.get("title") or "",
                    url=url,
                    snippet=_plain_text(item.get("description")),
                    published_age=item.get("age"),
                    source=host_label(url),
                )
            )
        return results


class SearchOrchestrator:
    """Tries search providers in a fixed order.

    ``search`` stops at the first provider with at least one usable result,
    ``collect`` keeps concatenating until ``limit`` results are gathered.
    """

    def __init__(self, providers: Sequence[SearchProvider]) -> None:
        self.providers = list(providers)

    @property
    def enabled(self) -> bool:
        return any(provider.enabled for provider in self.providers)

    async def _attempt(self, provider: SearchProvider, query: str, limit: int) -> List[SearchResult]:
        if not provider.enabled:
            logger.debug("Search provider %s not configured; skipping", provider.name)
            return []
        try:
            return await provider.search(query, limit)
        except Exception as exc:
            logger.warning("Search provider %s failed: %r", provider.name, exc)
            return []

    async def search(self, query: str, limit: int = 10) -> List[SearchResult]:
        for provider in self.providers:
            results = await self._attempt(provider, query, limit)
            if results:
                logger.info("Search %r answered by %s (%d results)", query, provider.name, len(results))
                return results[:limit]
        return []

    async def collect(self, query: str, limit: int = 10) -> List[SearchResult]:
        collected: List[SearchResult] = []
        for provider in self.providers:
            if len(collected) >= limit:
                break
            collected.extend(await self._attempt(provider, query, limit - len(collected)))
        return collected[:limit]

    async def search_many(self, queries: Sequence[str], limit: int = 10) -> List[List[SearchResult]]:
        return list(await asyncio.gather(*(self.search(query, limit) for query in queries)))
