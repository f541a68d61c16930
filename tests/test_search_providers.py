import httpx
import pytest
import respx
from httpx import Response

from supplier_intel.search import (
    BraveSearchProvider,
    DuckDuckGoInstantProvider,
    GoogleNewsRssProvider,
    host_label,
    parse_instant_answer,
    parse_rss,
)


RSS_FEED = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Google News</title>
    <item>
      <title>Acme recalls widgets</title>
      <link>https://news.example.com/acme-recall</link>
      <pubDate>Mon, 06 Jan 2025 10:00:00 GMT</pubDate>
      <description>&lt;a href="x"&gt;Acme recalls widgets&lt;/a&gt; &amp;nbsp;Example</description>
      <source url="https://news.example.com">Example News</source>
    </item>
    <item>
      <title></title>
      <link>https://news.example.com/untitled</link>
    </item>
    <item>
      <title>Acme expands</title>
      <link>https://www.trade.example/acme</link>
    </item>
  </channel>
</rss>
"""


def test_host_label_strips_www():
    assert host_label("https://www.fda.gov/recalls") == "fda.gov"
    assert host_label("https://news.example.com/a") == "news.example.com"
    assert host_label("not a url") == ""


def test_parse_rss_reads_items():
    results = parse_rss(RSS_FEED)
    assert [r.title for r in results] == ["Acme recalls widgets", "Acme expands"]
    first = results[0]
    assert first.url == "https://news.example.com/acme-recall"
    assert first.source == "Example News"
    assert first.published_age == "Mon, 06 Jan 2025 10:00:00 GMT"
    assert "<a" not in first.snippet
    assert results[1].source == "trade.example"
    assert parse_rss(RSS_FEED, limit=1)[0].title == "Acme recalls widgets"


def test_parse_instant_answer_flattens_topics():
    data = {
        "Heading": "Acme Corporation",
        "AbstractText": "Acme is a widget maker.",
        "AbstractURL": "https://en.wikipedia.org/wiki/Acme",
        "AbstractSource": "Wikipedia",
        "RelatedTopics": [
            {"Text": "Acme Widgets - Product line", "FirstURL": "https://duckduckgo.com/Acme_Widgets"},
            {"Name": "Companies", "Topics": [{"Text": "Acme Tools", "FirstURL": "https://duckduckgo.com/Acme_Tools"}]},
            {"Text": "", "FirstURL": "https://duckduckgo.com/empty"},
        ],
    }
    results = parse_instant_answer(data, "Acme")
    assert [r.title for r in results] == ["Acme Corporation", "Acme Widgets", "Acme Tools"]
    assert results[0].source == "Wikipedia"
    assert results[1].snippet == "Acme Widgets - Product line"


def test_parse_instant_answer_rejects_non_object():
    with pytest.raises(ValueError):
        parse_instant_answer(["not", "an", "object"])


@pytest.mark.asyncio
async def test_google_news_provider_parses_feed():
    async with httpx.AsyncClient() as client:
        provider = GoogleNewsRssProvider(client)
        with respx.mock(assert_all_called=True) as respx_mock:
            route = respx_mock.get(host="news.google.com", path="/rss/search").mock(
                return_value=Response(200, content=RSS_FEED)
            )
            results = await provider.search("Acme news", limit=5)
            assert route.calls.last.request.url.params["q"] == "Acme news"
            assert route.calls.last.request.url.params["ceid"] == "US:en"
    assert len(results) == 2


@pytest.mark.asyncio
async def test_google_news_provider_returns_empty_on_bad_xml():
    async with httpx.AsyncClient() as client:
        provider = GoogleNewsRssProvider(client)
        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.get(host="news.google.com", path="/rss/search").mock(
                return_value=Response(200, content=b"<rss><channel>")
            )
            assert await provider.search("Acme") == []


@pytest.mark.asyncio
async def test_duckduckgo_provider_returns_empty_on_timeout():
    async with httpx.AsyncClient() as client:
        provider = DuckDuckGoInstantProvider(client)
        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.get(host="api.duckduckgo.com").mock(side_effect=httpx.ConnectTimeout("slow"))
            assert await provider.search("Acme") == []


@pytest.mark.asyncio
async def test_brave_provider_sends_key_and_maps_results():
    async with httpx.AsyncClient() as client:
        provider = BraveSearchProvider(client, "brave-key")
        with respx.mock(assert_all_called=True) as respx_mock:
            route = respx_mock.get(host="api.search.brave.com", path="/res/v1/web/search").mock(
                return_value=Response(
                    200,
                    json={
                        "web": {
                            "results": [
                                {
                                    "title": "Acme FDA warning letter",
                                    "url": "https://www.fda.gov/acme",
                                    "description": "<strong>Acme</strong> received a warning",
                                    "age": "3 days ago",
                                },
                                {"title": "", "url": "https://example.com/blank"},
                            ]
                        }
                    },
                )
            )
            results = await provider.search("Acme FDA", limit=50)
            request = route.calls.last.request
            assert request.headers["X-Subscription-Token"] == "brave-key"
            assert request.url.params["count"] == "20"
    assert len(results) == 1
    assert results[0].source == "fda.gov"
    assert results[0].published_age == "3 days ago"
    assert "<strong>" not in results[0].snippet


@pytest.mark.asyncio
async def test_brave_provider_without_key_makes_no_request():
    async with httpx.AsyncClient() as client:
        provider = BraveSearchProvider(client, None)
        with respx.mock(assert_all_called=False):
            assert provider.enabled is False
            assert await provider.search("Acme") == []


@pytest.mark.asyncio
async def test_brave_provider_handles_http_error():
    async with httpx.AsyncClient() as client:
        provider = BraveSearchProvider(client, "brave-key")
        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.get(host="api.search.brave.com").mock(return_value=Response(429, json={"error": "quota"}))
            assert await provider.search("Acme") == []


@pytest.mark.asyncio
async def test_brave_snippet_keeps_literal_angle_brackets():
    async with httpx.AsyncClient() as client:
        provider = BraveSearchProvider(client, "brave-key")
        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.get(host="api.search.brave.com", path="/res/v1/web/search").mock(
                return_value=Response(
                    200,
                    json={
                        "web": {
                            "results": [
                                {
                                    "title": "Acme margins",
                                    "url": "https://markets.example/acme",
                                    "description": "<strong>Acme</strong> margin <5% while rivals >3% growth",
                                }
                            ]
                        }
                    },
                )
            )
            results = await provider.search("Acme margins")
    snippet = results[0].snippet
    assert "<strong>" not in snippet
    assert snippet.startswith("Acme margin")
    assert "<5% while rivals" in snippet
    assert snippet.endswith("3% growth")
