import asyncio
import logging
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from .llm import CompletionOrchestrator, ProviderNotConfigured, extract_json_object
from .schemas import EsgScore, SearchResult
from .search import SearchOrchestrator


logger = logging.getLogger("uvicorn.error")

ESG_RESULT_LIMIT = 15
DEFAULT_ESG_VALUE = 70
ESG_SOURCES = {"sustainalytics", "msci", "sp-global", "cdp", "ai-estimated"}


def esg_queries(company: str) -> List[str]:
    return [
        f"{company} ESG score rating sustainalytics",
        f"{company} ESG rating MSCI",
        f"{company} sustainability score CDP",
        f"{company} ESG risk rating",
    ]


async def search_esg_coverage(company: str, search: SearchOrchestrator) -> List[SearchResult]:
    batches = await asyncio.gather(*(search.collect(query, ESG_RESULT_LIMIT) for query in esg_queries(company)))
    results: List[SearchResult] = []
    for batch in batches:
        for item in batch:
            if len(results) >= ESG_RESULT_LIMIT:
                return results
            results.append(item)
    return results


def build_esg_prompt(company: str, results: Sequence[SearchResult]) -> str:
    context = "\n".join(f"- {r.title}: {r.snippet}" for r in list(results)[:20])
    return f"""You are an ESG data analyst. Analyze the following search results about "{company}" and extract any REAL ESG scores or ratings mentioned.

Search results:
{context or 'No search results available.'}

Your task:
1. Look for ACTUAL ESG scores from recognized providers (Sustainalytics, MSCI, S&P Global, CDP, Refinitiv)
2. Extract specific numbers if mentioned (e.g., "ESG Risk Score of 18.5" or "AA rating" or "B- score")
3. Note the risk level if mentioned (Negligible, Low, Medium, High, Severe)
4. If NO real scores are found, estimate based on available information about the company

Respond in this exact JSON format:
{{
  "foundRealScore": true/false,
  "source": "sustainalytics" | "msci" | "sp-global" | "cdp" | "ai-estimated",
  "environmental": <0-100 score>,
  "social": <0-100 score>,
  "governance": <0-100 score>,
  "overall": <0-100 score>,
  "riskLevel": "Negligible" | "Low" | "Medium" | "High" | "Severe" | null,
  "confidence": "high" | "medium" | "low",
  "reasoning": "Brief explanation of where score came from"
}}

IMPORTANT:
- For Sustainalytics, LOWER scores are BETTER (0-10 = Negligible, 10-20 = Low, 20-30 = Medium, 30-40 = High, 40+ = Severe)
- For MSCI, letter grades: AAA/AA = Leader (90+), A/BBB/BB = Average (50-80), B/CCC = Laggard (20-50)
- Convert all scores to 0-100 scale where HIGHER = BETTER
- If estimating, use conservative mid-range values and set confidence to "low"."""


def _score_value(data: Dict[str, Any], key: str) -> float:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not value:
        return DEFAULT_ESG_VALUE
    return max(0, min(100, value))


def esg_from_reply(data: Dict[str, Any]) -> EsgScore:
    source = str(data.get("source") or "").lower()
    if not data.get("foundRealScore") or source not in ESG_SOURCES:
        source = "ai-estimated"
    return EsgScore(
        environmental=_score_value(data, "environmental"),
        social=_score_value(data, "social"),
        governance=_score_value(data, "governance"),
        overall=_score_value(data, "overall"),
        source=source,
        confidence=data.get("confidence") or "low",
        risk_level=data.get("riskLevel"),
        last_updated=date.today().isoformat(),
    )


def fallback_esg() -> EsgScore:
    return EsgScore(
        environmental=DEFAULT_ESG_VALUE,
        social=DEFAULT_ESG_VALUE,
        governance=DEFAULT_ESG_VALUE,
        overall=DEFAULT_ESG_VALUE,
        source="ai-estimated",
        confidence="low",
    )


async def estimate_esg(
    company: str,
    search: SearchOrchestrator,
    completion: CompletionOrchestrator,
    extra_results: Sequence[SearchResult] = (),
) -> Optional[EsgScore]:
    """Return an AI-extracted ESG score, or None when no provider produced one."""
    coverage = await search_esg_coverage(company, search)
    prompt = build_esg_prompt(company, [*coverage, *extra_results])
    try:
        result = await completion.complete(
            [{"role": "user", "content": prompt}],
            parse=extract_json_object,
            max_tokens=600,
        )
    except ProviderNotConfigured:
        return None
    if result is None:
        logger.info("ESG extraction for %s produced no usable reply", company)
        return None
    return esg_from_reply(result.parsed)
