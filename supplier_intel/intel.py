import asyncio
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from .esg import estimate_esg, fallback_esg
from .llm import CompletionOrchestrator, ProviderNotConfigured, extract_json_object
from .reputation import analyze_reputation
from .schemas import EsgScore, NewsItem, RiskFactor, SearchResult, SupplierIntel
from .search import SearchOrchestrator, host_label


logger = logging.getLogger("uvicorn.error")

KNOWN_LARGE_COMPANIES = ("BASF", "Dow", "Honeywell", "Siemens", "3M")
NEWS_LIMIT = 6
ANALYSIS_CONTEXT_LIMIT = 8


def intel_queries(supplier: str) -> Dict[str, str]:
    return {
        "company": f"{supplier} company profile overview",
        "news": f"{supplier} news 2024 2025",
        "risk": f"{supplier} supply chain risk issues",
        "consumer": f'"{supplier}" reviews complaints consumer feedback',
        "reddit": f'site:reddit.com "{supplier}" problems issues experience',
        "negative_news": f'"{supplier}" scandal controversy lawsuit problem -site:reddit.com',
        "regulatory": f'"{supplier}" FDA warning EPA violation regulatory fine citation recall',
    }


def build_analysis_prompt(supplier: str, results: Sequence[SearchResult]) -> str:
    if results:
        context = "\n".join(f"- {r.title}: {r.snippet}" for r in list(results)[:ANALYSIS_CONTEXT_LIMIT])
    else:
        context = "No real-time search results available. Use your training knowledge about this company."
    return f"""You are a supply chain intelligence analyst. Analyze this supplier and provide a comprehensive intelligence report based on your knowledge.

Supplier: {supplier}

Recent search results about this company:
{context}

Provide your analysis in this exact JSON format (no markdown, just raw JSON):
{{
  "summary": "2-3 sentence executive summary of the company",
  "industry": "Primary industry sector",
  "headquarters": "City, Country",
  "employees": "Approximate employee count (e.g., '50,000+' or '1,000-5,000')",
  "revenue": "Annual revenue if known (e.g., '$50B' or 'Private')",
  "founded": "Year founded",
  "website": "Company website URL",
  "stockSymbol": "Stock ticker if public, null if private",
  "risks": [
    {{"category": "Category name", "level": "low|medium|high", "description": "Brief description"}}
  ],
  "opportunities": ["Opportunity 1", "Opportunity 2"],
  "esgScore": {{
    "environmental": 75,
    "social": 80,
    "governance": 85,
    "overall": 80
  }},
  "competitivePosition": "Brief description of market position",
  "supplyChainRole": "Their role in typical supply chains",
  "certifications": ["ISO 9001", "ISO 14001", "etc"],
  "recentDevelopments": ["Recent news/development 1", "Recent news/development 2"],
  "aiAnalysis": "3-4 sentence AI analysis of this supplier's strengths, weaknesses, and what a procurement team should know"
}}

Be specific and factual where possible. For unknown companies, make reasonable inferences based on the name and any available context. Always provide complete JSON.
Respond with ONLY valid JSON, no other text. Do not include any thinking or explanation."""


def fallback_analysis(supplier: str) -> Dict[str, Any]:
    known = any(name.lower() in supplier.lower() for name in KNOWN_LARGE_COMPANIES)
    slug = re.sub(r"\s+", "", supplier.lower())
    return {
        "summary": (
            f"{supplier} is a significant player in their industry sector. This analysis is based on "
            "publicly available information and should be verified with direct supplier engagement."
        ),
        "industry": "Manufacturing / Industrial",
        "headquarters": "Information pending verification",
        "employees": "50,000+" if known else "1,000-10,000",
        "revenue": "$10B+" if known else "Private/Not disclosed",
        "founded": "See company profile",
        "website": f"https://www.{slug}.com",
        "risks": [
            {"category": "Supply Continuity", "level": "medium", "description": "Standard market risks apply"},
            {"category": "Geopolitical", "level": "low", "description": "Diversified operations reduce exposure"},
            {"category": "Financial", "level": "low", "description": "Stable market position"},
        ],
        "opportunities": [
            "Potential for strategic partnership",
            "Innovation collaboration opportunities",
            "Volume discount negotiations",
        ],
        "esgScore": {"environmental": 72, "social": 78, "governance": 81, "overall": 77},
        "competitivePosition": "Established market participant with recognized capabilities",
        "supplyChainRole": "Tier 1/2 supplier for industrial and manufacturing sectors",
        "certifications": ["ISO 9001", "ISO 14001"],
        "recentDevelopments": [
            "Continued investment in operational capabilities",
            "Market expansion initiatives ongoing",
        ],
        "aiAnalysis": (
            f"{supplier} appears to be a viable supplier option. Recommend conducting direct due diligence "
            "including facility audits, financial verification, and reference checks. Consider starting with "
            "a pilot engagement to assess actual performance before committing to large-volume contracts."
        ),
    }


async def analyze_supplier(
    supplier: str,
    results: Sequence[SearchResult],
    completion: CompletionOrchestrator,
) -> Dict[str, Any]:
    prompt = build_analysis_prompt(supplier, results)
    try:
        result = await completion.complete(
            [{"role": "user", "content": prompt}],
            parse=extract_json_object,
            max_tokens=2000,
        )
    except ProviderNotConfigured:
        result = None
    if result is None:
        logger.info("Using static fallback analysis for %s", supplier)
        return fallback_analysis(supplier)
    return result.parsed


def extract_news(results: Sequence[SearchResult]) -> List[NewsItem]:
    news: List[NewsItem] = []
    for result in results:
        if not result.is_usable:
            continue
        news.append(
            NewsItem(
                title=result.title,
                url=result.url,
                source=result.source or host_label(result.url),
                date=result.published_age or "Recent",
                snippet=result.snippet or "",
            )
        )
        if len(news) >= NEWS_LIMIT:
            break
    return news


def _text(value: Any, default: str) -> str:
    if value is None or value == "":
        return default
    return str(value)


def _strings(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item not in (None, "")]


def _risks(value: Any) -> List[RiskFactor]:
    risks: List[RiskFactor] = []
    if not isinstance(value, list):
        return risks
    for item in value:
        if not isinstance(item, dict):
            continue
        level = str(item.get("level") or "medium").lower()
        risks.append(
            RiskFactor(
                category=str(item.get("category") or "General"),
                level=level if level in ("low", "medium", "high") else "medium",
                description=str(item.get("description") or ""),
            )
        )
    return risks


def _analysis_esg(value: Any) -> Optional[EsgScore]:
    if not isinstance(value, dict):
        return None
    try:
        return EsgScore.model_validate(value)
    except ValidationError:
        return None


async def gather_intel(
    supplier: str,
    search: SearchOrchestrator,
    completion: CompletionOrchestrator,
    esg_search: Optional[SearchOrchestrator] = None,
    limit: int = 10,
) -> SupplierIntel:
    queries = intel_queries(supplier)
    batches = await search.search_many(list(queries.values()), limit)
    found = dict(zip(queries.keys(), batches))

    combined = [*found["company"], *found["news"], *found["risk"]]
    reputation = analyze_reputation(
        consumer=found["consumer"],
        social=found["reddit"],
        news=found["negative_news"],
        regulatory=found["regulatory"],
    )
    analysis, esg = await asyncio.gather(
        analyze_supplier(supplier, combined, completion),
        estimate_esg(supplier, esg_search or search, completion, extra_results=combined),
    )

    news = extract_news(found["news"])
    if not news:
        news = [
            NewsItem(
                title="No recent news found",
                url="#",
                source="N/A",
                date="",
                snippet="Try searching for this company directly",
            )
        ]
    stock_symbol = analysis.get("stockSymbol")
    return SupplierIntel(
        company=supplier,
        summary=_text(analysis.get("summary"), f"Intelligence report for {supplier}"),
        industry=_text(analysis.get("industry"), "Industrial"),
        headquarters=_text(analysis.get("headquarters"), "Not available"),
        employees=_text(analysis.get("employees"), "Not available"),
        revenue=_text(analysis.get("revenue"), "Not disclosed"),
        founded=_text(analysis.get("founded"), "Not available"),
        website=_text(analysis.get("website"), ""),
        stock_symbol=str(stock_symbol) if stock_symbol else None,
        news=news,
        risks=_risks(analysis.get("risks")),
        opportunities=_strings(analysis.get("opportunities")),
        esg_score=esg or _analysis_esg(analysis.get("esgScore")) or fallback_esg(),
        competitive_position=_text(analysis.get("competitivePosition"), ""),
        supply_chain_role=_text(analysis.get("supplyChainRole"), ""),
        certifications=_strings(analysis.get("certifications")),
        recent_developments=_strings(analysis.get("recentDevelopments")),
        ai_analysis=_text(analysis.get("aiAnalysis"), ""),
        reputation=reputation,
    )
