import json
import logging
from typing import Dict, Sequence

from .llm import CompletionOrchestrator, ProviderNotConfigured
from .schemas import PortfolioSupplier


logger = logging.getLogger("uvicorn.error")


def build_portfolio_prompt(suppliers: Sequence[PortfolioSupplier]) -> str:
    data = json.dumps([s.model_dump(exclude_none=True) for s in suppliers], indent=2)
    return f"""You are a supply chain risk analyst. Analyze this supplier portfolio and provide strategic insights.

SUPPLIER DATA:
{data}

Provide a concise analysis covering:
1. **Critical Risks**: Which suppliers need immediate attention and why
2. **Portfolio Vulnerabilities**: Concentration risks, geographic exposure
3. **Recommendations**: Specific actions to improve supply chain resilience
4. **Opportunities**: Suppliers showing positive trends to leverage

Be specific and actionable. Keep it under 400 words."""


def fallback_analysis(suppliers: Sequence[PortfolioSupplier]) -> str:
    high_risk = [s for s in suppliers if s.risk == "high"]
    declining = [s for s in suppliers if s.trend == "down"]
    improving = [s for s in suppliers if s.trend == "up"]

    lines = ["## Portfolio Analysis", ""]
    if high_risk:
        lines.append("**Critical Risks:**")
        lines.extend(f"- {s.name} (Score: {s.score}/100) - Requires immediate attention" for s in high_risk)
        lines.append("")
    if declining:
        lines.append("**Declining Suppliers:**")
        lines.extend(f"- {s.name} ({s.category}) - Monitor closely" for s in declining)
        lines.append("")
    if improving:
        lines.append("**Positive Trends:**")
        lines.extend(f"- {s.name} (Score: {s.score}/100) - Consider expanding relationship" for s in improving)
        lines.append("")
    lines.extend(
        [
            "**Recommendations:**",
            f"- Develop contingency plans for {len(high_risk)} high-risk suppliers",
            "- Review contracts with declining suppliers",
            "- Leverage strong performers for additional capacity",
        ]
    )
    return "\n".join(lines) + "\n"


async def analyze_portfolio(
    suppliers: Sequence[PortfolioSupplier],
    completion: CompletionOrchestrator,
) -> Dict[str, str]:
    prompt = build_portfolio_prompt(suppliers)
    try:
        result = await completion.complete(
            [{"role": "user", "content": prompt}],
            temperature=0.7,
            max_tokens=800,
        )
    except ProviderNotConfigured:
        result = None
    if result is not None:
        return {"analysis": result.text, "source": result.provider}
    logger.info("Portfolio analysis falling back to templated summary")
    return {"analysis": fallback_analysis(suppliers), "source": "fallback"}
