"""Keyword-driven reputation scoring.

Severity is a pure function of text and the keyword table below; the first
matching set wins, so a "lawsuit" outranks a "complaint" in the same snippet.
Category scores start from a baseline, lose a fixed penalty per issue and are
clamped to 0..100 before being blended into one overall score.
"""

import math
from typing import Dict, List, Optional, Sequence, Tuple

from .schemas import ReputationIssue, ReputationScore, SearchResult, Severity
from .search import host_label


SEVERITY_KEYWORDS: Tuple[Tuple[Severity, Tuple[str, ...]], ...] = (
    (
        "severe",
        (
            "lawsuit",
            "fraud",
            "scandal",
            "recall",
            "death",
            "injury",
            "criminal",
            "violation",
            "fine",
            "penalty",
            "banned",
            "shutdown",
        ),
    ),
    (
        "moderate",
        (
            "complaint",
            "problem",
            "issue",
            "warning",
            "concern",
            "investigation",
            "audit",
            "dispute",
            "criticism",
            "controversy",
        ),
    ),
    ("minor", ("delay", "late", "slow", "disappointed", "frustrating", "annoying")),
)

SEVERITY_PENALTY: Dict[str, int] = {"severe": 15, "moderate": 8, "minor": 3}

# (baseline when the category had results, baseline when it had none)
CATEGORY_BASELINES: Dict[str, Tuple[int, int]] = {
    "consumer": (80, 75),
    "reddit": (80, 75),
    "news": (85, 80),
    "regulatory": (90, 85),
}

WEIGHTS: Dict[str, float] = {
    "consumer": 0.25,
    "social": 0.20,
    "media": 0.30,
    "regulatory": 0.25,
}

PER_CATEGORY_LIMIT = 5
MAX_REPORTED_ISSUES = 10


def detect_severity(
    text: str,
    keyword_sets: Sequence[Tuple[Severity, Sequence[str]]] = SEVERITY_KEYWORDS,
    default: Severity = "minor",
) -> Severity:
    lower = (text or "").lower()
    for severity, keywords in keyword_sets:
        if any(keyword in lower for keyword in keywords):
            return severity
    return default


def category_score(issues: Sequence[ReputationIssue], baseline: int = 85) -> int:
    score = baseline
    for issue in issues:
        score -= SEVERITY_PENALTY.get(issue.severity, SEVERITY_PENALTY["minor"])
    return max(0, min(100, score))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def overall_score(consumer: float, social: float, media: float, regulatory: float) -> int:
    blended = (
        consumer * WEIGHTS["consumer"]
        + social * WEIGHTS["social"]
        + media * WEIGHTS["media"]
        + regulatory * WEIGHTS["regulatory"]
    )
    return max(0, min(100, _round_half_up(blended)))


def _keep_consumer(severity: Severity, text: str) -> bool:
    lower = text.lower()
    return severity != "minor" or "complaint" in lower or "review" in lower


def _keep_news(severity: Severity, text: str) -> bool:
    return severity != "minor"


def _keep_always(severity: Severity, text: str) -> bool:
    return True


_INCLUSION_RULES = {
    "consumer": _keep_consumer,
    "reddit": _keep_always,
    "news": _keep_news,
    "regulatory": _keep_always,
}


def classify_results(category: str, results: Sequence[SearchResult]) -> List[ReputationIssue]:
    keep = _INCLUSION_RULES[category]
    issues: List[ReputationIssue] = []
    for result in list(results)[:PER_CATEGORY_LIMIT]:
        text = f"{result.title} {result.snippet or ''}"
        severity = detect_severity(text)
        if not keep(severity, text):
            continue
        source = "Reddit" if category == "reddit" else (host_label(result.url) or result.source or "Unknown")
        issues.append(
            ReputationIssue(
                source=source,
                type=category,
                severity=severity,
                title=result.title,
                snippet=result.snippet or "",
                url=result.url,
                date=result.published_age or "Recent",
            )
        )
    return issues


def summarize(issues: Sequence[ReputationIssue], overall: int) -> str:
    severe = sum(1 for issue in issues if issue.severity == "severe")
    moderate = sum(1 for issue in issues if issue.severity == "moderate")
    summary = ""
    if severe:
        summary = f"CAUTION: Found {severe} severe issue(s) requiring immediate attention. "
    if moderate:
        summary += f"{moderate} moderate concern(s) identified. "
    if not severe and not moderate:
        summary = "No major reputation concerns found in the past 24 months. "
    return summary + f"Overall reputation score: {overall}/100."


def analyze_reputation(
    consumer: Optional[Sequence[SearchResult]] = None,
    social: Optional[Sequence[SearchResult]] = None,
    news: Optional[Sequence[SearchResult]] = None,
    regulatory: Optional[Sequence[SearchResult]] = None,
) -> ReputationScore:
    batches = {
        "consumer": list(consumer or []),
        "reddit": list(social or []),
        "news": list(news or []),
        "regulatory": list(regulatory or []),
    }
    by_category: Dict[str, List[ReputationIssue]] = {}
    scores: Dict[str, int] = {}
    for category, results in batches.items():
        by_category[category] = classify_results(category, results)
        with_results, without_results = CATEGORY_BASELINES[category]
        baseline = with_results if results else without_results
        scores[category] = category_score(by_category[category], baseline)

    issues = [issue for category in batches for issue in by_category[category]]
    overall = overall_score(scores["consumer"], scores["reddit"], scores["news"], scores["regulatory"])
    return ReputationScore(
        overall=overall,
        consumer_sentiment=scores["consumer"],
        social_media_sentiment=scores["reddit"],
        media_sentiment=scores["news"],
        regulatory_compliance=scores["regulatory"],
        issues=issues[:MAX_REPORTED_ISSUES],
        summary=summarize(issues, overall),
    )
