from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


Severity = Literal["minor", "moderate", "severe"]
IssueType = Literal["consumer", "reddit", "news", "regulatory"]
RiskLevel = Literal["low", "medium", "high"]


class CamelModel(BaseModel):
    """Base for payloads the dashboard reads and writes in camelCase."""

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


class SearchResult(CamelModel):
    title: str = ""
    url: str = ""
    snippet: str = ""
    published_age: Optional[str] = None
    source: str = ""

    @property
    def is_usable(self) -> bool:
        return bool(self.title.strip() and self.url.strip())


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(CamelModel):
    message: Optional[str] = None
    supplier_context: Optional[str] = None
    history: Optional[List[ChatMessage]] = None
    supplier_name: Optional[str] = None


class NewsItem(CamelModel):
    title: str
    url: str
    source: str
    date: str = ""
    snippet: str = ""


class RiskFactor(CamelModel):
    category: str
    level: RiskLevel = "medium"
    description: str = ""

    model_config = {"extra": "ignore"}


class EsgScore(CamelModel):
    environmental: float = 0
    social: float = 0
    governance: float = 0
    overall: float = 0
    source: Optional[str] = None
    confidence: Optional[str] = None
    risk_level: Optional[str] = None
    last_updated: Optional[str] = None


class ReputationIssue(CamelModel):
    source: str
    type: IssueType
    severity: Severity
    title: str
    snippet: str = ""
    url: str = ""
    date: str = "Recent"


class ReputationScore(CamelModel):
    overall: int
    consumer_sentiment: int
    social_media_sentiment: int
    media_sentiment: int
    regulatory_compliance: int
    issues: List[ReputationIssue] = Field(default_factory=list)
    summary: str = ""


class SupplierIntel(CamelModel):
    company: str
    summary: str
    industry: str
    headquarters: str
    employees: str
    revenue: str
    founded: str
    website: str
    stock_symbol: Optional[str] = None
    news: List[NewsItem] = Field(default_factory=list)
    risks: List[RiskFactor] = Field(default_factory=list)
    opportunities: List[str] = Field(default_factory=list)
    esg_score: EsgScore = Field(default_factory=EsgScore)
    competitive_position: str = ""
    supply_chain_role: str = ""
    certifications: List[str] = Field(default_factory=list)
    recent_developments: List[str] = Field(default_factory=list)
    ai_analysis: str = ""
    reputation: ReputationScore


class PortfolioSupplier(BaseModel):
    id: Optional[Union[str, int]] = None
    name: str
    category: str = ""
    risk: RiskLevel = "medium"
    score: Union[int, float] = 0
    trend: Literal["up", "down", "flat"] = "flat"

    model_config = {"extra": "allow"}
