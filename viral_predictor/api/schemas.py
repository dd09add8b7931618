from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Literal
from datetime import datetime


class ArticleInput(BaseModel):
    title: str = Field(..., max_length=200, description="Article title")
    content: str = Field(..., max_length=50000, description="Article body")

    @field_validator("title", "content")
    @classmethod
    def strip_and_require(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must be a non-empty string")
        return value


class Scores(BaseModel):
    title_score: int = Field(..., ge=0, le=100)
    hook_score: int = Field(..., ge=0, le=100)
    structure_score: int = Field(..., ge=0, le=100)
    readability_score: int = Field(..., ge=0, le=100)
    emotional_score: int = Field(..., ge=0, le=100)
    trend_score: int = Field(..., ge=0, le=100)
    length_score: int = Field(..., ge=0, le=100)
    visual_score: int = Field(..., ge=0, le=100)


class Improvement(BaseModel):
    category: str
    priority: Literal["high", "medium", "low"]
    suggestion: str
    impact: str
    example: Optional[str] = None


class EstimatedViews(BaseModel):
    min: int
    max: int


class AnalysisResult(BaseModel):
    viral_score: int
    rating: Literal["low", "medium", "high", "viral"]
    scores: Scores
    improvements: List[Improvement]
    strengths: List[str]
    estimated_views: EstimatedViews
    analyzed_at: datetime


class RecordUsageRequest(BaseModel):
    input_tokens: int = Field(..., ge=0, strict=True)
    output_tokens: int = Field(..., ge=0, strict=True)
    model: Optional[str] = None
    cache_creation_tokens: int = Field(0, ge=0, strict=True)
    cache_read_tokens: int = Field(0, ge=0, strict=True)


class UsageRecordResponse(BaseModel):
    timestamp: datetime
    model: str
    input_tokens: int
    output_tokens: int
    cache_creation_tokens: int
    cache_read_tokens: int
    input_cost: float
    output_cost: float
    cache_creation_cost: float
    cache_read_cost: float
    total_cost: float
    savings: float


class RecordUsageResponse(BaseModel):
    success: bool
    record: UsageRecordResponse


class UsageStatsResponse(BaseModel):
    period: str
    total_requests: int
    total_input_tokens: int
    total_output_tokens: int
    total_tokens: int
    total_cache_creation_tokens: int
    total_cache_read_tokens: int
    total_cost: float
    total_savings: float
    cache_hit_rate: float
    records: List[UsageRecordResponse]


class RateLimitErrorResponse(BaseModel):
    detail: str
    retry_after: datetime


class AnalyzeStatusResponse(BaseModel):
    status: str
    version: str
    model: str
    provider: str
    timestamp: datetime


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
