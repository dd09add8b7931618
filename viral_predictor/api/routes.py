import logging
from datetime import datetime, timezone
from fastapi import APIRouter, HTTPException, Query, Depends, Request
from fastapi.responses import JSONResponse, Response

from viral_predictor import __version__
from viral_predictor.exceptions import (
    AnalysisError,
    InvalidUsageError,
    LLMConfigurationError,
    PersistenceError,
)
from viral_predictor.models import RateLimitDecision, UsageRecord
from viral_predictor.services.analyzer import ArticleAnalyzer
from viral_predictor.services.ledger import UsageLedger
from viral_predictor.services.rate_limiter import RateLimiter, get_client_ip
from viral_predictor.api.schemas import (
    AnalysisResult,
    AnalyzeStatusResponse,
    ArticleInput,
    HealthResponse,
    RateLimitErrorResponse,
    RecordUsageRequest,
    RecordUsageResponse,
    UsageRecordResponse,
    UsageStatsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_ledger(request: Request) -> UsageLedger:
    return request.app.state.ledger


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_analyzer(request: Request) -> ArticleAnalyzer:
    return request.app.state.analyzer


def rate_limit_headers(decision: RateLimitDecision) -> dict:
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": decision.reset_time.isoformat(),
    }


def to_record_response(record: UsageRecord) -> UsageRecordResponse:
    return UsageRecordResponse(**record.to_dict())


@router.get("/health", response_model=HealthResponse)
async def health_check():
    return HealthResponse(status="healthy", timestamp=datetime.now(timezone.utc))


@router.get("/analyze", response_model=AnalyzeStatusResponse)
async def analyze_status(request: Request):
    return AnalyzeStatusResponse(
        status="ok",
        version=__version__,
        model=request.app.state.settings.anthropic_model,
        provider="anthropic",
        timestamp=datetime.now(timezone.utc),
    )


@router.post(
    "/analyze",
    response_model=AnalysisResult,
    responses={429: {"model": RateLimitErrorResponse}},
)
async def analyze_article(
    request: Request,
    article: ArticleInput,
    response: Response,
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    analyzer: ArticleAnalyzer = Depends(get_analyzer),
):
    client_ip = get_client_ip(request.headers)
    decision = rate_limiter.check_and_admit(client_ip)

    if not decision.allowed:
        now = datetime.now(timezone.utc)
        logger.warning(f"Rate limit exceeded for {client_ip}, resets at {decision.reset_time.isoformat()}")
        body = RateLimitErrorResponse(
            detail="Rate limit exceeded. Please try again later.",
            retry_after=decision.reset_time,
        )
        return JSONResponse(
            status_code=429,
            content=body.model_dump(mode="json"),
            headers={
                **rate_limit_headers(decision),
                "Retry-After": str(decision.retry_after_seconds(now)),
            },
        )

    try:
        result = await analyzer.analyze(article.title, article.content)
    except LLMConfigurationError as e:
        logger.error(f"Analysis unavailable: {e}")
        raise HTTPException(
            status_code=500,
            detail="API key not configured. Please set ANTHROPIC_API_KEY environment variable.",
        )
    except AnalysisError as e:
        logger.error(f"Analysis failed: {e}")
        raise HTTPException(status_code=502, detail="Failed to analyze article. Please try again.")

    response.headers.update(rate_limit_headers(decision))
    return result


@router.get("/usage", response_model=UsageStatsResponse)
async def get_usage(
    period: str = Query("all", pattern="^(all|today|week|month)$"),
    ledger: UsageLedger = Depends(get_ledger),
):
    try:
        stats = ledger.query_stats(period)
    except InvalidUsageError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return UsageStatsResponse(
        period=stats.period,
        total_requests=stats.total_requests,
        total_input_tokens=stats.total_input_tokens,
        total_output_tokens=stats.total_output_tokens,
        total_tokens=stats.total_tokens,
        total_cache_creation_tokens=stats.total_cache_creation_tokens,
        total_cache_read_tokens=stats.total_cache_read_tokens,
        total_cost=stats.total_cost,
        total_savings=stats.total_savings,
        cache_hit_rate=stats.cache_hit_rate,
        records=[to_record_response(r) for r in stats.records],
    )


@router.post("/usage", response_model=RecordUsageResponse)
async def record_usage(
    request: RecordUsageRequest,
    ledger: UsageLedger = Depends(get_ledger),
):
    try:
        record = ledger.record_usage(
            request.input_tokens,
            request.output_tokens,
            request.model,
            cache_creation_tokens=request.cache_creation_tokens,
            cache_read_tokens=request.cache_read_tokens,
        )
    except InvalidUsageError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceError as e:
        logger.error(f"POST /usage failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to record usage")

    return RecordUsageResponse(success=True, record=to_record_response(record))
