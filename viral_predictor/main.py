import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from viral_predictor import __version__
from viral_predictor.config import get_settings, Settings
from viral_predictor.api.routes import router
from viral_predictor.api.schemas import HealthResponse
from viral_predictor.repositories import UsageLedgerRepository
from viral_predictor.services.analyzer import ArticleAnalyzer
from viral_predictor.services.anthropic_client import AnthropicClient
from viral_predictor.services.ledger import UsageLedger
from viral_predictor.services.rate_limiter import RateLimiter
from viral_predictor.services.scheduler import create_scheduler, start_scheduler, stop_scheduler

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    logger.info("Starting up...")

    app.state.scheduler = create_scheduler(
        app.state.rate_limiter,
        interval_minutes=settings.rate_limit_sweep_interval_minutes,
    )
    start_scheduler(app.state.scheduler)

    yield

    logger.info("Shutting down...")
    stop_scheduler(app.state.scheduler)
    await app.state.llm_client.close()


def create_app(
    settings: Optional[Settings] = None,
    ledger: Optional[UsageLedger] = None,
    rate_limiter: Optional[RateLimiter] = None,
    llm_client: Optional[AnthropicClient] = None,
) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="Note Viral Predictor",
        description="Viral potential scoring for note articles with Claude",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.ledger = ledger or UsageLedger(UsageLedgerRepository(settings.usage_file_path))
    app.state.rate_limiter = rate_limiter or RateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window=timedelta(minutes=settings.rate_limit_window_minutes),
    )
    app.state.llm_client = llm_client or AnthropicClient(
        settings.anthropic_api_key,
        base_url=settings.anthropic_base_url,
    )
    app.state.analyzer = ArticleAnalyzer(
        app.state.llm_client,
        app.state.ledger,
        model=settings.anthropic_model,
        max_tokens=settings.anthropic_max_tokens,
        temperature=settings.anthropic_temperature,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url, "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")

    @app.get("/health", response_model=HealthResponse)
    async def root_health_check():
        return HealthResponse(status="healthy", timestamp=datetime.now(timezone.utc))

    return app


app = create_app()
