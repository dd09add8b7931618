"""Global pytest configuration and fixtures."""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from viral_predictor.config import Settings
from viral_predictor.main import create_app
from viral_predictor.repositories import UsageLedgerRepository
from viral_predictor.services.anthropic_client import AnthropicClient
from viral_predictor.services.ledger import UsageLedger
from viral_predictor.services.rate_limiter import RateLimiter

SAMPLE_ANALYSIS = {
    "scores": {
        "title_score": 90,
        "hook_score": 80,
        "structure_score": 70,
        "readability_score": 75,
        "emotional_score": 60,
        "trend_score": 85,
        "length_score": 50,
        "visual_score": 65,
    },
    "improvements": [
        {
            "category": "タイトル",
            "priority": "high",
            "suggestion": "具体的な数字を追加する",
            "impact": "クリック率の向上",
            "example": "「月10万円」",
        }
    ],
    "strengths": ["読みやすい構成です", "冒頭で問題提起ができています"],
}


class FakeClock:
    """Settable clock for the ledger."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def messages_api_reply(
    text: str,
    input_tokens: int = 1200,
    output_tokens: int = 800,
    cache_creation_tokens: int = 0,
    cache_read_tokens: int = 1500,
) -> Dict[str, Any]:
    return {
        "id": "msg_test",
        "type": "message",
        "role": "assistant",
        "model": "claude-sonnet-4-5-20250929",
        "content": [{"type": "text", "text": text}],
        "usage": {
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "cache_creation_input_tokens": cache_creation_tokens,
            "cache_read_input_tokens": cache_read_tokens,
        },
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def ledger_path(tmp_path):
    return tmp_path / "data" / "usage.json"


@pytest.fixture
def ledger(ledger_path, clock) -> UsageLedger:
    return UsageLedger(UsageLedgerRepository(ledger_path), clock=clock)


@pytest.fixture
def captured_requests() -> List[httpx.Request]:
    return []


@pytest.fixture
def messages_handler(captured_requests) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        captured_requests.append(request)
        text = "```json\n" + json.dumps(SAMPLE_ANALYSIS, ensure_ascii=False) + "\n```"
        return httpx.Response(200, json=messages_api_reply(text))

    return handler


@pytest.fixture
def llm_client(messages_handler) -> AnthropicClient:
    return AnthropicClient(
        "test-key",
        base_url="https://anthropic.test/v1",
        transport=httpx.MockTransport(messages_handler),
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        anthropic_api_key="test-key",
        usage_data_dir=str(tmp_path / "data"),
        rate_limit_max_requests=3,
    )


@pytest.fixture
def app(settings, ledger, llm_client) -> FastAPI:
    return create_app(
        settings=settings,
        ledger=ledger,
        rate_limiter=RateLimiter(max_requests=settings.rate_limit_max_requests),
        llm_client=llm_client,
    )


@pytest.fixture
def client(app) -> TestClient:
    # No context manager: the lifespan (and its scheduler) is not started
    return TestClient(app)
