import httpx
from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging

from viral_predictor.exceptions import AnalysisError, LLMConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0

    @classmethod
    def from_api(cls, usage: Dict[str, Any]) -> "TokenUsage":
        return cls(
            input_tokens=usage.get("input_tokens") or 0,
            output_tokens=usage.get("output_tokens") or 0,
            cache_creation_tokens=usage.get("cache_creation_input_tokens") or 0,
            cache_read_tokens=usage.get("cache_read_input_tokens") or 0,
        )


@dataclass(frozen=True)
class LLMResponse:
    text: str
    model: str
    usage: TokenUsage


class AnthropicClient:
    BASE_URL = "https://api.anthropic.com/v1"
    API_VERSION = "2023-06-01"

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.client = httpx.AsyncClient(
            headers={
                "x-api-key": api_key,
                "anthropic-version": self.API_VERSION,
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def create_message(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> LLMResponse:
        if not self.api_key:
            raise LLMConfigurationError("ANTHROPIC_API_KEY is not configured")

        url = f"{self.base_url}/messages"
        body = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            # The system prompt is identical across requests, so cache it
            "system": [
                {
                    "type": "text",
                    "text": system_prompt,
                    "cache_control": {"type": "ephemeral"},
                }
            ],
            "messages": [{"role": "user", "content": user_prompt}],
        }

        try:
            response = await self.client.post(url, json=body)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error from Messages API: {e.response.status_code} - {e.response.text}")
            raise AnalysisError(f"Claude API returned {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error calling Messages API: {e}")
            raise AnalysisError("Claude API request failed") from e

        content = data.get("content") or []
        if not content or content[0].get("type") != "text":
            raise AnalysisError("Unexpected response type from Claude")

        usage = TokenUsage.from_api(data.get("usage") or {})
        logger.info(
            f"Messages API usage: input={usage.input_tokens} output={usage.output_tokens} "
            f"cache_write={usage.cache_creation_tokens} cache_read={usage.cache_read_tokens}"
        )
        return LLMResponse(text=content[0].get("text", ""), model=data.get("model") or model, usage=usage)

    async def close(self):
        await self.client.aclose()
