"""
Article analysis with Claude.

Claude scores the article on eight dimensions; the weighted total becomes
the viral score, which also drives the rating and the page-view estimate.
"""

import json
import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, Mapping

from pydantic import ValidationError

from viral_predictor.api.schemas import AnalysisResult, EstimatedViews
from viral_predictor.exceptions import AnalysisError, InvalidUsageError, PersistenceError
from viral_predictor.services.anthropic_client import AnthropicClient
from viral_predictor.services.ledger import UsageLedger

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """あなたはnote記事のバイラル度を予測する専門家AIです。記事を分析し、JSON形式で結果を返してください。

# 分析項目（各項目を0-100点で評価）

1. **title_score** - タイトルの魅力度（キャッチーさ、具体性、数字活用）
2. **hook_score** - 冒頭の引き込み力（最初の3行、問題提起の明確さ）
3. **structure_score** - 記事構成の質（論理的な流れ、見出しの効果）
4. **readability_score** - 読みやすさ（文章の平易さ、リズム感）
5. **emotional_score** - 感情への訴求力（ストーリー性、共感ポイント）
6. **trend_score** - トレンド性（時事性、話題のキーワード、バズ要素）
7. **length_score** - 文字数の適切さ（内容に対する長さ、情報密度）
8. **visual_score** - 視覚的表現力（見出しの工夫、箇条書き活用）

# 出力形式

必ず以下のJSON形式のみを返してください（説明文は不要）:

{
  "scores": {
    "title_score": 85,
    "hook_score": 75,
    "structure_score": 80,
    "readability_score": 82,
    "emotional_score": 70,
    "trend_score": 88,
    "length_score": 65,
    "visual_score": 73
  },
  "improvements": [
    {
      "category": "タイトル",
      "priority": "high",
      "suggestion": "具体的な数字を追加すると、より説得力が増します",
      "impact": "クリック率が20-30%向上する可能性があります",
      "example": "「月10万円」のような具体的な数値を含める"
    }
  ],
  "strengths": [
    "タイトルに具体的な数字が含まれており、説得力があります",
    "記事構成が整理されており、読みやすい流れです"
  ]
}

重要: improvementsは優先度が高い順に3-5個、strengthsは2-4個提案してください。priorityは"high", "medium", "low"のいずれかを使用。"""

SCORE_WEIGHTS = {
    "title_score": 0.20,
    "hook_score": 0.20,
    "structure_score": 0.10,
    "readability_score": 0.10,
    "emotional_score": 0.15,
    "trend_score": 0.15,
    "length_score": 0.05,
    "visual_score": 0.05,
}

_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)\s*```")
_FENCED_ANY = re.compile(r"```\s*([\s\S]*?)\s*```")
_BRACED = re.compile(r"\{[\s\S]*\}")


def build_user_prompt(title: str, content: str) -> str:
    return f"# 分析対象記事\n\nタイトル: {title}\n\n本文:\n{content}"


def calculate_viral_score(scores: Mapping[str, float]) -> int:
    weighted = sum(value * SCORE_WEIGHTS.get(key, 0) for key, value in scores.items())
    # Half-up, so 84.5 rates as viral
    return int(math.floor(weighted + 0.5))


def get_rating(score: int) -> str:
    if score >= 85:
        return "viral"
    if score >= 70:
        return "high"
    if score >= 50:
        return "medium"
    return "low"


def estimate_views(score: int) -> EstimatedViews:
    if score >= 85:
        return EstimatedViews(min=10000, max=100000)
    if score >= 70:
        return EstimatedViews(min=1000, max=10000)
    if score >= 50:
        return EstimatedViews(min=100, max=1000)
    return EstimatedViews(min=10, max=100)


def extract_json(text: str) -> Dict[str, Any]:
    """Pull the JSON object out of a reply that may wrap it in markdown."""
    match = _FENCED_JSON.search(text) or _FENCED_ANY.search(text)
    if match:
        candidate = match.group(1)
    else:
        match = _BRACED.search(text)
        candidate = match.group(0) if match else text

    try:
        parsed = json.loads(candidate)
    except ValueError as e:
        raise AnalysisError("Claude reply did not contain valid JSON") from e
    if not isinstance(parsed, dict):
        raise AnalysisError("Claude reply JSON is not an object")
    return parsed


class ArticleAnalyzer:
    def __init__(
        self,
        client: AnthropicClient,
        ledger: UsageLedger,
        model: str,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ):
        self.client = client
        self.ledger = ledger
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def analyze(self, title: str, content: str) -> AnalysisResult:
        response = await self.client.create_message(
            system_prompt=SYSTEM_PROMPT,
            user_prompt=build_user_prompt(title, content),
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )

        usage = response.usage
        try:
            self.ledger.record_usage(
                usage.input_tokens,
                usage.output_tokens,
                self.model,
                cache_creation_tokens=usage.cache_creation_tokens,
                cache_read_tokens=usage.cache_read_tokens,
            )
        except (PersistenceError, InvalidUsageError) as e:
            # Usage bookkeeping failures do not fail the analysis
            logger.error(f"Failed to record usage: {e}")

        return self.build_result(response.text)

    def build_result(self, text: str) -> AnalysisResult:
        analysis = extract_json(text)
        scores = analysis.get("scores")
        if not isinstance(scores, dict):
            raise AnalysisError("Claude reply is missing scores")

        try:
            viral_score = calculate_viral_score(
                {key: float(scores[key]) for key in SCORE_WEIGHTS}
            )
            return AnalysisResult(
                viral_score=viral_score,
                rating=get_rating(viral_score),
                scores=scores,
                improvements=analysis.get("improvements") or [],
                strengths=analysis.get("strengths") or [],
                estimated_views=estimate_views(viral_score),
                analyzed_at=datetime.now(timezone.utc),
            )
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            logger.error(f"Could not build analysis from Claude reply: {e}")
            raise AnalysisError("Claude reply has an unexpected shape") from e
