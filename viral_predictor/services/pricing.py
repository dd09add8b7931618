"""
Claude pricing table and per-request cost computation.

Rates are USD per million tokens. Costs are computed in Decimal and each
value is rounded to six fractional digits on its own.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"

ONE_MILLION = Decimal("1000000")
COST_PRECISION = Decimal("0.000001")


@dataclass(frozen=True)
class ModelPricing:
    input: Decimal
    output: Decimal
    cache_write: Decimal
    cache_read: Decimal


@dataclass(frozen=True)
class CostBreakdown:
    input_cost: float
    output_cost: float
    cache_creation_cost: float
    cache_read_cost: float
    total_cost: float
    savings: float


_SONNET = ModelPricing(
    input=Decimal("3.00"),
    output=Decimal("15.00"),
    cache_write=Decimal("3.75"),  # 25% premium over input
    cache_read=Decimal("0.30"),  # 90% discount
)

PRICING_TABLE: Dict[str, ModelPricing] = {
    "claude-sonnet-4-5-20250929": _SONNET,
    "claude-3-5-sonnet-20241022": _SONNET,
    "claude-3-opus-20240229": ModelPricing(
        input=Decimal("15.00"),
        output=Decimal("75.00"),
        cache_write=Decimal("18.75"),
        cache_read=Decimal("1.50"),
    ),
    "claude-3-sonnet-20240229": _SONNET,
}


def get_pricing(model: str) -> ModelPricing:
    """Rates for ``model``, falling back to the default model's row."""
    return PRICING_TABLE.get(model, PRICING_TABLE[DEFAULT_MODEL])


def round_cost(value) -> float:
    return float(Decimal(str(value)).quantize(COST_PRECISION, rounding=ROUND_HALF_UP))


def _per_million(tokens: int, rate: Decimal) -> Decimal:
    return Decimal(tokens) / ONE_MILLION * rate


def calculate_cost(
    model: str,
    input_tokens: int,
    output_tokens: int,
    cache_creation_tokens: int = 0,
    cache_read_tokens: int = 0,
) -> CostBreakdown:
    """Calculate the cost of one request.

    ``savings`` is what the cache-read tokens would have cost at the
    model's full input rate, minus what was charged for them.
    """
    pricing = get_pricing(model)

    input_cost = _per_million(input_tokens, pricing.input)
    output_cost = _per_million(output_tokens, pricing.output)
    cache_creation_cost = _per_million(cache_creation_tokens, pricing.cache_write)
    cache_read_cost = _per_million(cache_read_tokens, pricing.cache_read)

    total_cost = input_cost + output_cost + cache_creation_cost + cache_read_cost
    savings = _per_million(cache_read_tokens, pricing.input) - cache_read_cost

    return CostBreakdown(
        input_cost=round_cost(input_cost),
        output_cost=round_cost(output_cost),
        cache_creation_cost=round_cost(cache_creation_cost),
        cache_read_cost=round_cost(cache_read_cost),
        total_cost=round_cost(total_cost),
        savings=round_cost(savings),
    )
