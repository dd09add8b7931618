from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field


def _stored(name: str, camel: Optional[str] = None, default: Any = ...):
    # Ledgers written by the JavaScript app use camelCase keys
    aliases = AliasChoices(name, camel) if camel else None
    return Field(default, ge=0, strict=True, validation_alias=aliases)


class StoredUsageRecord(BaseModel):
    """Shape of one record in the ledger file; anything else is corrupt."""

    timestamp: datetime
    model: str = "unknown"
    input_tokens: int = _stored("input_tokens", "inputTokens")
    output_tokens: int = _stored("output_tokens", "outputTokens")
    cache_creation_tokens: int = _stored("cache_creation_tokens", "cacheCreationTokens", 0)
    cache_read_tokens: int = _stored("cache_read_tokens", "cacheReadTokens", 0)
    input_cost: float = _stored("input_cost", "inputCost", 0.0)
    output_cost: float = _stored("output_cost", "outputCost", 0.0)
    cache_creation_cost: float = _stored("cache_creation_cost", "cacheCreationCost", 0.0)
    cache_read_cost: float = _stored("cache_read_cost", "cacheReadCost", 0.0)
    total_cost: float = _stored("total_cost", "totalCost", 0.0)
    savings: float = _stored("savings", default=0.0)


@dataclass(frozen=True, kw_only=True)
class UsageRecord:
    timestamp: datetime
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0
    input_cost: float = 0.0
    output_cost: float = 0.0
    cache_creation_cost: float = 0.0
    cache_read_cost: float = 0.0
    total_cost: float = 0.0
    savings: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UsageRecord":
        """Build a record from its stored form. Raises ValidationError when malformed."""
        stored = StoredUsageRecord.model_validate(data)
        timestamp = stored.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return cls(timestamp=timestamp, **stored.model_dump(exclude={"timestamp"}))


@dataclass(kw_only=True)
class LedgerTotals:
    total_requests: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_tokens: int = 0
    total_cache_creation_tokens: int = 0
    total_cache_read_tokens: int = 0
    total_cost: float = 0.0
    total_savings: float = 0.0
    cache_hit_rate: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LedgerTotals":
        return cls(**{name: data.get(name) or 0 for name in cls.__dataclass_fields__})


@dataclass(kw_only=True)
class UsageStats(LedgerTotals):
    period: str = "all"
    records: List[UsageRecord] = field(default_factory=list)
