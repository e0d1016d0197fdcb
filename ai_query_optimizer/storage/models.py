"""
Data models for storage layer.

Cumulative per-model usage counters, persisted as one record.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional


@dataclass
class ModelUsage:
    """Cumulative counters for one model tier."""
    count: int = 0
    total_cost: float = 0.0
    total_response_time_ms: float = 0.0

    @property
    def average_response_time_ms(self) -> float:
        return self.total_response_time_ms / self.count if self.count else 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "count": self.count,
            "total_cost": self.total_cost,
            "total_response_time_ms": self.total_response_time_ms,
            "average_response_time_ms": self.average_response_time_ms,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ModelUsage":
        return cls(
            count=int(data.get("count", 0)),
            total_cost=float(data.get("total_cost", 0.0)),
            total_response_time_ms=float(data.get("total_response_time_ms", 0.0)),
        )


@dataclass
class UsageStats:
    """Usage statistics across all model tiers.

    Mutated only through ModelSelector.record_usage; read and rewritten
    wholesale on every record.
    """
    total_queries: int = 0
    total_cost_spent: float = 0.0
    total_cost_saved: float = 0.0
    model_usage: Dict[str, ModelUsage] = field(default_factory=dict)
    last_update: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_queries": self.total_queries,
            "total_cost_spent": self.total_cost_spent,
            "total_cost_saved": self.total_cost_saved,
            "model_usage": {name: usage.to_dict() for name, usage in self.model_usage.items()},
            "last_update": self.last_update.isoformat() if self.last_update else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UsageStats":
        """Build stats from a stored mapping.

        Raises:
            ValueError: If a field has the wrong shape
            TypeError: If a field has the wrong type
        """
        model_usage = data.get("model_usage") or {}
        if not isinstance(model_usage, Mapping):
            raise ValueError("model_usage must be a mapping")
        for name, usage in model_usage.items():
            if not isinstance(usage, Mapping):
                raise ValueError(f"usage for {name} must be a mapping")

        last_update = data.get("last_update")
        return cls(
            total_queries=int(data.get("total_queries", 0)),
            total_cost_spent=float(data.get("total_cost_spent", 0.0)),
            total_cost_saved=float(data.get("total_cost_saved", 0.0)),
            model_usage={
                str(name): ModelUsage.from_dict(usage)
                for name, usage in model_usage.items()
            },
            last_update=datetime.fromisoformat(last_update) if last_update else None,
        )
