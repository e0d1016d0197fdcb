"""
Model tier specifications and cost calculations.

Holds the static table of model tiers the selector chooses from.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, FrozenSet, Iterator, List

from .token_counter import TokenEstimate


class SpeedClass(Enum):
    """Relative response speed of a model tier."""
    VERY_FAST = "very_fast"
    FAST = "fast"
    MEDIUM_FAST = "medium_fast"
    MEDIUM = "medium"


@dataclass(frozen=True)
class ModelTierSpec:
    """Cost, speed and capability profile of one model tier."""
    name: str
    cost_per_1k_input: Decimal  # Cost per 1K input tokens (USD)
    cost_per_1k_output: Decimal  # Cost per 1K output tokens (USD)
    max_context_tokens: int
    speed: SpeedClass
    capabilities: FrozenSet[str] = field(default_factory=frozenset)
    recommended_for: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self):
        if not self.name:
            raise ValueError("model tier name cannot be empty")
        if self.cost_per_1k_input < 0 or self.cost_per_1k_output < 0:
            raise ValueError(f"costs for {self.name} cannot be negative")
        if self.max_context_tokens <= 0:
            raise ValueError(f"max_context_tokens for {self.name} must be > 0")

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "cost_per_1k_input": float(self.cost_per_1k_input),
            "cost_per_1k_output": float(self.cost_per_1k_output),
            "max_context_tokens": self.max_context_tokens,
            "speed": self.speed.value,
            "capabilities": sorted(self.capabilities),
            "recommended_for": sorted(self.recommended_for),
        }


@dataclass(frozen=True)
class ModelTierTable:
    """Ordered table of model tiers. Iteration order is the tie-break order."""
    tiers: Dict[str, ModelTierSpec]

    def __post_init__(self):
        if not self.tiers:
            raise ValueError("model tier table cannot be empty")

    def get_tier(self, name: str) -> ModelTierSpec:
        """Get the spec for a tier.

        Raises:
            ValueError: If the tier is not configured
        """
        if name not in self.tiers:
            raise ValueError(f"Unsupported model: {name}")
        return self.tiers[name]

    def names(self) -> List[str]:
        return list(self.tiers)

    def __iter__(self) -> Iterator[ModelTierSpec]:
        return iter(self.tiers.values())

    def __len__(self) -> int:
        return len(self.tiers)

    def __contains__(self, name: object) -> bool:
        return name in self.tiers


def _tier(name, cost_in, cost_out, max_tokens, speed, capabilities, recommended_for):
    return ModelTierSpec(
        name=name,
        cost_per_1k_input=Decimal(cost_in),
        cost_per_1k_output=Decimal(cost_out),
        max_context_tokens=max_tokens,
        speed=speed,
        capabilities=frozenset(capabilities),
        recommended_for=frozenset(recommended_for),
    )


# Fixed tier table - cheapest first, which is also the tie-break order
MODEL_TIERS = ModelTierTable({
    "gpt-4o-mini": _tier(
        "gpt-4o-mini", "0.00015", "0.0006", 128000, SpeedClass.VERY_FAST,
        ["simple_analysis", "basic_qa", "summarization"],
        ["simple", "fast_response"],
    ),
    "gpt-3.5-turbo": _tier(
        "gpt-3.5-turbo", "0.0015", "0.002", 16385, SpeedClass.FAST,
        ["medium_analysis", "reasoning", "complex_qa"],
        ["medium", "balanced"],
    ),
    "gpt-4o": _tier(
        "gpt-4o", "0.005", "0.015", 128000, SpeedClass.MEDIUM,
        ["complex_analysis", "advanced_reasoning", "expert_knowledge"],
        ["complex", "high_accuracy"],
    ),
    "gpt-5": _tier(
        "gpt-5", "0.01", "0.03", 200000, SpeedClass.MEDIUM_FAST,
        ["advanced_analysis", "multimodal_reasoning", "expert_knowledge",
         "complex_problem_solving", "creative_thinking"],
        ["complex", "high_accuracy", "advanced_analytics", "creative_tasks"],
    ),
})


def calculate_cost(spec: ModelTierSpec, tokens: TokenEstimate) -> float:
    """Calculate the cost of a call against a tier.

    No rounding is applied: per-call costs are fractions of a cent.

    Args:
        spec: Model tier being priced
        tokens: Input/output token counts

    Returns:
        Cost in USD
    """
    input_cost = (Decimal(tokens.input) / Decimal("1000")) * spec.cost_per_1k_input
    output_cost = (Decimal(tokens.output) / Decimal("1000")) * spec.cost_per_1k_output
    return float(input_cost + output_cost)
