"""
Model tier selection.

Scores every configured tier against the query's traits, the estimated
token volume and the caller's priorities, and returns the winner's call
configuration. Also keeps cumulative usage statistics per tier.

Scoring (weights configurable via ScoringWeights):
- use-case match with the resolved complexity: +use_case_match
- prioritize_speed: +speed scaled by the tier's speed class
- prioritize_cost: +cost scaled by (1 - cost / most expensive cost)
- estimated cost above max_budget: -budget_penalty
- estimated total tokens above the tier's context limit: -context_penalty
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

import structlog

from .intent import QueryCharacteristics, analyze_query_characteristics
from .pricing import MODEL_TIERS, ModelTierSpec, ModelTierTable, SpeedClass, calculate_cost
from .token_counter import OutputComplexity, TokenEstimate, estimate_token_usage
from ai_query_optimizer.storage.models import ModelUsage, UsageStats
from ai_query_optimizer.storage.repository import InMemoryUsageStatsStore, UsageStatsStore

logger = structlog.stdlib.get_logger()

DEFAULT_TEMPERATURE = 0.7
SIMPLE_COUNT_TEMPERATURE = 0.1
ANALYTICAL_TEMPERATURE = 0.3
CREATIVE_TEMPERATURE = 0.8
OUTPUT_TOKEN_BUFFER = 100
SIMPLE_COUNT_MAX_TOKENS = 300
ANALYTICAL_MAX_TOKENS = 2000

# Reference call used to price the "always most expensive" baseline
SAVINGS_REFERENCE_TOKENS = TokenEstimate(input=1000, output=300)


class Complexity(Enum):
    """Complexity tier a query is resolved to."""
    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"

    @classmethod
    def parse(cls, value: Any) -> "Complexity":
        """Accept an enum or its string value; anything else is MEDIUM."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.MEDIUM


# Recommended-use tag that earns the use-case bonus for each complexity
USE_CASE_TAGS = {
    Complexity.SIMPLE: "simple",
    Complexity.MEDIUM: "balanced",
    Complexity.COMPLEX: "high_accuracy",
}

SPEED_FACTORS = {
    SpeedClass.VERY_FAST: 1.0,
    SpeedClass.FAST: 2 / 3,
    SpeedClass.MEDIUM_FAST: -1 / 3,
    SpeedClass.MEDIUM: -1 / 3,
}


@dataclass(frozen=True)
class ScoringWeights:
    """Policy constants of the tier score."""
    use_case_match: float = 50.0
    speed: float = 30.0
    cost: float = 30.0
    budget_penalty: float = 100.0
    context_penalty: float = 50.0

    def __post_init__(self):
        for name in ("use_case_match", "speed", "cost", "budget_penalty", "context_penalty"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} weight cannot be negative")


@dataclass(frozen=True)
class SelectionOptions:
    """Caller priorities for one selection."""
    prioritize_speed: bool = False
    prioritize_cost: bool = False
    require_high_accuracy: bool = False
    max_budget: Optional[float] = None

    @classmethod
    def from_mapping(cls, options: Optional[Dict[str, Any]]) -> "SelectionOptions":
        """Build from a plain mapping; unknown keys are ignored."""
        options = options or {}
        max_budget = options.get("max_budget")
        return cls(
            prioritize_speed=bool(options.get("prioritize_speed", False)),
            prioritize_cost=bool(options.get("prioritize_cost", False)),
            require_high_accuracy=bool(options.get("require_high_accuracy", False)),
            max_budget=float(max_budget) if max_budget is not None else None,
        )


@dataclass(frozen=True)
class ModelConfig:
    """Call configuration for the selected tier."""
    model: str
    temperature: float
    max_tokens: int
    estimated_cost: float
    estimated_tokens: TokenEstimate
    spec: ModelTierSpec
    complexity: Complexity
    rationale: str
    scores: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "estimated_cost": self.estimated_cost,
            "estimated_tokens": {
                "input": self.estimated_tokens.input,
                "output": self.estimated_tokens.output,
                "total": self.estimated_tokens.total,
            },
            "complexity": self.complexity.value,
            "rationale": self.rationale,
            "scores": dict(self.scores),
        }


class ModelSelector:
    """Rule-based chooser among model tiers, with persisted usage stats."""

    def __init__(
        self,
        tiers: ModelTierTable = MODEL_TIERS,
        weights: Optional[ScoringWeights] = None,
        stats_store: Optional[UsageStatsStore] = None,
        default_max_budget: Optional[float] = None,
    ):
        """Initialize the selector.

        Args:
            tiers: Model tiers to choose from, in tie-break order
            weights: Scoring policy constants
            stats_store: Persistence for usage stats (in-memory if omitted)
            default_max_budget: Budget ceiling used when a call sets none
        """
        self.tiers = tiers
        self.weights = weights or ScoringWeights()
        self.stats_store = stats_store if stats_store is not None else InMemoryUsageStatsStore()
        self.default_max_budget = default_max_budget

    def resolve_complexity(
        self,
        query: str,
        complexity_hint: Any = Complexity.MEDIUM,
        require_high_accuracy: bool = False,
        characteristics: Optional[QueryCharacteristics] = None,
    ) -> Complexity:
        """Complexity tier after the query's traits override the hint."""
        characteristics = characteristics or analyze_query_characteristics(query)
        if require_high_accuracy or characteristics.is_analytical:
            return Complexity.COMPLEX
        if characteristics.is_simple_count:
            return Complexity.SIMPLE
        return Complexity.parse(complexity_hint)

    def select_optimal_model(
        self,
        query: str,
        estimated_data_size: float = 1000,
        complexity_hint: Any = Complexity.MEDIUM,
        options: Optional[Any] = None,
    ) -> ModelConfig:
        """Pick the highest-scoring tier for a query.

        Pure aside from reading the tier table. If no tier fits the
        context, the best-scoring tier is still returned.

        Args:
            query: User query
            estimated_data_size: Context size in token-proxy units
            complexity_hint: Caller's complexity guess
            options: SelectionOptions or a mapping with the same keys

        Returns:
            ModelConfig of the winning tier
        """
        if not isinstance(options, SelectionOptions):
            options = SelectionOptions.from_mapping(options)
        max_budget = options.max_budget if options.max_budget is not None else self.default_max_budget

        characteristics = analyze_query_characteristics(query)
        tokens = estimate_token_usage(estimated_data_size, characteristics.output_complexity)
        complexity = self.resolve_complexity(
            query, complexity_hint, options.require_high_accuracy, characteristics
        )

        scores = self.score_tiers(complexity, tokens, options, max_budget)
        # max() keeps the first of equal scores, so table order breaks ties
        selected = max(self.tiers.names(), key=lambda name: scores[name])

        config = self.build_model_config(selected, characteristics, tokens, complexity, scores)
        logger.info(
            "selector.selected",
            query=query[:50],
            model=config.model,
            complexity=complexity.value,
            estimated_tokens=tokens.total,
            estimated_cost=round(config.estimated_cost, 6),
        )
        return config

    def score_tiers(
        self,
        complexity: Complexity,
        tokens: TokenEstimate,
        options: SelectionOptions,
        max_budget: Optional[float] = None,
    ) -> Dict[str, float]:
        """Score every tier; higher is better."""
        costs = {spec.name: calculate_cost(spec, tokens) for spec in self.tiers}
        max_cost = max(costs.values())
        wanted_tag = USE_CASE_TAGS[complexity]
        w = self.weights

        scores = {}
        for spec in self.tiers:
            score = 0.0
            if wanted_tag in spec.recommended_for:
                score += w.use_case_match
            if options.prioritize_speed:
                score += w.speed * SPEED_FACTORS.get(spec.speed, 0.0)
            if options.prioritize_cost and max_cost > 0:
                score += w.cost * (1 - costs[spec.name] / max_cost)
            if max_budget is not None and costs[spec.name] > max_budget:
                score -= w.budget_penalty
            if tokens.total > spec.max_context_tokens:
                score -= w.context_penalty
            scores[spec.name] = score
        return scores

    def build_model_config(
        self,
        model_name: str,
        characteristics: QueryCharacteristics,
        tokens: TokenEstimate,
        complexity: Complexity = Complexity.MEDIUM,
        scores: Optional[Dict[str, float]] = None,
    ) -> ModelConfig:
        """Derive sampling parameters for a tier and query."""
        spec = self.tiers.get_tier(model_name)
        temperature = DEFAULT_TEMPERATURE
        max_tokens = tokens.output + OUTPUT_TOKEN_BUFFER

        if characteristics.is_simple_count:
            temperature = SIMPLE_COUNT_TEMPERATURE
            max_tokens = min(max_tokens, SIMPLE_COUNT_MAX_TOKENS)
        elif characteristics.is_analytical:
            temperature = ANALYTICAL_TEMPERATURE
            max_tokens = min(max_tokens, ANALYTICAL_MAX_TOKENS)
        elif characteristics.requires_creativity:
            temperature = CREATIVE_TEMPERATURE

        max_tokens = min(max_tokens, spec.max_context_tokens)

        return ModelConfig(
            model=model_name,
            temperature=temperature,
            max_tokens=max_tokens,
            estimated_cost=calculate_cost(spec, tokens),
            estimated_tokens=tokens,
            spec=spec,
            complexity=complexity,
            rationale=self.explain_selection(spec, characteristics),
            scores=dict(scores or {}),
        )

    def explain_selection(self, spec: ModelTierSpec, characteristics: QueryCharacteristics) -> str:
        """Short human-readable reason for a tier."""
        reasons = []
        tags = spec.recommended_for
        if "simple" in tags:
            reasons.append("cost optimization")
            if characteristics.is_simple_count:
                reasons.append("simple count query")
        elif "balanced" in tags:
            reasons.append("balanced quality to price")
        elif "high_accuracy" in tags:
            reasons.append("requires advanced analysis")
            if characteristics.is_analytical:
                reasons.append("analytical query")
            if characteristics.requires_creativity and "creative_tasks" in tags:
                reasons.append("creative task")
        return ", ".join(reasons) or "best overall score"

    def compare_models_for_query(self, query: str, estimated_data_size: float = 1000) -> List[Dict[str, Any]]:
        """Every tier's configuration for a query, cheapest first."""
        characteristics = analyze_query_characteristics(query)
        tokens = estimate_token_usage(estimated_data_size, OutputComplexity.MEDIUM)
        recommended = self.select_optimal_model(query, estimated_data_size).model

        results = []
        for name in self.tiers.names():
            config = self.build_model_config(name, characteristics, tokens)
            results.append({
                "model": name,
                "estimated_cost": config.estimated_cost,
                "max_tokens": config.max_tokens,
                "temperature": config.temperature,
                "rationale": config.rationale,
                "recommended": name == recommended,
            })
        return sorted(results, key=lambda r: r["estimated_cost"])

    def record_usage(self, model_name: str, cost: float, response_time_ms: float) -> UsageStats:
        """Add one call to the persisted stats.

        Savings are credited against pricing the same reference call on the
        most expensive tier, floored at zero.
        """
        stats = self.stats_store.load()
        stats.total_queries += 1
        stats.total_cost_spent += cost
        stats.last_update = datetime.now()

        usage = stats.model_usage.setdefault(model_name, ModelUsage())
        usage.count += 1
        usage.total_cost += cost
        usage.total_response_time_ms += response_time_ms

        most_expensive = max(self.tiers, key=lambda spec: calculate_cost(spec, SAVINGS_REFERENCE_TOKENS))
        if model_name != most_expensive.name:
            reference_cost = calculate_cost(most_expensive, SAVINGS_REFERENCE_TOKENS)
            stats.total_cost_saved += max(0.0, reference_cost - cost)

        self.stats_store.save(stats)
        logger.info(
            "usage.recorded",
            model=model_name,
            cost=round(cost, 6),
            response_time_ms=round(response_time_ms, 1),
        )
        return stats

    def get_usage_stats(self) -> Dict[str, Any]:
        """Persisted stats with a recommendation sentence."""
        stats = self.stats_store.load()
        report = stats.to_dict()
        report["average_response_time_ms"] = {
            name: usage.average_response_time_ms for name, usage in stats.model_usage.items()
        }
        report["recommendation"] = self._stats_recommendation(stats)
        return report

    def reset_stats(self) -> None:
        """Clear the persisted stats."""
        self.stats_store.clear()
        logger.info("usage.reset")

    def _stats_recommendation(self, stats: UsageStats) -> str:
        if not stats.total_queries:
            return "Statistics will be available after the first queries"

        recommendations = []
        if stats.total_cost_saved > 0:
            recommendations.append(f"Saved ${stats.total_cost_saved:.2f} through model optimization")

        if stats.model_usage:
            most_used = max(stats.model_usage, key=lambda name: stats.model_usage[name].count)
            recommendations.append(
                f"Most used model: {most_used} ({stats.model_usage[most_used].count} queries)"
            )

        average_cost = stats.total_cost_spent / stats.total_queries
        if average_cost < 0.01:
            recommendations.append("Excellent cost optimization")
        elif average_cost < 0.05:
            recommendations.append("Good cost optimization")
        else:
            recommendations.append("Consider cheaper models for simpler queries")
        return ". ".join(recommendations)
