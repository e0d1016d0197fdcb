"""
Optimization façade.

Owns one ResponseCache, ModelSelector and ContextOptimizer, and adds the
aggregate reporting, health status and self-test harness on top of them.
"""

import time
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

import structlog

from .context_optimizer import ContextOptimizer
from .model_selector import ModelSelector
from .response_cache import ResponseCache
from ai_query_optimizer.config.loader import CacheConfig, OptimizerConfig, parse_cache_config
from ai_query_optimizer.demo.mock_data import build_mock_business_data
from ai_query_optimizer.storage.repository import get_stats_store

logger = structlog.stdlib.get_logger()

REPORT_VERSION = "2.0"

DEFAULT_TEST_QUERIES = [
    "Ile jest receptur w systemie?",
    "Które produkty mają niski stan?",
    "Jaki jest status produkcji?",
    "Analizuj trendy zamówień w ostatnim miesiącu",
    "Optymalizuj koszty produkcji receptur",
]

# Illustrative figures shown alongside live stats
ESTIMATED_IMPROVEMENTS = {
    "context_reduction_average": "65%",
    "speed_improvement_average": "40%",
    "cost_reduction_average": "60%",
}

LOW_HIT_RATE = 30
NEARLY_FULL_FRACTION = 0.9
NOTABLE_SAVINGS = 1.0
SLOW_AVERAGE_MS = 100
HIGH_TEST_COST = 0.1
LOW_CONTEXT_REDUCTION = 50


class OptimizationManager:
    """Entry point wiring cache, model selection and context shrinking together."""

    def __init__(
        self,
        cache: Optional[ResponseCache] = None,
        selector: Optional[ModelSelector] = None,
        context_optimizer: Optional[ContextOptimizer] = None,
        config: Optional[OptimizerConfig] = None,
    ):
        """Initialize the manager.

        Components not supplied are built from ``config`` (defaults if omitted).

        Args:
            cache: Response cache to use
            selector: Model selector to use
            context_optimizer: Context optimizer to use
            config: Optimizer configuration
        """
        self.config = config or OptimizerConfig()
        self.cache = cache if cache is not None else ResponseCache(
            cache_duration_ms=self.config.cache.duration_ms,
            max_size=self.config.cache.max_size,
            cleanup_interval_ms=self.config.cache.cleanup_interval_ms,
            similarity_threshold=self.config.cache.similarity_threshold,
        )
        self.selector = selector if selector is not None else ModelSelector(
            tiers=self.config.models,
            weights=self.config.selector.weights,
            stats_store=get_stats_store(self.config.storage.db_path),
            default_max_budget=self.config.selector.max_budget,
        )
        self.context_optimizer = context_optimizer if context_optimizer is not None else ContextOptimizer()

    def initialize(self, config: Union[OptimizerConfig, CacheConfig, Mapping[str, Any], None] = None) -> None:
        """Apply cache settings. Idempotent.

        Args:
            config: OptimizerConfig, CacheConfig, or a mapping shaped like
                the ``cache`` section (optionally nested under ``cache``)

        Raises:
            ValueError: If a mapping holds invalid values
        """
        if config is None:
            return
        if isinstance(config, OptimizerConfig):
            cache_config = config.cache
        elif isinstance(config, CacheConfig):
            cache_config = config
        else:
            section = config["cache"] if isinstance(config.get("cache"), Mapping) else config
            cache_config = parse_cache_config(section)

        self.cache.configure(
            cache_duration_ms=cache_config.duration_ms,
            max_size=cache_config.max_size,
            cleanup_interval_ms=cache_config.cleanup_interval_ms,
            similarity_threshold=cache_config.similarity_threshold,
        )
        logger.info("manager.initialized", **asdict(cache_config))

    def get_performance_stats(self) -> Dict[str, Any]:
        """Cache and model usage stats in one report with recommendations."""
        cache_stats = self.cache.get_stats()
        model_stats = self.selector.get_usage_stats()

        return {
            "version": REPORT_VERSION,
            "timestamp": datetime.now().isoformat(),
            "cache": dict(
                cache_stats,
                efficiency=cache_stats["hit_rate"],
                total_savings=f"${cache_stats['total_cost_saved']:.4f}",
            ),
            "models": model_stats,
            "optimization": dict(ESTIMATED_IMPROVEMENTS),
            "recommendations": self.generate_recommendations(cache_stats),
        }

    @staticmethod
    def generate_recommendations(cache_stats: Mapping[str, Any]) -> List[Dict[str, str]]:
        """Rule-based tuning advice from cache stats."""
        recommendations = []

        if cache_stats["hit_rate"] < LOW_HIT_RATE:
            recommendations.append({
                "type": "cache",
                "priority": "medium",
                "title": "Improve cache efficiency",
                "description": (
                    f"Cache hit rate is only {cache_stats['hit_rate']}%. "
                    "Consider a longer cache duration or more uniform queries."
                ),
                "action": "Tune cache configuration",
            })

        if cache_stats["cache_size"] >= cache_stats["max_size"] * NEARLY_FULL_FRACTION:
            recommendations.append({
                "type": "cache",
                "priority": "low",
                "title": "Cache nearly full",
                "description": "Cache is using 90% of its capacity. Consider raising the limit or cleaning up more often.",
                "action": "Increase cache size or shorten the cleanup interval",
            })

        if cache_stats["total_cost_saved"] > NOTABLE_SAVINGS:
            recommendations.append({
                "type": "success",
                "priority": "info",
                "title": "Great savings!",
                "description": f"Optimization has already saved ${cache_stats['total_cost_saved']:.2f} in API costs.",
                "action": "Keep using the optimization layer",
            })

        return recommendations

    def run_performance_test(
        self,
        sample_queries: Optional[List[str]] = None,
        business_data: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Run classification, model selection and context shrinking per query.

        No model API is called.

        Args:
            sample_queries: Queries to run (a representative default set if omitted)
            business_data: Snapshot to shrink (the mock snapshot if omitted)

        Returns:
            Per-query results, aggregate summary and warnings
        """
        queries = sample_queries or DEFAULT_TEST_QUERIES
        data = business_data if business_data is not None else build_mock_business_data()
        started_at = datetime.now()

        results = []
        for query in queries:
            start = time.perf_counter()
            try:
                complexity = self.selector.resolve_complexity(query)
                context = self.context_optimizer.prepare_optimal_context(query, data, complexity)
                model_config = self.selector.select_optimal_model(
                    query, context.metadata.optimized_size, complexity
                )
            except (ValueError, TypeError, KeyError) as e:
                logger.warning("manager.test_query_failed", query=query[:50], error=str(e))
                results.append({"query": query, "error": str(e), "performance": "error"})
                continue

            processing_ms = (time.perf_counter() - start) * 1000
            results.append({
                "query": query,
                "complexity": complexity.value,
                "selected_model": model_config.model,
                "estimated_cost": model_config.estimated_cost,
                "strategy": context.metadata.strategy,
                "context_reduction": context.metadata.reduction_percentage,
                "processing_time_ms": round(processing_ms, 2),
                "performance": "ok",
            })

        successful = [r for r in results if "error" not in r]
        count = len(successful)
        average_time = sum(r["processing_time_ms"] for r in successful) / count if count else 0.0
        total_cost = sum(r["estimated_cost"] for r in successful)
        average_reduction = sum(r["context_reduction"] for r in successful) / count if count else 0.0

        warnings = []
        if average_time > SLOW_AVERAGE_MS:
            warnings.append("Processing time is high - consider simplifying queries")
        if total_cost > HIGH_TEST_COST:
            warnings.append("High estimated cost - check the model selection configuration")
        if average_reduction < LOW_CONTEXT_REDUCTION:
            warnings.append("Low context reduction - check optimization effectiveness")

        summary = {
            "total_queries": len(queries),
            "successful_queries": count,
            "error_queries": len(results) - count,
            "average_processing_time_ms": round(average_time, 2),
            "total_estimated_cost": round(total_cost, 4),
            "average_context_reduction": round(average_reduction),
        }
        logger.info("manager.performance_test", **summary)

        return {
            "start_time": started_at.isoformat(),
            "end_time": datetime.now().isoformat(),
            "queries": results,
            "summary": summary,
            "recommendations": warnings,
        }

    def generate_optimization_report(self) -> Dict[str, Any]:
        """Sectioned report for display."""
        stats = self.get_performance_stats()
        cache = stats["cache"]
        optimization = stats["optimization"]

        return {
            "title": f"AI Optimization Report v{REPORT_VERSION}",
            "generated_at": stats["timestamp"],
            "sections": [
                {
                    "name": "Cache Performance",
                    "data": [
                        {"label": "Hit rate", "value": f"{cache['hit_rate']}%",
                         "status": "good" if cache["hit_rate"] > 50 else "warning"},
                        {"label": "Total savings", "value": cache["total_savings"], "status": "info"},
                        {"label": "Requests", "value": cache["total_requests"], "status": "info"},
                        {"label": "Cache size", "value": f"{cache['cache_size']}/{cache['max_size']}", "status": "info"},
                    ],
                },
                {
                    "name": "Model Optimization",
                    "data": [
                        {"label": "Average cost reduction", "value": optimization["cost_reduction_average"], "status": "good"},
                        {"label": "Speed improvement", "value": optimization["speed_improvement_average"], "status": "good"},
                        {"label": "Context reduction", "value": optimization["context_reduction_average"], "status": "good"},
                    ],
                },
            ],
            "recommendations": stats["recommendations"],
        }

    def reset_optimization(self) -> Dict[str, Any]:
        """Clear the cache and its stats. Persisted usage stats are kept."""
        self.cache.reset()
        logger.info("manager.reset")
        return {
            "success": True,
            "message": "Optimization cache has been reset",
            "timestamp": datetime.now().isoformat(),
        }

    def export_system_data(self) -> Dict[str, Any]:
        """Stats, cache contents and configuration as one JSON-ready mapping."""
        return {
            "version": REPORT_VERSION,
            "export_timestamp": datetime.now().isoformat(),
            "performance": self.get_performance_stats(),
            "cache": self.cache.export_cache(),
            "configuration": {
                "cache_size": self.cache.max_size,
                "cache_duration_ms": self.cache.cache_duration_ms,
                "models": [spec.to_dict() for spec in self.selector.tiers],
            },
        }

    def get_system_status(self) -> Dict[str, Any]:
        """Coarse health label from cache hit rate and occupancy."""
        cache_stats = self.cache.get_stats()
        status = "excellent"
        issues = []

        if cache_stats["hit_rate"] < LOW_HIT_RATE:
            status = "warning"
            issues.append("Low cache hit rate")

        if cache_stats["cache_size"] >= cache_stats["max_size"]:
            status = "warning"
            issues.append("Cache is full")

        return {
            "status": status,
            "issues": issues,
            "components_status": {
                "cache": "active" if cache_stats["cache_size"] > 0 else "idle",
                "model_selector": "active",
                "context_optimizer": "active",
            },
            "last_update": datetime.now().isoformat(),
        }

    def shutdown(self) -> None:
        """Stop the cache's background sweeper."""
        self.cache.stop_automatic_cleanup()
