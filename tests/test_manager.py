"""
Unit tests for the optimization façade.

Tests initialization, aggregate stats, the self-test harness and health status.
"""

from datetime import datetime

import pytest

from ai_query_optimizer.config.loader import CacheConfig
from ai_query_optimizer.core.context_optimizer import ContextOptimizer
from ai_query_optimizer.core.manager import DEFAULT_TEST_QUERIES, OptimizationManager
from ai_query_optimizer.core.model_selector import ModelSelector
from ai_query_optimizer.core.response_cache import ResponseCache
from ai_query_optimizer.demo.mock_data import build_mock_business_data
from ai_query_optimizer.storage.repository import InMemoryUsageStatsStore

NOW = datetime(2026, 3, 1, 12, 0, 0)


def _manager(max_size: int = 1000) -> OptimizationManager:
    return OptimizationManager(
        cache=ResponseCache(max_size=max_size, auto_cleanup=False),
        selector=ModelSelector(stats_store=InMemoryUsageStatsStore()),
        context_optimizer=ContextOptimizer(clock=lambda: NOW),
    )


class TestInitialize:
    """Test cache configuration through the manager."""

    def setup_method(self):
        """Set up a manager with in-memory components."""
        self.manager = _manager()

    def test_injected_empty_components_kept(self):
        """Test empty injected components are used, not replaced by defaults."""
        cache = ResponseCache(max_size=7, auto_cleanup=False)
        selector = ModelSelector(stats_store=InMemoryUsageStatsStore())
        optimizer = ContextOptimizer()

        manager = OptimizationManager(cache=cache, selector=selector, context_optimizer=optimizer)

        assert manager.cache is cache
        assert manager.cache.max_size == 7
        assert manager.selector is selector
        assert manager.context_optimizer is optimizer

    def test_initialize_shrinks_populated_cache(self):
        """Test lowering max_size through initialize trims existing entries."""
        for i in range(5):
            self.manager.cache.get_cached_or_fetch(f"pytanie{i}", "fp", lambda: "ok")

        self.manager.initialize({"max_size": 2})

        assert len(self.manager.cache) == 2

    def test_initialize_with_mapping(self):
        """Test a cache-section mapping is applied."""
        self.manager.initialize({"duration_ms": 60000, "max_size": 50})

        assert self.manager.cache.cache_duration_ms == 60000
        assert self.manager.cache.max_size == 50

    def test_initialize_with_nested_mapping(self):
        """Test a mapping nested under 'cache' is accepted."""
        self.manager.initialize({"cache": {"max_size": 25}})
        assert self.manager.cache.max_size == 25

    def test_initialize_with_cache_config(self):
        """Test a CacheConfig is applied."""
        self.manager.initialize(CacheConfig(max_size=10))
        assert self.manager.cache.max_size == 10

    def test_initialize_idempotent(self):
        """Test initializing twice leaves the same settings."""
        self.manager.initialize({"max_size": 30})
        self.manager.initialize({"max_size": 30})
        assert self.manager.cache.max_size == 30

    def test_initialize_none_is_noop(self):
        """Test no config changes nothing."""
        self.manager.initialize()
        assert self.manager.cache.max_size == 1000

    def test_initialize_invalid(self):
        """Test invalid values raise."""
        with pytest.raises(ValueError):
            self.manager.initialize({"max_size": 0})


class TestPerformanceStats:
    """Test aggregate stats and recommendations."""

    def setup_method(self):
        """Set up a manager with in-memory components."""
        self.manager = _manager()

    def test_stats_shape(self):
        """Test the report merges cache and model stats."""
        stats = self.manager.get_performance_stats()

        assert stats["version"] == "2.0"
        assert stats["cache"]["efficiency"] == stats["cache"]["hit_rate"]
        assert stats["cache"]["total_savings"] == "$0.0000"
        assert stats["models"]["total_queries"] == 0
        assert "cost_reduction_average" in stats["optimization"]

    def test_low_hit_rate_recommendation(self):
        """Test a cold cache triggers the hit-rate advice."""
        titles = [r["title"] for r in self.manager.get_performance_stats()["recommendations"]]
        assert "Improve cache efficiency" in titles

    def test_savings_recommendation(self):
        """Test notable savings are reported."""
        recommendations = OptimizationManager.generate_recommendations({
            "hit_rate": 80.0,
            "cache_size": 10,
            "max_size": 1000,
            "total_cost_saved": 2.5,
        })
        assert [r["title"] for r in recommendations] == ["Great savings!"]

    def test_nearly_full_recommendation(self):
        """Test occupancy above 90% is flagged."""
        recommendations = OptimizationManager.generate_recommendations({
            "hit_rate": 80.0,
            "cache_size": 95,
            "max_size": 100,
            "total_cost_saved": 0.0,
        })
        assert [r["title"] for r in recommendations] == ["Cache nearly full"]

    def test_report_sections(self):
        """Test the display report lists cache and model sections."""
        report = self.manager.generate_optimization_report()

        assert report["title"] == "AI Optimization Report v2.0"
        assert [s["name"] for s in report["sections"]] == ["Cache Performance", "Model Optimization"]


class TestPerformanceHarness:
    """Test run_performance_test."""

    def setup_method(self):
        """Set up a manager and a mock snapshot."""
        self.manager = _manager()
        self.data = build_mock_business_data(now=NOW)

    def test_default_queries(self):
        """Test the default set runs without errors."""
        result = self.manager.run_performance_test(business_data=self.data)
        summary = result["summary"]

        assert summary["total_queries"] == len(DEFAULT_TEST_QUERIES)
        assert summary["successful_queries"] == len(DEFAULT_TEST_QUERIES)
        assert summary["error_queries"] == 0
        assert all(r["performance"] == "ok" for r in result["queries"])
        assert result["start_time"] <= result["end_time"]

    def test_recipe_count_query(self):
        """Test a simple count goes to the cheapest tier with minimal context."""
        result = self.manager.run_performance_test(["Ile jest receptur w systemie?"], self.data)
        row = result["queries"][0]

        assert row["complexity"] == "simple"
        assert row["selected_model"] == "gpt-4o-mini"
        assert row["strategy"] == "minimal"
        assert row["context_reduction"] > 50

    def test_no_model_usage_recorded(self):
        """Test the harness never records model usage."""
        self.manager.run_performance_test(["Ile jest receptur w systemie?"], self.data)
        assert self.manager.selector.get_usage_stats()["total_queries"] == 0

    def test_failing_query_reported(self):
        """Test a failure in one query is reported and the rest continue."""
        original = self.manager.context_optimizer.prepare_optimal_context

        def flaky(query, data, hint):
            if query == "boom":
                raise ValueError("bad snapshot")
            return original(query, data, hint)

        self.manager.context_optimizer.prepare_optimal_context = flaky
        result = self.manager.run_performance_test(["boom", "Ile jest receptur w systemie?"], self.data)

        assert result["summary"]["error_queries"] == 1
        assert result["summary"]["successful_queries"] == 1
        assert result["queries"][0] == {"query": "boom", "error": "bad snapshot", "performance": "error"}


class TestStatusAndLifecycle:
    """Test health status, reset, export and shutdown."""

    def test_cold_cache_status(self):
        """Test an unused cache reports a warning for its hit rate."""
        status = _manager().get_system_status()

        assert status["status"] == "warning"
        assert "Low cache hit rate" in status["issues"]
        assert status["components_status"]["cache"] == "idle"

    def test_healthy_status(self):
        """Test a warm cache with hits reports excellent."""
        manager = _manager()
        manager.cache.get_cached_or_fetch("Ile jest receptur?", "fp", lambda: "40")
        manager.cache.get_cached_or_fetch("Ile jest receptur?", "fp", lambda: "40")

        status = manager.get_system_status()
        assert status["status"] == "excellent"
        assert status["components_status"]["cache"] == "active"

    def test_full_cache_status(self):
        """Test a full cache is flagged."""
        manager = _manager(max_size=1)
        manager.cache.get_cached_or_fetch("Ile jest receptur?", "fp", lambda: "40")

        assert "Cache is full" in manager.get_system_status()["issues"]

    def test_reset_keeps_usage_stats(self):
        """Test reset clears the cache but not persisted usage."""
        manager = _manager()
        manager.cache.get_cached_or_fetch("Ile jest receptur?", "fp", lambda: "40")
        manager.selector.record_usage("gpt-4o-mini", 0.001, 100)

        result = manager.reset_optimization()

        assert result["success"] is True
        assert len(manager.cache) == 0
        assert manager.selector.get_usage_stats()["total_queries"] == 1

    def test_export(self):
        """Test export bundles stats, cache and configuration."""
        exported = _manager().export_system_data()

        assert exported["configuration"]["cache_size"] == 1000
        assert [m["name"] for m in exported["configuration"]["models"]][0] == "gpt-4o-mini"
        assert "cache" in exported["cache"]

    def test_shutdown_stops_sweeper(self):
        """Test shutdown stops the background sweep."""
        manager = OptimizationManager(
            cache=ResponseCache(),
            selector=ModelSelector(stats_store=InMemoryUsageStatsStore()),
        )
        manager.cache.start_automatic_cleanup()
        manager.shutdown()
        assert not manager.cache.automatic_cleanup_active
