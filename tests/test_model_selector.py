"""
Unit tests for model tier selection.

Tests scoring, parameter derivation, usage recording and stats.
"""

import pytest

from ai_query_optimizer.core.model_selector import (
    Complexity,
    ModelSelector,
    ScoringWeights,
    SelectionOptions,
)
from ai_query_optimizer.storage.repository import InMemoryUsageStatsStore


class TestModelSelection:
    """Test select_optimal_model."""

    def setup_method(self):
        """Set up a selector with in-memory stats."""
        self.selector = ModelSelector(stats_store=InMemoryUsageStatsStore())

    def test_simple_count_picks_cheapest_simple_tier(self):
        """Test a simple count query goes to the tier tagged simple."""
        config = self.selector.select_optimal_model("Ile jest receptur w systemie?", 500)

        assert config.model == "gpt-4o-mini"
        assert config.complexity == Complexity.SIMPLE
        assert config.temperature == 0.1
        assert config.max_tokens == 250

    def test_medium_hint_picks_balanced_tier(self):
        """Test a plain query with the medium hint goes to the balanced tier."""
        config = self.selector.select_optimal_model("Jaki jest status produkcji?", 1000, "medium")

        assert config.model == "gpt-3.5-turbo"
        assert config.temperature == 0.7

    def test_analytical_query_picks_high_accuracy_tier(self):
        """Test analytical queries resolve to complex; ties go to the first tier."""
        config = self.selector.select_optimal_model("Analizuj trendy zamówień", 1000, "simple")

        assert config.complexity == Complexity.COMPLEX
        # gpt-4o and gpt-5 both match; gpt-4o comes first
        assert config.model == "gpt-4o"
        assert config.temperature == 0.3
        assert config.max_tokens == 1300

    def test_require_high_accuracy(self):
        """Test the accuracy option forces the complex tier."""
        config = self.selector.select_optimal_model(
            "Jaki jest status produkcji?", 1000, "simple", {"require_high_accuracy": True}
        )
        assert config.complexity == Complexity.COMPLEX
        assert "high_accuracy" in config.spec.recommended_for

    def test_creative_temperature(self):
        """Test creative requests get a higher temperature."""
        config = self.selector.select_optimal_model("Napisz opis produktu", 1000)
        assert config.temperature == 0.8

    def test_budget_disqualifies_expensive_tiers(self):
        """Test tiers over budget lose to an affordable one."""
        config = self.selector.select_optimal_model(
            "Analizuj trendy zamówień", 10000, options=SelectionOptions(max_budget=0.01)
        )
        # 13000 input + 1200 output tokens: only gpt-4o-mini stays under $0.01
        assert config.model == "gpt-4o-mini"
        assert config.scores["gpt-4o"] == 50 - 100

    def test_prioritize_speed(self):
        """Test speed priority favours very fast tiers."""
        config = self.selector.select_optimal_model(
            "Jaki jest status produkcji?", 1000, "medium", {"prioritize_speed": True}
        )
        # gpt-3.5-turbo: 50 + 20 = 70, gpt-4o-mini: 30
        assert config.model == "gpt-3.5-turbo"
        assert config.scores["gpt-4o-mini"] == pytest.approx(30)
        assert config.scores["gpt-3.5-turbo"] == pytest.approx(70)
        assert config.scores["gpt-4o"] == pytest.approx(-10)

    def test_prioritize_cost(self):
        """Test cost priority scales with relative cheapness."""
        config = self.selector.select_optimal_model(
            "Jaki jest status produkcji?", 1000, "medium", {"prioritize_cost": True}
        )
        assert config.scores["gpt-5"] == pytest.approx(0)
        assert config.scores["gpt-4o-mini"] > 29

    def test_context_overflow_never_selected_when_larger(self):
        """Test a tier whose context overflows stops winning as data grows."""
        small = self.selector.select_optimal_model("Jaki jest status produkcji?", 1000, "medium")
        large = self.selector.select_optimal_model("Jaki jest status produkcji?", 20000, "medium")

        assert small.model == "gpt-3.5-turbo"
        assert large.estimated_tokens.total > 16385
        assert large.model != "gpt-3.5-turbo"

    def test_best_effort_when_nothing_fits(self):
        """Test the best tier is still returned when every context overflows."""
        config = self.selector.select_optimal_model("Jaki jest status produkcji?", 10_000_000, "medium")
        assert config.model in self.selector.tiers
        assert config.max_tokens <= config.spec.max_context_tokens

    def test_estimated_tokens(self):
        """Test token estimate follows the inflation rule."""
        config = self.selector.select_optimal_model("Ile jest receptur w systemie?", 1000)
        assert config.estimated_tokens.input == 1300
        assert config.estimated_tokens.output == 150

    def test_unknown_options_ignored(self):
        """Test unrecognised option keys are ignored."""
        config = self.selector.select_optimal_model(
            "Ile jest receptur w systemie?", 500, options={"colour": "blue"}
        )
        assert config.model == "gpt-4o-mini"

    def test_custom_weights(self):
        """Test weights come from ScoringWeights."""
        selector = ModelSelector(weights=ScoringWeights(use_case_match=10))
        config = selector.select_optimal_model("Ile jest receptur w systemie?", 500)
        assert config.scores["gpt-4o-mini"] == 10

    def test_negative_weight_rejected(self):
        """Test weights must not be negative."""
        with pytest.raises(ValueError, match="speed weight cannot be negative"):
            ScoringWeights(speed=-1)


class TestModelComparison:
    """Test explanation and comparison helpers."""

    def setup_method(self):
        """Set up a selector."""
        self.selector = ModelSelector(stats_store=InMemoryUsageStatsStore())

    def test_compare_models_sorted_by_cost(self):
        """Test every tier is listed cheapest first with one recommendation."""
        results = self.selector.compare_models_for_query("Ile jest receptur w systemie?", 1000)

        costs = [r["estimated_cost"] for r in results]
        assert costs == sorted(costs)
        assert len(results) == 4
        assert [r["model"] for r in results if r["recommended"]] == ["gpt-4o-mini"]

    def test_rationale(self):
        """Test the rationale mentions the simple count."""
        config = self.selector.select_optimal_model("Ile jest receptur w systemie?", 500)
        assert "simple count query" in config.rationale


class TestUsageStats:
    """Test usage recording and persisted stats."""

    def setup_method(self):
        """Set up a selector with in-memory stats."""
        self.store = InMemoryUsageStatsStore()
        self.selector = ModelSelector(stats_store=self.store)

    def test_empty_stats(self):
        """Test stats before any usage."""
        stats = self.selector.get_usage_stats()

        assert stats["total_queries"] == 0
        assert stats["model_usage"] == {}
        assert stats["recommendation"] == "Statistics will be available after the first queries"

    def test_record_usage(self):
        """Test counters accumulate per model."""
        self.selector.record_usage("gpt-4o-mini", 0.001, 200)
        self.selector.record_usage("gpt-4o-mini", 0.003, 400)
        self.selector.record_usage("gpt-4o", 0.02, 1000)

        stats = self.selector.get_usage_stats()
        assert stats["total_queries"] == 3
        assert stats["total_cost_spent"] == pytest.approx(0.024)
        assert stats["model_usage"]["gpt-4o-mini"]["count"] == 2
        assert stats["average_response_time_ms"]["gpt-4o-mini"] == pytest.approx(300)
        assert "Most used model: gpt-4o-mini" in stats["recommendation"]

    def test_savings_against_most_expensive_tier(self):
        """Test savings compare with the reference call on the priciest tier."""
        # Reference: gpt-5 at 1000 input / 300 output = $0.019
        self.selector.record_usage("gpt-4o-mini", 0.004, 100)
        assert self.selector.get_usage_stats()["total_cost_saved"] == pytest.approx(0.015)

    def test_savings_floor_at_zero(self):
        """Test a call dearer than the reference saves nothing."""
        self.selector.record_usage("gpt-4o", 0.5, 100)
        assert self.selector.get_usage_stats()["total_cost_saved"] == 0

    def test_most_expensive_tier_saves_nothing(self):
        """Test no savings are credited for the reference tier itself."""
        self.selector.record_usage("gpt-5", 0.001, 100)
        assert self.selector.get_usage_stats()["total_cost_saved"] == 0

    def test_reset_stats(self):
        """Test reset clears persisted counters."""
        self.selector.record_usage("gpt-4o-mini", 0.001, 200)
        self.selector.reset_stats()
        assert self.selector.get_usage_stats()["total_queries"] == 0

    def test_corrupt_stats_load_empty(self):
        """Test an unreadable record is treated as no prior stats."""
        selector = ModelSelector(stats_store=InMemoryUsageStatsStore("{not json"))
        assert selector.get_usage_stats()["total_queries"] == 0

        selector.record_usage("gpt-4o-mini", 0.001, 200)
        assert selector.get_usage_stats()["total_queries"] == 1
