"""
Unit tests for context shrinking.

Tests relevance maps, strategy selection, per-collection policies and the
end-to-end reduction guarantees.
"""

import math
from datetime import datetime, timedelta

import pytest

from ai_query_optimizer.core.context_optimizer import (
    COMPREHENSIVE,
    FOCUSED,
    MINIMAL,
    ContextOptimizer,
    build_relevance_map,
    calculate_reduction_ratio,
    estimate_data_size,
    select_strategy,
)
from ai_query_optimizer.core.data_collections import DataCollection, reduce_item, sort_items, to_datetime
from ai_query_optimizer.core.intent import analyze_query_intent
from ai_query_optimizer.demo.mock_data import build_mock_business_data

NOW = datetime(2026, 3, 1, 12, 0, 0)


class TestRelevanceMap:
    """Test collection weighting."""

    def test_baseline_weights(self):
        """Test an unclassified query keeps baseline weights."""
        weights = build_relevance_map(analyze_query_intent("Dzień dobry"))

        assert weights["recipes"] == 0.3
        assert weights["suppliers"] == 0.2
        assert weights["inventorySupplierPriceHistory"] == 0.1
        assert weights["summary"] == 0.8

    def test_matched_category_boosted(self):
        """Test a matched category goes to full weight."""
        weights = build_relevance_map(analyze_query_intent("Ile jest receptur w systemie?"))

        assert weights["recipes"] == 1.0
        assert weights["summary"] == 1.0
        assert weights["inventory"] == 0.3

    def test_recipes_and_suppliers_pull_in_costing_data(self):
        """Test recipes plus suppliers boosts purchase orders and supplier prices."""
        weights = build_relevance_map(
            analyze_query_intent("Którzy dostawców składników mają receptury?")
        )

        assert weights["purchaseOrders"] == 1.0
        assert weights["inventorySupplierPrices"] == 1.0

    def test_suppliers_alone_do_not_pull_in_costing_data(self):
        """Test the costing boost needs both categories."""
        weights = build_relevance_map(analyze_query_intent("Lista dostawców"))

        assert weights["suppliers"] == 1.0
        assert weights["purchaseOrders"] < 1.0
        assert weights["inventorySupplierPrices"] < 1.0

    def test_invoice_rule(self):
        """Test invoice queries pull in orders and customers."""
        weights = build_relevance_map(analyze_query_intent("Pokaż faktury"))

        assert weights["invoices"] == 1.0
        assert weights["orders"] == 1.0
        assert weights["customers"] == 1.0

    def test_complex_query_boosts_everything(self):
        """Test complex queries raise every weight by 0.2."""
        weights = build_relevance_map(analyze_query_intent("Analizuj dane"))

        assert weights["recipes"] == 0.5
        assert weights["inventorySupplierPriceHistory"] == pytest.approx(0.3)
        assert weights["summary"] == 1.0

    def test_weights_in_range(self):
        """Test every weight stays within [0, 1] and summary stays anchored."""
        for query in ("Analizuj koszty receptur i zamówień dostawców", "", "Ile faktur?"):
            weights = build_relevance_map(analyze_query_intent(query))
            assert all(0 <= w <= 1 for w in weights.values())
            assert weights["summary"] >= 0.8


class TestStrategySelection:
    """Test preset choice."""

    def test_simple_tier_is_minimal(self):
        """Test the simple tier always gets the minimal preset."""
        assert select_strategy("simple", analyze_query_intent("Pokaż zamówienia")) is MINIMAL

    def test_pure_count_is_minimal(self):
        """Test pure count queries get the minimal preset on any tier."""
        assert select_strategy("complex", analyze_query_intent("Ile jest receptur?")) is MINIMAL

    def test_medium_single_category_is_focused(self):
        """Test a medium tier with one clear category gets focused."""
        assert select_strategy("medium", analyze_query_intent("Pokaż zamówienia")) is FOCUSED

    def test_otherwise_comprehensive(self):
        """Test everything else is comprehensive."""
        assert select_strategy("complex", analyze_query_intent("Pokaż zamówienia")) is COMPREHENSIVE
        assert select_strategy("medium", analyze_query_intent("Dzień dobry")) is COMPREHENSIVE

    def test_unknown_hint_treated_as_medium(self):
        """Test an unrecognised tier hint falls back to medium."""
        assert select_strategy("turbo", analyze_query_intent("Pokaż zamówienia")) is FOCUSED


class TestCollectionPolicies:
    """Test sorting, reduction and date handling."""

    def test_inventory_low_stock_first(self):
        """Test low-stock items sort before the rest."""
        items = [
            {"name": "B", "quantity": 50, "minQuantity": 10},
            {"name": "A", "quantity": 5, "minQuantity": 10},
        ]
        assert [i["name"] for i in sort_items(items, DataCollection.INVENTORY)] == ["A", "B"]

    def test_orders_newest_first(self):
        """Test orders sort newest first with undated orders last."""
        items = [
            {"id": "old", "orderDate": "2026-01-01T00:00:00"},
            {"id": "undated"},
            {"id": "new", "orderDate": "2026-02-01T00:00:00"},
        ]
        assert [i["id"] for i in sort_items(items, DataCollection.ORDERS)] == ["new", "old", "undated"]

    def test_production_soonest_then_status(self):
        """Test production sorts by date, then status priority."""
        items = [
            {"id": "later", "scheduledDate": "2026-03-05T00:00:00", "status": "W trakcie"},
            {"id": "planned", "scheduledDate": "2026-03-02T00:00:00", "status": "Zaplanowane"},
            {"id": "running", "scheduledDate": "2026-03-02T00:00:00", "status": "W trakcie"},
        ]
        ordered = sort_items(items, DataCollection.PRODUCTION)
        assert [i["id"] for i in ordered] == ["running", "planned", "later"]

    def test_purchase_order_reduction_keeps_line_items(self):
        """Test reduced purchase orders keep nested items."""
        item = {
            "id": "po-1",
            "poNumber": "PO1",
            "supplierName": "Dostawca",
            "items": [{"inventoryId": "inv-1", "quantity": 5}],
            "notes": "long notes",
        }
        reduced = reduce_item(item, DataCollection.PURCHASE_ORDERS)

        assert reduced["items"] == item["items"]
        assert reduced["number"] == "PO1"
        assert "notes" not in reduced

    def test_reduction_omits_absent_lists(self):
        """Test counts and lists appear only when the item carries them."""
        assert reduce_item({"id": "o1", "status": "Nowe"}, DataCollection.ORDERS) == {"id": "o1", "status": "Nowe"}
        assert reduce_item({"id": "r1"}, DataCollection.RECIPES) == {"id": "r1"}
        assert reduce_item({"id": "p1"}, DataCollection.PURCHASE_ORDERS) == {"id": "p1"}
        assert reduce_item({"id": "c1"}, DataCollection.CMR_DOCUMENTS) == {"id": "c1"}

    def test_reduction_never_larger_than_item(self):
        """Test an item the reducer would enlarge is kept as is."""
        item = {"id": "r1", "components": [1]}
        assert reduce_item(item, DataCollection.RECIPES) == item

    def test_default_reduction(self):
        """Test unknown collections keep id, name and status."""
        reduced = reduce_item({"id": 1, "title": "X", "status": "ok", "extra": 1}, None)
        assert reduced == {"id": 1, "name": "X", "status": "ok"}

    def test_to_datetime_formats(self):
        """Test accepted date representations."""
        assert to_datetime("2026-01-02T03:04:05") == datetime(2026, 1, 2, 3, 4, 5)
        assert to_datetime({"seconds": 0}) == datetime.fromtimestamp(0)
        assert to_datetime(1_700_000_000_000) == datetime.fromtimestamp(1_700_000_000)
        assert to_datetime("not a date") is None
        assert to_datetime(None) is None


class TestPrepareOptimalContext:
    """Test the full shrinking pipeline."""

    def setup_method(self):
        """Set up an optimizer with a fixed clock and mock snapshot."""
        self.optimizer = ContextOptimizer(clock=lambda: NOW)
        self.data = build_mock_business_data(now=NOW)

    def test_simple_count_scenario(self):
        """Test a recipe count keeps only the summary and recipes."""
        data = build_mock_business_data(inventory_items=120, recipes=40, now=NOW)
        context = self.optimizer.prepare_optimal_context("Ile jest receptur w systemie?", data, "simple")

        assert context.metadata.strategy == "minimal"
        assert set(context.data) <= {"summary", "recipes"}
        assert len(context.metadata.included_collections) <= 2
        assert context.data["summary"]["totalRecipes"] == 40
        assert len(context.data["recipes"]) == 10
        assert "components" not in context.data["recipes"][0]
        assert context.data["recipes"][0]["componentsCount"] == 4

    def test_summary_always_retained(self):
        """Test the summary survives every strategy."""
        for tier, query in (("simple", "Pokaż zamówienia"), ("medium", "Pokaż zamówienia"), ("complex", "Analizuj")):
            context = self.optimizer.prepare_optimal_context(query, self.data, tier)
            assert "summary" in context.data

    def test_size_never_grows(self):
        """Test the shrunk context is never larger than the input."""
        for tier, query in (
            ("simple", "Ile jest receptur?"),
            ("medium", "Pokaż zamówienia"),
            ("complex", "Dlaczego produkcja się opóźnia?"),
        ):
            context = self.optimizer.prepare_optimal_context(query, self.data, tier)
            assert estimate_data_size(context.data) <= estimate_data_size(self.data)
            assert context.metadata.optimized_size < context.metadata.original_size
            assert context.metadata.reduction_percentage > 0

    def test_focused_caps_by_weight(self):
        """Test item caps follow ceil(max_items * weight)."""
        context = self.optimizer.prepare_optimal_context("Pokaż zamówienia", self.data, "medium")

        assert context.metadata.strategy == "focused"
        assert len(context.data["orders"]) == 30
        assert len(context.data["inventory"]) == math.ceil(50 * 0.3)
        # Details are kept
        assert "items" in context.data["orders"][0]
        assert "analysis" not in context.data

    def test_comprehensive_includes_analysis(self):
        """Test only the comprehensive strategy keeps analysis blocks."""
        context = self.optimizer.prepare_optimal_context("Analizuj zamówienia", self.data, "complex")

        assert context.metadata.strategy == "comprehensive"
        assert "orders" in context.data["analysis"]
        assert "analysis" not in context.metadata.included_collections

    def test_recent_filter(self):
        """Test recency queries drop items older than 30 days."""
        context = self.optimizer.prepare_optimal_context("Pokaż ostatnie zamówienia", self.data, "medium")

        cutoff = NOW - timedelta(days=30)
        assert context.data["orders"]
        assert all(to_datetime(o["orderDate"]) >= cutoff for o in context.data["orders"])
        # Mock orders are 3 days apart: days 0..30 survive
        assert len(context.data["orders"]) == 11

    def test_orders_sorted_newest_first(self):
        """Test output collections follow their sort rule."""
        context = self.optimizer.prepare_optimal_context("Pokaż zamówienia", self.data, "medium")
        dates = [to_datetime(o["orderDate"]) for o in context.data["orders"]]
        assert dates == sorted(dates, reverse=True)

    def test_malformed_collections_skipped(self):
        """Test wrongly-typed data is skipped rather than raising."""
        data = {
            "summary": {"totalRecipes": 2},
            "recipes": "not a list",
            "orders": [{"id": 1, "orderDate": "garbage"}, "not a record", None],
            "analysis": ["wrong"],
        }
        context = self.optimizer.prepare_optimal_context("Analizuj zamówienia i receptury", data, "complex")

        assert "recipes" not in context.data
        assert context.data["orders"] == [{"id": 1, "orderDate": "garbage"}]

    def test_non_mapping_input(self):
        """Test non-mapping input yields an empty context."""
        context = self.optimizer.prepare_optimal_context("Ile jest receptur?", None, "simple")

        assert context.data == {}
        assert context.metadata.original_size == 0
        assert context.metadata.reduction_percentage == 0

    def test_nested_data_shape(self):
        """Test collections nested under ``data`` are accepted."""
        data = {
            "summary": {"totalRecipes": 1},
            "data": {"recipes": [{"id": "r1", "name": "Receptura"}]},
        }
        context = self.optimizer.prepare_optimal_context("Ile jest receptur?", data, "simple")
        assert context.data["recipes"] == [{"id": "r1", "name": "Receptura"}]

    @pytest.mark.parametrize("tier,query,collection", [
        ("simple", "Ile jest receptur?", "recipes"),
        ("simple", "Pokaż zamówienia", "orders"),
        ("simple", "Ile jest zamówień od dostawców?", "purchaseOrders"),
        ("simple", "Pokaż dokumenty CMR", "cmrDocuments"),
        ("medium", "Pokaż zamówienia", "orders"),
        ("complex", "Analizuj receptury", "recipes"),
    ])
    def test_tiny_records_never_grow(self, tier, query, collection):
        """Test sparse records are not padded past their original size."""
        data = {
            "summary": {"totalRecipes": 1},
            collection: [{"id": "a"}, {"id": "b", "items": [1]}, {"components": [], "ingredients": [1]}],
        }
        context = self.optimizer.prepare_optimal_context(query, data, tier)

        assert estimate_data_size(context.data) <= estimate_data_size(data)
        assert context.metadata.optimized_size <= context.metadata.original_size

    def test_prompt_payload_and_report(self):
        """Test metadata attachment and the text report."""
        context = self.optimizer.prepare_optimal_context("Ile jest receptur?", self.data, "simple")

        payload = context.to_prompt_payload()
        assert payload["_optimization"]["strategy"] == "minimal"
        assert "_optimization" not in context.data

        report = ContextOptimizer.generate_optimization_report(context)
        assert "Strategy: minimal" in report
        assert "Included collections: summary, recipes" in report


class TestSizeEstimation:
    """Test the token proxy."""

    def test_empty(self):
        """Test empty data has zero size."""
        assert estimate_data_size({}) == 0
        assert estimate_data_size(None) == 0

    def test_json_length_over_three(self):
        """Test size is compact JSON length divided by three, rounded up."""
        # {"a":1} is 7 characters
        assert estimate_data_size({"a": 1}) == 3

    def test_reduction_ratio(self):
        """Test reduction percentage."""
        original = {"a": "x" * 297}
        assert calculate_reduction_ratio(original, {}) == 100
        assert calculate_reduction_ratio({}, original) == 0
