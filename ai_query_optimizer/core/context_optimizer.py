"""
Business-data context shrinking.

Turns a full business-data snapshot into the smallest prompt payload that
still answers the query: classify the query, weight every collection,
pick a strategy preset from the model tier, then filter, sort, truncate
and reduce each collection accordingly.

A snapshot is a mapping of collection name to a list of records, plus the
reserved ``summary`` block and an optional ``analysis`` mapping of
collection name to a secondary analytical block. Snapshots that nest the
collections under a ``data`` key are accepted too.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import structlog

from .data_collections import (
    BASELINE_RELEVANCE,
    DEFAULT_BASELINE_RELEVANCE,
    DataCollection,
    item_date,
    reduce_item,
    reduce_summary,
    serialized_length,
    sort_items,
)
from .intent import QueryAnalysis, QueryCategory, QueryOperation, analyze_query_intent
from .model_selector import Complexity

logger = structlog.stdlib.get_logger()

SUMMARY_KEY = DataCollection.SUMMARY.value
ANALYSIS_KEY = "analysis"
NESTED_DATA_KEY = "data"

MIN_SUMMARY_RELEVANCE = 0.8
MINIMAL_RELEVANCE_CUTOFF = 0.8
COMPLEX_QUERY_BOOST = 0.2
RECENT_WINDOW = timedelta(days=30)
CHARS_PER_TOKEN = 3


@dataclass(frozen=True)
class OptimizationStrategy:
    """Preset bounding how much of each collection survives."""
    name: str
    max_items: int
    include_details: bool
    include_analysis: bool
    summary_only: bool
    description: str = ""


MINIMAL = OptimizationStrategy(
    "minimal", 10, include_details=False, include_analysis=False, summary_only=True,
    description="Only the most relevant data",
)
FOCUSED = OptimizationStrategy(
    "focused", 50, include_details=True, include_analysis=False, summary_only=False,
    description="Concentrated on one category",
)
COMPREHENSIVE = OptimizationStrategy(
    "comprehensive", 200, include_details=True, include_analysis=True, summary_only=False,
    description="Broad context with analysis",
)

STRATEGIES: Dict[str, OptimizationStrategy] = {
    strategy.name: strategy for strategy in (MINIMAL, FOCUSED, COMPREHENSIVE)
}

# Collection fed directly by a matched query category
CATEGORY_COLLECTIONS: Dict[QueryCategory, DataCollection] = {
    QueryCategory.RECIPES: DataCollection.RECIPES,
    QueryCategory.INVENTORY: DataCollection.INVENTORY,
    QueryCategory.ORDERS: DataCollection.ORDERS,
    QueryCategory.PRODUCTION: DataCollection.PRODUCTION,
    QueryCategory.SUPPLIERS: DataCollection.SUPPLIERS,
    QueryCategory.INVOICES: DataCollection.INVOICES,
    QueryCategory.TRANSPORT: DataCollection.CMR_DOCUMENTS,
    QueryCategory.STOCKTAKING: DataCollection.STOCKTAKING,
    QueryCategory.PRICE_HISTORY: DataCollection.INVENTORY_SUPPLIER_PRICE_HISTORY,
}

# Related collections a category pulls in, with their weights
CATEGORY_BOOSTS: Dict[QueryCategory, Dict[DataCollection, float]] = {
    QueryCategory.INVOICES: {
        DataCollection.INVOICES: 1.0,
        DataCollection.ORDERS: 1.0,
        DataCollection.CUSTOMERS: 1.0,
    },
    QueryCategory.TRANSPORT: {
        DataCollection.CMR_DOCUMENTS: 1.0,
        DataCollection.ORDERS: 1.0,
        DataCollection.CUSTOMERS: 0.8,
    },
    QueryCategory.STOCKTAKING: {
        DataCollection.STOCKTAKING: 1.0,
        DataCollection.INVENTORY: 1.0,
    },
    QueryCategory.PRICE_HISTORY: {
        DataCollection.INVENTORY_SUPPLIER_PRICE_HISTORY: 1.0,
        DataCollection.SUPPLIERS: 0.8,
        DataCollection.INVENTORY: 0.6,
    },
    QueryCategory.VALUE_CHAIN: {
        DataCollection.ORDERS: 1.0,
        DataCollection.PRODUCTION: 1.0,
        DataCollection.INVOICES: 1.0,
        DataCollection.PURCHASE_ORDERS: 0.9,
        DataCollection.INVENTORY: 0.8,
    },
    QueryCategory.QUALITY: {
        DataCollection.ORDERS: 1.0,
        DataCollection.PRODUCTION: 1.0,
        DataCollection.INVOICES: 1.0,
        DataCollection.CMR_DOCUMENTS: 0.8,
    },
    QueryCategory.TRACEABILITY: {
        DataCollection.PURCHASE_ORDERS: 1.0,
        DataCollection.INVENTORY: 1.0,
        DataCollection.PRODUCTION: 1.0,
        DataCollection.SUPPLIERS: 0.9,
    },
}

# Category combinations that need supporting collections; component
# costing reads supplier prices and purchase orders
COMBINED_BOOSTS: Tuple[Tuple[Tuple[QueryCategory, ...], Dict[DataCollection, float]], ...] = (
    (
        (QueryCategory.RECIPES, QueryCategory.SUPPLIERS),
        {
            DataCollection.PURCHASE_ORDERS: 1.0,
            DataCollection.INVENTORY_SUPPLIER_PRICES: 1.0,
        },
    ),
)


@dataclass(frozen=True)
class OptimizationMetadata:
    """How a context was shrunk."""
    strategy: str
    original_size: int
    optimized_size: int
    reduction_percentage: int
    included_collections: Tuple[str, ...]
    confidence: float
    relevance: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy,
            "original_size": self.original_size,
            "optimized_size": self.optimized_size,
            "reduction_percentage": self.reduction_percentage,
            "included_collections": list(self.included_collections),
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class OptimizedContext:
    """Shrunk snapshot plus the metadata describing the shrink."""
    data: Dict[str, Any]
    metadata: OptimizationMetadata

    def to_prompt_payload(self) -> Dict[str, Any]:
        """The data with its metadata attached under ``_optimization``."""
        payload = dict(self.data)
        payload["_optimization"] = self.metadata.to_dict()
        return payload


def estimate_data_size(data: Any) -> int:
    """Token proxy: compact JSON length divided by three, rounded up."""
    if not data:
        return 0
    return math.ceil(serialized_length(data) / CHARS_PER_TOKEN)


def calculate_reduction_ratio(original: Any, optimized: Any) -> int:
    """Percentage by which ``optimized`` is smaller than ``original``."""
    return _reduction_percentage(estimate_data_size(original), estimate_data_size(optimized))


def _reduction_percentage(original_size: int, optimized_size: int) -> int:
    if original_size == 0:
        return 0
    return round((original_size - optimized_size) / original_size * 100)


def relevance_weight(relevance_map: Mapping[str, float], collection_key: str) -> float:
    """Weight of a collection, defaulting to the baseline for unmapped ones."""
    return relevance_map.get(collection_key, DEFAULT_BASELINE_RELEVANCE)


def build_relevance_map(analysis: QueryAnalysis) -> Dict[str, float]:
    """Weight every known collection for a classified query.

    Args:
        analysis: Intent of the query

    Returns:
        Mapping of collection name to weight in [0, 1]
    """
    weights: Dict[DataCollection, float] = {
        collection: BASELINE_RELEVANCE.get(collection, DEFAULT_BASELINE_RELEVANCE)
        for collection in DataCollection
    }

    def boost(collection: DataCollection, value: float) -> None:
        weights[collection] = max(weights[collection], value)

    for category in analysis.categories:
        if category in CATEGORY_COLLECTIONS:
            boost(CATEGORY_COLLECTIONS[category], 1.0)
        for collection, value in CATEGORY_BOOSTS.get(category, {}).items():
            boost(collection, value)

    for categories, boosts in COMBINED_BOOSTS:
        if all(analysis.has_category(category) for category in categories):
            for collection, value in boosts.items():
                boost(collection, value)

    if analysis.has_operation(QueryOperation.COUNT):
        boost(DataCollection.SUMMARY, 1.0)

    if analysis.is_complex:
        weights = {collection: min(1.0, value + COMPLEX_QUERY_BOOST) for collection, value in weights.items()}

    weights[DataCollection.SUMMARY] = max(weights[DataCollection.SUMMARY], MIN_SUMMARY_RELEVANCE)
    return {collection.value: round(value, 4) for collection, value in weights.items()}


def select_strategy(model_tier_hint: Any, analysis: QueryAnalysis) -> OptimizationStrategy:
    """Pick the preset for a model tier and query.

    Simple tiers and pure count queries get ``minimal``, a medium tier with
    one clearly matched category gets ``focused``, anything else
    ``comprehensive``.
    """
    tier = Complexity.parse(model_tier_hint)
    if tier is Complexity.SIMPLE or analysis.is_pure_count:
        return MINIMAL
    if tier is Complexity.MEDIUM and analysis.is_single_category:
        return FOCUSED
    return COMPREHENSIVE


class ContextOptimizer:
    """Shrinks business-data snapshots for a query."""

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        """Initialize the optimizer.

        Args:
            clock: Source of "now" for the recency window
        """
        self.clock = clock

    def prepare_optimal_context(
        self,
        query: str,
        business_data: Mapping[str, Any],
        model_tier_hint: Any = Complexity.MEDIUM,
    ) -> OptimizedContext:
        """Shrink a snapshot to what the query needs.

        Never raises on JSON-shaped input: collections that are missing
        or malformed are skipped.

        Args:
            query: User query
            business_data: Full business-data snapshot
            model_tier_hint: Complexity tier of the model that will answer

        Returns:
            OptimizedContext with the shrunk data and its metadata
        """
        business_data = business_data if isinstance(business_data, Mapping) else {}
        analysis = analyze_query_intent(query)
        relevance_map = build_relevance_map(analysis)
        strategy = select_strategy(model_tier_hint, analysis)

        context = self.build_context(strategy, business_data, relevance_map, analysis)

        original_size = estimate_data_size(business_data)
        optimized_size = estimate_data_size(context)
        reduction = _reduction_percentage(original_size, optimized_size)

        metadata = OptimizationMetadata(
            strategy=strategy.name,
            original_size=original_size,
            optimized_size=optimized_size,
            reduction_percentage=reduction,
            included_collections=tuple(key for key in context if key != ANALYSIS_KEY),
            confidence=analysis.confidence,
            relevance=relevance_map,
        )
        logger.info(
            "context.optimized",
            query=(query or "")[:50],
            strategy=strategy.name,
            original_size=original_size,
            optimized_size=optimized_size,
            reduction_percentage=reduction,
        )
        return OptimizedContext(data=context, metadata=metadata)

    def build_context(
        self,
        strategy: OptimizationStrategy,
        business_data: Mapping[str, Any],
        relevance_map: Mapping[str, float],
        analysis: QueryAnalysis,
    ) -> Dict[str, Any]:
        """Apply a strategy to every collection of a snapshot."""
        context: Dict[str, Any] = {}

        if SUMMARY_KEY in business_data:
            summary = business_data[SUMMARY_KEY]
            if strategy.summary_only and isinstance(summary, Mapping):
                summary = reduce_summary(summary)
            context[SUMMARY_KEY] = summary

        analysis_blocks = business_data.get(ANALYSIS_KEY)
        if not isinstance(analysis_blocks, Mapping):
            analysis_blocks = {}
        kept_analysis: Dict[str, Any] = {}

        for key, items in self._collections(business_data).items():
            weight = relevance_weight(relevance_map, key)
            if strategy is MINIMAL and weight < MINIMAL_RELEVANCE_CUTOFF:
                continue

            if not isinstance(items, list):
                logger.debug("context.collection_skipped", collection=key, reason="not a list")
            else:
                context[key] = self.optimize_collection(items, key, strategy, weight, analysis)

            if strategy.include_analysis and key in analysis_blocks:
                kept_analysis[key] = analysis_blocks[key]

        if kept_analysis:
            context[ANALYSIS_KEY] = kept_analysis
        return context

    def optimize_collection(
        self,
        items: List[Any],
        collection_key: str,
        strategy: OptimizationStrategy,
        weight: float,
        analysis: QueryAnalysis,
    ) -> List[Dict[str, Any]]:
        """Filter, sort, truncate and optionally reduce one collection."""
        collection = DataCollection.from_key(collection_key)
        records = [item for item in items if isinstance(item, Mapping)]

        if analysis.wants_recent:
            records = self.filter_recent(records, collection)

        records = sort_items(records, collection)
        records = records[:math.ceil(strategy.max_items * weight)]

        if not strategy.include_details:
            return [reduce_item(item, collection) for item in records]
        return [dict(item) for item in records]

    def filter_recent(self, items: List[Mapping[str, Any]], collection: Optional[DataCollection]) -> List[Mapping[str, Any]]:
        """Keep items dated within the recency window; undated items stay."""
        cutoff = self.clock() - RECENT_WINDOW
        recent = []
        for item in items:
            when = item_date(item, collection)
            if when is None or when >= cutoff:
                recent.append(item)
        return recent

    @staticmethod
    def _collections(business_data: Mapping[str, Any]) -> Dict[str, Any]:
        nested = business_data.get(NESTED_DATA_KEY)
        if isinstance(nested, Mapping):
            return dict(nested)
        return {
            key: value for key, value in business_data.items()
            if key not in (SUMMARY_KEY, ANALYSIS_KEY)
        }

    @staticmethod
    def generate_optimization_report(context: OptimizedContext) -> str:
        """Human-readable summary of an optimization."""
        meta = context.metadata
        collections = ", ".join(meta.included_collections) or "none"
        return (
            "Context optimization report:\n"
            f"- Strategy: {meta.strategy}\n"
            f"- Data reduction: {meta.reduction_percentage}% "
            f"({meta.original_size} -> {meta.optimized_size} tokens)\n"
            f"- Included collections: {collections}\n"
            f"- Query analysis confidence: {meta.confidence * 100:.1f}%"
        )
