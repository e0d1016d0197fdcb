"""
Optimized OpenAI client wrapper.

Runs a query through context shrinking, model selection and the response
cache before calling OpenAI chat completions, then records actual usage.
"""

import json
import time
from typing import Any, Dict, List, Mapping, Optional

import structlog
from openai import OpenAI

from ..core.context_optimizer import OptimizedContext
from ..core.manager import OptimizationManager
from ..core.model_selector import ModelConfig, SelectionOptions
from ..core.pricing import calculate_cost
from ..core.response_cache import generate_context_fingerprint, should_cache
from ..core.token_counter import TokenEstimate

logger = structlog.stdlib.get_logger()

DEFAULT_SYSTEM_PROMPT = (
    "You are an assistant for a manufacturing resource planning system. "
    "Answer using only the business data provided in the context."
)


class OptimizedOpenAI:
    """OpenAI client wrapper that picks the model and context per query.

    Only the model call can fail loudly: OpenAI errors propagate unchanged
    and nothing is cached or recorded for a failed call.
    """

    def __init__(
        self,
        manager: Optional[OptimizationManager] = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        client: Optional[OpenAI] = None,
    ):
        """Initialize the optimized client.

        Args:
            manager: Optimization components to use (defaults if omitted)
            system_prompt: System message sent with every call
            client: Preconfigured OpenAI client (``OpenAI()`` if omitted)
        """
        self.manager = manager if manager is not None else OptimizationManager()
        self.system_prompt = system_prompt
        self.client = client if client is not None else OpenAI()

    def ask(
        self,
        query: str,
        business_data: Mapping[str, Any],
        prioritize_speed: bool = False,
        prioritize_cost: bool = False,
        require_high_accuracy: bool = False,
        max_budget: Optional[float] = None,
        enable_cache: bool = True,
        skip_cache: bool = False,
    ) -> str:
        """Answer a query against a business-data snapshot.

        Args:
            query: User query (required)
            business_data: Full business-data snapshot
            prioritize_speed: Favour faster tiers
            prioritize_cost: Favour cheaper tiers
            require_high_accuracy: Force the complex tier
            max_budget: Cost ceiling for a single call (USD)
            enable_cache: Set False to bypass the cache
            skip_cache: Set True to bypass the cache

        Returns:
            Model answer, with a freshness note when served from cache

        Raises:
            ValueError: If query is empty
            OpenAI API errors: Propagated without modification
        """
        if not query or not query.strip():
            raise ValueError("query is required and cannot be empty")

        selector = self.manager.selector
        complexity = selector.resolve_complexity(query, require_high_accuracy=require_high_accuracy)
        context = self.manager.context_optimizer.prepare_optimal_context(query, business_data, complexity)
        options = SelectionOptions(
            prioritize_speed=prioritize_speed,
            prioritize_cost=prioritize_cost,
            require_high_accuracy=require_high_accuracy,
            max_budget=max_budget,
        )
        model_config = selector.select_optimal_model(
            query, context.metadata.optimized_size, complexity, options
        )

        def api_call() -> str:
            return self._complete(query, context, model_config)

        return self.manager.cache.get_cached_or_fetch(
            query,
            generate_context_fingerprint(context.data),
            api_call,
            enable_cache=enable_cache and should_cache(query),
            skip_cache=skip_cache,
            estimated_cost=model_config.estimated_cost,
        )

    def build_messages(self, query: str, context: OptimizedContext) -> List[Dict[str, str]]:
        """System prompt, serialized context and the query as chat messages."""
        payload = json.dumps(context.data, ensure_ascii=False, default=str)
        return [
            {"role": "system", "content": self.system_prompt},
            {"role": "system", "content": f"Business data:\n{payload}"},
            {"role": "user", "content": query},
        ]

    def _complete(self, query: str, context: OptimizedContext, model_config: ModelConfig) -> str:
        start = time.perf_counter()
        response = self.client.chat.completions.create(
            model=model_config.model,
            messages=self.build_messages(query, context),
            temperature=model_config.temperature,
            max_tokens=model_config.max_tokens,
        )
        elapsed_ms = (time.perf_counter() - start) * 1000

        # Estimated cost stands in when the response carries no usage
        cost = model_config.estimated_cost
        usage = response.usage
        if usage:
            tokens = TokenEstimate(input=usage.prompt_tokens, output=usage.completion_tokens)
            cost = calculate_cost(model_config.spec, tokens)
        else:
            logger.warning("sdk.usage_missing", model=model_config.model)

        self.manager.selector.record_usage(model_config.model, cost, elapsed_ms)
        return response.choices[0].message.content or ""
