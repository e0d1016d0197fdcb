"""
SDK for the AI query optimizer.

Provides programmatic access to the optimized model call pipeline.
"""

from .openai_client import OptimizedOpenAI

__all__ = ["OptimizedOpenAI"]
