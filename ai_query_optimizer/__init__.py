"""
AI query optimizer.

Cost and latency optimization layer in front of a large-language-model API.
"""

__version__ = "0.1.0"
