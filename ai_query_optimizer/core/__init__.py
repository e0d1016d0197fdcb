"""
Core modules for the AI query optimizer.

This package contains response caching, model tier selection, context
shrinking and the façade that wires them together.
"""
