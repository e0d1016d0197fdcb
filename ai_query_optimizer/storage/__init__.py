"""Usage stats persistence."""
