"""HTTP serving of registered tables."""
