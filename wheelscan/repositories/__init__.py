"""Data access layer. Each module wraps one table with plain async functions."""
