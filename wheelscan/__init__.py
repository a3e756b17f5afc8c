"""Wheel strategy watchlist scanner."""

__version__ = "1.0.0"
