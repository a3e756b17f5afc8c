"""API routes package."""

from . import health, market_data, scanner, watchlist


__all__ = [
    "health",
    "market_data",
    "scanner",
    "watchlist",
]
