"""Domain models and pure domain logic."""

from .calendar import TradingCalendar, get_trading_calendar
from .freshness import RefreshEligibility, eligibility
from .options import IVObservation, OptionCandidate
from .price import PriceBar, PriceHistory, Quote


__all__ = [
    "IVObservation",
    "OptionCandidate",
    "PriceBar",
    "PriceHistory",
    "Quote",
    "RefreshEligibility",
    "TradingCalendar",
    "eligibility",
    "get_trading_calendar",
]
