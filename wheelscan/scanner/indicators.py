"""Pure calculations over price history and option quotes."""

from __future__ import annotations

from datetime import date
from typing import Literal

import numpy as np
import pandas as pd


TrendDirection = Literal["rising", "flat", "falling"]


def sma(closes: pd.Series, period: int, offset: int = 0) -> float | None:
    """
    Simple moving average of the ``period`` closes ending ``offset`` bars ago.

    Args:
        closes: Closing prices, oldest first
        period: Number of bars averaged
        offset: How many of the most recent bars to skip

    Returns:
        The average, or None if there are not enough bars
    """
    end = len(closes) - offset
    if period <= 0 or end < period:
        return None
    return float(closes.iloc[end - period:end].mean())


def average_volume(volumes: pd.Series, days: int = 20) -> float:
    """Mean volume of the last ``days`` sessions (all sessions if fewer)."""
    if volumes.empty:
        return 0.0
    return float(volumes.iloc[-days:].mean())


def trend_direction(current: float, previous: float) -> TrendDirection:
    if np.isclose(current, previous, rtol=0, atol=1e-9):
        return "flat"
    return "rising" if current > previous else "falling"


def iv_rank(current_iv: float, low_iv: float, high_iv: float) -> float | None:
    """
    Position of ``current_iv`` in its trailing range, 0-100.

    Returns None for a zero-width (or inverted) range.
    """
    if high_iv <= low_iv:
        return None
    rank = (current_iv - low_iv) / (high_iv - low_iv) * 100
    return float(np.clip(rank, 0.0, 100.0))


def premium_yield(bid: float, strike: float, dte: int) -> float:
    """Annualized premium yield in percent; 0 for a zero strike or DTE."""
    if strike <= 0 or dte <= 0:
        return 0.0
    return (bid / strike) * (365 / dte) * 100


def days_to_expiration(expiration: date, as_of: date) -> int:
    """Calendar days from ``as_of`` to ``expiration``."""
    return (expiration - as_of).days
