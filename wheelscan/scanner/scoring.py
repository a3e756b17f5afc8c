"""Phase 4 composite scoring.

Every sub-score is a clamped linear ramp onto 0-100. The composite is the
weighted sum and is the default ranking key for candidates.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

from wheelscan.scanner.constants import SCANNER, ScannerConfig


@dataclass(frozen=True)
class ScoreBreakdown:
    """Sub-scores and composite for one candidate."""

    yield_score: float
    iv_score: float
    delta_score: float
    liquidity_score: float
    trend_score: float
    composite_score: float

    def to_dict(self) -> dict[str, float]:
        return {k: round(v, 2) for k, v in asdict(self).items()}


def linear_score(value: float, low: float, high: float) -> float:
    """Map ``low`` to 0 and ``high`` to 100, clamped."""
    if high <= low:
        return 0.0
    score = (value - low) / (high - low) * 100
    return max(0.0, min(100.0, score))


def delta_score(delta: float, config: ScannerConfig = SCANNER) -> float:
    """100 at the sweet spot, falling linearly to 0 at either delta bound."""
    sweet = config.delta_sweet_spot
    if delta < config.min_delta or delta > config.max_delta:
        return 0.0
    if delta >= sweet:
        # Between the sweet spot and the shallow bound (-0.02)
        return linear_score(config.max_delta - delta, 0.0, config.max_delta - sweet)
    return linear_score(delta - config.min_delta, 0.0, sweet - config.min_delta)


def liquidity_score(open_interest: int, config: ScannerConfig = SCANNER) -> float:
    return linear_score(open_interest, 0, config.preferred_open_interest)


def trend_score(price: float, sma_200: float, config: ScannerConfig = SCANNER) -> float:
    """Distance of price above SMA-200: 0% scores 0, the configured max scores 100."""
    if sma_200 <= 0:
        return 0.0
    pct_above = (price / sma_200 - 1) * 100
    return linear_score(pct_above, 0.0, config.max_trend_distance_pct)


def compute_scores(
    premium_yield: float,
    iv_rank: float,
    delta: float,
    open_interest: int,
    price: float,
    sma_200: float,
    config: ScannerConfig = SCANNER,
) -> ScoreBreakdown:
    """Score a phase 3 candidate."""
    weights = config.weights
    yield_s = linear_score(premium_yield, *config.yield_range)
    iv_s = linear_score(iv_rank, *config.iv_rank_range)
    delta_s = delta_score(delta, config)
    liquidity_s = liquidity_score(open_interest, config)
    trend_s = trend_score(price, sma_200, config)

    composite = (
        yield_s * weights.yield_
        + iv_s * weights.iv
        + delta_s * weights.delta
        + liquidity_s * weights.liquidity
        + trend_s * weights.trend
    )
    return ScoreBreakdown(
        yield_score=yield_s,
        iv_score=iv_s,
        delta_score=delta_s,
        liquidity_score=liquidity_s,
        trend_score=trend_s,
        composite_score=composite,
    )
