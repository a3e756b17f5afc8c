"""Scanner thresholds and scoring weights."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ScoreWeights:
    """Composite score weights; they sum to 1."""

    yield_: float = 0.30
    iv: float = 0.25
    delta: float = 0.15
    liquidity: float = 0.15
    trend: float = 0.15


@dataclass(frozen=True)
class ScannerConfig:
    """Complete scanner configuration.

    Phase 1 (stock filter), phase 2 (IV screen) and phase 3 (option
    selection) thresholds, plus the phase 4 scoring ramps.
    """

    # Phase 1
    min_price: float = 13.0
    max_price: float = 150.0
    min_avg_volume: float = 1_000_000
    avg_volume_days: int = 20
    sma_period: int = 200
    sma_short_period: int = 50
    sma_trend_lookback: int = 20

    # Phase 2
    min_iv_rank: float = 20.0
    iv_lookback_days: int = 365

    # Phase 3
    min_dte: int = 5
    max_dte: int = 45
    min_delta: float = -0.30
    max_delta: float = -0.02
    min_option_volume: int = 20
    min_premium_yield: float = 8.0

    # Phase 4
    delta_sweet_spot: float = -0.235
    yield_range: tuple[float, float] = (8.0, 24.0)
    iv_rank_range: tuple[float, float] = (20.0, 70.0)
    preferred_open_interest: int = 500
    max_trend_distance_pct: float = 20.0
    weights: ScoreWeights = field(default_factory=ScoreWeights)

    @property
    def min_history_bars(self) -> int:
        """Bars needed for SMA-200 now and SMA-200 one lookback ago."""
        return self.sma_period + self.sma_trend_lookback


SCANNER = ScannerConfig()
