"""Pure phase evaluation for the scan pipeline.

Phases 1-3 decide whether a ticker is a cash-secured-put candidate. They
take already-fetched data and never touch the network, so they can run on a
worker thread.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date

from wheelscan.domain.options import IVObservation, OptionCandidate
from wheelscan.domain.price import PriceHistory
from wheelscan.scanner import indicators
from wheelscan.scanner.constants import SCANNER, ScannerConfig
from wheelscan.scanner.state import IVSnapshot, Phase1Failed, SelectedContract, StockSnapshot


# =============================================================================
# Phase 1: stock filter
# =============================================================================


def evaluate_stock(
    ticker: str, history: PriceHistory, config: ScannerConfig = SCANNER
) -> StockSnapshot | Phase1Failed:
    """
    Price band, liquidity and a rising SMA-200 below price.

    Sub-conditions are checked in a fixed order and the first failure is
    reported: price floor/ceiling, average volume, SMA-200 availability,
    price vs SMA-200, SMA-200 trend.
    """
    df = history.to_dataframe()
    if df.empty:
        return Phase1Failed(ticker, "No price data")

    closes = df["Close"].astype(float)
    volumes = df["Volume"].astype(float)

    price = float(closes.iloc[-1])
    avg_volume = indicators.average_volume(volumes, config.avg_volume_days)
    sma_200 = indicators.sma(closes, config.sma_period)
    sma_50 = indicators.sma(closes, config.sma_short_period)

    def failed(reason: str, trend: str | None = None) -> Phase1Failed:
        return Phase1Failed(
            ticker,
            reason,
            StockSnapshot(price, avg_volume, sma_200, sma_50, trend),
        )

    if price < config.min_price:
        return failed(f"Price ${price:.2f} below ${config.min_price:g} minimum")
    if price > config.max_price:
        return failed(f"Price ${price:.2f} above ${config.max_price:g} maximum")

    if avg_volume <= config.min_avg_volume:
        return failed(
            f"Avg volume {avg_volume:,.0f} not above {config.min_avg_volume:,.0f} minimum"
        )

    if sma_200 is None or len(closes) < config.min_history_bars:
        return failed(
            f"Insufficient data for 200-day SMA trend "
            f"({len(closes)} bars, need {config.min_history_bars})"
        )

    if price <= sma_200:
        return failed(f"Price ${price:.2f} not above 200-day SMA ${sma_200:.2f}")

    previous_sma = indicators.sma(closes, config.sma_period, offset=config.sma_trend_lookback)
    trend = indicators.trend_direction(sma_200, previous_sma)
    if trend != "rising":
        return failed(f"200-day SMA is {trend}", trend)

    return StockSnapshot(price, avg_volume, sma_200, sma_50, trend)


# =============================================================================
# Phase 2: IV screen
# =============================================================================


def evaluate_iv(
    observations: Sequence[IVObservation], config: ScannerConfig = SCANNER
) -> tuple[IVSnapshot | None, str | None]:
    """
    IV rank of the latest observation within the trailing range.

    Returns:
        (snapshot, failure reason); the reason is None when the screen passes
    """
    if not observations:
        return None, "No IV data available"

    ordered = sorted(observations, key=lambda o: o.date)
    values = [o.implied_volatility for o in ordered]
    current = values[-1]
    high, low = max(values), min(values)
    rank = indicators.iv_rank(current, low, high)
    snapshot = IVSnapshot(current_iv=current, iv_high_52w=high, iv_low_52w=low, iv_rank=rank)

    if rank is None:
        return snapshot, "IV range is zero width; IV rank undefined"
    if rank < config.min_iv_rank:
        return snapshot, f"IV Rank {rank:.1f} below {config.min_iv_rank:g} minimum"
    return snapshot, None


# =============================================================================
# Phase 3: option selection
# =============================================================================


def _constraint_failures(
    option: OptionCandidate, dte: int, premium_yield: float, config: ScannerConfig
) -> list[str]:
    failures = []
    if not config.min_dte <= dte <= config.max_dte:
        failures.append(f"DTE {dte} outside {config.min_dte}-{config.max_dte}")
    if option.delta is None:
        failures.append("delta unavailable")
    elif not config.min_delta <= option.delta <= config.max_delta:
        failures.append(
            f"delta {option.delta:.3f} outside {config.min_delta:g} to {config.max_delta:g}"
        )
    if option.volume < config.min_option_volume:
        failures.append(f"volume {option.volume} below {config.min_option_volume}")
    if premium_yield <= config.min_premium_yield:
        failures.append(
            f"yield {premium_yield:.1f}% not above {config.min_premium_yield:g}%"
        )
    return failures


def select_contract(
    options: Sequence[OptionCandidate],
    price: float,
    as_of: date,
    config: ScannerConfig = SCANNER,
) -> tuple[SelectedContract | None, str | None]:
    """
    Pick the best out-of-the-money put meeting every constraint.

    Ranking: highest premium yield, then delta closest to the sweet spot,
    then contract id. When nothing qualifies, the reason names the first
    failing constraint of the contract that failed the fewest.

    Returns:
        (selected contract, failure reason)
    """
    puts = [o for o in options if o.option_type == "put" and 0 < o.strike < price]
    if not puts:
        return None, "No out-of-the-money puts available"

    qualifying: list[SelectedContract] = []
    nearest: tuple[int, float, str, str] | None = None

    for option in puts:
        dte = indicators.days_to_expiration(option.expiration, as_of)
        premium_yield = indicators.premium_yield(option.bid or 0.0, option.strike, dte)
        failures = _constraint_failures(option, dte, premium_yield, config)

        if not failures:
            qualifying.append(SelectedContract(option=option, dte=dte, premium_yield=premium_yield))
            continue

        miss = (len(failures), -premium_yield, option.contract_id, failures[0])
        if nearest is None or miss < nearest:
            nearest = miss

    if not qualifying:
        _, _, contract_id, failure = nearest
        return None, f"No contracts meet DTE/delta/volume/yield criteria (nearest miss {contract_id}: {failure})"

    best = min(
        qualifying,
        key=lambda c: (
            -c.premium_yield,
            abs(c.option.delta - config.delta_sweet_spot),
            c.option.contract_id,
        ),
    )
    return best, None
