"""Price domain models.

Type-safe representations of quotes and daily price history.
"""

from __future__ import annotations

from datetime import date as DateType
from datetime import datetime, timezone
from typing import Iterator

import pandas as pd
from pydantic import BaseModel, Field, computed_field


class PriceBar(BaseModel):
    """Single daily OHLCV bar."""

    date: DateType = Field(..., description="Trading date")
    open: float = Field(..., ge=0, description="Opening price")
    high: float = Field(..., ge=0, description="High price")
    low: float = Field(..., ge=0, description="Low price")
    close: float = Field(..., ge=0, description="Closing price")
    volume: int = Field(default=0, ge=0, description="Trading volume")

    model_config = {
        "from_attributes": True,
    }


class PriceHistory(BaseModel):
    """Daily price history for a ticker.

    Bars are kept in chronological order.
    """

    ticker: str = Field(..., description="Ticker symbol")
    bars: list[PriceBar] = Field(default_factory=list, description="Price bars (chronological)")
    fetched_at: datetime | None = Field(None, description="When data was fetched")

    model_config = {
        "from_attributes": True,
    }

    def __len__(self) -> int:
        return len(self.bars)

    def __iter__(self) -> Iterator[PriceBar]:
        return iter(self.bars)

    @computed_field
    @property
    def start_date(self) -> DateType | None:
        """First date in history."""
        return self.bars[0].date if self.bars else None

    @computed_field
    @property
    def end_date(self) -> DateType | None:
        """Last date in history."""
        return self.bars[-1].date if self.bars else None

    @computed_field
    @property
    def latest_close(self) -> float | None:
        """Most recent closing price."""
        return self.bars[-1].close if self.bars else None

    def to_dataframe(self) -> pd.DataFrame:
        """Convert to a DataFrame indexed by date with OHLCV columns."""
        if not self.bars:
            return pd.DataFrame(columns=["Open", "High", "Low", "Close", "Volume"])

        df = pd.DataFrame(
            [
                {
                    "Date": bar.date,
                    "Open": bar.open,
                    "High": bar.high,
                    "Low": bar.low,
                    "Close": bar.close,
                    "Volume": bar.volume,
                }
                for bar in self.bars
            ]
        )
        df.set_index("Date", inplace=True)
        return df.sort_index()

    @classmethod
    def from_dataframe(cls, ticker: str, df: pd.DataFrame | None) -> "PriceHistory":
        """Build from a DataFrame with OHLCV columns and a date-like index.

        Rows with missing or invalid values are skipped.
        """
        if df is None or df.empty:
            return cls(ticker=ticker, bars=[])

        open_col = "Open" if "Open" in df.columns else "open"
        high_col = "High" if "High" in df.columns else "high"
        low_col = "Low" if "Low" in df.columns else "low"
        close_col = "Close" if "Close" in df.columns else "close"
        volume_col = "Volume" if "Volume" in df.columns else "volume"

        bars = []
        for idx, row in df.iterrows():
            bar_date = idx.date() if hasattr(idx, "date") and callable(idx.date) else idx
            try:
                if pd.isna(row[close_col]):
                    continue
                volume = row.get(volume_col, 0)
                bars.append(
                    PriceBar(
                        date=bar_date,
                        open=float(row[open_col]),
                        high=float(row[high_col]),
                        low=float(row[low_col]),
                        close=float(row[close_col]),
                        volume=0 if pd.isna(volume) else int(volume),
                    )
                )
            except (ValueError, TypeError, KeyError):
                continue

        bars.sort(key=lambda b: b.date)
        return cls(ticker=ticker, bars=bars, fetched_at=datetime.now(timezone.utc))


class Quote(BaseModel):
    """Point-in-time price for a ticker."""

    ticker: str = Field(..., description="Ticker symbol")
    price: float = Field(..., ge=0, description="Last traded price")
    timestamp: datetime = Field(..., description="When the price was observed")
    source: str = Field(..., description="Provider that supplied the price")
    volume: int | None = Field(None, ge=0, description="Session volume, if known")

    model_config = {
        "from_attributes": True,
    }
