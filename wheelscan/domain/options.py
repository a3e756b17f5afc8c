"""Option contract models consumed by the scanner.

These are transient inputs: option chains and IV history are fetched per
scan and never persisted.
"""

from __future__ import annotations

from datetime import date as DateType
from typing import Literal

from pydantic import BaseModel, Field


OptionType = Literal["put", "call"]


class OptionCandidate(BaseModel):
    """A single listed option contract with greeks and liquidity."""

    ticker: str = Field(..., description="Underlying ticker")
    contract_id: str = Field(..., description="Exchange contract identifier (OCC symbol)")
    option_type: OptionType = Field(..., description="put or call")
    strike: float = Field(..., ge=0, description="Strike price")
    expiration: DateType = Field(..., description="Expiration date")
    delta: float | None = Field(None, description="Option delta")
    theta: float | None = Field(None, description="Option theta")
    bid: float | None = Field(None, ge=0, description="Best bid")
    ask: float | None = Field(None, ge=0, description="Best ask")
    implied_volatility: float | None = Field(None, ge=0, description="Implied volatility (fraction)")
    open_interest: int = Field(default=0, ge=0, description="Open interest")
    volume: int = Field(default=0, ge=0, description="Contracts traded today")

    def days_to_expiration(self, as_of: DateType) -> int:
        """Calendar days from ``as_of`` to expiration."""
        return (self.expiration - as_of).days


class IVObservation(BaseModel):
    """Implied volatility of the near-the-money put on one date."""

    date: DateType
    implied_volatility: float = Field(..., ge=0)
