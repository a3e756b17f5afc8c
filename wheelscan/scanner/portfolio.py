"""Phase 5 portfolio check.

Positions and trades live outside this service; the scanner only asks
whether the owner already has exposure to a ticker.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from wheelscan.scanner.state import PortfolioCheck


OPEN_CSP_FLAG = "Open CSP exists — skip or sell covered call instead"
ASSIGNED_SHARES_FLAG = "Holding assigned shares — consider covered call"


@runtime_checkable
class PortfolioLookup(Protocol):
    """Read-only view of an owner's open wheel positions."""

    async def has_open_csp(self, owner_id: str, ticker: str) -> bool:
        ...

    async def has_assigned_shares(self, owner_id: str, ticker: str) -> bool:
        ...


class EmptyPortfolio:
    """No positions anywhere. Used when no portfolio service is wired in."""

    async def has_open_csp(self, owner_id: str, ticker: str) -> bool:
        return False

    async def has_assigned_shares(self, owner_id: str, ticker: str) -> bool:
        return False


class StaticPortfolio:
    """Fixed positions keyed by owner."""

    def __init__(
        self,
        open_csps: dict[str, set[str]] | None = None,
        assigned_shares: dict[str, set[str]] | None = None,
    ):
        self.open_csps = open_csps or {}
        self.assigned_shares = assigned_shares or {}

    async def has_open_csp(self, owner_id: str, ticker: str) -> bool:
        return ticker.upper() in self.open_csps.get(owner_id, set())

    async def has_assigned_shares(self, owner_id: str, ticker: str) -> bool:
        return ticker.upper() in self.assigned_shares.get(owner_id, set())


async def check_portfolio(lookup: PortfolioLookup, owner_id: str, ticker: str) -> PortfolioCheck:
    """Flag existing exposure; an open CSP takes precedence over shares."""
    has_csp = await lookup.has_open_csp(owner_id, ticker)
    has_shares = await lookup.has_assigned_shares(owner_id, ticker)

    flag = None
    if has_csp:
        flag = OPEN_CSP_FLAG
    elif has_shares:
        flag = ASSIGNED_SHARES_FLAG
    return PortfolioCheck(has_open_csp=has_csp, has_assigned_shares=has_shares, flag=flag)
