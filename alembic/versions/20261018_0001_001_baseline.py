"""Initial baseline migration.

Revision ID: 001_baseline
Revises:
Create Date: 2026-10-18

Creates the watchlist, market data and scan result tables. Databases
created by init_database() already match this schema; mark them with
'alembic stamp 001_baseline'.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_baseline"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _price() -> sa.Numeric:
    return sa.Numeric(12, 4, asdecimal=False)


def upgrade() -> None:
    # ==========================================================================
    # WATCHLIST
    # ==========================================================================

    op.create_table(
        "watchlist_tickers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("owner_id", sa.String(255), nullable=False),
        sa.Column("ticker", sa.String(10), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("added_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("owner_id", "ticker", name="uq_watchlist_owner_ticker"),
    )
    op.create_index("idx_watchlist_owner", "watchlist_tickers", ["owner_id"])

    # ==========================================================================
    # MARKET DATA
    # ==========================================================================

    op.create_table(
        "historical_prices",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("ticker", sa.String(10), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("open", _price(), nullable=False),
        sa.Column("high", _price(), nullable=False),
        sa.Column("low", _price(), nullable=False),
        sa.Column("close", _price(), nullable=False),
        sa.Column("volume", sa.BigInteger(), default=0),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("ticker", "date", name="uq_historical_prices_ticker_date"),
    )
    op.create_index(
        "idx_historical_prices_ticker_date", "historical_prices", ["ticker", "date"]
    )

    op.create_table(
        "stock_quotes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("ticker", sa.String(10), nullable=False),
        sa.Column("trading_date", sa.Date(), nullable=False),
        sa.Column("price", _price(), nullable=False),
        sa.Column("volume", sa.BigInteger()),
        sa.Column("source", sa.String(50), nullable=False),
        sa.Column("fetched_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("ticker", "trading_date", name="uq_stock_quotes_ticker_day"),
    )
    op.create_index(
        "idx_stock_quotes_ticker_fetched", "stock_quotes", ["ticker", "fetched_at"]
    )

    # ==========================================================================
    # SCANNER
    # ==========================================================================

    op.create_table(
        "scan_results",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("owner_id", sa.String(255), nullable=False),
        sa.Column("ticker", sa.String(10), nullable=False),
        sa.Column("scan_date", sa.DateTime(timezone=True), nullable=False),
        # Phase 1
        sa.Column("stock_price", sa.Float()),
        sa.Column("avg_volume", sa.Float()),
        sa.Column("sma_200", sa.Float()),
        sa.Column("sma_50", sa.Float()),
        sa.Column("trend_direction", sa.String(10)),
        sa.Column("passed_phase1", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("phase1_reason", sa.Text()),
        # Phase 2
        sa.Column("current_iv", sa.Float()),
        sa.Column("iv_high_52w", sa.Float()),
        sa.Column("iv_low_52w", sa.Float()),
        sa.Column("iv_rank", sa.Float()),
        sa.Column("passed_phase2", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("phase2_reason", sa.Text()),
        # Phase 3
        sa.Column("contract_id", sa.String(32)),
        sa.Column("strike", sa.Float()),
        sa.Column("expiration", sa.Date()),
        sa.Column("dte", sa.Integer()),
        sa.Column("delta", sa.Float()),
        sa.Column("theta", sa.Float()),
        sa.Column("bid", sa.Float()),
        sa.Column("implied_volatility", sa.Float()),
        sa.Column("premium_yield", sa.Float()),
        sa.Column("open_interest", sa.Integer()),
        sa.Column("option_volume", sa.Integer()),
        sa.Column("passed_phase3", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("phase3_reason", sa.Text()),
        # Phase 4
        sa.Column("yield_score", sa.Float()),
        sa.Column("iv_score", sa.Float()),
        sa.Column("delta_score", sa.Float()),
        sa.Column("liquidity_score", sa.Float()),
        sa.Column("trend_score", sa.Float()),
        sa.Column("composite_score", sa.Float()),
        # Phase 5
        sa.Column("has_open_csp", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("has_assigned_shares", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("portfolio_flag", sa.Text()),
        sa.Column("passed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("final_reason", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "owner_id", "ticker", "scan_date", name="uq_scan_results_owner_ticker_date"
        ),
    )
    op.create_index("idx_scan_results_owner_date", "scan_results", ["owner_id", "scan_date"])
    op.create_index("idx_scan_results_owner_passed", "scan_results", ["owner_id", "passed"])


def downgrade() -> None:
    op.drop_table("scan_results")
    op.drop_table("stock_quotes")
    op.drop_table("historical_prices")
    op.drop_table("watchlist_tickers")
