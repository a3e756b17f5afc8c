"""Scan result store using SQLAlchemy ORM.

Rows are insert-only. Each run writes a new batch under its own scan_date;
"latest scan" means the maximum scan_date for an owner.

Usage:
    from wheelscan.repositories import scan_results_orm as scan_results_repo

    await scan_results_repo.save_result(record)
    results = await scan_results_repo.get_latest_scan_results(owner_id)
    metadata = await scan_results_repo.get_scan_metadata(owner_id)
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Integer, cast, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from wheelscan.core.exceptions import ConflictError, StoreUnavailableError
from wheelscan.core.logging import get_logger
from wheelscan.database.connection import get_session, ping as db_ping
from wheelscan.database.orm import ScanResult
from wheelscan.scanner.state import ScanResultRecord


logger = get_logger("repositories.scan_results_orm")

_RECORD_FIELDS = [f for f in ScanResultRecord.__dataclass_fields__]


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_dict(row: ScanResult) -> dict[str, Any]:
    data = {name: getattr(row, name) for name in _RECORD_FIELDS}
    data["scan_date"] = _as_utc(row.scan_date)
    return data


def _ranked(stmt):
    return stmt.order_by(
        ScanResult.passed.desc(),
        ScanResult.composite_score.desc().nulls_last(),
        ScanResult.ticker.asc(),
    )


async def save_result(record: ScanResultRecord) -> None:
    """
    Insert one scan result.

    Raises:
        ConflictError: A row for (owner, ticker, scan_date) already exists
    """
    values = record.to_dict()
    values["scan_date"] = _as_utc(record.scan_date)

    async with get_session() as session:
        session.add(ScanResult(**values))
        try:
            await session.commit()
        except IntegrityError as e:
            await session.rollback()
            raise ConflictError(
                message=f"Scan result for {record.ticker} at {record.scan_date.isoformat()} already exists"
            ) from e


async def _latest_scan_date(session, owner_id: str) -> datetime | None:
    result = await session.execute(
        select(func.max(ScanResult.scan_date)).where(ScanResult.owner_id == owner_id)
    )
    return result.scalar_one_or_none()


async def get_latest_scan_results(owner_id: str) -> list[dict[str, Any]]:
    """Rows of the owner's most recent scan, passed first then composite desc."""
    async with get_session() as session:
        latest = await _latest_scan_date(session, owner_id)
        if latest is None:
            return []
        result = await session.execute(
            _ranked(
                select(ScanResult).where(
                    ScanResult.owner_id == owner_id,
                    ScanResult.scan_date == latest,
                )
            )
        )
        return [_to_dict(row) for row in result.scalars().all()]


async def get_scan_metadata(owner_id: str) -> dict[str, Any] | None:
    """
    Summary counts for the owner's most recent scan.

    Returns:
        Dict with last_scan_date, total_scanned, passed_phase1,
        passed_phase2, passed_phase3 and total_passed, or None if the
        owner never scanned
    """
    async with get_session() as session:
        latest = await _latest_scan_date(session, owner_id)
        if latest is None:
            return None
        result = await session.execute(
            select(
                func.count(ScanResult.id),
                func.sum(cast(ScanResult.passed_phase1, Integer)),
                func.sum(cast(ScanResult.passed_phase2, Integer)),
                func.sum(cast(ScanResult.passed_phase3, Integer)),
                func.sum(cast(ScanResult.passed, Integer)),
            ).where(
                ScanResult.owner_id == owner_id,
                ScanResult.scan_date == latest,
            )
        )
        total, phase1, phase2, phase3, passed = result.one()

    return {
        "last_scan_date": _as_utc(latest),
        "total_scanned": total or 0,
        "passed_phase1": phase1 or 0,
        "passed_phase2": phase2 or 0,
        "passed_phase3": phase3 or 0,
        "total_passed": passed or 0,
    }


async def get_scan_result(
    owner_id: str, ticker: str, scan_date: datetime | None = None
) -> dict[str, Any] | None:
    """One ticker's row from a given scan (default: the latest that includes it)."""
    async with get_session() as session:
        stmt = select(ScanResult).where(
            ScanResult.owner_id == owner_id,
            ScanResult.ticker == ticker.upper(),
        )
        if scan_date is not None:
            stmt = stmt.where(ScanResult.scan_date == _as_utc(scan_date))
        result = await session.execute(stmt.order_by(ScanResult.scan_date.desc()).limit(1))
        row = result.scalar_one_or_none()
        return _to_dict(row) if row else None


async def list_scan_dates(owner_id: str, limit: int = 20) -> list[dict[str, Any]]:
    """Past scan batches for an owner, newest first, with counts."""
    async with get_session() as session:
        result = await session.execute(
            select(
                ScanResult.scan_date,
                func.count(ScanResult.id),
                func.sum(cast(ScanResult.passed, Integer)),
            )
            .where(ScanResult.owner_id == owner_id)
            .group_by(ScanResult.scan_date)
            .order_by(ScanResult.scan_date.desc())
            .limit(limit)
        )
        return [
            {
                "scan_date": _as_utc(scan_date),
                "total_scanned": total,
                "total_passed": passed or 0,
            }
            for scan_date, total, passed in result.all()
        ]


async def ping() -> bool:
    """
    Check the store is reachable.

    Raises:
        StoreUnavailableError: If the database cannot be queried
    """
    try:
        return await db_ping()
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Scan result store unreachable: {e}")
        raise StoreUnavailableError(details={"error": str(e)}) from e
