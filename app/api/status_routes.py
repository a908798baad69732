"""
Status API routes - Dependency report for the status page.

The service depends on one thing: the PostgreSQL database holding the
`documents` table. The report checks that it answers and that its schema is
at the Alembic head, since redemption and scanning need the version column
and constraints of the current revision.

Public, unauthenticated. Reports are cached briefly so the page can poll.
"""

import asyncio
import time
from datetime import UTC, datetime
from enum import Enum

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from structlog import get_logger

from alembic.util import CommandError
from app.config import settings
from app.db.migration_runner import check_migrations_status
from app.db.session import get_write_db

logger = get_logger(__name__)
router = APIRouter(tags=["status"])

CHECK_TIMEOUT_SECONDS = 5.0
SLOW_QUERY_MS = 1000
REPORT_TTL_SECONDS = 10.0


class StatusLevel(str, Enum):
    """Worst level wins when components are combined."""

    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    OUTAGE = "outage"


_SEVERITY = [StatusLevel.OPERATIONAL, StatusLevel.DEGRADED, StatusLevel.OUTAGE]


class ComponentStatus(BaseModel):
    """Result of one dependency check."""

    status: StatusLevel
    checked_at: datetime
    latency_ms: int | None = None
    detail: str | None = None


class StatusReport(BaseModel):
    """GET /v1/status response."""

    service: str
    version: str
    status: StatusLevel
    checked_at: datetime
    components: dict[str, ComponentStatus]


class ReportCache:
    """Holds the last report for `ttl` seconds (monotonic clock)."""

    def __init__(self, ttl: float) -> None:
        self.ttl = ttl
        self._report: StatusReport | None = None
        self._stored_at = 0.0

    def get(self) -> StatusReport | None:
        if self._report is None or time.monotonic() - self._stored_at >= self.ttl:
            return None
        return self._report

    def store(self, report: StatusReport) -> None:
        self._report = report
        self._stored_at = time.monotonic()

    def clear(self) -> None:
        self._report = None


report_cache = ReportCache(REPORT_TTL_SECONDS)


async def check_database() -> ComponentStatus:
    """Round trip to the primary: the store every write goes through."""
    checked_at = datetime.now(UTC)
    started = time.perf_counter()
    try:
        async with asyncio.timeout(CHECK_TIMEOUT_SECONDS):
            async for db in get_write_db():
                await db.execute(text("SELECT 1"))
    except TimeoutError:
        logger.warning("status_database_timeout", timeout_seconds=CHECK_TIMEOUT_SECONDS)
        return ComponentStatus(
            status=StatusLevel.OUTAGE, checked_at=checked_at, detail="Timed out"
        )
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("status_database_unreachable", error=str(exc))
        return ComponentStatus(
            status=StatusLevel.OUTAGE, checked_at=checked_at, detail="Unreachable"
        )

    latency_ms = int((time.perf_counter() - started) * 1000)
    slow = latency_ms > SLOW_QUERY_MS
    return ComponentStatus(
        status=StatusLevel.DEGRADED if slow else StatusLevel.OPERATIONAL,
        checked_at=checked_at,
        latency_ms=latency_ms,
        detail="Slow response" if slow else None,
    )


async def check_schema() -> ComponentStatus:
    """Compare the database revision with the newest migration."""
    checked_at = datetime.now(UTC)
    try:
        migrations = await asyncio.to_thread(check_migrations_status)
    except (SQLAlchemyError, OSError, CommandError) as exc:
        logger.warning("status_schema_check_failed", error=str(exc))
        return ComponentStatus(
            status=StatusLevel.OUTAGE, checked_at=checked_at, detail="Revision unknown"
        )

    if migrations.pending:
        return ComponentStatus(
            status=StatusLevel.DEGRADED,
            checked_at=checked_at,
            detail=f"At {migrations.current_revision}, head is {migrations.head_revision}",
        )
    return ComponentStatus(
        status=StatusLevel.OPERATIONAL,
        checked_at=checked_at,
        detail=f"At {migrations.head_revision}",
    )


def worst_status(components: dict[str, ComponentStatus]) -> StatusLevel:
    if not components:
        return StatusLevel.OPERATIONAL
    return max((c.status for c in components.values()), key=_SEVERITY.index)


@router.get("/v1/status", response_model=StatusReport)
async def get_status() -> StatusReport:
    """Database and schema status, refreshed at most every 10 seconds."""
    cached = report_cache.get()
    if cached is not None:
        return cached

    database, schema = await asyncio.gather(check_database(), check_schema())
    components = {"database": database, "schema": schema}
    report = StatusReport(
        service=settings.service_name,
        version=settings.api_version,
        status=worst_status(components),
        checked_at=datetime.now(UTC),
        components=components,
    )

    if report.status != StatusLevel.OPERATIONAL:
        logger.warning(
            "status_not_operational",
            status=report.status.value,
            components={name: c.status.value for name, c in components.items()},
        )
    report_cache.store(report)
    return report
