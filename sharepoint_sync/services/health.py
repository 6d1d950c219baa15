from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from ..db.store import DestinationStore
from ..models.worksheet_schema import WorksheetSchema

"""Sync health check.

Per destination table: row count, last sync timestamp and a status.
Checks apply in order: NEVER_SYNCED (no sync_timestamp), STALE (older than
``stale_after_hours``), LOW_COUNT (below half the expected rows), else HEALTHY.
A table that cannot be queried is ERROR.
"""

__all__ = [
    "HealthStatus",
    "TableHealth",
    "check_health",
]

logger = logging.getLogger(__name__)

STALE_AFTER_HOURS = 24
LOW_COUNT_RATIO = 0.5


class HealthStatus(Enum):
    HEALTHY = "HEALTHY"
    STALE = "STALE"
    LOW_COUNT = "LOW_COUNT"
    NEVER_SYNCED = "NEVER_SYNCED"
    ERROR = "ERROR"


@dataclass(frozen=True)
class TableHealth:
    table: str
    worksheets: tuple[str, ...]
    status: HealthStatus
    row_count: int = 0
    expected_rows: int = 0
    last_sync: datetime | None = None
    hours_since_sync: int | None = None
    error: str | None = None

    @property
    def healthy(self) -> bool:
        return self.status is HealthStatus.HEALTHY


async def check_health(
    store: DestinationStore,
    schemas: Iterable[WorksheetSchema],
    *,
    now: datetime | None = None,
    stale_after_hours: int = STALE_AFTER_HOURS,
) -> list[TableHealth]:
    now = now or datetime.now(UTC)

    # QA sheets share a table; report each table once
    by_table: dict[str, list[WorksheetSchema]] = {}
    for schema in schemas:
        by_table.setdefault(schema.table, []).append(schema)

    report: list[TableHealth] = []
    for table, members in by_table.items():
        names = tuple(s.name for s in members)
        expected = max(s.expected_rows for s in members)
        try:
            stats = await store.table_stats(table)
        except Exception as e:
            logger.error(f"health check failed for {table}: {e}")
            report.append(TableHealth(table, names, HealthStatus.ERROR, expected_rows=expected, error=str(e)))
            continue

        hours = None
        if stats.last_sync is not None:
            last = stats.last_sync if stats.last_sync.tzinfo else stats.last_sync.replace(tzinfo=UTC)
            hours = int((now - last).total_seconds() // 3600)

        if stats.last_sync is None:
            status = HealthStatus.NEVER_SYNCED
        elif hours > stale_after_hours:
            status = HealthStatus.STALE
        elif stats.row_count < expected * LOW_COUNT_RATIO:
            status = HealthStatus.LOW_COUNT
        else:
            status = HealthStatus.HEALTHY

        report.append(
            TableHealth(
                table=table,
                worksheets=names,
                status=status,
                row_count=stats.row_count,
                expected_rows=expected,
                last_sync=stats.last_sync,
                hours_since_sync=hours,
            )
        )
    return report
