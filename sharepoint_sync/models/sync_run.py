from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

"""Sync run bookkeeping and result models.

A ``SyncRun`` mirrors one row of ``sharepoint_sync_log``. It is created with
status RUNNING when a worksheet sync starts and finalized exactly once, either
through ``succeeded`` or ``failed``.

``UpsertResult`` / ``SyncOutcome`` / ``FullSyncResult`` are what callers (CLI,
schedulers) see. They always carry counts, never a bare boolean.
"""

__all__ = [
    "SyncStatus",
    "SyncRun",
    "RecordFailure",
    "UpsertResult",
    "SyncOutcome",
    "FullSyncResult",
]


class SyncStatus(Enum):
    """Lifecycle of a sync run: running -> (success | failed)."""
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncRun:
    id: str
    worksheet_name: str
    started_at: datetime
    file_url: str = ""
    status: SyncStatus = SyncStatus.RUNNING
    completed_at: datetime | None = None
    records_processed: int = 0
    records_inserted: int = 0
    records_updated: int = 0
    records_failed: int = 0
    duration_ms: int | None = None
    error_message: str | None = None

    @staticmethod
    def start(worksheet_name: str, file_url: str = "") -> SyncRun:
        return SyncRun(
            id=str(uuid.uuid4()),
            worksheet_name=worksheet_name,
            started_at=datetime.now(UTC),
            file_url=file_url,
        )

    def succeeded(
        self, processed: int, inserted: int, updated: int, failed: int, duration_ms: int
    ) -> SyncRun:
        return replace(
            self,
            status=SyncStatus.SUCCESS,
            completed_at=datetime.now(UTC),
            records_processed=processed,
            records_inserted=inserted,
            records_updated=updated,
            records_failed=failed,
            duration_ms=duration_ms,
        )

    def failed(self, error_message: str, duration_ms: int) -> SyncRun:
        return replace(
            self,
            status=SyncStatus.FAILED,
            completed_at=datetime.now(UTC),
            error_message=error_message,
            duration_ms=duration_ms,
        )


@dataclass(frozen=True)
class RecordFailure:
    """One settled write that did not succeed."""
    key: str
    operation: str  # insert / update
    message: str


@dataclass(frozen=True)
class UpsertResult:
    """Outcome of one reconciliation pass.

    ``skipped`` counts records whose key already existed under the append-only
    policy; they are neither inserted nor updated nor failed.
    """
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    failures: list[RecordFailure] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)


@dataclass(frozen=True)
class SyncOutcome:
    """Per-worksheet result returned by the orchestrator (never raised)."""
    worksheet: str
    table: str
    success: bool
    records_processed: int = 0
    records_inserted: int = 0
    records_updated: int = 0
    records_failed: int = 0
    duration_ms: int = 0
    error: str | None = None
    run_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "worksheet": self.worksheet,
            "table": self.table,
            "success": self.success,
            "records_processed": self.records_processed,
            "records_inserted": self.records_inserted,
            "records_updated": self.records_updated,
            "records_failed": self.records_failed,
            "duration_ms": self.duration_ms,
            "error": self.error,
        }


@dataclass(frozen=True)
class FullSyncResult:
    """Aggregate of a multi-worksheet sync (sequential, no cross-sheet rollback)."""
    outcomes: list[SyncOutcome]
    start_time: datetime
    end_time: datetime

    @property
    def success(self) -> bool:
        return all(o.success for o in self.outcomes)

    @property
    def succeeded_count(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed_count(self) -> int:
        return len(self.outcomes) - self.succeeded_count

    @property
    def elapsed_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()

    @property
    def total_processed(self) -> int:
        return sum(o.records_processed for o in self.outcomes)

    @property
    def total_inserted(self) -> int:
        return sum(o.records_inserted for o in self.outcomes)

    @property
    def total_updated(self) -> int:
        return sum(o.records_updated for o in self.outcomes)

    @property
    def total_failed_records(self) -> int:
        return sum(o.records_failed for o in self.outcomes)

    @property
    def errors(self) -> list[str]:
        return [f"{o.worksheet}: {o.error}" for o in self.outcomes if not o.success]

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "worksheets": [o.to_dict() for o in self.outcomes],
            "errors": self.errors,
            "totals": {
                "records_processed": self.total_processed,
                "records_inserted": self.total_inserted,
                "records_updated": self.total_updated,
                "records_failed": self.total_failed_records,
            },
        }
