"""Domain models for the SharePoint worksheet sync.

This package contains the value objects that flow between the extraction,
reconciliation and orchestration layers.
"""

from .error_record import ErrorRecord
from .sync_run import (
    FullSyncResult,
    RecordFailure,
    SyncOutcome,
    SyncRun,
    SyncStatus,
    UpsertResult,
)
from .worksheet_schema import UpsertPolicy, WorksheetSchema

__all__ = [
    "ErrorRecord",
    # Sync bookkeeping
    "SyncRun",
    "SyncStatus",
    "SyncOutcome",
    "FullSyncResult",
    "UpsertResult",
    "RecordFailure",
    # Worksheet description
    "UpsertPolicy",
    "WorksheetSchema",
]
