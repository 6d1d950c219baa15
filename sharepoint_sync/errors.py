from __future__ import annotations

"""Exception hierarchy for the SharePoint -> PostgreSQL worksheet sync.

Failures are recovered as close to their origin as possible:

- ``SourceError`` / ``AuthenticationError``: workbook fetch or parse failed.
  Fatal to the run that needed the workbook.
- ``WorksheetNotFoundError``: the named worksheet is missing. Fatal to that
  worksheet's run only.
- ``RecordWriteError``: a single INSERT/UPDATE failed. Caught per record.
- ``StoreError``: the destination store itself is unusable (connection, pool).
- ``SyncLogError``: writing ``sharepoint_sync_log`` failed. Logged, never raised
  past the orchestrator.
"""

__all__ = [
    "SyncError",
    "SourceError",
    "AuthenticationError",
    "WorksheetNotFoundError",
    "StoreError",
    "RecordWriteError",
    "SyncLogError",
    "UnknownWorksheetError",
]


class SyncError(Exception):
    """Base class for all sync failures."""


class SourceError(SyncError):
    """Workbook could not be fetched or parsed."""

    def __init__(self, message: str, source: str = "SharePoint") -> None:
        super().__init__(message)
        self.source = source


class AuthenticationError(SourceError):
    """Access token could not be obtained."""

    def __init__(self, message: str) -> None:
        super().__init__(message, source="AzureAD")


class WorksheetNotFoundError(SyncError):
    def __init__(self, worksheet: str, table: str) -> None:
        super().__init__(f'Worksheet "{worksheet}" not found in workbook (table={table})')
        self.worksheet = worksheet
        self.table = table


class StoreError(SyncError):
    """Destination store is unreachable or misconfigured."""


class RecordWriteError(StoreError):
    """A single destination row could not be written."""

    def __init__(self, message: str, table: str, key: str | None = None) -> None:
        super().__init__(message)
        self.table = table
        self.key = key


class SyncLogError(StoreError):
    """A sharepoint_sync_log write failed."""


class UnknownWorksheetError(SyncError):
    """Worksheet name is not in the connector registry."""
