from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime

from ..connectors.base import WorksheetConnector
from ..db.store import DestinationStore
from ..errors import SourceError, WorksheetNotFoundError
from ..excel.workbook import Workbook
from ..logging.error_log import ErrorLogBuffer, ErrorRecord
from ..models.sync_run import FullSyncResult, SyncOutcome, SyncRun
from ..sharepoint.client import WorkbookSource
from .progress import ProgressTracker

"""Service orchestration for the worksheet sync.

``sync_worksheet`` runs one connector against an already fetched workbook:

1. write a RUNNING row to sharepoint_sync_log
2. locate the worksheet (WorksheetNotFoundError when missing)
3. extract_data, then upsert_data
4. finalize the run as SUCCESS with counts, or FAILED with the error message

It never raises; failures come back as ``SyncOutcome(success=False)``.
Finalizing the sync log is best-effort: the returned outcome is authoritative.

``sync_all`` runs connectors strictly one after another, fetching the workbook
afresh for each so at most one parsed workbook is held at a time. A failing
worksheet (or workbook fetch) never stops its siblings and nothing is rolled
back across worksheets.
"""

__all__ = [
    "sync_worksheet",
    "sync_all",
]

logger = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


async def _finish_run(store: DestinationStore, run: SyncRun) -> None:
    try:
        await store.finish_sync_run(run)
    except Exception as e:
        logger.error(f"failed to record sync {run.status.value} for {run.worksheet_name} (run {run.id}): {e}")


async def sync_worksheet(
    connector: WorksheetConnector,
    workbook: Workbook,
    store: DestinationStore,
    *,
    project_id: str | None = None,
    file_url: str = "",
    error_log: ErrorLogBuffer | None = None,
) -> SyncOutcome:
    name, table = connector.worksheet_name, connector.table
    run = SyncRun.start(name, file_url=file_url)
    started = time.monotonic()
    logger.info(f"starting sync for worksheet {name} -> {table} (run {run.id})")

    try:
        await store.create_sync_run(run)

        worksheet = workbook.find(name)
        if worksheet is None:
            raise WorksheetNotFoundError(name, table)
        logger.info(f"found worksheet {name}: rows={worksheet.row_count} columns={worksheet.column_count}")

        records = connector.extract_data(worksheet)
        result = await connector.upsert_data(records, project_id)
    except Exception as e:
        duration = _elapsed_ms(started)
        message = str(e)
        logger.error(f"sync failed for {name} (table={table}): {message}")
        if error_log is not None:
            error_type = "WORKSHEET_NOT_FOUND" if isinstance(e, WorksheetNotFoundError) else "SYNC_FAILED"
            error_log.append(ErrorRecord.create(name, table, None, error_type, message))
        await _finish_run(store, run.failed(message, duration))
        return SyncOutcome(
            worksheet=name, table=table, success=False,
            duration_ms=duration, error=message, run_id=run.id,
        )

    duration = _elapsed_ms(started)
    if error_log is not None:
        for failure in result.failures:
            error_log.append(
                ErrorRecord.create(
                    name, table, failure.key,
                    f"RECORD_{failure.operation.upper()}_FAILED", failure.message,
                )
            )
    await _finish_run(
        store,
        run.succeeded(len(records), result.inserted, result.updated, result.failed, duration),
    )
    logger.info(
        f"sync completed for {name}: processed={len(records)} inserted={result.inserted} "
        f"updated={result.updated} skipped={result.skipped} failed={result.failed} "
        f"duration_ms={duration}"
    )
    return SyncOutcome(
        worksheet=name,
        table=table,
        success=True,
        records_processed=len(records),
        records_inserted=result.inserted,
        records_updated=result.updated,
        records_failed=result.failed,
        duration_ms=duration,
        run_id=run.id,
    )


async def sync_all(
    connectors: Sequence[WorksheetConnector],
    source: WorkbookSource,
    store: DestinationStore,
    *,
    locators: Mapping[str, str],
    project_id: str | None = None,
    error_log: ErrorLogBuffer | None = None,
    progress: ProgressTracker | None = None,
) -> FullSyncResult:
    """Sync each connector in order against a freshly fetched workbook.

    Args:
        locators: workbook locator (SharePoint URL or path) per schema ``file_key``
    """
    start_time = datetime.now(UTC)
    outcomes: list[SyncOutcome] = []

    for connector in connectors:
        name = connector.worksheet_name
        locator = locators.get(connector.schema.file_key, "")
        if progress is not None:
            progress.start_worksheet(name)

        started = time.monotonic()
        try:
            workbook = await source.fetch(locator)
        except SourceError as e:
            logger.error(f"could not load workbook for {name} ({connector.schema.file_key}): {e}")
            if error_log is not None:
                error_log.append(ErrorRecord.create(name, connector.table, None, "SOURCE_ERROR", str(e)))
            outcome = SyncOutcome(
                worksheet=name, table=connector.table, success=False,
                duration_ms=_elapsed_ms(started), error=str(e),
            )
        else:
            outcome = await sync_worksheet(
                connector, workbook, store,
                project_id=project_id, file_url=locator, error_log=error_log,
            )
            del workbook

        outcomes.append(outcome)
        if progress is not None:
            progress.finish_worksheet(outcome.success)

    return FullSyncResult(outcomes=outcomes, start_time=start_time, end_time=datetime.now(UTC))
