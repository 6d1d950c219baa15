from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

from ..db.store import DestinationStore
from ..models.sync_run import RecordFailure, UpsertResult

"""Insert-vs-update reconciliation of one batch against one destination table.

Algorithm:
1. collect the Record Keys of the batch (last occurrence wins per key)
2. ONE existence query for the whole key set
3. partition into new / existing
4. new -> chunked INSERT; existing -> chunked UPDATE (mutable policy) or
   dropped (append-only policy)
5. inside a chunk every write is issued concurrently and awaited together;
   chunks run strictly one after another
6. each write settles independently; failures are collected, never raised

A destination row is ``{key_column: key, **typed, project_id, raw_data}``.
"""

__all__ = [
    "reconcile",
    "chunked",
]

logger = logging.getLogger(__name__)

Record = dict[str, Any]


def chunked(items: Sequence[Any], size: int) -> list[Sequence[Any]]:
    if size < 1:
        raise ValueError(f"chunk size must be positive: {size}")
    return [items[i:i + size] for i in range(0, len(items), size)]


async def _settle(
    label: str,
    keyed: Sequence[tuple[str, Record]],
    write: Callable[[str, Record], Awaitable[None]],
    chunk_size: int,
    progress_interval: int,
) -> tuple[int, list[RecordFailure]]:
    """Run ``write`` for every (key, record), ``chunk_size`` at a time."""
    ok = 0
    failures: list[RecordFailure] = []
    done = 0
    next_report = progress_interval
    for chunk in chunked(keyed, chunk_size):
        results = await asyncio.gather(
            *(write(key, record) for key, record in chunk), return_exceptions=True
        )
        for (key, _), result in zip(chunk, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(f"failed to {label} record {key}: {result}")
                failures.append(RecordFailure(key=key, operation=label, message=str(result)))
            else:
                ok += 1
        done += len(chunk)
        if progress_interval and (done >= next_report or done == len(keyed)):
            logger.info(f"progress: {label} {done}/{len(keyed)}")
            while next_report <= done:
                next_report += progress_interval
    return ok, failures


async def reconcile(
    records: Sequence[Mapping[str, Any]],
    *,
    store: DestinationStore,
    table: str,
    key_column: str,
    key_of: Callable[[Mapping[str, Any]], str | None],
    project: Callable[[Mapping[str, Any]], dict[str, Any]],
    append_only: bool = False,
    insert_chunk: int = 100,
    update_chunk: int = 50,
    project_id: str | None = None,
    progress_interval: int = 500,
) -> UpsertResult:
    """Upsert ``records`` into ``table`` keyed by ``key_column``.

    Args:
        key_of: Record -> Record Key (records without one are ignored)
        project: Record -> promoted typed columns
        append_only: existing keys are never updated
    """
    by_key: dict[str, Mapping[str, Any]] = {}
    for record in records:
        key = key_of(record)
        if key is None:
            logger.warning(f"{table}: record without key skipped")
            continue
        by_key[key] = record

    if not by_key:
        return UpsertResult()

    existing = await store.existing_keys(table, key_column, list(by_key))
    new = [(k, r) for k, r in by_key.items() if k not in existing]
    old = [(k, r) for k, r in by_key.items() if k in existing]
    logger.info(f"{table}: {len(old)} existing, {len(new)} new")

    def row_for(key: str, record: Mapping[str, Any]) -> Record:
        return {
            **project(record),
            key_column: key,
            "project_id": project_id,
            "raw_data": dict(record),
        }

    async def insert(key: str, record: Record) -> None:
        await store.insert_record(table, key_column, row_for(key, record))

    async def update(key: str, record: Record) -> None:
        row = row_for(key, record)
        if project_id is None:
            row.pop("project_id")  # keep whatever project the row was inserted under
        await store.update_record(table, key_column, key, row)

    inserted, failures = await _settle("insert", new, insert, insert_chunk, progress_interval)

    if append_only:
        if old:
            logger.info(f"{table}: append-only, {len(old)} existing records left untouched")
        return UpsertResult(inserted=inserted, skipped=len(old), failures=failures)

    updated, update_failures = await _settle("update", old, update, update_chunk, progress_interval)
    logger.info(f"{table}: upsert complete: {inserted} inserted, {updated} updated")
    return UpsertResult(inserted=inserted, updated=updated, failures=failures + update_failures)
