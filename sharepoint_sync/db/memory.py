from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from ..errors import RecordWriteError, SyncLogError
from ..models.sync_run import SyncRun
from .store import TableStats, decode_payload, encode_payload

"""Dict backed destination store.

Used for ``--dry-run`` (and DISABLE_DB_CONNECT=1) and by the test-suite. It
behaves like the PostgreSQL tables where it matters: one row per key (a second
INSERT of the same key raises like a unique constraint), ``raw_data`` stored as
serialized JSON, timestamps stamped on write.
"""

__all__ = ["MemoryStore"]


class MemoryStore:
    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(UTC))
        self.tables: dict[str, dict[str, dict[str, Any]]] = {}
        self.sync_runs: dict[str, SyncRun] = {}
        self.exists_queries = 0

    # --- destination rows -------------------------------------------------
    async def existing_keys(self, table: str, key_column: str, keys: Iterable[str]) -> set[str]:
        self.exists_queries += 1
        rows = self.tables.get(table, {})
        return {k for k in keys if k in rows}

    async def insert_record(self, table: str, key_column: str, row: Mapping[str, Any]) -> None:
        key = str(row[key_column])
        rows = self.tables.setdefault(table, {})
        if key in rows:
            raise RecordWriteError(
                f'duplicate key value violates unique constraint "{table}_{key_column}_key"',
                table=table,
                key=key,
            )
        now = self._clock()
        rows[key] = self._stored(row) | {"sync_timestamp": now, "updated_at": now}

    async def update_record(
        self, table: str, key_column: str, key: str, row: Mapping[str, Any]
    ) -> None:
        rows = self.tables.setdefault(table, {})
        if key not in rows:
            return  # UPDATE ... WHERE matched nothing
        now = self._clock()
        rows[key] = rows[key] | self._stored(row) | {"sync_timestamp": now, "updated_at": now}

    @staticmethod
    def _stored(row: Mapping[str, Any]) -> dict[str, Any]:
        stored = dict(row)
        if "raw_data" in stored:
            stored["raw_data"] = encode_payload(stored["raw_data"])
        return stored

    def get_row(self, table: str, key: str) -> dict[str, Any] | None:
        row = self.tables.get(table, {}).get(key)
        if row is None:
            return None
        return row | {"raw_data": decode_payload(row.get("raw_data"))}

    def row_count(self, table: str) -> int:
        return len(self.tables.get(table, {}))

    # --- sync log ---------------------------------------------------------
    async def create_sync_run(self, run: SyncRun) -> None:
        if run.id in self.sync_runs:
            raise SyncLogError(f"sync run {run.id} already exists")
        self.sync_runs[run.id] = run

    async def finish_sync_run(self, run: SyncRun) -> None:
        if run.id not in self.sync_runs:
            return
        self.sync_runs[run.id] = run

    async def recent_sync_runs(self, limit: int = 10) -> list[SyncRun]:
        runs = sorted(self.sync_runs.values(), key=lambda r: r.started_at, reverse=True)
        return runs[:limit]

    # --- maintenance ------------------------------------------------------
    async def table_stats(self, table: str) -> TableStats:
        rows = self.tables.get(table, {})
        last = max((r["sync_timestamp"] for r in rows.values()), default=None)
        return TableStats(table=table, row_count=len(rows), last_sync=last)

    async def reset_table(self, table: str) -> int:
        removed = len(self.tables.get(table, {}))
        self.tables[table] = {}
        return removed

    def close(self) -> None:
        pass
