from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterable, Mapping
from typing import Any, TypeVar

import psycopg2
from psycopg2 import sql
from psycopg2.extras import Json, RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from ..config.loader import DatabaseConfig
from ..errors import RecordWriteError, StoreError, SyncLogError
from ..models.sync_run import SyncRun, SyncStatus
from .store import SYNC_LOG_TABLE, TableStats, encode_payload

"""PostgreSQL destination store (psycopg2).

psycopg2 is blocking, so every statement runs in a worker thread via
``asyncio.to_thread``. In-flight statements are bounded by a semaphore sized to
the connection pool; each statement runs in its own short transaction and is
subject to ``statement_timeout``.

No DDL is issued here: tables and ``sharepoint_sync_log`` are managed by
migrations outside this tool.
"""

__all__ = [
    "PostgresStore",
    "resolve_dsn",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RUN_COLUMNS = (
    "id", "worksheet_name", "sync_started_at", "sync_completed_at", "status",
    "records_processed", "records_inserted", "records_updated", "records_failed",
    "duration_ms", "error_message", "file_url",
)


def resolve_dsn(db_cfg: DatabaseConfig) -> str:
    """Connection string resolution, first match wins.

    1. DATABASE_URL / NEON_DATABASE_URL / PGDSN (``.env`` is loaded with override)
    2. ``database.dsn`` in config/sync.yml
    3. PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE, falling back per key
       to the ``database`` section
    """
    dsn = (
        os.getenv("DATABASE_URL")
        or os.getenv("NEON_DATABASE_URL")
        or os.getenv("PGDSN")
        or db_cfg.dsn
    )
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


class PostgresStore:
    def __init__(self, pool: Any, max_in_flight: int) -> None:
        self._pool = pool
        self._limit = asyncio.Semaphore(max_in_flight)

    @classmethod
    def connect(cls, db_cfg: DatabaseConfig) -> PostgresStore:
        try:
            pool = ThreadedConnectionPool(
                1,
                db_cfg.pool_size,
                resolve_dsn(db_cfg),
                options=f"-c statement_timeout={db_cfg.statement_timeout_ms}",
            )
        except psycopg2.Error as e:
            raise StoreError(f"database connection failed: {e}") from e
        return cls(pool, max_in_flight=db_cfg.pool_size)

    def _execute(self, work: Callable[[Any], T]) -> T:
        conn = self._pool.getconn()
        try:
            with conn:  # commit on success, rollback on error
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    return work(cur)
        finally:
            self._pool.putconn(conn)

    async def _run(self, work: Callable[[Any], T]) -> T:
        async with self._limit:
            return await asyncio.to_thread(self._execute, work)

    # --- destination rows -------------------------------------------------
    async def existing_keys(self, table: str, key_column: str, keys: Iterable[str]) -> set[str]:
        wanted = list(keys)
        if not wanted:
            return set()
        query = sql.SQL("SELECT {col}::text AS k FROM {tbl} WHERE {col}::text = ANY(%s)").format(
            col=sql.Identifier(key_column), tbl=sql.Identifier(table)
        )

        def work(cur: Any) -> set[str]:
            cur.execute(query, (wanted,))
            return {r["k"] for r in cur.fetchall()}

        try:
            return await self._run(work)
        except psycopg2.Error as e:
            raise StoreError(f"existence check on {table} failed: {e}") from e

    @staticmethod
    def _params(row: Mapping[str, Any]) -> dict[str, Any]:
        params = dict(row)
        if "raw_data" in params:
            params["raw_data"] = Json(params["raw_data"], dumps=encode_payload)
        return params

    async def insert_record(self, table: str, key_column: str, row: Mapping[str, Any]) -> None:
        params = self._params(row)
        cols = list(params)
        query = sql.SQL(
            "INSERT INTO {tbl} ({cols}, sync_timestamp, updated_at) VALUES ({vals}, NOW(), NOW())"
        ).format(
            tbl=sql.Identifier(table),
            cols=sql.SQL(", ").join(map(sql.Identifier, cols)),
            vals=sql.SQL(", ").join(sql.Placeholder(c) for c in cols),
        )
        try:
            await self._run(lambda cur: cur.execute(query, params))
        except psycopg2.Error as e:
            raise RecordWriteError(str(e).strip(), table=table, key=str(row.get(key_column))) from e

    async def update_record(
        self, table: str, key_column: str, key: str, row: Mapping[str, Any]
    ) -> None:
        params = self._params({c: v for c, v in row.items() if c != key_column})
        assignments = [
            sql.SQL("{} = {}").format(sql.Identifier(c), sql.Placeholder(c)) for c in params
        ]
        assignments += [sql.SQL("sync_timestamp = NOW()"), sql.SQL("updated_at = NOW()")]
        query = sql.SQL("UPDATE {tbl} SET {sets} WHERE {col}::text = {key}").format(
            tbl=sql.Identifier(table),
            sets=sql.SQL(", ").join(assignments),
            col=sql.Identifier(key_column),
            key=sql.Placeholder("__key"),
        )
        params["__key"] = key
        try:
            await self._run(lambda cur: cur.execute(query, params))
        except psycopg2.Error as e:
            raise RecordWriteError(str(e).strip(), table=table, key=key) from e

    # --- sync log ---------------------------------------------------------
    async def create_sync_run(self, run: SyncRun) -> None:
        query = sql.SQL(
            "INSERT INTO {tbl} (id, worksheet_name, sync_started_at, status, file_url) "
            "VALUES (%s, %s, %s, %s, %s)"
        ).format(tbl=sql.Identifier(SYNC_LOG_TABLE))
        params = (run.id, run.worksheet_name, run.started_at, run.status.value, run.file_url)
        try:
            await self._run(lambda cur: cur.execute(query, params))
        except psycopg2.Error as e:
            raise SyncLogError(f"failed to create sync run {run.id}: {e}") from e

    async def finish_sync_run(self, run: SyncRun) -> None:
        query = sql.SQL(
            "UPDATE {tbl} SET sync_completed_at = %s, status = %s, records_processed = %s, "
            "records_inserted = %s, records_updated = %s, records_failed = %s, "
            "duration_ms = %s, error_message = %s WHERE id = %s"
        ).format(tbl=sql.Identifier(SYNC_LOG_TABLE))
        params = (
            run.completed_at, run.status.value, run.records_processed, run.records_inserted,
            run.records_updated, run.records_failed, run.duration_ms, run.error_message, run.id,
        )
        try:
            await self._run(lambda cur: cur.execute(query, params))
        except psycopg2.Error as e:
            raise SyncLogError(f"failed to finish sync run {run.id}: {e}") from e

    async def recent_sync_runs(self, limit: int = 10) -> list[SyncRun]:
        query = sql.SQL("SELECT {cols} FROM {tbl} ORDER BY sync_started_at DESC LIMIT %s").format(
            cols=sql.SQL(", ").join(map(sql.Identifier, _RUN_COLUMNS)),
            tbl=sql.Identifier(SYNC_LOG_TABLE),
        )

        def work(cur: Any) -> list[dict[str, Any]]:
            cur.execute(query, (limit,))
            return cur.fetchall()

        try:
            rows = await self._run(work)
        except psycopg2.Error as e:
            raise SyncLogError(f"failed to read {SYNC_LOG_TABLE}: {e}") from e
        return [
            SyncRun(
                id=str(r["id"]),
                worksheet_name=r["worksheet_name"],
                started_at=r["sync_started_at"],
                completed_at=r["sync_completed_at"],
                status=SyncStatus(r["status"]),
                records_processed=r["records_processed"] or 0,
                records_inserted=r["records_inserted"] or 0,
                records_updated=r["records_updated"] or 0,
                records_failed=r["records_failed"] or 0,
                duration_ms=r["duration_ms"],
                error_message=r["error_message"],
                file_url=r["file_url"] or "",
            )
            for r in rows
        ]

    # --- maintenance ------------------------------------------------------
    async def table_stats(self, table: str) -> TableStats:
        query = sql.SQL("SELECT COUNT(*) AS total, MAX(sync_timestamp) AS last_sync FROM {tbl}").format(
            tbl=sql.Identifier(table)
        )

        def work(cur: Any) -> dict[str, Any]:
            cur.execute(query)
            return cur.fetchone()

        try:
            row = await self._run(work)
        except psycopg2.Error as e:
            raise StoreError(f"failed to read stats for {table}: {e}") from e
        return TableStats(table=table, row_count=int(row["total"]), last_sync=row["last_sync"])

    async def reset_table(self, table: str) -> int:
        query = sql.SQL("DELETE FROM {tbl}").format(tbl=sql.Identifier(table))

        def work(cur: Any) -> int:
            cur.execute(query)
            return cur.rowcount

        try:
            removed = await self._run(work)
        except psycopg2.Error as e:
            raise StoreError(f"failed to reset {table}: {e}") from e
        logger.info(f"reset {table}: {removed} rows deleted")
        return removed

    def close(self) -> None:
        self._pool.closeall()
