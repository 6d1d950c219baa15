from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from unittest.mock import MagicMock

import psycopg2
import pytest
from psycopg2.extras import Json

from sharepoint_sync.config.loader import DatabaseConfig
from sharepoint_sync.db.postgres import PostgresStore, resolve_dsn
from sharepoint_sync.errors import RecordWriteError, StoreError, SyncLogError
from sharepoint_sync.models.sync_run import SyncRun, SyncStatus


@pytest.fixture()
def clean_pg_env(monkeypatch):
    for name in ("DATABASE_URL", "NEON_DATABASE_URL", "PGDSN", "PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def _store():
    pool = MagicMock()
    conn = pool.getconn.return_value
    cur = conn.cursor.return_value.__enter__.return_value
    return PostgresStore(pool, max_in_flight=2), pool, conn, cur


class TestResolveDsn:
    def test_database_url_wins(self, clean_pg_env) -> None:
        clean_pg_env.setenv("NEON_DATABASE_URL", "postgres://neon")
        clean_pg_env.setenv("DATABASE_URL", "postgres://primary")
        assert resolve_dsn(DatabaseConfig(dsn="postgres://yaml")) == "postgres://primary"

    def test_yaml_dsn_before_pg_vars(self, clean_pg_env) -> None:
        clean_pg_env.setenv("PGHOST", "envhost")
        assert resolve_dsn(DatabaseConfig(dsn="postgres://yaml")) == "postgres://yaml"

    def test_pg_vars_with_config_fallback(self, clean_pg_env) -> None:
        clean_pg_env.setenv("PGHOST", "envhost")
        dsn = resolve_dsn(DatabaseConfig(host="cfghost", port=6543, user="app", password="pw", database="db"))
        assert dsn == "host=envhost port=6543 user=app dbname=db password=pw"

    def test_defaults(self, clean_pg_env) -> None:
        assert resolve_dsn(DatabaseConfig()) == "host=localhost port=5432 user=postgres dbname=postgres"


def test_connect_failure_is_store_error(clean_pg_env, monkeypatch) -> None:
    def boom(*args, **kwargs):
        raise psycopg2.OperationalError("could not connect to server")

    monkeypatch.setattr("sharepoint_sync.db.postgres.ThreadedConnectionPool", boom)
    with pytest.raises(StoreError, match="database connection failed"):
        PostgresStore.connect(DatabaseConfig())


def test_connect_sets_statement_timeout(clean_pg_env, monkeypatch) -> None:
    pool_cls = MagicMock()
    monkeypatch.setattr("sharepoint_sync.db.postgres.ThreadedConnectionPool", pool_cls)
    PostgresStore.connect(DatabaseConfig(dsn="postgres://x", pool_size=4, statement_timeout_ms=1500))
    pool_cls.assert_called_once_with(1, 4, "postgres://x", options="-c statement_timeout=1500")


def test_existing_keys_single_query() -> None:
    store, pool, conn, cur = _store()
    cur.fetchall.return_value = [{"k": "P1"}]
    found = asyncio.run(store.existing_keys("sharepoint_hld_pole", "label_1", ["P1", "P2"]))
    assert found == {"P1"}
    assert cur.execute.call_count == 1
    assert cur.execute.call_args.args[1] == (["P1", "P2"],)
    pool.putconn.assert_called_once_with(conn)


def test_existing_keys_empty_skips_query() -> None:
    store, pool, _, _ = _store()
    assert asyncio.run(store.existing_keys("t", "k", [])) == set()
    pool.getconn.assert_not_called()


def test_insert_wraps_payload_and_errors() -> None:
    store, pool, _, cur = _store()
    asyncio.run(store.insert_record("t", "label_1", {"label_1": "P1", "raw_data": {"label_1": "P1"}}))
    params = cur.execute.call_args.args[1]
    assert params["label_1"] == "P1"
    assert isinstance(params["raw_data"], Json)

    cur.execute.side_effect = psycopg2.IntegrityError("duplicate key value ")
    with pytest.raises(RecordWriteError) as e:
        asyncio.run(store.insert_record("t", "label_1", {"label_1": "P2"}))
    assert e.value.key == "P2"
    assert e.value.table == "t"
    assert str(e.value) == "duplicate key value"
    assert pool.putconn.call_count == 2


def test_update_binds_key_separately() -> None:
    store, _, _, cur = _store()
    asyncio.run(store.update_record("t", "label", "H1", {"label": "H1", "status": "Done"}))
    params = cur.execute.call_args.args[1]
    assert params == {"status": "Done", "__key": "H1"}


def test_sync_log_errors_are_sync_log_errors() -> None:
    store, _, _, cur = _store()
    cur.execute.side_effect = psycopg2.ProgrammingError("relation does not exist")
    run = SyncRun.start("HLD_Pole")
    with pytest.raises(SyncLogError):
        asyncio.run(store.create_sync_run(run))
    with pytest.raises(SyncLogError):
        asyncio.run(store.finish_sync_run(run.failed("x", 1)))


def test_recent_sync_runs_maps_rows() -> None:
    store, _, _, cur = _store()
    started = datetime(2025, 3, 1, 8, 0, tzinfo=UTC)
    cur.fetchall.return_value = [{
        "id": "abc", "worksheet_name": "HLD_Pole", "sync_started_at": started,
        "sync_completed_at": started, "status": "success", "records_processed": 5,
        "records_inserted": 5, "records_updated": None, "records_failed": 0,
        "duration_ms": 120, "error_message": None, "file_url": None,
    }]
    (run,) = asyncio.run(store.recent_sync_runs(5))
    assert run.status is SyncStatus.SUCCESS
    assert run.records_updated == 0
    assert run.file_url == ""
    assert cur.execute.call_args.args[1] == (5,)


def test_table_stats_and_reset() -> None:
    store, _, _, cur = _store()
    cur.fetchone.return_value = {"total": 3, "last_sync": None}
    stats = asyncio.run(store.table_stats("t"))
    assert (stats.row_count, stats.last_sync) == (3, None)

    cur.rowcount = 7
    assert asyncio.run(store.reset_table("t")) == 7
