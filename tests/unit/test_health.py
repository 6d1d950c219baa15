from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

from sharepoint_sync.connectors.registry import SCHEMAS, get_schema
from sharepoint_sync.db.memory import MemoryStore
from sharepoint_sync.db.store import TableStats
from sharepoint_sync.errors import StoreError
from sharepoint_sync.services.health import HealthStatus, check_health

NOW = datetime(2025, 3, 2, 12, 0, tzinfo=UTC)


class StatsStore(MemoryStore):
    def __init__(self, stats: dict[str, TableStats | Exception]) -> None:
        super().__init__()
        self.stats = stats

    async def table_stats(self, table: str) -> TableStats:
        value = self.stats.get(table, TableStats(table, 0, None))
        if isinstance(value, Exception):
            raise value
        return value


def _check(store, names):
    return asyncio.run(check_health(store, [get_schema(n) for n in names], now=NOW))


def test_statuses() -> None:
    store = StatsStore({
        "sharepoint_hld_pole": TableStats("sharepoint_hld_pole", 4100, NOW - timedelta(hours=2)),
        "sharepoint_hld_home": TableStats("sharepoint_hld_home", 23000, NOW - timedelta(hours=30)),
        "sharepoint_nokia_exp": TableStats("sharepoint_nokia_exp", 10, NOW - timedelta(hours=1)),
        "sharepoint_1map_ins": StoreError("relation does not exist"),
    })
    report = _check(store, ["HLD_Pole", "HLD_Home", "Nokia_Exp", "Tracker_Pole", "1Map_Ins"])
    by_table = {h.table: h for h in report}

    assert by_table["sharepoint_hld_pole"].status is HealthStatus.HEALTHY
    assert by_table["sharepoint_hld_pole"].hours_since_sync == 2
    assert by_table["sharepoint_hld_home"].status is HealthStatus.STALE
    assert by_table["sharepoint_nokia_exp"].status is HealthStatus.LOW_COUNT
    assert by_table["sharepoint_tracker_pole"].status is HealthStatus.NEVER_SYNCED
    assert by_table["sharepoint_tracker_pole"].hours_since_sync is None
    assert by_table["sharepoint_1map_ins"].status is HealthStatus.ERROR
    assert "does not exist" in by_table["sharepoint_1map_ins"].error
    assert [h.healthy for h in report].count(True) == 1


def test_shared_qa_table_reported_once() -> None:
    report = asyncio.run(check_health(StatsStore({}), SCHEMAS.values(), now=NOW))
    tables = [h.table for h in report]
    assert len(tables) == len(set(tables))
    qa = next(h for h in report if h.table == "sharepoint_lawley_qa")
    assert qa.worksheets == ("Lawley Activations", "Lawley Historical")


def test_naive_last_sync_treated_as_utc() -> None:
    naive = (NOW - timedelta(hours=3)).replace(tzinfo=None)
    store = StatsStore({"sharepoint_hld_pole": TableStats("sharepoint_hld_pole", 4000, naive)})
    (health,) = _check(store, ["HLD_Pole"])
    assert health.hours_since_sync == 3
    assert health.healthy


def test_memory_store_stats_after_sync(memory_store: MemoryStore) -> None:
    asyncio.run(memory_store.insert_record("sharepoint_tracker_pole", "label_1", {"label_1": "P1", "raw_data": {}}))
    (health,) = asyncio.run(
        check_health(memory_store, [get_schema("Tracker_Pole")], now=datetime(2025, 3, 1, 13, 0, tzinfo=UTC))
    )
    assert health.row_count == 1
    assert health.hours_since_sync == 1
    assert health.status is HealthStatus.LOW_COUNT
