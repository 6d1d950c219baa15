from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from ..models.sync_run import SyncRun

"""Destination store contract.

Two implementations exist:
- ``db.postgres.PostgresStore``: psycopg2 connection pool (live mode)
- ``db.memory.MemoryStore``: dict backed (dry run / tests)

Every destination table has the promoted typed columns of its worksheet plus
``project_id``, ``raw_data`` (JSONB, the full record verbatim),
``sync_timestamp`` and ``updated_at``. The store stamps the timestamps.
"""

__all__ = [
    "DestinationStore",
    "TableStats",
    "SYNC_LOG_TABLE",
    "encode_payload",
    "decode_payload",
]

SYNC_LOG_TABLE = "sharepoint_sync_log"


def encode_payload(record: Mapping[str, Any]) -> str:
    """Serialize a record for the ``raw_data`` column."""
    return json.dumps(record, ensure_ascii=False, default=str)


def decode_payload(payload: str | Mapping[str, Any] | None) -> dict[str, Any] | None:
    if payload is None:
        return None
    if isinstance(payload, Mapping):  # psycopg2 already decodes jsonb
        return dict(payload)
    return json.loads(payload)


@dataclass(frozen=True)
class TableStats:
    table: str
    row_count: int
    last_sync: datetime | None


class DestinationStore(Protocol):
    async def existing_keys(self, table: str, key_column: str, keys: Iterable[str]) -> set[str]:
        """Subset of ``keys`` already present in ``table`` (one query)."""
        ...

    async def insert_record(self, table: str, key_column: str, row: Mapping[str, Any]) -> None:
        ...

    async def update_record(
        self, table: str, key_column: str, key: str, row: Mapping[str, Any]
    ) -> None:
        ...

    async def create_sync_run(self, run: SyncRun) -> None:
        ...

    async def finish_sync_run(self, run: SyncRun) -> None:
        ...

    async def recent_sync_runs(self, limit: int = 10) -> list[SyncRun]:
        ...

    async def table_stats(self, table: str) -> TableStats:
        ...

    async def reset_table(self, table: str) -> int:
        """Delete every row of ``table``; returns the number deleted."""
        ...

    def close(self) -> None:
        ...
