from __future__ import annotations

import logging
import re
from typing import Any

from ..db.store import DestinationStore
from ..excel.cells import extract_row, normalize_headers
from ..excel.workbook import Worksheet
from ..models.sync_run import UpsertResult
from ..models.worksheet_schema import WorksheetSchema
from ..services.reconcile import reconcile

"""Worksheet connectors.

A connector binds one ``WorksheetSchema`` to a destination store and exposes
the two operations the orchestrator drives:

- ``extract_data(worksheet)``: header row -> Header Map, then one record per
  data row that carries the worksheet's key
- ``upsert_data(records, project_id)``: reconcile the records against the
  destination table according to the schema's policy

``QAConnector`` is the append-only photo verification variant: it only
accepts rows whose drop number looks like one and tags every record with the
sheet it came from.
"""

__all__ = [
    "WorksheetConnector",
    "QAConnector",
]

logger = logging.getLogger(__name__)

Record = dict[str, Any]


class WorksheetConnector:
    def __init__(
        self,
        schema: WorksheetSchema,
        store: DestinationStore,
        *,
        insert_chunk: int | None = None,
        update_chunk: int | None = None,
        progress_interval: int = 500,
    ) -> None:
        self.schema = schema
        self.store = store
        self.insert_chunk = insert_chunk or schema.insert_chunk
        self.update_chunk = update_chunk or schema.update_chunk
        self.progress_interval = progress_interval

    @property
    def worksheet_name(self) -> str:
        return self.schema.name

    @property
    def table(self) -> str:
        return self.schema.table

    def accept(self, record: Record) -> bool:
        """Per-row filter applied after extraction."""
        return True

    def decorate(self, record: Record) -> Record:
        return record

    def extract_data(self, worksheet: Worksheet) -> list[Record]:
        header_row = self.schema.header_row
        headers = normalize_headers(worksheet.row_cells(header_row))
        logger.info(f"extracting {self.worksheet_name} data with {len(headers)} columns")

        records: list[Record] = []
        for _, cells in worksheet.iter_rows(min_row=header_row + 1):
            record = extract_row(cells, headers, self.schema.key_fields)
            if record is None or not self.accept(record):
                continue
            records.append(self.decorate(record))

        logger.info(f"extracted {len(records)} records from {self.worksheet_name}")
        return records

    async def upsert_data(self, records: list[Record], project_id: str | None = None) -> UpsertResult:
        mode = "append-only" if self.schema.append_only else "upsert"
        logger.info(f"{mode} {len(records)} records to {self.table}")
        return await reconcile(
            records,
            store=self.store,
            table=self.table,
            key_column=self.schema.key_column,
            key_of=self.schema.record_key,
            project=self.schema.project,
            append_only=self.schema.append_only,
            insert_chunk=self.insert_chunk,
            update_chunk=self.update_chunk,
            project_id=project_id,
            progress_interval=self.progress_interval,
        )


class QAConnector(WorksheetConnector):
    # "DR1234567" style drop numbers, or purely numeric ones
    DROP_NUMBER = re.compile(r"^(DR|\d+$)")

    def accept(self, record: Record) -> bool:
        key = self.schema.record_key(record)
        return key is not None and bool(self.DROP_NUMBER.match(key))

    def decorate(self, record: Record) -> Record:
        record["_source"] = self.schema.source_tag
        return record
