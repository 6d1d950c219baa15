from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

"""Per-worksheet schema description.

Every known worksheet is one ``WorksheetSchema`` instance (see
``connectors/registry.py``). The schema carries everything that used to differ
between hand-written connectors: where the header row is, which field is the
record key, which fields are promoted to typed columns, the reconciliation
policy and the chunk sizes.
"""

__all__ = [
    "UpsertPolicy",
    "WorksheetSchema",
    "is_blank",
]

Record = dict[str, Any]


class UpsertPolicy(Enum):
    """MUTABLE: insert new keys, update existing ones.
    APPEND_ONLY: insert new keys, leave existing rows untouched.
    """
    MUTABLE = "mutable"
    APPEND_ONLY = "append_only"


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


@dataclass(frozen=True)
class WorksheetSchema:
    """Static description of one worksheet -> table mapping.

    ``key_fields`` are record fields tried in order; the first non-blank one is
    the Record Key and is stored in ``key_column``.

    ``columns`` maps each promoted destination column to the record fields that
    may feed it (first non-blank wins). Everything else survives in ``raw_data``.
    """
    name: str
    table: str
    key_column: str
    key_fields: tuple[str, ...]
    columns: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    header_row: int = 1
    policy: UpsertPolicy = UpsertPolicy.MUTABLE
    insert_chunk: int = 100
    update_chunk: int = 50
    file_key: str = "lawley"
    expected_rows: int = 0
    source_tag: str | None = None

    @property
    def append_only(self) -> bool:
        return self.policy is UpsertPolicy.APPEND_ONLY

    def record_key(self, record: Mapping[str, Any]) -> str | None:
        for name in self.key_fields:
            value = record.get(name)
            if not is_blank(value):
                return str(value).strip()
        return None

    def project(self, record: Mapping[str, Any]) -> dict[str, Any]:
        """Typed column values for ``record``. Blank values become None."""
        typed: dict[str, Any] = {}
        for column, sources in self.columns.items():
            typed[column] = None
            for source in sources:
                value = record.get(source)
                if not is_blank(value):
                    typed[column] = value
                    break
        return typed
