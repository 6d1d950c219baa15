from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, date, datetime
from typing import Any

import pandas as pd
from openpyxl.cell.rich_text import CellRichText

from ..models.worksheet_schema import is_blank
from .workbook import FormulaValue, HyperlinkValue, RichTextValue

"""Cell, header and row extraction primitives.

- ``normalize_cell_value``: raw cell -> canonical scalar (str, number, bool,
  ISO-8601 UTC string or None). Never raises. Unknown shapes pass through.
- ``normalize_header`` / ``normalize_headers``: header text -> snake_case key;
  blank or punctuation-only headers produce no entry.
- ``extract_row``: populated cells + header map -> record, or None for rows
  without meaningful data or without the required key.
"""

__all__ = [
    "normalize_cell_value",
    "normalize_header",
    "normalize_headers",
    "extract_row",
]

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def _to_iso(value: date) -> str | None:
    try:
        if not isinstance(value, datetime):
            value = datetime(value.year, value.month, value.day)
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        else:
            value = value.astimezone(UTC)
        return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    except (OverflowError, ValueError):
        return None


def normalize_cell_value(value: Any) -> Any:
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, FormulaValue):
        return normalize_cell_value(value.result)
    if isinstance(value, (datetime, date)):
        return _to_iso(value)
    if isinstance(value, RichTextValue):
        return "".join(value.runs)
    if isinstance(value, CellRichText):
        return "".join(run if isinstance(run, str) else run.text for run in value)
    if isinstance(value, HyperlinkValue):
        return value.text
    # plain mappings, e.g. cells decoded from a JSON export
    if isinstance(value, Mapping):
        if "result" in value:
            return normalize_cell_value(value["result"])
        if isinstance(value.get("richText"), list):
            return "".join(
                str(run.get("text", "")) if isinstance(run, Mapping) else str(run)
                for run in value["richText"]
            )
        if "text" in value:
            return value["text"]
    return value


def normalize_header(value: Any) -> str:
    """'Label 1' -> 'label_1', '  Drop #  ' -> 'drop', '---' -> ''."""
    scalar = normalize_cell_value(value)
    if scalar is None:
        return ""
    return _NON_ALNUM.sub("_", str(scalar).strip().lower()).strip("_")


def normalize_headers(cells: Iterable[tuple[int, Any]]) -> dict[int, str]:
    headers: dict[int, str] = {}
    for col, raw in cells:
        key = normalize_header(raw)
        if key:
            headers[col] = key
    return headers


def extract_row(
    cells: Iterable[tuple[int, Any]],
    headers: Mapping[int, str],
    required_key: str | Sequence[str] | None = None,
) -> dict[str, Any] | None:
    """Build a record from one row's populated cells.

    Returns None when no mapped cell holds a non-blank value, or when
    ``required_key`` (one field name, or several of which any may match) is
    blank in the result.
    """
    record: dict[str, Any] = {}
    has_data = False
    for col, raw in cells:
        header = headers.get(col)
        if not header:
            continue
        value = normalize_cell_value(raw)
        record[header] = value
        if not is_blank(value):
            has_data = True

    if not has_data:
        return None
    if required_key:
        keys = (required_key,) if isinstance(required_key, str) else tuple(required_key)
        if all(is_blank(record.get(k)) for k in keys):
            return None
    return record
