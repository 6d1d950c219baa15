from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Any

import openpyxl
from openpyxl.cell.rich_text import CellRichText

from ..errors import SourceError

"""In-memory workbook model.

The sync engine only needs a small surface from a parsed workbook: worksheet
lookup by name, row/column counts, and per-row iteration over populated cells as
``(column, raw_value)`` with 1-based columns. ``load_workbook`` builds that
surface from an .xlsx payload with openpyxl.

Raw cell values keep their shape (formula wrapper, rich text, hyperlink); the
Cell Value Normalizer in ``excel/cells.py`` reduces them to scalars later.
"""

__all__ = [
    "FormulaValue",
    "RichTextValue",
    "HyperlinkValue",
    "Worksheet",
    "Workbook",
    "load_workbook",
]

Cell = tuple[int, Any]


@dataclass(frozen=True)
class FormulaValue:
    """Formula cell carrying its cached result (which may itself be wrapped)."""
    formula: str | None
    result: Any


@dataclass(frozen=True)
class RichTextValue:
    runs: tuple[str, ...]


@dataclass(frozen=True)
class HyperlinkValue:
    text: str
    target: str | None = None


@dataclass
class Worksheet:
    name: str
    rows: Sequence[Sequence[Any]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def column_count(self) -> int:
        return max((len(r) for r in self.rows), default=0)

    def row_cells(self, row_number: int) -> list[Cell]:
        """Populated cells of a 1-based row (None is not populated)."""
        if row_number < 1 or row_number > len(self.rows):
            return []
        return [
            (col, value)
            for col, value in enumerate(self.rows[row_number - 1], start=1)
            if value is not None
        ]

    def iter_rows(self, min_row: int = 1) -> Iterator[tuple[int, list[Cell]]]:
        for row_number in range(max(min_row, 1), len(self.rows) + 1):
            cells = self.row_cells(row_number)
            if cells:
                yield row_number, cells


@dataclass
class Workbook:
    worksheets: list[Worksheet] = field(default_factory=list)
    source: str = ""

    @property
    def sheet_names(self) -> list[str]:
        return [ws.name for ws in self.worksheets]

    def find(self, name: str) -> Worksheet | None:
        for ws in self.worksheets:
            if ws.name == name:
                return ws
        return None


def _wrap_cell(cell: Any) -> Any:
    value = cell.value
    if value is None:
        return None
    if isinstance(value, CellRichText):
        return RichTextValue(tuple(run if isinstance(run, str) else run.text for run in value))
    link = getattr(cell, "hyperlink", None)
    if link is not None:
        return HyperlinkValue(text=str(value), target=link.target)
    return value


def load_workbook(payload: bytes | Path, source: str = "") -> Workbook:
    """Parse an .xlsx payload (bytes or file path) into a ``Workbook``.

    Formula cells are read with their cached results (``data_only``); rich
    text and hyperlinks are kept as wrappers.

    Raises:
        SourceError: the payload is not a readable workbook
    """
    try:
        handle = BytesIO(payload) if isinstance(payload, bytes) else str(payload)
        wb = openpyxl.load_workbook(handle, data_only=True, rich_text=True)
    except Exception as e:
        raise SourceError(f"Failed to parse Excel file: {e}", source="openpyxl") from e

    try:
        sheets = [
            Worksheet(name=ws.title, rows=[[_wrap_cell(c) for c in row] for row in ws.iter_rows()])
            for ws in wb.worksheets
        ]
    finally:
        wb.close()
    if not source and isinstance(payload, Path):
        source = str(payload)
    return Workbook(worksheets=sheets, source=source)
