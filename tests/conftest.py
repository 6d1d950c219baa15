# Shared pytest fixtures
from __future__ import annotations

import tempfile
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import openpyxl
import pytest

from sharepoint_sync.db.memory import MemoryStore
from sharepoint_sync.logging.init import reset_logging


@pytest.fixture(autouse=True)
def _fresh_logging():
    # handlers bind sys.stdout at setup time; capsys swaps it per test
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
        for name in (
            "DATABASE_URL", "NEON_DATABASE_URL", "PGDSN",
            "SHAREPOINT_LAWLEY_FILE_URL", "SHAREPOINT_MOHADIN_FILE_URL",
            "SHAREPOINT_TENANT_ID", "SHAREPOINT_CLIENT_ID", "SHAREPOINT_CLIENT_SECRET",
            "SHAREPOINT_PROJECT_ID",
        ):
            monkeypatch.delenv(name, raising=False)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """files:
  lawley: https://contoso.sharepoint.com/:x:/s/projects/Lawley.xlsx
  mohadin: https://contoso.sharepoint.com/:x:/s/projects/Mohadin.xlsx
worksheets:
  - HLD_Pole
  - Nokia_Exp
progress_interval: 100
chunk_overrides:
  HLD_Pole:
    insert: 10
sharepoint:
  tenant_id: tenant-from-yaml
  client_id: client-from-yaml
  timeout_seconds: 30
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "sync.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def make_workbook(temp_workdir: Path) -> Callable[..., Path]:
    """Write an .xlsx with one sheet per ``{name: rows}`` entry and return its path."""
    def _make(sheets: dict[str, Sequence[Sequence[Any]]], name: str = "workbook.xlsx") -> Path:
        wb = openpyxl.Workbook()
        wb.remove(wb.active)
        for title, rows in sheets.items():
            ws = wb.create_sheet(title)
            for row in rows:
                ws.append(list(row))
        path = temp_workdir / "data" / name
        wb.save(path)
        return path
    return _make


@pytest.fixture()
def memory_store() -> MemoryStore:
    return MemoryStore(clock=lambda: datetime(2025, 3, 1, 12, 0, tzinfo=UTC))
