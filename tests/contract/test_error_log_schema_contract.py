from __future__ import annotations

import json

import jsonschema
import pytest

from sharepoint_sync.logging.error_log import SCHEMA_PATH
from sharepoint_sync.models.error_record import ErrorRecord

"""Error log JSON schema contract."""


@pytest.fixture()
def schema() -> dict:
    return json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))


def test_error_record_matches_schema(schema) -> None:
    for key in ("P1", None):
        rec = ErrorRecord.create("HLD_Pole", "sharepoint_hld_pole", key, "RECORD_INSERT_FAILED", "boom")
        jsonschema.validate(json.loads(rec.to_json_line()), schema)


def test_schema_rejects_extra_key(schema) -> None:
    record = {
        "timestamp": "2025-09-26T10:12:33Z",
        "worksheet": "HLD_Pole",
        "table": "sharepoint_hld_pole",
        "record_key": "P1",
        "error_type": "RECORD_INSERT_FAILED",
        "message": "duplicate key",
        "extra": "not allowed",
    }
    with pytest.raises(jsonschema.exceptions.ValidationError):
        jsonschema.validate(record, schema)


def test_schema_rejects_lowercase_error_type(schema) -> None:
    record = {
        "timestamp": "2025-09-26T10:12:33.120Z",
        "worksheet": "HLD_Pole",
        "table": "sharepoint_hld_pole",
        "record_key": None,
        "error_type": "sync_failed",
        "message": "x",
    }
    with pytest.raises(jsonschema.exceptions.ValidationError):
        jsonschema.validate(record, schema)
