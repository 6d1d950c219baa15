from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the JSON Lines error log.

One line per per-record write failure or per-worksheet failure. Worksheet level
failures carry ``record_key=None`` because no single row is to blame.

The record adheres to ``sharepoint_sync/logging/error_log_schema.json``.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        worksheet: Worksheet name being synced
        table: Destination table
        record_key: Business key of the failing record, None for worksheet-level errors
        error_type: Error classification in UPPER_SNAKE_CASE format
        message: Database or source error message
    """
    timestamp: str
    worksheet: str
    table: str
    record_key: str | None
    error_type: str
    message: str

    @staticmethod
    def create(
        worksheet: str, table: str, record_key: str | None, error_type: str, message: str
    ) -> ErrorRecord:
        """Create a new ErrorRecord stamped with the current UTC time."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            worksheet=worksheet,
            table=table,
            record_key=record_key,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        # no extra keys: dataclass -> dict -> json.dumps
        return json.dumps(asdict(self), ensure_ascii=False)
