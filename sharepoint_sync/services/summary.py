from __future__ import annotations

from ..models.sync_run import FullSyncResult

"""SUMMARY line rendering.

Format (the ``SUMMARY`` label is added by the log formatter):
SUMMARY worksheets={ok}/{total} failed={failed} processed={n} inserted={n}
updated={n} failed_records={n} elapsed_sec={elapsed}
"""


def _format_number(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # avoid scientific notation for very small numbers
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_summary_body(result: FullSyncResult) -> str:
    """Render the SUMMARY line body for a sync run, without the label.

    Examples:
        >>> from datetime import datetime, timezone
        >>> start = datetime(2025, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
        >>> end = datetime(2025, 1, 1, 10, 0, 2, tzinfo=timezone.utc)
        >>> render_summary_body(FullSyncResult(outcomes=[], start_time=start, end_time=end))
        'worksheets=0/0 failed=0 processed=0 inserted=0 updated=0 failed_records=0 elapsed_sec=2'
    """
    return (
        f"worksheets={result.succeeded_count}/{len(result.outcomes)} "
        f"failed={result.failed_count} "
        f"processed={result.total_processed} "
        f"inserted={result.total_inserted} "
        f"updated={result.total_updated} "
        f"failed_records={result.total_failed_records} "
        f"elapsed_sec={_format_number(result.elapsed_seconds)}"
    )
