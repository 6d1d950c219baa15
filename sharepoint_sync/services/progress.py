from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Worksheet progress bar (tqdm, TTY only).

One bar per sync run, advanced once per worksheet with running ok/failed
counts as postfix. Without a TTY (cron, CI) no bar is created; the reconciler
logs record-level progress instead.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class ProgressTracker:
    def __init__(self, total_worksheets: int, *, description: str = "Syncing worksheets") -> None:
        self.total_worksheets = total_worksheets
        self.description = description
        self.current_worksheet: str | None = None
        self.succeeded = 0
        self.failed = 0

        self.pbar: TqdmType[Any] | None = None
        if is_tty_enabled():
            self.pbar = tqdm(
                total=total_worksheets,
                desc=description,
                unit="sheet",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )

    @property
    def enabled(self) -> bool:
        return self.pbar is not None

    def start_worksheet(self, name: str) -> None:
        self.current_worksheet = name
        if self.pbar is not None:
            self.pbar.set_description(f"{self.description} ({name})")

    def finish_worksheet(self, success: bool = True) -> None:
        if success:
            self.succeeded += 1
        else:
            self.failed += 1
        self.current_worksheet = None
        if self.pbar is not None:
            self.pbar.update(1)
            self.pbar.set_description(self.description)
            self.pbar.set_postfix(ok=self.succeeded, failed=self.failed)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
