from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm

"""Progress display with tqdm (TTY only).

One bar per sheet, advanced once per logical record. In non-TTY environments
(CI, cron, redirected output) the bar is disabled so the log stays free of
ANSI control sequences.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class ProgressTracker:
    """Record-level progress for one sheet."""

    def __init__(self, total: int, *, description: str = "Importing", unit: str = "record") -> None:
        self.total = total
        self.description = description
        self.done = 0
        self.enabled = is_tty_enabled()
        self.pbar: tqdm[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total,
                desc=description,
                unit=unit,
                leave=False,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def advance(self, **postfix: Any) -> None:
        self.done += 1
        if self.pbar is not None:
            self.pbar.update(1)
            if postfix:
                self.pbar.set_postfix(**postfix)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
