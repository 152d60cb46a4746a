from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

"""Run statistics for one import run.

Counters are process-local, scoped to one run and never persisted. Only the
single import session mutates them (records are processed strictly one at a
time), so no locking is involved.
"""

__all__ = [
    "Outcome",
    "SheetStat",
    "RunStatistics",
]


class Outcome(Enum):
    """Classification of one logical record."""
    CREATED = "created"
    DUPLICATE = "duplicate"  # business key already in the store
    SKIPPED = "skipped"  # lacks identifying fields (not an error)
    ERROR = "error"


@dataclass
class SheetStat:
    """Per-sheet breakdown (user-wise table for offer funnels)."""
    sheet: str
    zone: str | None = None
    rows: int = 0  # data rows below the header
    records: int = 0  # logical records built by the grouper
    created: int = 0
    duplicate: int = 0
    skipped: int = 0
    errors: int = 0
    expected: int | None = None  # "Total Offers" value in the title area
    error: str | None = None  # sheet-level failure reason

    def record(self, outcome: Outcome) -> None:
        if outcome is Outcome.CREATED:
            self.created += 1
        elif outcome is Outcome.DUPLICATE:
            self.duplicate += 1
        elif outcome is Outcome.SKIPPED:
            self.skipped += 1
        else:
            self.errors += 1


@dataclass
class RunStatistics:
    kind: str  # offers / catalog
    total_rows: int = 0
    created: int = 0
    duplicate: int = 0
    skipped: int = 0
    errors: int = 0
    images_attached: int = 0
    skipped_sheets: int = 0
    dry_run: bool = False
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None
    sheets: list[SheetStat] = field(default_factory=list)

    def record(self, outcome: Outcome) -> None:
        if outcome is Outcome.CREATED:
            self.created += 1
        elif outcome is Outcome.DUPLICATE:
            self.duplicate += 1
        elif outcome is Outcome.SKIPPED:
            self.skipped += 1
        else:
            self.errors += 1

    def finish(self) -> RunStatistics:
        self.finished_at = datetime.now(UTC)
        return self

    @property
    def elapsed_seconds(self) -> float:
        end = self.finished_at or datetime.now(UTC)
        return (end - self.started_at).total_seconds()

    @property
    def outcomes(self) -> int:
        """Records that reached a classification."""
        return self.created + self.duplicate + self.skipped + self.errors
