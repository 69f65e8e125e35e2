"""Domain-level contracts shared by the importer, the service, and storage backends."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from .exercise import Exercise, ExerciseFields, ExerciseLookup


class ExerciseStore(Protocol):
    """The four persistence operations the importer relies on."""

    def find_one(self, lookup: ExerciseLookup) -> Exercise | None: ...

    def create(self, record: ExerciseFields) -> Exercise: ...

    def update(self, exercise_id: str, fields: dict[str, Any]) -> Exercise: ...

    def count(self) -> int: ...


class RowOutcome(str, Enum):
    created = "created"
    updated = "updated"
    skipped = "skipped"
    failed = "failed"


@dataclass(slots=True)
class RowResult:
    """Outcome of processing a single import row."""

    row_number: int
    outcome: RowOutcome
    error: str | None = None


@dataclass(slots=True)
class ImportSummary:
    """Aggregate counters reported back to the operator after an import run."""

    total: int = 0
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    duration: str = "0.00s"

    def record(self, result: RowResult) -> None:
        """Fold one row result into the running counters."""
        if result.outcome is RowOutcome.created:
            self.created += 1
        elif result.outcome is RowOutcome.updated:
            self.updated += 1
        else:
            self.skipped += 1
            if result.error is not None:
                self.errors.append(f"Row {result.row_number}: {result.error}")

    @property
    def message(self) -> str:
        return f"Import completed: {self.created} created, {self.updated} updated"
