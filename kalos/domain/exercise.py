from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

SORTABLE_FIELDS = ("progression_level", "name", "category", "xp_value", "created_at")
MAX_PAGE_SIZE = 100


@dataclass(slots=True)
class ExerciseFields:
    """Normalised exercise attributes written to the catalog by the importer."""

    name: str
    category: str
    unique_id: str
    subcategory: str = ""
    progression_level: int = 1
    description: str = ""
    difficulty: str = "beginner"
    primary_muscle_group: str = ""
    secondary_muscle_groups: list[str] = field(default_factory=list)
    form_cues: list[str] = field(default_factory=list)
    xp_value: int = 10
    unlock_requirements: str = ""

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True, kw_only=True)
class Exercise(ExerciseFields):
    """Aggregate root for a stored catalog exercise."""

    exercise_id: str
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True, frozen=True)
class ExerciseLookup:
    """Match on ``unique_id`` OR the (``name``, ``category``) pair."""

    unique_id: str
    name: str
    category: str

    def matches(self, exercise: ExerciseFields) -> bool:
        if exercise.unique_id == self.unique_id:
            return True
        return exercise.name == self.name and exercise.category == self.category


@dataclass(slots=True)
class ExerciseQuery:
    """Filter, pagination, and ordering options for catalog listings."""

    category: str | None = None
    subcategory: str | None = None
    difficulty: str | None = None
    level: int | None = None
    min_level: int | None = None
    max_level: int | None = None
    text: str | None = None
    page: int = 1
    limit: int = 20
    sort_by: str = "progression_level"
    sort_order: str = "asc"

    def __post_init__(self) -> None:
        if self.sort_by not in SORTABLE_FIELDS:
            raise ValueError(f"cannot sort by {self.sort_by!r}")
        if self.sort_order not in ("asc", "desc"):
            raise ValueError(f"invalid sort order {self.sort_order!r}")
        self.page = max(1, self.page)
        self.limit = max(1, min(self.limit, MAX_PAGE_SIZE))
        if self.text is not None:
            self.text = self.text.strip() or None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(slots=True)
class ExercisePage:
    items: list[Exercise]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0
