"""Shared fixtures: an in-memory exercise store mimicking the Postgres repository."""

from __future__ import annotations

import dataclasses
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

from kalos.domain.exercise import Exercise, ExerciseFields, ExerciseLookup, ExerciseQuery

FIXTURES = Path(__file__).parent / "fixtures"


class DuplicateKeyError(Exception):
    pass


class FakeExerciseStore:
    """In-memory repository enforcing the same unique indexes as the real table."""

    def __init__(self) -> None:
        self.records: dict[str, Exercise] = {}
        self.calls: list[str] = []
        self.fail_on_create: set[str] = set()
        self.unavailable = False

    def find_one(self, lookup: ExerciseLookup) -> Exercise | None:
        self.calls.append("find_one")
        by_unique_id = [r for r in self.records.values() if r.unique_id == lookup.unique_id]
        if by_unique_id:
            return by_unique_id[0]
        return next((r for r in self.records.values() if lookup.matches(r)), None)

    def create(self, record: ExerciseFields) -> Exercise:
        self.calls.append("create")
        if record.name in self.fail_on_create:
            raise RuntimeError(f"write rejected for {record.name}")
        now = datetime.now(timezone.utc)
        exercise = Exercise(
            **record.as_dict(),
            exercise_id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
        )
        self._check_unique(exercise)
        self.records[exercise.exercise_id] = exercise
        return exercise

    def update(self, exercise_id: str, fields: dict[str, Any]) -> Exercise:
        self.calls.append("update")
        current = self.records[exercise_id]
        updated = dataclasses.replace(current, **fields, updated_at=datetime.now(timezone.utc))
        self._check_unique(updated)
        self.records[exercise_id] = updated
        return updated

    def count(self) -> int:
        self.calls.append("count")
        if self.unavailable:
            raise ConnectionError("connection refused")
        return len(self.records)

    def get(self, exercise_id: str) -> Exercise | None:
        return self.records.get(exercise_id)

    def list_exercises(self, query: ExerciseQuery) -> tuple[list[Exercise], int]:
        matches = [r for r in self.records.values() if self._matches(r, query)]
        matches.sort(key=lambda r: (r.category, r.progression_level, r.exercise_id))
        matches.sort(key=lambda r: getattr(r, query.sort_by), reverse=query.sort_order == "desc")
        return matches[query.offset : query.offset + query.limit], len(matches)

    def next_in_progression(self, exercise: Exercise, *, limit: int) -> list[Exercise]:
        following = [
            r
            for r in self.records.values()
            if r.category == exercise.category and r.progression_level > exercise.progression_level
        ]
        following.sort(key=lambda r: (r.progression_level, r.name))
        return following[:limit]

    def category_progression(self, category: str, subcategory: str | None = None) -> list[Exercise]:
        results = [r for r in self.records.values() if r.category.lower() == category.lower()]
        if subcategory:
            results = [r for r in results if r.subcategory.lower() == subcategory.lower()]
        results.sort(key=lambda r: (r.progression_level, r.name))
        return results

    def by_unique_id(self, unique_id: str) -> Exercise:
        return next(r for r in self.records.values() if r.unique_id == unique_id)

    def _check_unique(self, candidate: Exercise) -> None:
        for other in self.records.values():
            if other.exercise_id == candidate.exercise_id:
                continue
            if other.unique_id == candidate.unique_id:
                raise DuplicateKeyError('duplicate key value violates unique constraint "exercises_unique_id_idx"')
            if (other.name, other.category) == (candidate.name, candidate.category):
                raise DuplicateKeyError(
                    'duplicate key value violates unique constraint "exercises_name_category_idx"'
                )

    @staticmethod
    def _matches(record: Exercise, query: ExerciseQuery) -> bool:
        if query.category and record.category != query.category:
            return False
        if query.subcategory and record.subcategory != query.subcategory:
            return False
        if query.difficulty and record.difficulty != query.difficulty:
            return False
        if query.level is not None:
            if record.progression_level != query.level:
                return False
        else:
            if query.min_level is not None and record.progression_level < query.min_level:
                return False
            if query.max_level is not None and record.progression_level > query.max_level:
                return False
        if query.text:
            needle = query.text.lower()
            haystack = [
                record.name,
                record.description,
                record.primary_muscle_group,
                *record.secondary_muscle_groups,
                *record.form_cues,
            ]
            if not any(needle in value.lower() for value in haystack):
                return False
        return True


@pytest.fixture
def store() -> FakeExerciseStore:
    return FakeExerciseStore()


@pytest.fixture
def sample_csv() -> bytes:
    return (FIXTURES / "exercises.csv").read_bytes()
