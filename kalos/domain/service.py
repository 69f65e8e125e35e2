"""Exercise catalog service orchestrating imports and catalog queries."""

from __future__ import annotations

from dataclasses import dataclass

from .contracts import ImportSummary
from .errors import ExerciseNotFound
from .exercise import Exercise, ExercisePage, ExerciseQuery
from .importer import ExerciseImporter
from ..repository import ExerciseRepository

PROGRESSION_LOOKAHEAD = 3


@dataclass(slots=True)
class Progression:
    """An exercise together with the next steps in its category."""

    exercise: Exercise
    next_exercises: list[Exercise]


class ExerciseCatalogService:
    """Catalog workflows backed by the exercise repository."""

    def __init__(self, repository: ExerciseRepository) -> None:
        """Store the repository used for both imports and reads."""
        self._repository = repository

    def import_csv(self, content: bytes | str) -> ImportSummary:
        """Run the CSV importer against the backing repository."""
        return ExerciseImporter(self._repository).run(content)

    def list_exercises(self, query: ExerciseQuery) -> ExercisePage:
        """Return one page of exercises matching the query filters."""
        items, total = self._repository.list_exercises(query)
        return ExercisePage(items=items, total=total, page=query.page, limit=query.limit)

    def get_exercise(self, exercise_id: str) -> Exercise:
        exercise = self._repository.get(exercise_id)
        if exercise is None:
            raise ExerciseNotFound(f"exercise {exercise_id} not found")
        return exercise

    def exercise_progression(self, exercise_id: str) -> Progression:
        """Return the exercise plus the next harder exercises in the same category."""
        exercise = self.get_exercise(exercise_id)
        following = self._repository.next_in_progression(exercise, limit=PROGRESSION_LOOKAHEAD)
        return Progression(exercise=exercise, next_exercises=following)

    def category_progression(self, category: str, subcategory: str | None = None) -> list[Exercise]:
        """Return every exercise in a category ordered by progression level.

        Raises
        ------
        ExerciseNotFound
            When the category (and subcategory, if given) holds no exercises.
        """
        exercises = self._repository.category_progression(category, subcategory)
        if not exercises:
            scope = f"{category}/{subcategory}" if subcategory else category
            raise ExerciseNotFound(f"no exercises found in category {scope}")
        return exercises
