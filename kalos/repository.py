"""Database repository for the exercise catalog."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from psycopg.rows import tuple_row
from psycopg.types.json import Json
from psycopg_pool import ConnectionPool

from .domain.errors import ExerciseNotFound
from .domain.exercise import Exercise, ExerciseFields, ExerciseLookup, ExerciseQuery

COLUMNS = (
    "exercise_id",
    "unique_id",
    "name",
    "category",
    "subcategory",
    "progression_level",
    "description",
    "difficulty",
    "primary_muscle_group",
    "secondary_muscle_groups",
    "form_cues",
    "xp_value",
    "unlock_requirements",
    "created_at",
    "updated_at",
)
WRITABLE_COLUMNS = frozenset(COLUMNS) - {"exercise_id", "created_at", "updated_at"}
JSON_COLUMNS = frozenset({"secondary_muscle_groups", "form_cues"})

_SELECT = ", ".join(COLUMNS)

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS exercises (
        exercise_id TEXT PRIMARY KEY,
        unique_id TEXT NOT NULL,
        name TEXT NOT NULL,
        category TEXT NOT NULL,
        subcategory TEXT NOT NULL DEFAULT '',
        progression_level INTEGER NOT NULL DEFAULT 1 CHECK (progression_level >= 1),
        description TEXT NOT NULL DEFAULT '',
        difficulty TEXT NOT NULL DEFAULT 'beginner',
        primary_muscle_group TEXT NOT NULL DEFAULT '',
        secondary_muscle_groups JSONB NOT NULL DEFAULT '[]'::jsonb,
        form_cues JSONB NOT NULL DEFAULT '[]'::jsonb,
        xp_value INTEGER NOT NULL DEFAULT 10,
        unlock_requirements TEXT NOT NULL DEFAULT '',
        created_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL
    )
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS exercises_unique_id_idx ON exercises (unique_id)",
    "CREATE UNIQUE INDEX IF NOT EXISTS exercises_name_category_idx ON exercises (name, category)",
    "CREATE INDEX IF NOT EXISTS exercises_category_level_idx ON exercises (category, progression_level)",
)


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def build_where(query: ExerciseQuery) -> tuple[str, list[Any]]:
    """Translate query filters into a SQL ``WHERE`` fragment and its parameters."""
    clauses: list[str] = []
    params: list[Any] = []

    if query.category:
        clauses.append("category = %s")
        params.append(query.category)
    if query.subcategory:
        clauses.append("subcategory = %s")
        params.append(query.subcategory)
    if query.difficulty:
        clauses.append("difficulty = %s")
        params.append(query.difficulty)
    if query.level is not None:
        clauses.append("progression_level = %s")
        params.append(query.level)
    else:
        if query.min_level is not None:
            clauses.append("progression_level >= %s")
            params.append(query.min_level)
        if query.max_level is not None:
            clauses.append("progression_level <= %s")
            params.append(query.max_level)
    if query.text:
        pattern = _like_pattern(query.text)
        clauses.append(
            "(name ILIKE %s OR description ILIKE %s OR primary_muscle_group ILIKE %s"
            " OR secondary_muscle_groups::text ILIKE %s OR form_cues::text ILIKE %s)"
        )
        params.extend([pattern] * 5)

    where_sql = " AND ".join(clauses) if clauses else "TRUE"
    return where_sql, params


def build_order_by(query: ExerciseQuery) -> str:
    """Return an ``ORDER BY`` list with stable secondary keys appended."""
    direction = "DESC" if query.sort_order == "desc" else "ASC"
    order = [f"{query.sort_by} {direction}"]
    if query.sort_by != "category":
        order.append("category ASC")
    if query.sort_by != "progression_level":
        order.append("progression_level ASC")
    order.append("exercise_id ASC")
    return ", ".join(order)


def _column_value(column: str, value: Any) -> Any:
    if column in JSON_COLUMNS:
        return Json(list(value or []))
    return value


class ExerciseRepository:
    """Postgres-backed exercise persistence implementing the importer store contract."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def ensure_schema(self) -> None:
        """Create the exercises table and its indexes when they are missing."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                for statement in SCHEMA_STATEMENTS:
                    cur.execute(statement)
                conn.commit()

    def find_one(self, lookup: ExerciseLookup) -> Exercise | None:
        """Return the exercise matching ``unique_id`` or the (name, category) pair.

        A ``unique_id`` hit wins when the two keys point at different rows.
        """
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_SELECT}
                    FROM exercises
                    WHERE unique_id = %s OR (name = %s AND category = %s)
                    ORDER BY (unique_id = %s) DESC
                    LIMIT 1
                    """,
                    (lookup.unique_id, lookup.name, lookup.category, lookup.unique_id),
                )
                row = cur.fetchone()
        return self._map_record(row) if row else None

    def create(self, record: ExerciseFields) -> Exercise:
        """Insert a new exercise and return the stored aggregate."""
        values = record.as_dict()
        columns = sorted(WRITABLE_COLUMNS)
        now = datetime.now(timezone.utc)
        params = [str(uuid.uuid4())]
        params.extend(_column_value(column, values[column]) for column in columns)
        params.extend([now, now])

        placeholders = ", ".join(["%s"] * len(params))
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO exercises (exercise_id, {", ".join(columns)}, created_at, updated_at)
                    VALUES ({placeholders})
                    RETURNING {_SELECT}
                    """,
                    params,
                )
                row = cur.fetchone()
                conn.commit()
        return self._map_record(row)

    def update(self, exercise_id: str, fields: dict[str, Any]) -> Exercise:
        """Overwrite the given columns of an existing exercise."""
        unknown = set(fields) - WRITABLE_COLUMNS
        if unknown:
            raise ValueError(f"unknown exercise fields: {', '.join(sorted(unknown))}")

        columns = sorted(fields)
        assignments = [f"{column} = %s" for column in columns]
        assignments.append("updated_at = %s")
        params: list[Any] = [_column_value(column, fields[column]) for column in columns]
        params.extend([datetime.now(timezone.utc), exercise_id])

        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"""
                    UPDATE exercises
                    SET {", ".join(assignments)}
                    WHERE exercise_id = %s
                    RETURNING {_SELECT}
                    """,
                    params,
                )
                row = cur.fetchone()
                conn.commit()
        if not row:
            raise ExerciseNotFound(f"exercise {exercise_id} not found")
        return self._map_record(row)

    def count(self) -> int:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute("SELECT COUNT(*) FROM exercises")
                (total,) = cur.fetchone()
        return int(total)

    def get(self, exercise_id: str) -> Exercise | None:
        """Fetch a single exercise by its store identifier or return ``None``."""
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"SELECT {_SELECT} FROM exercises WHERE exercise_id = %s",
                    (exercise_id,),
                )
                row = cur.fetchone()
        return self._map_record(row) if row else None

    def list_exercises(self, query: ExerciseQuery) -> tuple[list[Exercise], int]:
        """Return a page of exercises plus the total number of matches."""
        where_sql, params = build_where(query)
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(f"SELECT COUNT(*) FROM exercises WHERE {where_sql}", params)
                (total,) = cur.fetchone()
                cur.execute(
                    f"""
                    SELECT {_SELECT}
                    FROM exercises
                    WHERE {where_sql}
                    ORDER BY {build_order_by(query)}
                    LIMIT %s OFFSET %s
                    """,
                    [*params, query.limit, query.offset],
                )
                rows = cur.fetchall()
        return [self._map_record(row) for row in rows], int(total)

    def next_in_progression(self, exercise: Exercise, *, limit: int) -> list[Exercise]:
        """Return exercises in the same category with a higher progression level."""
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_SELECT}
                    FROM exercises
                    WHERE category = %s AND progression_level > %s
                    ORDER BY progression_level ASC, name ASC
                    LIMIT %s
                    """,
                    (exercise.category, exercise.progression_level, limit),
                )
                rows = cur.fetchall()
        return [self._map_record(row) for row in rows]

    def category_progression(self, category: str, subcategory: str | None = None) -> list[Exercise]:
        """Return all exercises of a category (case-insensitive), easiest first."""
        clauses = ["lower(category) = lower(%s)"]
        params: list[Any] = [category]
        if subcategory:
            clauses.append("lower(subcategory) = lower(%s)")
            params.append(subcategory)
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_SELECT}
                    FROM exercises
                    WHERE {" AND ".join(clauses)}
                    ORDER BY progression_level ASC, name ASC
                    """,
                    params,
                )
                rows = cur.fetchall()
        return [self._map_record(row) for row in rows]

    def _map_record(self, row: tuple) -> Exercise:
        """Convert a raw database tuple into the domain ``Exercise`` dataclass."""
        record = dict(zip(COLUMNS, row))
        record["secondary_muscle_groups"] = list(record["secondary_muscle_groups"] or [])
        record["form_cues"] = list(record["form_cues"] or [])
        return Exercise(**record)
