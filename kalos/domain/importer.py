"""CSV ingestion pipeline that upserts exercises into the catalog."""

from __future__ import annotations

import csv
import io
import logging
import re
import time
from typing import Callable

from ..metrics import IMPORT_DURATION, IMPORT_ROWS
from .contracts import ExerciseStore, ImportSummary, RowOutcome, RowResult
from .errors import CatalogUnavailable, InvalidImportInput
from .exercise import ExerciseFields, ExerciseLookup

logger = logging.getLogger(__name__)

FIELD_DELIMITER = ";"

_LEADING_INT = re.compile(r"^[+-]?\d+")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def parse_int(value: str | None) -> int | None:
    """Parse the leading integer of ``value`` (``"12 reps"`` -> 12), or ``None``."""
    if not value:
        return None
    match = _LEADING_INT.match(value.strip())
    if match is None:
        return None
    return int(match.group(0))


def split_list(value: str | None) -> list[str]:
    """Split a list cell on ``;`` when present, otherwise on ``,``."""
    if not value:
        return []
    delimiter = ";" if ";" in value else ","
    return [token.strip() for token in value.split(delimiter) if token.strip()]


def slugify(text: str) -> str:
    return _NON_ALNUM.sub("-", text.lower()).strip("-")


def derive_unique_id(category: str, name: str, progression_level: int) -> str:
    """Build the deterministic identifier used when a row carries no ``unique_id``.

    >>> derive_unique_id("push", "Wall Push-ups", 1)
    'push-wall-push-ups-1'
    """
    return slugify(f"{category}-{name}-{progression_level}")


def parse_rows(content: bytes | str) -> list[dict[str, str]]:
    """Read a semicolon-delimited table into trimmed, header-keyed rows.

    Raises
    ------
    InvalidImportInput
        When the payload is not UTF-8, has no header, or holds no data rows.
    """
    if isinstance(content, bytes):
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise InvalidImportInput("CSV payload is not valid UTF-8") from exc
    else:
        text = content.lstrip("\ufeff")

    if not text.strip():
        raise InvalidImportInput("no valid data found in CSV")

    reader = csv.DictReader(io.StringIO(text), delimiter=FIELD_DELIMITER)
    try:
        header = reader.fieldnames
        if not header or not any(name.strip() for name in header):
            raise InvalidImportInput("CSV payload has no header row")
        reader.fieldnames = [name.strip() for name in header]

        rows: list[dict[str, str]] = []
        for raw in reader:
            # cells beyond the header land under the ``None`` key
            rows.append({key: (value or "").strip() for key, value in raw.items() if key is not None})
    except csv.Error as exc:
        raise InvalidImportInput(f"error parsing CSV data: {exc}") from exc

    if not rows:
        raise InvalidImportInput("no valid data found in CSV")
    return rows


def normalize_row(row: dict[str, str]) -> ExerciseFields:
    """Map a CSV row onto catalog fields, applying defaults for missing values."""
    name = row["name"]
    category = row["category"]

    progression_level = parse_int(row.get("progressionLevel"))
    if progression_level is None or progression_level < 1:
        progression_level = 1

    xp_value = parse_int(row.get("xp_value"))
    if not xp_value:
        xp_value = progression_level * 10

    return ExerciseFields(
        name=name,
        category=category,
        unique_id=row.get("unique_id") or derive_unique_id(category, name, progression_level),
        subcategory=row.get("subcategory", ""),
        progression_level=progression_level,
        description=row.get("description", ""),
        difficulty=row.get("difficulty") or "beginner",
        primary_muscle_group=row.get("primary_muscle_group", ""),
        secondary_muscle_groups=split_list(row.get("secondary_muscle_groups")),
        form_cues=split_list(row.get("form_cues")),
        xp_value=xp_value,
        unlock_requirements=row.get("unlock_requirements", ""),
    )


class ExerciseImporter:
    """Upsert exercises from a CSV payload, one row at a time, in file order."""

    def __init__(self, store: ExerciseStore, clock: Callable[[], float] = time.perf_counter) -> None:
        self._store = store
        self._clock = clock

    def run(self, content: bytes | str) -> ImportSummary:
        """Import ``content`` and return the aggregated summary.

        Malformed input or an unreachable store aborts before any row is touched;
        failures inside a row are recorded on the summary and never propagate.
        """
        started = self._clock()
        rows = parse_rows(content)

        try:
            catalog_size = self._store.count()
        except Exception as exc:
            raise CatalogUnavailable(f"exercise store unavailable: {exc}") from exc

        logger.info("importing %d exercise rows into catalog of %d", len(rows), catalog_size)

        summary = ImportSummary(total=len(rows))
        for row in rows:
            summary.processed += 1
            result = self._process_row(summary.processed, row)
            summary.record(result)
            IMPORT_ROWS.labels(outcome=result.outcome.value).inc()

        elapsed = self._clock() - started
        summary.duration = f"{elapsed:.2f}s"
        IMPORT_DURATION.observe(elapsed)
        logger.info(
            "import finished: total=%d created=%d updated=%d skipped=%d errors=%d in %s",
            summary.total,
            summary.created,
            summary.updated,
            summary.skipped,
            len(summary.errors),
            summary.duration,
        )
        return summary

    def _process_row(self, row_number: int, row: dict[str, str]) -> RowResult:
        if not row.get("name") or not row.get("category"):
            return RowResult(row_number, RowOutcome.skipped)

        try:
            fields = normalize_row(row)
            lookup = ExerciseLookup(
                unique_id=fields.unique_id,
                name=fields.name,
                category=fields.category,
            )
            existing = self._store.find_one(lookup)
            if existing is None:
                self._store.create(fields)
                return RowResult(row_number, RowOutcome.created)
            self._store.update(existing.exercise_id, fields.as_dict())
            return RowResult(row_number, RowOutcome.updated)
        except Exception as exc:
            logger.warning("import row %d failed: %s", row_number, exc)
            return RowResult(row_number, RowOutcome.failed, error=str(exc) or type(exc).__name__)
