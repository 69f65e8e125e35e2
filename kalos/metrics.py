"""Prometheus collectors for catalog import activity."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

IMPORT_ROWS = Counter(
    "kalos_import_rows_total",
    "Exercise import rows by outcome.",
    ["outcome"],
)

IMPORT_DURATION = Histogram(
    "kalos_import_duration_seconds",
    "Wall-clock duration of exercise import runs.",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)
