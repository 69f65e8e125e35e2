"""Exceptions raised by catalog workflows and translated at the HTTP boundary."""

from __future__ import annotations


class CatalogError(Exception):
    """Base class for exercise catalog failures."""


class InvalidImportInput(CatalogError, ValueError):
    """The uploaded payload cannot be read as a header-delimited exercise table."""


class CatalogUnavailable(CatalogError):
    """The persistent store could not be reached before an import started."""


class ExerciseNotFound(CatalogError, LookupError):
    """No stored exercise satisfies the requested lookup."""
