"""HTTP route definitions for the exercise catalog service."""

from __future__ import annotations

import logging

import jwt
from fastapi import APIRouter, Depends, File, Header, HTTPException, Query, Request, UploadFile, status
from pydantic import BaseModel

from ..config import get_settings
from ..domain.contracts import ImportSummary
from ..domain.errors import CatalogUnavailable, ExerciseNotFound, InvalidImportInput
from ..domain.exercise import Exercise, ExerciseQuery
from ..domain.service import ExerciseCatalogService
from ..security.rate_limiter import build_rate_limiter
from ..security.tokens import MissingScope, decode_access_token, require_scope

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")


class ExerciseResponse(BaseModel):
    """Serialised representation of an `Exercise` aggregate."""

    exercise_id: str
    unique_id: str
    name: str
    category: str
    subcategory: str
    progression_level: int
    description: str
    difficulty: str
    primary_muscle_group: str
    secondary_muscle_groups: list[str]
    form_cues: list[str]
    xp_value: int
    unlock_requirements: str
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, exercise: Exercise) -> "ExerciseResponse":
        """Build a response model from the domain aggregate."""
        return cls(
            exercise_id=exercise.exercise_id,
            unique_id=exercise.unique_id,
            name=exercise.name,
            category=exercise.category,
            subcategory=exercise.subcategory,
            progression_level=exercise.progression_level,
            description=exercise.description,
            difficulty=exercise.difficulty,
            primary_muscle_group=exercise.primary_muscle_group,
            secondary_muscle_groups=list(exercise.secondary_muscle_groups),
            form_cues=list(exercise.form_cues),
            xp_value=exercise.xp_value,
            unlock_requirements=exercise.unlock_requirements,
            created_at=exercise.created_at.isoformat(),
            updated_at=exercise.updated_at.isoformat(),
        )


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class ExerciseListResponse(BaseModel):
    """Envelope for a paginated slice of the catalog."""

    items: list[ExerciseResponse]
    pagination: Pagination


class ProgressionResponse(BaseModel):
    exercise: ExerciseResponse
    next_exercises: list[ExerciseResponse]


class CategoryProgressionResponse(BaseModel):
    category: str
    subcategory: str | None = None
    exercises: list[ExerciseResponse]
    exercise_count: int


class ImportResponse(BaseModel):
    """Counters reported after an exercise CSV import."""

    total: int
    processed: int
    created: int
    updated: int
    skipped: int
    errors: list[str]
    duration: str
    message: str

    @classmethod
    def from_summary(cls, summary: ImportSummary) -> "ImportResponse":
        return cls(
            total=summary.total,
            processed=summary.processed,
            created=summary.created,
            updated=summary.updated,
            skipped=summary.skipped,
            errors=list(summary.errors),
            duration=summary.duration,
            message=summary.message,
        )


settings = get_settings()

rate_limiter = build_rate_limiter(settings)


def get_service(request: Request) -> ExerciseCatalogService:
    """Resolve the `ExerciseCatalogService` stored on the FastAPI application state."""
    service: ExerciseCatalogService = request.app.state.catalog_service
    return service


def require_admin(authorization: str | None = Header(default=None)) -> dict:
    """Verify the bearer token and return its claims when it grants the admin scope."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        claims = decode_access_token(token.strip())
        require_scope(claims, settings.admin_scope)
    except jwt.PyJWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    except MissingScope as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    return claims


def _build_query(**filters) -> ExerciseQuery:
    try:
        return ExerciseQuery(**filters)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def _page_response(service: ExerciseCatalogService, query: ExerciseQuery) -> ExerciseListResponse:
    page = service.list_exercises(query)
    return ExerciseListResponse(
        items=[ExerciseResponse.from_domain(exercise) for exercise in page.items],
        pagination=Pagination(total=page.total, page=page.page, limit=page.limit, pages=page.pages),
    )


@router.get("/exercises", response_model=ExerciseListResponse)
def list_exercises(
    category: str | None = Query(default=None),
    subcategory: str | None = Query(default=None),
    difficulty: str | None = Query(default=None),
    level: int | None = Query(default=None, ge=1),
    min_level: int | None = Query(default=None, ge=1),
    max_level: int | None = Query(default=None, ge=1),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    sort_by: str = Query(default="progression_level"),
    sort_order: str = Query(default="asc"),
    service: ExerciseCatalogService = Depends(get_service),
) -> ExerciseListResponse:
    """Return a filtered, sorted page of catalog exercises."""
    query = _build_query(
        category=category,
        subcategory=subcategory,
        difficulty=difficulty,
        level=level,
        min_level=min_level,
        max_level=max_level,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return _page_response(service, query)


@router.get("/exercises/search", response_model=ExerciseListResponse)
def search_exercises(
    q: str = Query(..., min_length=1),
    category: str | None = Query(default=None),
    subcategory: str | None = Query(default=None),
    difficulty: str | None = Query(default=None),
    min_level: int | None = Query(default=None, ge=1),
    max_level: int | None = Query(default=None, ge=1),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    service: ExerciseCatalogService = Depends(get_service),
) -> ExerciseListResponse:
    """Case-insensitive text search over names, descriptions, muscles, and form cues."""
    query = _build_query(
        text=q,
        category=category,
        subcategory=subcategory,
        difficulty=difficulty,
        min_level=min_level,
        max_level=max_level,
        page=page,
        limit=limit,
        sort_by="category",
    )
    return _page_response(service, query)


@router.get("/exercises/{exercise_id}", response_model=ExerciseResponse)
def get_exercise(
    exercise_id: str,
    service: ExerciseCatalogService = Depends(get_service),
) -> ExerciseResponse:
    try:
        exercise = service.get_exercise(exercise_id)
    except ExerciseNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return ExerciseResponse.from_domain(exercise)


@router.get("/exercises/{exercise_id}/progression", response_model=ProgressionResponse)
def get_exercise_progression(
    exercise_id: str,
    service: ExerciseCatalogService = Depends(get_service),
) -> ProgressionResponse:
    """Return the exercise and the next harder exercises in its category."""
    try:
        progression = service.exercise_progression(exercise_id)
    except ExerciseNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return ProgressionResponse(
        exercise=ExerciseResponse.from_domain(progression.exercise),
        next_exercises=[ExerciseResponse.from_domain(item) for item in progression.next_exercises],
    )


@router.get("/categories/{category}/progression", response_model=CategoryProgressionResponse)
def get_category_progression(
    category: str,
    subcategory: str | None = Query(default=None),
    service: ExerciseCatalogService = Depends(get_service),
) -> CategoryProgressionResponse:
    try:
        exercises = service.category_progression(category, subcategory)
    except ExerciseNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return CategoryProgressionResponse(
        category=category,
        subcategory=subcategory,
        exercises=[ExerciseResponse.from_domain(item) for item in exercises],
        exercise_count=len(exercises),
    )


@router.post("/admin/exercises/import", response_model=ImportResponse)
def import_exercises(
    file: UploadFile = File(...),
    claims: dict = Depends(require_admin),
    service: ExerciseCatalogService = Depends(get_service),
) -> ImportResponse:
    """Upsert exercises from an uploaded semicolon-delimited CSV file."""
    if not rate_limiter.allow(f"import:{claims['sub']}"):
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="rate limited")

    if not (file.filename or "").lower().endswith(".csv"):
        logger.info("rejected import upload %r: not a csv file", file.filename)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid file type")

    content = file.file.read(settings.import_max_bytes + 1)
    if len(content) > settings.import_max_bytes:
        logger.info("rejected import upload %r: larger than %d bytes", file.filename, settings.import_max_bytes)
        raise HTTPException(status_code=413, detail="file too large")

    try:
        summary = service.import_csv(content)
    except InvalidImportInput as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except CatalogUnavailable as exc:
        logger.error("exercise import aborted: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    logger.info("exercise import by %s: %s", claims["sub"], summary.message)
    return ImportResponse.from_summary(summary)
