from __future__ import annotations

import dataclasses

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from kalos.api import routes
from kalos.domain.service import ExerciseCatalogService
from kalos.security.rate_limiter import SlidingWindowRateLimiter
from kalos.security.tokens import issue_access_token


@pytest.fixture
def api_client(store):
    """Provide a FastAPI test client with isolated state."""
    service = ExerciseCatalogService(store)

    app = FastAPI()
    app.include_router(routes.router)
    app.state.catalog_service = service

    original_limiter = routes.rate_limiter
    routes.rate_limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=60)

    with TestClient(app) as client:
        yield client, store

    routes.rate_limiter = original_limiter


def admin_headers(subject: str = "ops", scopes: list[str] | None = None) -> dict[str, str]:
    token, _ = issue_access_token(subject=subject, scopes=scopes)
    return {"Authorization": f"Bearer {token}"}


def upload(client, content: bytes, filename: str = "exercises.csv", headers=None):
    return client.post(
        "/v1/admin/exercises/import",
        files={"file": (filename, content, "text/csv")},
        headers=headers if headers is not None else admin_headers(),
    )


@pytest.fixture
def seeded(api_client, sample_csv):
    client, store = api_client
    assert upload(client, sample_csv, headers=admin_headers("seeder")).status_code == 200
    return client, store


def test_import_returns_summary(api_client, sample_csv):
    client, store = api_client

    response = upload(client, sample_csv)

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 6
    assert body["created"] == 6
    assert body["updated"] == 0
    assert body["skipped"] == 0
    assert body["errors"] == []
    assert body["duration"].endswith("s")
    assert body["message"] == "Import completed: 6 created, 0 updated"
    assert len(store.records) == 6


def test_import_requires_bearer_token(api_client, sample_csv):
    client, _ = api_client

    response = upload(client, sample_csv, headers={})

    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


def test_import_rejects_tampered_token(api_client, sample_csv):
    client, _ = api_client
    headers = admin_headers()
    headers["Authorization"] += "x"

    assert upload(client, sample_csv, headers=headers).status_code == 401


def test_import_requires_admin_scope(api_client, sample_csv):
    client, store = api_client

    response = upload(client, sample_csv, headers=admin_headers(scopes=["exercises:read"]))

    assert response.status_code == 403
    assert store.records == {}


def test_import_rejects_non_csv_upload(api_client, sample_csv):
    client, _ = api_client

    response = upload(client, sample_csv, filename="exercises.xlsx")

    assert response.status_code == 400
    assert response.json()["detail"] == "invalid file type"


def test_import_rejects_oversized_upload(api_client, sample_csv, monkeypatch):
    client, store = api_client
    monkeypatch.setattr(routes, "settings", dataclasses.replace(routes.settings, import_max_bytes=64))

    response = upload(client, sample_csv)

    assert response.status_code == 413
    assert store.calls == []


def test_import_of_empty_table_is_a_bad_request(api_client):
    client, _ = api_client

    response = upload(client, b"name;category\n")

    assert response.status_code == 400
    assert response.json()["detail"] == "no valid data found in CSV"


def test_import_with_unreachable_store_is_unavailable(api_client, sample_csv):
    client, store = api_client
    store.unavailable = True

    response = upload(client, sample_csv)

    assert response.status_code == 503


def test_import_endpoint_respects_rate_limits(api_client, sample_csv):
    client, _ = api_client

    first = upload(client, sample_csv)
    second = upload(client, sample_csv)
    third = upload(client, sample_csv)
    other_operator = upload(client, sample_csv, headers=admin_headers("someone-else"))

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["updated"] == 6
    assert third.status_code == 429
    assert third.json()["detail"] == "rate limited"
    assert other_operator.status_code == 200


def test_list_exercises_filters_and_paginates(seeded):
    client, _ = seeded

    response = client.get("/v1/exercises", params={"category": "push", "limit": 3})

    assert response.status_code == 200
    body = response.json()
    assert [item["name"] for item in body["items"]] == ["Wall Push-ups", "Incline Push-ups", "Knee Push-ups"]
    assert body["pagination"] == {"total": 4, "page": 1, "limit": 3, "pages": 2}

    second_page = client.get("/v1/exercises", params={"category": "push", "limit": 3, "page": 2}).json()
    assert [item["name"] for item in second_page["items"]] == ["Push-ups"]


def test_list_exercises_level_range_and_sorting(seeded):
    client, _ = seeded

    response = client.get(
        "/v1/exercises",
        params={"min_level": 2, "max_level": 4, "sort_by": "xp_value", "sort_order": "desc"},
    )

    assert response.status_code == 200
    assert [item["xp_value"] for item in response.json()["items"]] == [50, 30, 25]


def test_list_exercises_rejects_unknown_sort_field(seeded):
    client, _ = seeded

    response = client.get("/v1/exercises", params={"sort_by": "password"})

    assert response.status_code == 400


def test_search_matches_muscles_and_cues(seeded):
    client, _ = seeded

    lats = client.get("/v1/exercises/search", params={"q": "LATS"}).json()
    assert [item["name"] for item in lats["items"]] == ["Dead Hang"]

    cues = client.get("/v1/exercises/search", params={"q": "glutes"}).json()
    assert [item["unique_id"] for item in cues["items"]] == ["core-plank-1"]


def test_get_exercise_and_missing_exercise(seeded):
    client, store = seeded
    plank = store.by_unique_id("core-plank-1")

    found = client.get(f"/v1/exercises/{plank.exercise_id}")
    missing = client.get("/v1/exercises/does-not-exist")

    assert found.status_code == 200
    assert found.json()["form_cues"] == ["Squeeze glutes", "Neutral neck"]
    assert missing.status_code == 404


def test_exercise_progression_lists_next_levels(seeded):
    client, store = seeded
    wall = store.by_unique_id("push-wall-push-ups-1")

    response = client.get(f"/v1/exercises/{wall.exercise_id}/progression")

    assert response.status_code == 200
    body = response.json()
    assert body["exercise"]["name"] == "Wall Push-ups"
    assert [item["progression_level"] for item in body["next_exercises"]] == [2, 3, 4]


def test_category_progression(seeded):
    client, _ = seeded

    response = client.get("/v1/categories/PUSH/progression")
    missing = client.get("/v1/categories/legs/progression")

    assert response.status_code == 200
    assert response.json()["exercise_count"] == 4
    assert missing.status_code == 404
