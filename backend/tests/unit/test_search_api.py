from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from backend.src.api.main import app
from backend.src.api.middleware import AuthContext, get_auth_context
from backend.src.api.routes.search import get_search_service
from backend.src.services import config as config_module
from backend.src.services.config import AppConfig
from backend.src.services.search import SearchService

client = TestClient(app)


@pytest.fixture()
def search_service(db_service, index_service, corpus) -> SearchService:
    config = AppConfig(database_path=db_service.db_path)
    return SearchService(db_service=db_service, index_service=index_service, config=config)


@pytest.fixture()
def as_alice(search_service):
    mock_auth = Mock(spec=AuthContext)
    mock_auth.user_id = "alice"
    app.dependency_overrides[get_auth_context] = lambda: mock_auth
    app.dependency_overrides[get_search_service] = lambda: search_service
    yield
    app.dependency_overrides = {}


def test_search_endpoint_returns_results(as_alice) -> None:
    response = client.get(
        "/api/search",
        params={"q": "tag:tax", "sort_by": "filename", "sort_order": "asc"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert [r["filename"] for r in data["results"]] == ["apple-statement.pdf", "receipt-coffee.png"]
    assert data["query"]["tags"] == ["tax"]
    assert data["facets"] is None


def test_search_endpoint_with_facets(as_alice) -> None:
    response = client.get("/api/search", params={"q": "type:photo", "include_facets": "true"})

    assert response.status_code == 200
    assert [f["dimension"] for f in response.json()["facets"]][:3] == ["type", "format", "folder"]


def test_search_endpoint_rejects_invalid_query(as_alice) -> None:
    response = client.get("/api/search", params={"q": "uploaded:2025-2022"})

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "invalid_query"
    assert body["message"] == "Upload date start cannot be after end date"
    assert body["detail"] == {"errors": ["Upload date start cannot be after end date"]}


def test_search_endpoint_validates_parameters(as_alice) -> None:
    missing = client.get("/api/search")
    too_many = client.get("/api/search", params={"q": "x", "limit": 101})

    assert missing.status_code == 400
    assert missing.json()["error"] == "validation_error"
    assert too_many.status_code == 400


def test_facets_endpoint(as_alice) -> None:
    response = client.get("/api/search/facets", params={"q": "tag:tax"})

    assert response.status_code == 200
    facets = {f["dimension"]: f["items"] for f in response.json()["facets"]}
    assert facets["tag"][0] == {"name": "tax", "count": 2, "selected": True}


def test_suggest_endpoint(as_alice) -> None:
    assert client.get("/api/search/suggest", params={"type": "tag", "q": "t"}).json() == ["tax"]
    assert client.get("/api/search/suggest", params={"type": "bogus", "q": "t"}).json() == []


def test_quick_filters_and_help(as_alice) -> None:
    quick = client.get("/api/search/quick-filters").json()
    help_body = client.get("/api/search/help").json()

    assert quick[0] == {"label": "Photos", "query": "type:photo", "icon": "image"}
    assert len(quick) == 8
    assert "in" in [f["name"] for f in help_body["filters"]]
    assert help_body["examples"]


def test_health() -> None:
    assert client.get("/api/health").json() == {"status": "healthy"}


def test_search_requires_authorization(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "documents.db"))
    monkeypatch.setenv("ENABLE_NOAUTH", "false")
    config_module.reload_config()
    try:
        response = client.get("/api/search", params={"q": "beach"})
    finally:
        monkeypatch.undo()
        config_module.reload_config()

    assert response.status_code == 401
    assert response.json()["error"] == "unauthorized"


def test_local_dev_token_resolves_owner(search_service, monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "other.db"))
    monkeypatch.setenv("ENABLE_LOCAL_MODE", "true")
    monkeypatch.setenv("LOCAL_DEV_TOKEN", "local-dev-token")
    config_module.reload_config()
    app.dependency_overrides[get_search_service] = lambda: search_service
    try:
        response = client.get(
            "/api/search",
            params={"q": "tag:tax"},
            headers={"Authorization": "Bearer local-dev-token"},
        )
    finally:
        app.dependency_overrides = {}
        monkeypatch.undo()
        config_module.reload_config()

    assert response.status_code == 200
    # The corpus belongs to alice and bob, not to the local dev user.
    assert response.json()["total"] == 0
