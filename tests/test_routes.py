import pytest
from fastapi.testclient import TestClient

from errors import StorageError
from graph import get_repository
from graph_memory import InMemoryGraphRepository
from main import app
from routes_recommendations import ERROR_HEADER, STATUS_HEADER


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


def use(repo):
    app.dependency_overrides[get_repository] = lambda: repo


def test_recommendations_wire_shape(client, repo):
    use(repo)
    res = client.get("/recommendations/u1")
    assert res.status_code == 200
    assert res.headers[STATUS_HEADER] == "ok"
    assert res.json() == [
        {"id": "c", "title": "Cat and dog", "score": 0.8},
        {"id": "b", "title": "Dog video", "score": 0.1},
    ]


def test_limit_query_param(client, repo):
    use(repo)
    res = client.get("/recommendations/u1", params={"limit": 1})
    assert [item["id"] for item in res.json()] == ["c"]


@pytest.mark.parametrize("limit", [0, -3, 100000])
def test_limit_is_validated(client, repo, limit):
    use(repo)
    res = client.get("/recommendations/u1", params={"limit": limit})
    assert res.status_code == 422


def test_storage_outage_is_signalled(client):
    use(InMemoryGraphRepository(fail_with=StorageError("connection refused")))
    res = client.get("/recommendations/u1")
    assert res.status_code == 200
    assert res.json() == []
    assert res.headers[STATUS_HEADER] == "degraded"
    assert res.headers[ERROR_HEADER] == "storage_unavailable"


def test_root(client):
    assert client.get("/").json() == {"message": "hello from recommendations"}
