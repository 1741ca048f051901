import asyncio

import pytest
from neo4j.exceptions import Neo4jError, ServiceUnavailable

from errors import StorageError
import graph
from graph import Neo4jGraphRepository
from graph_memory import InMemoryGraphRepository
from models import SimilarityEdge, WatchRelation


def run(coro):
    return asyncio.run(coro)


def test_disabled_neo4j_raises_storage_error():
    repo = Neo4jGraphRepository(uri="")
    with pytest.raises(StorageError):
        run(repo.get_watched_set("u1"))


def test_similarity_lookup_is_symmetric(repo):
    assert run(repo.get_similarity_weight("c", "a")) == 0.8
    assert run(repo.get_similarity_weight("a", "c")) == 0.8
    assert run(repo.get_similarity_weight("b", "c")) is None


def test_upsert_updates_in_place(repo):
    run(repo.upsert_similarity_edges([SimilarityEdge("c", "a", 0.5)]))
    assert run(repo.get_similarity_weight("a", "c")) == 0.5
    assert run(repo.counts()).similar_to == 2


def test_edges_to_unknown_videos_are_ignored():
    repo = InMemoryGraphRepository()
    repo.add_video("a")
    assert run(repo.upsert_similarity_edges([SimilarityEdge("a", "missing", 0.3)])) == 0
    assert run(repo.get_similarity_weight("a", "missing")) is None


def test_likes_count_as_watched(repo):
    run(repo.add_likes([WatchRelation(user="u1", video="b")]))
    assert run(repo.get_watched_set("u1")) == {"a", "b"}
    assert run(repo.get_candidate_set("u1")) == {"c"}


def test_title_lookup(repo):
    assert run(repo.get_title("a")) == "Cat video"
    assert run(repo.get_title("nope")) is None


class FakeResult:
    def __init__(self, rows):
        self._rows = rows

    async def data(self):
        return self._rows


class FakeSession:
    def __init__(self, driver):
        self.driver = driver

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def run(self, query, params):
        self.driver.queries.append(query)
        if self.driver.error is not None:
            raise self.driver.error
        return FakeResult(self.driver.rows)


class FakeDriver:
    def __init__(self, rows=None, error=None, connect_delay=0.0, connect_error=None):
        self.rows = rows or []
        self.error = error
        self.connect_delay = connect_delay
        self.connect_error = connect_error
        self.queries = []
        self.closed = False

    async def verify_connectivity(self):
        await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error

    def session(self, database=None):
        return FakeSession(self)

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_neo4j(monkeypatch):
    """Routes AsyncGraphDatabase.driver to FakeDriver instances."""
    created = []
    options = {}

    class FakeGraphDatabase:
        @staticmethod
        def driver(uri, auth=None):
            driver = FakeDriver(**options)
            created.append(driver)
            return driver

    monkeypatch.setattr(graph, "AsyncGraphDatabase", FakeGraphDatabase)

    def configure(**kwargs):
        options.clear()
        options.update(kwargs)
        return created

    return configure


def neo4j_repo():
    return Neo4jGraphRepository(uri="bolt://graph:7687", username="neo4j", password="secret")


def test_concurrent_first_use_opens_one_driver(fake_neo4j):
    created = fake_neo4j(connect_delay=0.01)
    repo = neo4j_repo()

    async def scenario():
        await asyncio.gather(*(repo.get_watched_set("u1") for _ in range(5)))
        await repo.close()

    run(scenario())
    assert len(created) == 1
    assert created[0].closed
    assert len(created[0].queries) == 5


def test_connection_failure_closes_driver_and_raises(fake_neo4j):
    created = fake_neo4j(connect_error=ServiceUnavailable("no route"))
    repo = neo4j_repo()
    with pytest.raises(StorageError):
        run(repo.get_title("a"))
    assert created[0].closed


@pytest.mark.parametrize("error", [ServiceUnavailable("down"), Neo4jError("syntax")])
def test_query_errors_become_storage_errors(fake_neo4j, error):
    fake_neo4j(error=error)
    repo = neo4j_repo()
    with pytest.raises(StorageError) as exc_info:
        run(repo.get_similarity_weight("a", "b"))
    assert exc_info.value.__cause__ is error


def test_malformed_similarity_is_a_storage_error(fake_neo4j):
    fake_neo4j(rows=[{"similarity": "very"}])
    with pytest.raises(StorageError):
        run(neo4j_repo().get_similarity_weight("a", "b"))


def test_missing_edge_reads_as_none(fake_neo4j):
    fake_neo4j(rows=[])
    assert run(neo4j_repo().get_similarity_weight("a", "b")) is None


def test_constraints_are_created_once(fake_neo4j):
    created = fake_neo4j(rows=[{"n": 1}])
    repo = neo4j_repo()

    async def scenario():
        await repo.upsert_users(["u1"])
        await repo.upsert_users(["u2"])

    run(scenario())
    constraint_queries = [q for q in created[0].queries if "CREATE CONSTRAINT" in q]
    assert len(constraint_queries) == len(graph._CONSTRAINTS)


def test_similarity_upsert_returns_merged_count(fake_neo4j):
    fake_neo4j(rows=[{"n": 1}])
    repo = neo4j_repo()
    edges = [SimilarityEdge("a", "b", 0.4), SimilarityEdge("a", "zz", 0.2)]
    assert run(repo.upsert_similarity_edges(edges)) == 1
    assert run(repo.upsert_similarity_edges([])) == 0
