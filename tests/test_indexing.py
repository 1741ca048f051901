import asyncio

from errors import StorageError
from graph_memory import InMemoryGraphRepository
from indexing import build_similarity_edges, chunked, run_similarity_job, write_edges
from models import SimilarityEdge


class FlakyRepository(InMemoryGraphRepository):
    """Fails the first ``failures`` edge writes, then behaves."""

    def __init__(self, failures):
        super().__init__()
        self.failures = failures
        self.writes = 0

    async def upsert_similarity_edges(self, edges):
        self.writes += 1
        if self.failures > 0:
            self.failures -= 1
            raise StorageError("write timed out")
        return await super().upsert_similarity_edges(edges)


def with_videos(repo, ids):
    for vid in ids:
        repo.add_video(vid, title=vid)
    return repo


def edges(n):
    return [SimilarityEdge(source=f"v{i}", target=f"v{i + 1}", weight=0.5) for i in range(n)]


def test_chunked():
    assert [list(c) for c in chunked([1, 2, 3, 4, 5], 2)] == [[1, 2], [3, 4], [5]]
    assert list(chunked([], 3)) == []


def test_build_edges_from_corpus(corpus):
    result = build_similarity_edges(corpus, floor=0.0)
    pairs = {(e.source, e.target) for e in result}
    assert pairs == {("a", "b"), ("a", "c"), ("b", "c")}
    weights = {(e.source, e.target): e.weight for e in result}
    assert weights[("a", "c")] > weights[("a", "b")]


def test_floor_drops_weak_pairs(corpus):
    result = build_similarity_edges(corpus, floor=0.99)
    assert result == []


def test_write_edges_retries_then_succeeds():
    repo = with_videos(FlakyRepository(failures=2), [f"v{i}" for i in range(6)])
    report = asyncio.run(write_edges(repo, edges(5), batch_size=10, backoff=[0, 0, 0]))
    assert report.ok
    assert report.written == 5
    assert repo.writes == 3
    assert len(repo.similarity) == 5


def test_write_edges_reports_unwritten_batches():
    repo = with_videos(FlakyRepository(failures=100), [f"v{i}" for i in range(6)])
    report = asyncio.run(write_edges(repo, edges(5), batch_size=2, concurrency=2, backoff=[0]))
    assert not report.ok
    assert report.written == 0
    assert len(report.failed) == 5
    # one try plus one retry per batch
    assert repo.writes == 6


def test_rewriting_is_idempotent():
    repo = with_videos(InMemoryGraphRepository(), [f"v{i}" for i in range(6)])
    asyncio.run(write_edges(repo, edges(5), batch_size=2, backoff=[]))
    asyncio.run(write_edges(repo, edges(5), batch_size=3, backoff=[]))
    assert len(repo.similarity) == 5


def test_run_similarity_job(corpus):
    repo = with_videos(InMemoryGraphRepository(), ["a", "b", "c"])
    report = asyncio.run(run_similarity_job(repo, corpus, floor=0.0))
    assert report.ok
    assert report.written == 3
    assert asyncio.run(repo.get_similarity_weight("c", "a")) > asyncio.run(
        repo.get_similarity_weight("a", "b")
    )


def test_job_against_empty_graph_reports_unmatched_edges(corpus):
    repo = InMemoryGraphRepository()
    report = asyncio.run(run_similarity_job(repo, corpus, floor=0.0))
    assert not report.ok
    assert report.written == 0
    assert report.unmatched == 3
    assert report.failed == []
    assert repo.similarity == {}


def test_partially_stored_catalog_counts_only_persisted_edges():
    repo = with_videos(InMemoryGraphRepository(), ["v0", "v1", "v2"])
    report = asyncio.run(write_edges(repo, edges(4), batch_size=10, backoff=[]))
    # v0-v1 and v1-v2 land; v2-v3 and v3-v4 name missing videos
    assert report.written == 2
    assert report.unmatched == 2
    assert not report.ok
