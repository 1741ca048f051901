# apps/recommend/indexing.py
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence, TypeVar

from config import settings
from errors import StorageError
from graph import GraphRepository
from models import Document, SimilarityEdge
from similarity import cosine_similarity, similarity_edges
from vectorizer import TokenizeFn, build_tf_matrix

log = logging.getLogger("indexing")

T = TypeVar("T")


@dataclass
class EdgeWriteReport:
    written: int = 0
    failed: List[SimilarityEdge] = field(default_factory=list)
    # edges the store accepted but skipped because a Video vertex is missing
    unmatched: int = 0

    @property
    def ok(self) -> bool:
        return not self.failed and not self.unmatched


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    size = max(1, size)
    for start in range(0, len(items), size):
        yield items[start:start + size]


def build_similarity_edges(
    documents: Sequence[Document],
    floor: Optional[float] = None,
    *,
    tokenize_fn: Optional[TokenizeFn] = None,
    workers: Optional[int] = None,
) -> List[SimilarityEdge]:
    tf_matrix, _ = build_tf_matrix(documents, tokenize_fn=tokenize_fn)
    sim = cosine_similarity(tf_matrix, workers=workers)
    return similarity_edges(documents, sim, floor=floor)


async def _write_batch(
    repo: GraphRepository,
    batch_no: int,
    batch: Sequence[SimilarityEdge],
    backoff: Sequence[float],
) -> Optional[int]:
    """Number of edges persisted, or None once every retry has failed."""
    attempt = 0
    while True:
        try:
            written = await repo.upsert_similarity_edges(batch)
            if written < len(batch):
                log.warning(
                    "edge_write_unmatched batch=%d edges=%d written=%d error=video vertex not found",
                    batch_no, len(batch), written,
                )
            else:
                log.info("edge_write_ok batch=%d edges=%d attempts=%d", batch_no, len(batch), attempt + 1)
            return written
        except StorageError as exc:
            if attempt >= len(backoff):
                log.error("edge_write_failed batch=%d edges=%d attempts=%d error=%s", batch_no, len(batch), attempt + 1, exc)
                return None
            delay = backoff[attempt]
            attempt += 1
            log.info("edge_write_retry batch=%d attempt=%d delay=%.1fs error=%s", batch_no, attempt, delay, exc)
            await asyncio.sleep(delay)


async def write_edges(
    repo: GraphRepository,
    edges: Sequence[SimilarityEdge],
    *,
    batch_size: Optional[int] = None,
    concurrency: Optional[int] = None,
    backoff: Optional[Sequence[float]] = None,
) -> EdgeWriteReport:
    """
    Write edges in batches, ``concurrency`` batches at a time. A failing
    batch is retried once per backoff delay; batches that still fail are
    reported back instead of aborting the run. Writes are MERGEs, so a
    retried batch never duplicates edges. Only edges the store actually
    persisted count as written; the rest are counted as unmatched.
    """
    batch_size = batch_size or settings.edge_batch_size
    backoff = settings.edge_write_backoff_seconds if backoff is None else backoff
    sem = asyncio.Semaphore(max(1, concurrency or settings.edge_write_concurrency))
    batches = list(chunked(edges, batch_size))

    async def run(batch_no: int, batch: Sequence[SimilarityEdge]) -> Optional[int]:
        async with sem:
            return await _write_batch(repo, batch_no, batch, backoff)

    outcomes = await asyncio.gather(*(run(i, b) for i, b in enumerate(batches)))

    report = EdgeWriteReport()
    for batch, written in zip(batches, outcomes):
        if written is None:
            report.failed.extend(batch)
            continue
        report.written += written
        report.unmatched += len(batch) - written
    return report


async def run_similarity_job(
    repo: GraphRepository,
    documents: Sequence[Document],
    *,
    floor: Optional[float] = None,
    tokenize_fn: Optional[TokenizeFn] = None,
) -> EdgeWriteReport:
    t0 = time.time()
    # the O(n^2) product runs off the event loop
    edges = await asyncio.to_thread(
        build_similarity_edges, documents, floor, tokenize_fn=tokenize_fn
    )
    t1 = time.time()
    report = await write_edges(repo, edges)
    log.info(
        "similarity_job_done documents=%d edges=%d written=%d failed=%d unmatched=%d compute_ms=%d write_ms=%d",
        len(documents), len(edges), report.written, len(report.failed), report.unmatched,
        int((t1 - t0) * 1000), int((time.time() - t1) * 1000),
    )
    return report
