# apps/recommend/recommendations.py
from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Awaitable, Dict, Iterable, List, Optional, Sequence, Set, TypeVar

from config import settings
from errors import NumericError, StorageError
from graph import GraphRepository
from models import Recommendation

log = logging.getLogger("recommendations")

T = TypeVar("T")


@dataclass
class RecommendationResult:
    items: List[Recommendation] = field(default_factory=list)
    degraded: bool = False
    error: Optional[str] = None


def mean_weight(weights: Sequence[float]) -> float:
    if not weights:
        raise NumericError("mean of an empty weight set")
    return sum(weights) / len(weights)


def rank(recommendations: Iterable[Recommendation]) -> List[Recommendation]:
    """Best score first; equal scores ordered by video id."""
    return sorted(recommendations, key=lambda r: (-r.score, r.video))


async def _gather_all(aws: Iterable[Awaitable[T]]) -> List[T]:
    # like gather, but a failure or cancellation also cancels the siblings
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def score_candidates(
    watched: Set[str],
    candidates: Set[str],
    repo: GraphRepository,
    *,
    concurrency: Optional[int] = None,
) -> List[Recommendation]:
    """
    Score every candidate by the mean similarity of the edges linking it to
    the watched set, and return them ranked.

    One weight lookup is issued per (candidate, watched) pair, at most
    ``concurrency`` at a time. Candidates with no edge to any watched video
    and candidates without a title are left out. Storage errors propagate.
    """
    if not watched or not candidates:
        return []

    sem = asyncio.Semaphore(max(1, concurrency or settings.recommend_concurrency))
    watched_ids = sorted(watched)
    candidate_ids = sorted(candidates)

    async def lookup(candidate: str, seen: str) -> Optional[float]:
        async with sem:
            return await repo.get_similarity_weight(seen, candidate)

    pairs = [(c, w) for c in candidate_ids for w in watched_ids]
    weights = await _gather_all(lookup(c, w) for c, w in pairs)

    # gather keeps input order, so sums do not depend on completion order
    found: Dict[str, List[float]] = {c: [] for c in candidate_ids}
    for (candidate, _), weight in zip(pairs, weights):
        if weight is None or math.isnan(weight):
            continue
        found[candidate].append(weight)

    scores: Dict[str, float] = {}
    no_edges = 0
    for candidate, values in found.items():
        try:
            scores[candidate] = mean_weight(values)
        except NumericError:
            no_edges += 1

    async def title_of(video_id: str) -> Optional[str]:
        async with sem:
            return await repo.get_title(video_id)

    scored_ids = list(scores)
    titles = await _gather_all(title_of(v) for v in scored_ids)

    results: List[Recommendation] = []
    untitled = 0
    for video_id, title in zip(scored_ids, titles):
        if title is None:
            untitled += 1
            continue
        results.append(Recommendation(video=video_id, title=title, score=scores[video_id]))

    log.info(
        "recommendations_scored watched=%d candidates=%d lookups=%d scored=%d no_edges=%d untitled=%d",
        len(watched_ids), len(candidate_ids), len(pairs), len(results), no_edges, untitled,
    )
    return rank(results)


async def _recommend(repo: GraphRepository, user_id: str) -> List[Recommendation]:
    watched, candidates = await _gather_all(
        [repo.get_watched_set(user_id), repo.get_candidate_set(user_id)]
    )
    log.info(
        "recommendations_sets user=%s watched=%d candidates=%d",
        user_id, len(watched), len(candidates),
    )
    return await score_candidates(watched, candidates - watched, repo)


async def get_recommendations(
    repo: GraphRepository,
    user_id: str,
    limit: Optional[int] = None,
    timeout: Optional[float] = None,
) -> RecommendationResult:
    """
    Ranked recommendations for ``user_id``, truncated to ``limit`` after
    sorting. Storage failures and timeouts give an empty, degraded result.
    """
    limit = settings.recommend_default_limit if limit is None else limit
    if limit <= 0:
        raise ValueError(f"limit must be positive, got {limit}")
    timeout = settings.recommend_timeout_seconds if timeout is None else timeout

    t0 = time.time()
    try:
        ranked = await asyncio.wait_for(_recommend(repo, user_id), timeout=timeout)
    except StorageError as exc:
        log.warning("recommendations_degraded user=%s error=%s", user_id, exc)
        return RecommendationResult(degraded=True, error="storage_unavailable")
    except asyncio.TimeoutError:
        log.warning("recommendations_degraded user=%s error=timeout timeout=%.2fs", user_id, timeout)
        return RecommendationResult(degraded=True, error="timeout")

    items = ranked[:limit]
    log.info(
        "recommendations_ok user=%s returned=%d ranked=%d duration_ms=%d",
        user_id, len(items), len(ranked), int((time.time() - t0) * 1000),
    )
    return RecommendationResult(items=items)
