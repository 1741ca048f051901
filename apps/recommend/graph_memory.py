# apps/recommend/graph_memory.py
from __future__ import annotations

import asyncio
from typing import Dict, FrozenSet, Optional, Sequence, Set, Tuple

from errors import StorageError
from models import SimilarityEdge, WatchRelation
from schemas import GraphCounts, VideoRecord


def _pair(a: str, b: str) -> FrozenSet[str]:
    return frozenset((a, b))


class InMemoryGraphRepository:
    """
    Dict-backed stand-in for Neo4jGraphRepository with the same semantics.

    ``fail_with`` makes every call raise that StorageError; ``delay`` makes
    every call sleep first, which is how timeouts are exercised.
    """

    def __init__(self, *, delay: float = 0.0, fail_with: Optional[StorageError] = None):
        self.users: Set[str] = set()
        self.videos: Dict[str, VideoRecord] = {}
        self.likes: Set[Tuple[str, str]] = set()
        self.watches: Dict[Tuple[str, str], float] = {}
        self.similarity: Dict[FrozenSet[str], float] = {}
        self.delay = delay
        self.fail_with = fail_with
        self.calls = 0

    async def _tick(self) -> None:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with

    # test helpers

    def add_video(self, video_id: str, title: str = "", description: str = "") -> None:
        self.videos[video_id] = VideoRecord(video_id=video_id, title=title, description=description)

    def set_similarity(self, a: str, b: str, weight: float) -> None:
        self.similarity[_pair(a, b)] = float(weight)

    # GraphRepository

    async def upsert_similarity_edges(self, edges: Sequence[SimilarityEdge]) -> int:
        await self._tick()
        n = 0
        for e in edges:
            if e.source in self.videos and e.target in self.videos:
                self.similarity[_pair(e.source, e.target)] = float(e.weight)
                n += 1
        return n

    def _seen(self, user_id: str) -> Set[str]:
        seen = {v for u, v in self.likes if u == user_id}
        seen.update(v for u, v in self.watches if u == user_id)
        return seen & set(self.videos)

    async def get_watched_set(self, user_id: str) -> Set[str]:
        await self._tick()
        return self._seen(user_id)

    async def get_candidate_set(self, user_id: str) -> Set[str]:
        await self._tick()
        return set(self.videos) - self._seen(user_id)

    async def get_similarity_weight(self, video_a: str, video_b: str) -> Optional[float]:
        await self._tick()
        return self.similarity.get(_pair(video_a, video_b))

    async def get_title(self, video_id: str) -> Optional[str]:
        await self._tick()
        video = self.videos.get(video_id)
        return video.title if video is not None else None

    async def reset(self) -> None:
        await self._tick()
        self.users.clear()
        self.videos.clear()
        self.likes.clear()
        self.watches.clear()
        self.similarity.clear()

    async def upsert_users(self, user_ids: Sequence[str]) -> int:
        await self._tick()
        self.users.update(user_ids)
        return len(user_ids)

    async def upsert_videos(self, videos: Sequence[VideoRecord]) -> int:
        await self._tick()
        for v in videos:
            self.videos[v.video_id] = v
        return len(videos)

    async def add_likes(self, likes: Sequence[WatchRelation]) -> int:
        await self._tick()
        n = 0
        for r in likes:
            if r.user in self.users and r.video in self.videos:
                self.likes.add((r.user, r.video))
                n += 1
        return n

    async def add_watches(self, watches: Sequence[WatchRelation]) -> int:
        await self._tick()
        n = 0
        for w in watches:
            if w.user in self.users and w.video in self.videos:
                self.watches[(w.user, w.video)] = float(w.watched_percentage)
                n += 1
        return n

    async def counts(self) -> GraphCounts:
        await self._tick()
        return GraphCounts(
            users=len(self.users),
            videos=len(self.videos),
            likes=len(self.likes),
            watched=len(self.watches),
            similar_to=len(self.similarity),
        )

    async def close(self) -> None:
        return None
