# apps/recommend/graph.py
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, Set

from neo4j import AsyncDriver, AsyncGraphDatabase
from neo4j.exceptions import DriverError, Neo4jError

from config import settings
from errors import StorageError
from models import SimilarityEdge, WatchRelation
from schemas import GraphCounts, VideoRecord

# silence verbose driver logs/notifications
logging.getLogger("neo4j").setLevel(logging.WARNING)
logging.getLogger("neo4j.notifications").setLevel(logging.ERROR)

log = logging.getLogger("graph")


class GraphRepository(Protocol):
    """Everything the engine needs from the graph store."""

    async def upsert_similarity_edges(self, edges: Sequence[SimilarityEdge]) -> int: ...

    async def get_watched_set(self, user_id: str) -> Set[str]: ...

    async def get_candidate_set(self, user_id: str) -> Set[str]: ...

    async def get_similarity_weight(self, video_a: str, video_b: str) -> Optional[float]: ...

    async def get_title(self, video_id: str) -> Optional[str]: ...

    # dump loading

    async def reset(self) -> None: ...

    async def upsert_users(self, user_ids: Sequence[str]) -> int: ...

    async def upsert_videos(self, videos: Sequence[VideoRecord]) -> int: ...

    async def add_likes(self, likes: Sequence[WatchRelation]) -> int: ...

    async def add_watches(self, watches: Sequence[WatchRelation]) -> int: ...

    async def counts(self) -> GraphCounts: ...

    async def close(self) -> None: ...


_CONSTRAINTS = [
    "CREATE CONSTRAINT video_id_unique IF NOT EXISTS FOR (v:Video) REQUIRE v.id IS UNIQUE",
    "CREATE CONSTRAINT user_id_unique IF NOT EXISTS FOR (u:User) REQUIRE u.id IS UNIQUE",
]

# LIKES and WATCHED both put a video in the user's watched set
_SEEN = "LIKES|WATCHED"


class Neo4jGraphRepository:
    def __init__(
        self,
        uri: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        database: Optional[str] = None,
    ):
        self.uri = (settings.neo4j_uri if uri is None else uri or "").strip()
        self.username = settings.neo4j_username if username is None else username
        self.password = settings.neo4j_password if password is None else password
        self.database = database or settings.neo4j_database or "neo4j"
        self._driver: Optional[AsyncDriver] = None
        self._driver_lock: Optional[asyncio.Lock] = None
        self._constraints_ready = False

    async def _get_driver(self) -> AsyncDriver:
        if self._driver:
            return self._driver
        if not self.uri:
            raise StorageError("Neo4j disabled (NEO4J_URI empty)")
        if self._driver_lock is None:
            self._driver_lock = asyncio.Lock()
        # first lookups of a request arrive together; only one may connect
        async with self._driver_lock:
            if self._driver:
                return self._driver
            driver = AsyncGraphDatabase.driver(
                self.uri,
                auth=(self.username or "", self.password or ""),
            )
            try:
                await driver.verify_connectivity()
            except (DriverError, Neo4jError, OSError) as exc:
                await driver.close()
                log.warning("Neo4j connection failed: %s", exc)
                raise StorageError(f"Neo4j connection failed: {exc}") from exc
            log.info("Neo4j connected: %s", self.uri)
            self._driver = driver
            return driver

    async def _run(self, query: str, **params: Any) -> List[Dict[str, Any]]:
        driver = await self._get_driver()
        try:
            async with driver.session(database=self.database) as sess:
                result = await sess.run(query, params)
                return await result.data()
        except (DriverError, Neo4jError) as exc:
            raise StorageError(f"graph query failed: {exc}") from exc

    async def ensure_constraints(self) -> None:
        if self._constraints_ready:
            return
        for stmt in _CONSTRAINTS:
            await self._run(stmt)
        self._constraints_ready = True
        log.info("Neo4j constraints ensured")

    async def upsert_similarity_edges(self, edges: Sequence[SimilarityEdge]) -> int:
        """Returns how many edges were merged; rows naming a missing Video are skipped."""
        if not edges:
            return 0
        await self.ensure_constraints()
        rows = [{"a": e.source, "b": e.target, "w": float(e.weight)} for e in edges]
        # undirected MERGE matches an existing edge in either direction
        result = await self._run(
            """
            UNWIND $rows AS row
            MATCH (a:Video {id: row.a})
            MATCH (b:Video {id: row.b})
            MERGE (a)-[r:SIMILAR_TO]-(b)
            SET r.similarity = row.w
            RETURN count(r) AS n
            """,
            rows=rows,
        )
        return int(result[0]["n"]) if result else 0

    async def get_watched_set(self, user_id: str) -> Set[str]:
        rows = await self._run(
            f"""
            MATCH (:User {{id: $uid}})-[:{_SEEN}]->(v:Video)
            RETURN DISTINCT v.id AS id
            """,
            uid=user_id,
        )
        return {str(r["id"]) for r in rows if r.get("id") is not None}

    async def get_candidate_set(self, user_id: str) -> Set[str]:
        rows = await self._run(
            f"""
            MATCH (v:Video)
            WHERE NOT EXISTS {{ MATCH (:User {{id: $uid}})-[:{_SEEN}]->(v) }}
            RETURN v.id AS id
            """,
            uid=user_id,
        )
        return {str(r["id"]) for r in rows if r.get("id") is not None}

    async def get_similarity_weight(self, video_a: str, video_b: str) -> Optional[float]:
        rows = await self._run(
            """
            MATCH (:Video {id: $a})-[r:SIMILAR_TO]-(:Video {id: $b})
            RETURN r.similarity AS similarity
            LIMIT 1
            """,
            a=video_a,
            b=video_b,
        )
        if not rows or rows[0].get("similarity") is None:
            return None
        try:
            return float(rows[0]["similarity"])
        except (TypeError, ValueError) as exc:
            raise StorageError(f"bad similarity on {video_a}-{video_b}: {rows[0]['similarity']!r}") from exc

    async def get_title(self, video_id: str) -> Optional[str]:
        rows = await self._run(
            "MATCH (v:Video {id: $id}) RETURN v.title AS title",
            id=video_id,
        )
        if not rows or rows[0].get("title") is None:
            return None
        return str(rows[0]["title"])

    async def reset(self) -> None:
        await self._run("MATCH (n) DETACH DELETE n")
        log.info("graph_reset_ok")

    async def upsert_users(self, user_ids: Sequence[str]) -> int:
        await self.ensure_constraints()
        rows = await self._run(
            """
            UNWIND $ids AS uid
            MERGE (u:User {id: uid})
            RETURN count(u) AS n
            """,
            ids=list(user_ids),
        )
        return int(rows[0]["n"]) if rows else 0

    async def upsert_videos(self, videos: Sequence[VideoRecord]) -> int:
        await self.ensure_constraints()
        payload = [
            {
                "id": v.video_id,
                "title": v.title,
                "description": v.description,
                "publisher_id": v.publisher_id,
            }
            for v in videos
        ]
        rows = await self._run(
            """
            UNWIND $rows AS row
            MERGE (v:Video {id: row.id})
            SET v.title = row.title,
                v.description = row.description,
                v.publisher_id = row.publisher_id
            RETURN count(v) AS n
            """,
            rows=payload,
        )
        return int(rows[0]["n"]) if rows else 0

    async def add_likes(self, likes: Sequence[WatchRelation]) -> int:
        rows = await self._run(
            """
            UNWIND $rows AS row
            MATCH (u:User {id: row.user})
            MATCH (v:Video {id: row.video})
            MERGE (u)-[r:LIKES]->(v)
            RETURN count(r) AS n
            """,
            rows=[{"user": r.user, "video": r.video} for r in likes],
        )
        return int(rows[0]["n"]) if rows else 0

    async def add_watches(self, watches: Sequence[WatchRelation]) -> int:
        rows = await self._run(
            """
            UNWIND $rows AS row
            MATCH (u:User {id: row.user})
            MATCH (v:Video {id: row.video})
            MERGE (u)-[r:WATCHED]->(v)
            SET r.watchedPercentage = row.pct
            RETURN count(r) AS n
            """,
            rows=[
                {"user": w.user, "video": w.video, "pct": float(w.watched_percentage)}
                for w in watches
            ],
        )
        return int(rows[0]["n"]) if rows else 0

    async def counts(self) -> GraphCounts:
        rows = await self._run(
            """
            CALL { MATCH (u:User) RETURN count(u) AS users }
            CALL { MATCH (v:Video) RETURN count(v) AS videos }
            CALL { MATCH ()-[r:LIKES]->() RETURN count(r) AS likes }
            CALL { MATCH ()-[r:WATCHED]->() RETURN count(r) AS watched }
            CALL { MATCH ()-[r:SIMILAR_TO]->() RETURN count(r) AS similar_to }
            RETURN users, videos, likes, watched, similar_to
            """
        )
        return GraphCounts(**rows[0]) if rows else GraphCounts()

    async def ping(self) -> bool:
        rows = await self._run("RETURN 1 AS ok")
        return bool(rows and rows[0].get("ok"))

    async def close(self) -> None:
        if self._driver:
            await self._driver.close()
            self._driver = None
        self._driver_lock = None


_repository: Optional[Neo4jGraphRepository] = None


def get_repository() -> Neo4jGraphRepository:
    global _repository
    if _repository is None:
        _repository = Neo4jGraphRepository()
    return _repository


async def close_repository() -> None:
    global _repository
    if _repository is not None:
        await _repository.close()
        _repository = None
