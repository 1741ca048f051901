# apps/recommend/loader.py
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError

from config import settings
from errors import DataError
from graph import GraphRepository
from indexing import chunked
from models import Document, WatchRelation
from schemas import GraphCounts, HistoryRecord, LikeRecord, UserRecord, VideoRecord

log = logging.getLogger("loader")

USERS_FILE = "user_ids.json"
VIDEOS_FILE = "videos.json"
LIKES_FILE = "likes.json"
HISTORY_FILE = "history.json"

M = TypeVar("M", bound=BaseModel)


@dataclass
class Dump:
    users: List[UserRecord] = field(default_factory=list)
    videos: List[VideoRecord] = field(default_factory=list)
    likes: List[LikeRecord] = field(default_factory=list)
    history: List[HistoryRecord] = field(default_factory=list)


def read_json_array(path: str) -> List[Any]:
    with open(path, "r", encoding="utf-8") as fh:
        try:
            data = json.load(fh)
        except json.JSONDecodeError as exc:
            raise DataError(f"{path}: invalid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise DataError(f"{path}: expected a JSON array, got {type(data).__name__}")
    return data


def parse_record(row: Any, model: Type[M]) -> M:
    try:
        record = model.model_validate(row)
    except ValidationError as exc:
        raise DataError(f"invalid {model.__name__}: {exc.errors()}") from exc
    for name in ("user_id", "video_id"):
        if name in model.model_fields and not getattr(record, name):
            raise DataError(f"invalid {model.__name__}: empty {name}")
    return record


def parse_records(rows: Sequence[Any], model: Type[M]) -> List[M]:
    """Parse every row, skipping (and logging) the malformed ones."""
    out: List[M] = []
    skipped = 0
    for idx, row in enumerate(rows):
        try:
            out.append(parse_record(row, model))
        except DataError as exc:
            skipped += 1
            log.warning("dump_record_skipped kind=%s index=%d error=%s", model.__name__, idx, exc)
    if skipped:
        log.info("dump_records_parsed kind=%s ok=%d skipped=%d", model.__name__, len(out), skipped)
    return out


def to_document(video: VideoRecord) -> Document:
    return Document(id=video.video_id, title=video.title, description=video.description)


def load_documents(path: str) -> List[Document]:
    """Catalog documents from a videos dump, in file order."""
    videos = parse_records(read_json_array(path), VideoRecord)
    return [to_document(v) for v in videos]


def load_dump(dump_dir: Optional[str] = None) -> Dump:
    dump_dir = dump_dir or settings.dump_dir

    def load(name: str, model: Type[M]) -> List[M]:
        path = os.path.join(dump_dir, name)
        if not os.path.exists(path):
            log.warning("dump_file_missing path=%s", path)
            return []
        return parse_records(read_json_array(path), model)

    return Dump(
        users=load(USERS_FILE, UserRecord),
        videos=load(VIDEOS_FILE, VideoRecord),
        likes=load(LIKES_FILE, LikeRecord),
        history=load(HISTORY_FILE, HistoryRecord),
    )


def watched_relations(
    history: Sequence[HistoryRecord],
    threshold: Optional[float] = None,
) -> List[WatchRelation]:
    """A view counts as watched when flagged so or mostly watched."""
    threshold = settings.watched_percent_th if threshold is None else threshold
    return [
        WatchRelation(user=h.user_id, video=h.video_id, watched_percentage=h.watch_percentage)
        for h in history
        if h.is_watched or h.watch_percentage >= threshold
    ]


async def store_dump(
    repo: GraphRepository,
    dump: Dump,
    *,
    reset: bool = True,
    batch_size: Optional[int] = None,
) -> GraphCounts:
    """
    Load users, videos, likes and watches into the graph. Relations that
    point at unknown users or videos are dropped by the store.
    """
    batch_size = batch_size or settings.edge_batch_size

    if reset:
        log.info("Dropping vertices")
        await repo.reset()

    log.info("Adding users")
    for batch in chunked([u.user_id for u in dump.users], batch_size):
        await repo.upsert_users(batch)

    log.info("Adding videos")
    for batch in chunked(dump.videos, batch_size):
        await repo.upsert_videos(batch)

    log.info("Adding likes")
    likes = [WatchRelation(user=like.user_id, video=like.video_id) for like in dump.likes]
    linked = 0
    for batch in chunked(likes, batch_size):
        linked += await repo.add_likes(batch)
    if linked < len(likes):
        log.info("likes_unmatched count=%d", len(likes) - linked)

    log.info("Adding history")
    watches = watched_relations(dump.history)
    linked = 0
    for batch in chunked(watches, batch_size):
        linked += await repo.add_watches(batch)
    log.info(
        "history_loaded rows=%d watched=%d linked=%d",
        len(dump.history), len(watches), linked,
    )

    counts = await repo.counts()
    log.info(
        "graph_counts users=%d videos=%d likes=%d watched=%d similar_to=%d",
        counts.users, counts.videos, counts.likes, counts.watched, counts.similar_to,
    )
    return counts
