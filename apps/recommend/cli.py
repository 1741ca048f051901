# apps/recommend/cli.py
"""
Batch and debugging entry point.

    python cli.py store [--dump-dir DIR] [--no-reset] [--skip-similarity]
    python cli.py index [--dump-dir DIR]
    python cli.py similar VIDEO_ID [-k 2] [--dump-dir DIR]
    python cli.py recommend USER_ID [--limit 10]
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import List, Optional

from config import settings
from errors import DataError, StorageError, VideoNotFoundError
from graph import Neo4jGraphRepository
from indexing import run_similarity_job
from loader import VIDEOS_FILE, load_documents, load_dump, store_dump, to_document
from recommendations import get_recommendations
from similarity import cosine_similarity, top_k_similar
from vectorizer import build_tf_matrix

log = logging.getLogger("cli")


async def _store(args: argparse.Namespace) -> int:
    repo = Neo4jGraphRepository()
    try:
        dump = load_dump(args.dump_dir)
        counts = await store_dump(repo, dump, reset=not args.no_reset)
        if not args.skip_similarity:
            log.info("Adding recommendations")
            report = await run_similarity_job(repo, [to_document(v) for v in dump.videos])
            counts = await repo.counts()
            if not report.ok:
                log.error(
                    "similarity_edges_unwritten failed=%d unmatched=%d",
                    len(report.failed), report.unmatched,
                )
                print(json.dumps(counts.model_dump(), indent=2))
                return 1
        print(json.dumps(counts.model_dump(), indent=2))
        return 0
    finally:
        await repo.close()


async def _index(args: argparse.Namespace) -> int:
    repo = Neo4jGraphRepository()
    try:
        documents = load_documents(os.path.join(args.dump_dir, VIDEOS_FILE))
        report = await run_similarity_job(repo, documents)
        print(json.dumps({
            "written": report.written,
            "failed": len(report.failed),
            "unmatched": report.unmatched,
        }))
        return 0 if report.ok else 1
    finally:
        await repo.close()


def _similar(args: argparse.Namespace) -> int:
    documents = load_documents(os.path.join(args.dump_dir, VIDEOS_FILE))
    tf_matrix, vocabulary = build_tf_matrix(documents)
    log.info("Dimensions: %s", (len(documents), len(vocabulary)))
    sim = cosine_similarity(tf_matrix)
    index: dict = {}
    for i, doc in enumerate(documents):
        index.setdefault(doc.id, i)
    similar = top_k_similar(args.video_id, documents, sim, args.k)
    row = index[args.video_id]
    out = [
        {"id": d.id, "title": d.title, "similarity": round(float(sim[row, index[d.id]]), 4)}
        for d in similar
    ]
    print(json.dumps(out, indent=2, ensure_ascii=False))
    return 0


async def _recommend(args: argparse.Namespace) -> int:
    repo = Neo4jGraphRepository()
    try:
        result = await get_recommendations(repo, args.user_id, limit=args.limit)
    finally:
        await repo.close()
    out = [{"id": r.video, "title": r.title, "score": r.score} for r in result.items]
    print(json.dumps(out, indent=2, ensure_ascii=False))
    if result.degraded:
        log.error("recommendations_degraded error=%s", result.error)
        return 1
    return 0


def _positive_int(raw: str) -> int:
    value = int(raw)
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer: {raw}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="recommend",
        description="Content-based video similarity and recommendations.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("store", help="load the JSON dump into the graph, then add similarity edges")
    p.add_argument("--dump-dir", default=settings.dump_dir)
    p.add_argument("--no-reset", action="store_true", help="keep existing vertices")
    p.add_argument("--skip-similarity", action="store_true")

    p = sub.add_parser("index", help="compute and write similarity edges only")
    p.add_argument("--dump-dir", default=settings.dump_dir)

    p = sub.add_parser("similar", help="offline preview of the most similar videos")
    p.add_argument("video_id")
    p.add_argument("-k", type=_positive_int, default=2)
    p.add_argument("--dump-dir", default=settings.dump_dir)

    p = sub.add_parser("recommend", help="print recommendations for a user")
    p.add_argument("user_id")
    p.add_argument("--limit", type=_positive_int, default=settings.recommend_default_limit)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO)
    args = build_parser().parse_args(argv)

    try:
        if args.command == "store":
            return asyncio.run(_store(args))
        if args.command == "index":
            return asyncio.run(_index(args))
        if args.command == "similar":
            return _similar(args)
        if args.command == "recommend":
            return asyncio.run(_recommend(args))
    except VideoNotFoundError as exc:
        log.error("%s", exc)
        return 1
    except (StorageError, DataError, OSError) as exc:
        log.error("%s_failed: %s", args.command, exc)
        return 1
    return 2


if __name__ == "__main__":
    sys.exit(main())
