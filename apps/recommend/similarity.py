# apps/recommend/similarity.py
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence, Tuple

import numpy as np

from config import settings
from errors import VideoNotFoundError
from models import Document, SimilarityEdge

log = logging.getLogger("similarity")


def normalize_rows(matrix: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    L2-normalize each row. Zero rows stay zero and are flagged in the
    returned mask instead of being divided by zero.
    """
    norms = np.linalg.norm(matrix, axis=1)
    nonzero = norms > 0
    normalized = np.zeros_like(matrix, dtype=np.float64)
    normalized[nonzero] = matrix[nonzero] / norms[nonzero, np.newaxis]
    return normalized, nonzero


def _row_blocks(n: int, parts: int) -> List[Tuple[int, int]]:
    parts = max(1, min(parts, n))
    bounds = np.linspace(0, n, parts + 1, dtype=int)
    return [(int(a), int(b)) for a, b in zip(bounds[:-1], bounds[1:]) if b > a]


def cosine_similarity(matrix: np.ndarray, workers: Optional[int] = None) -> np.ndarray:
    """
    Symmetric pairwise cosine similarity of the rows of ``matrix``.

    Any pairing that involves a zero row scores 0, including the zero row
    with itself; every other diagonal entry is exactly 1. Only the upper
    triangle is computed (split into row blocks run on a thread pool, each
    block writing its own rows) and then mirrored.
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    if matrix.ndim != 2:
        raise ValueError(f"expected a 2-D matrix, got shape {matrix.shape}")
    n = matrix.shape[0]
    if n == 0:
        return np.zeros((0, 0), dtype=np.float64)

    normalized, nonzero = normalize_rows(matrix)
    upper = np.zeros((n, n), dtype=np.float64)

    def compute(block: Tuple[int, int]) -> None:
        start, stop = block
        upper[start:stop, start:] = normalized[start:stop] @ normalized[start:].T

    workers = max(1, workers or settings.similarity_workers)
    # more blocks than workers: rows near the top carry more of the triangle
    blocks = _row_blocks(n, workers * 4)
    if workers == 1 or len(blocks) == 1:
        for block in blocks:
            compute(block)
    else:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            list(pool.map(compute, blocks))

    upper = np.triu(upper, k=1)
    similarity = upper + upper.T
    np.clip(similarity, -1.0, 1.0, out=similarity)
    np.fill_diagonal(similarity, np.where(nonzero, 1.0, 0.0))

    log.info(
        "similarity_matrix_built documents=%d zero_rows=%d workers=%d",
        n, int(n - nonzero.sum()), workers,
    )
    return similarity


def _index_of(video_id: str, documents: Sequence[Document]) -> int:
    for idx, doc in enumerate(documents):
        if doc.id == video_id:
            return idx
    raise VideoNotFoundError(video_id)


def top_k_similar(
    query_id: str,
    documents: Sequence[Document],
    similarity_matrix: np.ndarray,
    k: int,
) -> List[Document]:
    """Up to ``k`` documents most similar to ``query_id``, best first, ties by id."""
    index = _index_of(query_id, documents)
    if k <= 0:
        return []
    row = similarity_matrix[index]
    others = [i for i in range(len(documents)) if i != index]
    others.sort(key=lambda i: (-float(row[i]), documents[i].id))
    return [documents[i] for i in others[:k]]


def similarity_edges(
    documents: Sequence[Document],
    similarity_matrix: np.ndarray,
    floor: Optional[float] = None,
) -> List[SimilarityEdge]:
    """One edge per unordered pair whose weight is strictly above ``floor``."""
    floor = settings.similarity_floor if floor is None else floor
    n = len(documents)
    if similarity_matrix.shape != (n, n):
        raise ValueError(
            f"similarity matrix shape {similarity_matrix.shape} does not match {n} documents"
        )
    rows, cols = np.triu_indices(n, k=1)
    weights = similarity_matrix[rows, cols]
    keep = weights > floor
    edges = [
        SimilarityEdge(source=documents[i].id, target=documents[j].id, weight=float(w))
        for i, j, w in zip(rows[keep], cols[keep], weights[keep])
    ]
    log.info(
        "similarity_edges_built pairs=%d kept=%d floor=%.3f",
        len(weights), len(edges), floor,
    )
    return edges
