# apps/recommend/vectorizer.py
from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from models import Document
from tokenizer import tokenize as default_tokenize

log = logging.getLogger("vectorizer")

TokenizeFn = Callable[[str], List[str]]
Vocabulary = Dict[str, int]


def build_vocabulary(token_lists: Sequence[Sequence[str]]) -> Vocabulary:
    """Assign indices to terms in first-seen order."""
    vocabulary: Vocabulary = {}
    for tokens in token_lists:
        for token in tokens:
            if token not in vocabulary:
                vocabulary[token] = len(vocabulary)
    return vocabulary


def build_tf_matrix(
    documents: Sequence[Document],
    tokenize_fn: Optional[TokenizeFn] = None,
) -> Tuple[np.ndarray, Vocabulary]:
    """
    Term-frequency matrix of shape (len(documents), len(vocabulary)).

    Two passes: tokens are collected and the vocabulary is fixed first,
    then counts are written into a pre-sized zero matrix. Documents without
    terms keep an all-zero row.
    """
    tokenize_fn = tokenize_fn or default_tokenize
    token_lists = [tokenize_fn(doc.text) for doc in documents]
    vocabulary = build_vocabulary(token_lists)

    matrix = np.zeros((len(documents), len(vocabulary)), dtype=np.float64)
    for row, tokens in enumerate(token_lists):
        for token in tokens:
            matrix[row, vocabulary[token]] += 1.0

    empty_rows = sum(1 for tokens in token_lists if not tokens)
    log.info(
        "tf_matrix_built documents=%d vocabulary=%d empty_rows=%d",
        len(documents), len(vocabulary), empty_rows,
    )
    return matrix, vocabulary
