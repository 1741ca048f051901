# apps/recommend/errors.py
from __future__ import annotations


class RecommendError(Exception):
    """Base class for errors raised by the recommendation engine."""


class DataError(RecommendError, ValueError):
    """A dump record is malformed or misses a required field."""


class NumericError(RecommendError, ArithmeticError):
    """An arithmetic result is undefined (empty mean, zero norm)."""


class VideoNotFoundError(RecommendError, LookupError):
    def __init__(self, video_id: str):
        super().__init__(f"video not found: {video_id}")
        self.video_id = video_id


class StorageError(RecommendError):
    """The graph store is unreachable, timed out, or returned bad data."""
