# apps/recommend/models.py
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Document:
    id: str
    title: str = ""
    description: str = ""

    @property
    def text(self) -> str:
        return f"{(self.title or '').lower()} {(self.description or '').lower()}"


@dataclass(frozen=True)
class SimilarityEdge:
    # stored once per unordered pair; direction carries no meaning
    source: str
    target: str
    weight: float


@dataclass(frozen=True)
class WatchRelation:
    user: str
    video: str
    watched_percentage: float = 1.0


@dataclass(frozen=True)
class Recommendation:
    video: str
    title: str
    score: float
