# apps/recommend/schemas.py
from typing import Any, Optional

from pydantic import BaseModel, field_validator


def _id_str(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, str):
        return value.strip()
    return value


# Records of the JSON dump written by the export step

class UserRecord(BaseModel):
    user_id: str

    @field_validator("user_id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return _id_str(v)


class VideoRecord(BaseModel):
    video_id: str
    title: str = ""
    description: str = ""
    publisher_id: Optional[str] = None

    @field_validator("video_id", "publisher_id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return _id_str(v)

    @field_validator("title", "description", mode="before")
    @classmethod
    def text_or_empty(cls, v):
        # missing or non-text fields are indexed as empty text
        return v if isinstance(v, str) else ""


class LikeRecord(BaseModel):
    user_id: str
    video_id: str

    @field_validator("user_id", "video_id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return _id_str(v)


class HistoryRecord(BaseModel):
    user_id: str
    video_id: str
    watch_time: float = 0.0
    watch_percentage: float = 0.0
    is_watched: bool = False

    @field_validator("user_id", "video_id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return _id_str(v)


# API

class RecommendationOut(BaseModel):
    id: str
    title: str
    score: float


class GraphCounts(BaseModel):
    users: int = 0
    videos: int = 0
    likes: int = 0
    watched: int = 0
    similar_to: int = 0
