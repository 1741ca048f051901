# apps/recommend/routes_recommendations.py
import logging
from typing import List

from fastapi import APIRouter, Depends, Query, Response

from config import settings
from graph import GraphRepository, get_repository
from recommendations import get_recommendations
from schemas import RecommendationOut

router = APIRouter(prefix="/recommendations", tags=["recommendations"])

log = logging.getLogger("routes_recommendations")

STATUS_HEADER = "X-Recommendations-Status"
ERROR_HEADER = "X-Recommendations-Error"


@router.get("/{user_id}", response_model=List[RecommendationOut])
async def user_recommendations(
    user_id: str,
    response: Response,
    limit: int = Query(
        settings.recommend_default_limit, ge=1, le=settings.recommend_max_limit
    ),
    repo: GraphRepository = Depends(get_repository),
):
    result = await get_recommendations(repo, user_id, limit=limit)

    if result.degraded:
        # same body shape either way; the headers tell callers the list is not authoritative
        response.headers[STATUS_HEADER] = "degraded"
        response.headers[ERROR_HEADER] = result.error or "unknown"
    else:
        response.headers[STATUS_HEADER] = "ok"

    return [
        RecommendationOut(id=r.video, title=r.title, score=r.score)
        for r in result.items
    ]
