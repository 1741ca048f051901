# apps/recommend/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import config
from errors import StorageError
from graph import close_repository, get_repository
from health import collect_health_status
from routes_recommendations import router as recommendations_router


app = FastAPI(title="Video Recommendations API")

log = logging.getLogger("api.main")


app.add_middleware(
    CORSMiddleware,
    allow_origins=config.settings.cors_origins or ["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(recommendations_router)


@app.on_event("startup")
async def _startup() -> None:
    try:
        await get_repository().ensure_constraints()
        log.debug("Startup task 'graph_constraints' completed")
    except StorageError as exc:
        # serving still starts; requests degrade until the graph is back
        log.warning("Startup task 'graph_constraints' failed: %s", exc)


@app.on_event("shutdown")
async def _shutdown() -> None:
    await close_repository()


@app.get("/")
def root():
    return {"message": "hello from recommendations"}


@app.get("/healthz")
async def healthz():
    return await collect_health_status()


# Run: uvicorn main:app --reload --port 3000
