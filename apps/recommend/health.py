# apps/recommend/health.py
from __future__ import annotations

import logging
from typing import Any, Dict

from config import settings
from errors import StorageError
from graph import get_repository

log = logging.getLogger("health")


async def check_neo4j() -> Dict[str, Any]:
    """Check if Neo4j is reachable and answers a trivial query."""
    uri = (settings.neo4j_uri or "").strip()
    if not uri:
        return {"ok": False, "skipped": True, "reason": "Neo4j URI not configured"}
    try:
        ok = await get_repository().ping()
        return {"ok": ok}
    except StorageError as e:
        log.warning("Neo4j health check failed: %s", e)
        return {"ok": False, "error": str(e)}


async def collect_health_status() -> Dict[str, Any]:
    """Overall "ok" follows the graph store, which every request needs."""
    neo4j = await check_neo4j()
    return {
        "ok": bool(neo4j.get("ok", False)),
        "checks": {"neo4j": neo4j},
    }
