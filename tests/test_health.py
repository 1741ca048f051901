import asyncio

import graph
import health
from config import settings


def test_unconfigured_neo4j_is_reported(monkeypatch):
    monkeypatch.setattr(settings, "neo4j_uri", "")
    monkeypatch.setattr(graph, "_repository", None)
    status = asyncio.run(health.collect_health_status())
    assert status["ok"] is False
    assert status["checks"]["neo4j"]["skipped"] is True
