"""Health check helpers for liveness and readiness probes."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Dict, Tuple

from metrosocial.infra.redis import redis_client

LOGGER = logging.getLogger(__name__)


async def _redis_status(timeout: float = 0.2) -> Dict[str, Any]:
	start = perf_counter()
	try:
		await asyncio.wait_for(redis_client.ping(), timeout=timeout)
	except Exception as exc:  # pragma: no cover - depends on runtime
		LOGGER.warning("Redis readiness check failed", exc_info=True)
		return {"ok": False, "error": str(exc)}
	latency = perf_counter() - start
	return {"ok": True, "latency_ms": round(latency * 1000, 2)}


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness(container) -> Tuple[int, Dict[str, Any]]:
	"""Redis backs rate limiting only, so its loss degrades but does not fail readiness."""
	redis_state = await _redis_status()
	payload: Dict[str, Any] = {
		"status": "ok" if redis_state.get("ok") else "degraded",
		"checks": {
			"redis": redis_state,
			"posts": {"ok": True, "count": container.posts.count()},
			"presence": {"ok": True, "online": container.presence.count()},
		},
	}
	return 200, payload
