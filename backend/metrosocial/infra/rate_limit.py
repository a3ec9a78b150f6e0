"""Simple Redis-backed rate limiting utilities."""

from __future__ import annotations

import math
import time
from typing import Optional

from metrosocial.domain.errors import RateLimitExceeded
from metrosocial.infra.redis import redis_client
from metrosocial.obs import metrics as obs_metrics
from metrosocial.settings import Settings, settings as default_settings


async def allow(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: int = 60,
	now: Optional[float] = None,
) -> bool:
	"""Return True when the operation is still within the allowed budget."""

	if limit <= 0:
		return False
	now = now or time.time()
	window = max(1, int(window_seconds))
	slot = int(math.floor(now / window))
	key = f"rl:{kind}:{actor_id}:{slot}:{window}"
	async with redis_client.pipeline(transaction=True) as pipe:
		pipe.incr(key)
		pipe.expire(key, window)
		count, _ = await pipe.execute()
	return int(count) <= limit


async def enforce(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: int = 60,
	settings: Optional[Settings] = None,
) -> None:
	"""Raise RateLimitExceeded once the actor is over budget.

	Disabled entirely when ``rate_limit_enabled`` is off; dev environments get a
	ten-fold budget.
	"""
	settings = settings or default_settings
	if not settings.rate_limit_enabled:
		return
	budget = limit * 10 if settings.is_dev() else limit
	if not await allow(kind, actor_id, limit=budget, window_seconds=window_seconds):
		obs_metrics.RATE_LIMITED_EVENTS.labels(kind=kind).inc()
		raise RateLimitExceeded(kind)


__all__ = ["allow", "enforce", "RateLimitExceeded"]
