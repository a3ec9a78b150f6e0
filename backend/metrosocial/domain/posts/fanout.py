"""Best-effort broadcast of post changes to connected subscribers."""

from __future__ import annotations

import logging
import threading
from typing import Any, Awaitable, Callable, Dict, List

from metrosocial.domain.posts.models import Post
from metrosocial.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

POST_CREATED = "postCreated"
POST_UPDATED = "postUpdated"
EVENTS = (POST_CREATED, POST_UPDATED)

Subscriber = Callable[[str, Dict[str, Any]], Awaitable[None]]


class FanoutBus:
	"""Push ``postCreated``/``postUpdated`` to whoever is subscribed right now.

	There is no backlog, replay, ack or retry. A subscriber that raises is logged
	and skipped so the rest still receive the event.
	"""

	def __init__(self) -> None:
		self._subscribers: List[Subscriber] = []
		self._lock = threading.Lock()

	def subscribe(self, callback: Subscriber) -> Callable[[], None]:
		with self._lock:
			self._subscribers.append(callback)

		def unsubscribe() -> None:
			with self._lock:
				try:
					self._subscribers.remove(callback)
				except ValueError:
					pass

		return unsubscribe

	def subscriber_count(self) -> int:
		with self._lock:
			return len(self._subscribers)

	async def publish(self, event: str, post: Post) -> int:
		"""Deliver ``event`` with the post's wire payload. Returns successful deliveries."""
		if event not in EVENTS:
			raise ValueError(f"unknown fanout event: {event}")
		payload = post.to_dict()
		with self._lock:
			targets = list(self._subscribers)
		delivered = 0
		for callback in targets:
			try:
				await callback(event, payload)
			except Exception:
				obs_metrics.inc_fanout_delivery(event, "error")
				logger.warning("fanout subscriber failed event=%s post=%s", event, post.id, exc_info=True)
				continue
			obs_metrics.inc_fanout_delivery(event, "ok")
			delivered += 1
		return delivered
