"""Online presence and last-known location bookkeeping.

Both registries are plain in-memory maps owned by the service container. Every
mutation goes through an RLock so request handlers running on worker threads
cannot interleave a read-modify-write.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from metrosocial.domain.proximity.models import GeoPoint, LocationRecord, PresenceRecord
from metrosocial.infra.auth import AuthenticatedUser
from metrosocial.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


class PresenceRegistry:
	"""Authoritative set of users that are online right now.

	Per user the only states are OFFLINE (no record) and ONLINE (record present).
	"""

	def __init__(self, *, clock: Clock = _utcnow) -> None:
		self._clock = clock
		self._lock = threading.RLock()
		self._records: Dict[str, PresenceRecord] = {}
		self._connections: Dict[str, int] = {}

	def mark_online(self, user: AuthenticatedUser) -> PresenceRecord:
		"""Upsert the presence record; calling it again only refreshes ``last_seen``."""
		with self._lock:
			was_online = user.id in self._records
			record = PresenceRecord(
				user_id=user.id,
				username=user.username,
				avatar=user.avatar,
				name=user.name,
				bio=user.bio,
				last_seen=self._clock(),
			)
			self._records[user.id] = record
			count = len(self._records)
		if not was_online:
			obs_metrics.presence_changed("online", "explicit", count)
			logger.info("presence online user=%s", user.id)
		return record

	def mark_offline(self, user_id: str, *, reason: str = "explicit") -> bool:
		"""Drop the presence record. Returns False when the user was already offline."""
		with self._lock:
			removed = self._records.pop(user_id, None)
			count = len(self._records)
		if removed is None:
			return False
		obs_metrics.presence_changed("offline", reason, count)
		logger.info("presence offline user=%s reason=%s", user_id, reason)
		return True

	def is_online(self, user_id: str) -> bool:
		with self._lock:
			return user_id in self._records

	def get(self, user_id: str) -> Optional[PresenceRecord]:
		with self._lock:
			return self._records.get(user_id)

	def online_ids(self) -> List[str]:
		with self._lock:
			return sorted(self._records)

	def count(self) -> int:
		with self._lock:
			return len(self._records)

	def attach_connection(self, user_id: str) -> int:
		"""Count a live transport connection for ``user_id``."""
		with self._lock:
			count = self._connections.get(user_id, 0) + 1
			self._connections[user_id] = count
			return count

	def detach_connection(self, user_id: str) -> int:
		"""Forget one transport connection and return how many remain."""
		with self._lock:
			count = self._connections.get(user_id, 0)
			if count <= 1:
				self._connections.pop(user_id, None)
				return 0
			self._connections[user_id] = count - 1
			return count - 1


class LocationBook:
	"""Last reported location per user."""

	def __init__(self, *, clock: Clock = _utcnow) -> None:
		self._clock = clock
		self._lock = threading.RLock()
		self._records: Dict[str, LocationRecord] = {}

	def report(self, user: AuthenticatedUser, latitude: float, longitude: float) -> LocationRecord:
		record = LocationRecord(
			user_id=user.id,
			username=user.username,
			avatar=user.avatar,
			location=GeoPoint(latitude=float(latitude), longitude=float(longitude)),
			last_updated=self._clock(),
		)
		with self._lock:
			self._records[user.id] = record
		return record

	def get(self, user_id: str) -> Optional[LocationRecord]:
		with self._lock:
			return self._records.get(user_id)

	def all(self) -> List[LocationRecord]:
		with self._lock:
			return list(self._records.values())

	def count(self) -> int:
		with self._lock:
			return len(self._records)
