"""Domain models used by the proximity service."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Literal, Optional

ProximityZone = Literal["intimate", "personal", "social", "public"]


@dataclass(frozen=True, slots=True)
class GeoPoint:
	latitude: float
	longitude: float

	def to_dict(self) -> Dict[str, float]:
		return {"latitude": self.latitude, "longitude": self.longitude}


@dataclass(slots=True)
class LocationRecord:
	"""Last reported position of a user. Overwritten on every report, never expired."""

	user_id: str
	username: str
	avatar: Optional[str]
	location: GeoPoint
	last_updated: datetime

	def to_dict(self) -> Dict[str, Any]:
		return {
			"userId": self.user_id,
			"username": self.username,
			"avatar": self.avatar,
			"location": self.location.to_dict(),
			"lastUpdated": self.last_updated.isoformat(),
		}


@dataclass(slots=True)
class PresenceRecord:
	user_id: str
	username: str
	avatar: Optional[str]
	last_seen: datetime
	name: Optional[str] = None
	bio: Optional[str] = None

	def to_dict(self) -> Dict[str, Any]:
		return {
			"userId": self.user_id,
			"username": self.username,
			"avatar": self.avatar,
			"name": self.name,
			"bio": self.bio,
			"lastSeen": self.last_seen.isoformat(),
		}


@dataclass(frozen=True, slots=True)
class NearbyMatch:
	record: LocationRecord
	distance: float

	@property
	def user_id(self) -> str:
		return self.record.user_id
