"""Proximity service: location reports, presence transitions and nearby lookups."""

from __future__ import annotations

import logging
import math
from typing import List, Optional

from metrosocial.domain.proximity import geo
from metrosocial.domain.proximity.models import GeoPoint, LocationRecord, PresenceRecord
from metrosocial.domain.proximity.presence import LocationBook, PresenceRegistry
from metrosocial.domain.proximity.schemas import Coordinates, NearbyQuery, NearbyUser
from metrosocial.infra.auth import AuthenticatedUser
from metrosocial.obs import metrics as obs_metrics
from metrosocial.settings import Settings

logger = logging.getLogger(__name__)


class ProximityService:
	def __init__(self, presence: PresenceRegistry, locations: LocationBook, settings: Settings) -> None:
		self.presence = presence
		self.locations = locations
		self.settings = settings

	def report_location(self, user: AuthenticatedUser, latitude: float, longitude: float) -> LocationRecord:
		record = self.locations.report(user, latitude, longitude)
		obs_metrics.inc_location_report()
		logger.debug("location report user=%s", user.id)
		return record

	def go_online(self, user: AuthenticatedUser) -> PresenceRecord:
		return self.presence.mark_online(user)

	def go_offline(self, user_id: str, *, reason: str = "explicit") -> bool:
		return self.presence.mark_offline(user_id, reason=reason)

	def effective_radius(self, radius: Optional[float]) -> float:
		if radius is None or math.isnan(radius):
			return float(self.settings.nearby_default_radius_m)
		return min(float(radius), float(self.settings.nearby_max_radius_m))

	def nearby(self, user: AuthenticatedUser, query: NearbyQuery) -> List[NearbyUser]:
		"""Online users around the queried point, nearest first.

		``query.user_id`` is ignored in favour of the authenticated principal.
		"""
		radius = self.effective_radius(query.radius)
		origin = GeoPoint(latitude=query.latitude, longitude=query.longitude)
		matches = geo.find_within_radius(
			user.id,
			origin,
			self.locations.all(),
			radius,
			presence=self.presence,
		)
		items: List[NearbyUser] = []
		for match in matches:
			record = match.record
			profile = self.presence.get(record.user_id)
			if profile is None:
				# Went offline between the filter and now
				continue
			items.append(
				NearbyUser(
					user_id=record.user_id,
					username=profile.username or record.username,
					name=profile.name,
					bio=profile.bio,
					avatar=profile.avatar if profile.avatar is not None else record.avatar,
					location=Coordinates(
						latitude=record.location.latitude,
						longitude=record.location.longitude,
					),
					distance=match.distance,
					zone=geo.proximity_zone(match.distance),
				)
			)
		obs_metrics.inc_proximity_query(radius, len(items))
		logger.debug("nearby query user=%s radius=%s count=%s", user.id, radius, len(items))
		return items
