"""Great-circle distance and radius filtering over reported locations."""

from __future__ import annotations

import math
from typing import Iterable, List, Optional, Protocol

from metrosocial.domain.proximity.models import GeoPoint, LocationRecord, NearbyMatch, ProximityZone

EARTH_RADIUS_M = 6_371_000.0
DEFAULT_RADIUS_M = 5000.0

# Upper bounds (inclusive) of the labelled distance bands.
ZONE_THRESHOLDS_M: tuple[tuple[ProximityZone, float], ...] = (
	("intimate", 10.0),
	("personal", 50.0),
	("social", 200.0),
)


class PresenceLookup(Protocol):
	def is_online(self, user_id: str) -> bool: ...


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
	"""Haversine distance in meters on a sphere of mean Earth radius."""
	phi1 = math.radians(lat1)
	phi2 = math.radians(lat2)
	d_phi = math.radians(lat2 - lat1)
	d_lambda = math.radians(lon2 - lon1)
	a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
	# Float rounding can push a past 1.0 for antipodal points
	a = min(1.0, max(0.0, a))
	return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(a))


def distance_between(a: GeoPoint, b: GeoPoint) -> float:
	return distance_meters(a.latitude, a.longitude, b.latitude, b.longitude)


def proximity_zone(distance_m: float) -> ProximityZone:
	for zone, upper in ZONE_THRESHOLDS_M:
		if distance_m <= upper:
			return zone
	return "public"


def find_within_radius(
	origin_id: str,
	origin: GeoPoint,
	candidates: Iterable[LocationRecord],
	radius_m: Optional[float] = DEFAULT_RADIUS_M,
	*,
	presence: PresenceLookup,
) -> List[NearbyMatch]:
	"""Return online candidates within ``radius_m`` of ``origin``, nearest first.

	The origin user is never included, nor is anyone without a presence record,
	however fresh their location. A non-positive radius yields no matches.
	"""
	radius = DEFAULT_RADIUS_M if radius_m is None else float(radius_m)
	if radius <= 0:
		return []
	matches: List[NearbyMatch] = []
	for record in candidates:
		if record.user_id == origin_id:
			continue
		if not presence.is_online(record.user_id):
			continue
		distance = distance_between(origin, record.location)
		if distance <= radius:
			matches.append(NearbyMatch(record=record, distance=distance))
	matches.sort(key=lambda match: (match.distance, match.user_id))
	return matches
