"""Proximity domain exports."""

from . import geo, presence, service  # noqa: F401
from .models import GeoPoint, LocationRecord, NearbyMatch, PresenceRecord  # noqa: F401
