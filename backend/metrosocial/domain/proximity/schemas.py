"""Pydantic schemas for location and presence endpoints."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
	model_config = ConfigDict(populate_by_name=True)


class Coordinates(_CamelModel):
	latitude: float = Field(..., ge=-90.0, le=90.0)
	longitude: float = Field(..., ge=-180.0, le=180.0)


class LocationReport(_CamelModel):
	"""Payload posted by the client when reporting the current location.

	Identity fields are accepted for compatibility with older clients and ignored;
	the authenticated principal always wins.
	"""

	user_id: Optional[str] = Field(default=None, alias="userId")
	username: Optional[str] = None
	avatar: Optional[str] = None
	location: Coordinates


class NearbyQuery(_CamelModel):
	"""Query parameters for the nearby lookup."""

	user_id: Optional[str] = Field(default=None, alias="userId")
	latitude: float = Field(..., ge=-90.0, le=90.0)
	longitude: float = Field(..., ge=-180.0, le=180.0)
	# Missing radius falls back to settings.nearby_default_radius_m; <= 0 yields no users.
	radius: Optional[float] = Field(default=None, allow_inf_nan=False)


class NearbyUser(_CamelModel):
	user_id: str = Field(..., alias="userId")
	username: str
	name: Optional[str] = None
	bio: Optional[str] = None
	avatar: Optional[str] = None
	location: Coordinates
	distance: float = Field(..., ge=0)
	zone: str


class NearbyResponse(_CamelModel):
	users: list[NearbyUser]


class PresenceStatusResponse(_CamelModel):
	online: bool
	last_seen: Optional[str] = Field(default=None, alias="lastSeen")
