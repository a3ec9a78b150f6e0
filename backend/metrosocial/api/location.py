"""REST API surface for location reports, presence and nearby discovery."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from metrosocial.container import ServiceContainer, get_container
from metrosocial.domain.proximity.schemas import (
    LocationReport,
    NearbyQuery,
    NearbyResponse,
    PresenceStatusResponse,
)
from metrosocial.infra.auth import AuthenticatedUser, get_current_user
from metrosocial.infra.rate_limit import enforce

router = APIRouter()


@router.post("/location")
async def report_location(
    payload: LocationReport,
    auth_user: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    settings = container.settings
    await enforce("location", auth_user.id, limit=settings.location_rate_limit_per_minute, settings=settings)
    record = container.proximity.report_location(
        auth_user,
        payload.location.latitude,
        payload.location.longitude,
    )
    return {"ok": True, "lastUpdated": record.last_updated.isoformat()}


@router.get("/location/nearby")
async def nearby(
    latitude: float = Query(..., ge=-90.0, le=90.0, allow_inf_nan=False),
    longitude: float = Query(..., ge=-180.0, le=180.0, allow_inf_nan=False),
    radius: Optional[float] = Query(default=None, allow_inf_nan=False),
    user_id: Optional[str] = Query(default=None, alias="userId"),
    auth_user: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    settings = container.settings
    await enforce("nearby", auth_user.id, limit=settings.nearby_rate_limit_per_minute, settings=settings)
    query = NearbyQuery(user_id=user_id, latitude=latitude, longitude=longitude, radius=radius)
    users = container.proximity.nearby(auth_user, query)
    return NearbyResponse(users=users).model_dump(by_alias=True)


@router.post("/users/online")
async def go_online(
    auth_user: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    container.proximity.go_online(auth_user)
    return {"ok": True, "online": True}


@router.post("/users/offline")
async def go_offline(
    auth_user: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    container.proximity.go_offline(auth_user.id)
    return {"ok": True, "online": False}


@router.get("/users/online/self")
async def presence_status_self(
    auth_user: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    record = container.presence.get(auth_user.id)
    status = PresenceStatusResponse(
        online=record is not None,
        last_seen=record.last_seen.isoformat() if record is not None else None,
    )
    return status.model_dump(by_alias=True)
