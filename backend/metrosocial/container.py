"""Service container owning every registry, store and bus of one app instance."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from fastapi import Request

from metrosocial.domain.posts.fanout import FanoutBus
from metrosocial.domain.posts.service import FeedService
from metrosocial.domain.posts.store import PostStore
from metrosocial.domain.proximity.presence import LocationBook, PresenceRegistry
from metrosocial.domain.proximity.service import ProximityService
from metrosocial.settings import Settings


@dataclass
class ServiceContainer:
    settings: Settings
    presence: PresenceRegistry
    locations: LocationBook
    proximity: ProximityService
    posts: PostStore
    bus: FanoutBus
    feed: FeedService


def build_container(
    settings: Settings,
    *,
    clock: Optional[Callable[[], datetime]] = None,
) -> ServiceContainer:
    """Wire a fresh, empty set of services. Tests pass ``clock`` to pin time."""
    clock_kwargs = {"clock": clock} if clock is not None else {}
    presence = PresenceRegistry(**clock_kwargs)
    locations = LocationBook(**clock_kwargs)
    posts = PostStore(
        max_posts=settings.post_retention_max_posts,
        max_comments=settings.post_max_comments,
        **clock_kwargs,
    )
    bus = FanoutBus()
    return ServiceContainer(
        settings=settings,
        presence=presence,
        locations=locations,
        proximity=ProximityService(presence, locations, settings),
        posts=posts,
        bus=bus,
        feed=FeedService(posts, bus),
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container
