"""One feed client: presence, location heartbeats, live push and polling.

While online the session keeps three background loops (feed refresh, location
report, nearby refresh) plus a Socket.IO connection to the ``/feed`` namespace.
Every loop is an ``asyncio.Task`` cancelled by :meth:`FeedSession.go_offline`.
Mutations are applied optimistically and rolled back if the server rejects them;
while offline they stay local.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import suppress
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

import socketio
from socketio.exceptions import ConnectionError as SocketConnectionError

from metrosocial.client.reconciler import FeedReconciler
from metrosocial.client.transport import FeedApiClient
from metrosocial.domain.errors import CoreError, ValidationError
from metrosocial.domain.posts.fanout import POST_CREATED, POST_UPDATED
from metrosocial.domain.posts.models import Comment, Post
from metrosocial.infra.auth import AuthenticatedUser
from metrosocial.settings import ClientSettings

logger = logging.getLogger(__name__)

LocationProvider = Callable[[], Optional[Tuple[float, float]]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    text = value.strip()
    return text or None


class FeedSession:
    def __init__(
        self,
        user: AuthenticatedUser,
        api: FeedApiClient,
        settings: Optional[ClientSettings] = None,
        *,
        token: Optional[str] = None,
        location_provider: Optional[LocationProvider] = None,
        sio: Optional[socketio.AsyncClient] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.user = user
        self.api = api
        self.settings = settings or api.settings
        self.token = token
        self.location_provider = location_provider
        self.sio = sio or socketio.AsyncClient(reconnection=True)
        self.reconciler = FeedReconciler()
        self.nearby_users: List[Dict[str, Any]] = []
        self.online = False
        self._clock = clock
        self._tasks: List[asyncio.Task] = []
        self._last_location: Optional[Tuple[float, float]] = None
        self._cache_path = Path(self.settings.local_cache_path) if self.settings.local_cache_path else None
        namespace = self.settings.feed_namespace
        self.sio.on(POST_CREATED, self._on_post_created, namespace=namespace)
        self.sio.on(POST_UPDATED, self._on_post_updated, namespace=namespace)
        self._load_cache()

    # -- lifecycle ------------------------------------------------------------

    async def go_online(self) -> None:
        """Announce presence, open the push channel, refresh once and start polling."""
        if self.online:
            logger.debug("feed session already online user=%s", self.user.id)
            return
        self.online = True
        try:
            await self.api.go_online()
        except Exception:
            self.online = False
            raise
        await self._connect_socket()
        await self.refresh()
        await self.report_location()
        await self.refresh_nearby()
        if not self.online:
            # went offline while the first round was in flight
            return
        self._tasks = [
            asyncio.create_task(
                self._every(self.settings.feed_refresh_interval_seconds, self.refresh),
                name=f"feed-refresh:{self.user.id}",
            ),
            asyncio.create_task(
                self._every(self.settings.location_report_interval_seconds, self.report_location),
                name=f"feed-location:{self.user.id}",
            ),
            asyncio.create_task(
                self._every(self.settings.nearby_refresh_interval_seconds, self.refresh_nearby),
                name=f"feed-nearby:{self.user.id}",
            ),
        ]
        logger.info("feed session online user=%s", self.user.id)

    async def go_offline(self) -> None:
        """Stop every loop and the push channel, then tell the server."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
        if self.sio.connected:
            await self.sio.disconnect()
        was_online, self.online = self.online, False
        if was_online:
            try:
                await self.api.go_offline()
            except CoreError as exc:
                logger.warning("offline notification failed user=%s reason=%s", self.user.id, exc.reason)
        logger.info("feed session offline user=%s", self.user.id)

    async def close(self) -> None:
        await self.go_offline()
        self._save_cache()
        await self.api.aclose()

    def active_tasks(self) -> List[asyncio.Task]:
        return [task for task in self._tasks if not task.done()]

    async def _every(self, interval: float, step: Callable[[], Awaitable[Any]]) -> None:
        interval = max(0.01, float(interval))
        while True:
            await asyncio.sleep(interval)
            await step()

    # -- push channel ---------------------------------------------------------

    def _handshake(self) -> Dict[str, Any]:
        if self.token:
            return {"token": self.token}
        return {"userId": self.user.id, "username": self.user.username, "avatar": self.user.avatar}

    async def _connect_socket(self) -> None:
        # Polling still converges the feed when push is unavailable
        try:
            await self.sio.connect(
                self.settings.base_url,
                namespaces=[self.settings.feed_namespace],
                auth=self._handshake(),
                socketio_path=self.settings.socketio_path,
            )
        except SocketConnectionError as exc:
            logger.warning("feed push unavailable user=%s error=%s", self.user.id, exc)

    async def _on_post_created(self, data: Dict[str, Any]) -> None:
        self.reconciler.on_post_created(Post.from_dict(data))

    async def _on_post_updated(self, data: Dict[str, Any]) -> None:
        self.reconciler.on_post_updated(Post.from_dict(data))

    # -- polling --------------------------------------------------------------

    async def refresh(self) -> bool:
        """Full feed refresh. Failures are logged and left for the next cycle."""
        try:
            posts = await self.api.list_posts()
        except CoreError as exc:
            logger.warning("feed refresh failed user=%s reason=%s", self.user.id, exc.reason)
            return False
        self.reconciler.apply_refresh(posts)
        self._save_cache()
        return True

    async def report_location(self) -> bool:
        if self.location_provider is None:
            return False
        location = self.location_provider()
        if location is None:
            return False
        self._last_location = location
        try:
            await self.api.report_location(*location)
        except CoreError as exc:
            logger.warning("location report failed user=%s reason=%s", self.user.id, exc.reason)
            return False
        return True

    async def refresh_nearby(self) -> bool:
        if self._last_location is None:
            return False
        latitude, longitude = self._last_location
        try:
            self.nearby_users = await self.api.nearby(latitude, longitude, self.settings.nearby_radius_m)
        except CoreError as exc:
            logger.warning("nearby refresh failed user=%s reason=%s", self.user.id, exc.reason)
            return False
        return True

    # -- mutations ------------------------------------------------------------

    def _new_post(self, text: Optional[str], **extra: Any) -> Post:
        return Post(
            id=str(uuid4()),
            user_id=self.user.id,
            username=self.user.username,
            user_avatar=self.user.avatar,
            text=text or "",
            created_at=self._clock(),
            **extra,
        )

    async def create_post(
        self,
        text: Optional[str] = None,
        *,
        url: Optional[str] = None,
        image: Optional[str] = None,
    ) -> Post:
        body, link, picture = _clean(text), _clean(url), _clean(image)
        if not body and not link and not picture:
            raise ValidationError("empty_post")
        post = self._new_post(body, url=link, image=picture)
        token = self.reconciler.add_local(post)
        if not self.online:
            self._save_cache()
            return post
        try:
            confirmed = await self.api.create_post(post)
        except CoreError:
            self.reconciler.rollback(token)
            raise
        self.reconciler.confirm(confirmed)
        return confirmed

    async def reply(self, parent_post_id: str, text: str) -> Post:
        body = _clean(text)
        if not body:
            raise ValidationError("empty_reply")
        parent = self.reconciler.get(parent_post_id)
        reply = self._new_post(
            body,
            parent_post_id=parent_post_id,
            replying_to_user=parent.username if parent is not None else None,
        )
        token = self.reconciler.add_local(reply)
        if not self.online:
            self._save_cache()
            return reply
        try:
            confirmed = await self.api.create_reply(parent_post_id, body)
        except CoreError:
            self.reconciler.rollback(token)
            raise
        # The server assigns the reply id; only the optimistic copy is dropped
        self.reconciler.rollback(token)
        self.reconciler.confirm(confirmed)
        return confirmed

    async def add_comment(self, post_id: str, text: str) -> Comment:
        body = _clean(text)
        if not body:
            raise ValidationError("empty_comment")
        comment = Comment(
            id=uuid4().hex,
            post_id=post_id,
            user_id=self.user.id,
            username=self.user.username,
            user_avatar=self.user.avatar,
            text=body,
            created_at=self._clock(),
        )
        token = self.reconciler.append_local_comment(post_id, comment)
        if not self.online:
            self.reconciler.hold_local(post_id)
            self._save_cache()
            return comment
        try:
            confirmed = await self.api.add_comment(post_id, body)
        except CoreError:
            self.reconciler.rollback(token)
            raise
        self.reconciler.confirm_comment(token, confirmed)
        return confirmed

    async def toggle_like(self, post_id: str) -> Post:
        token = self.reconciler.apply_local_like(post_id, self.user.id)
        if not self.online:
            self.reconciler.hold_local(post_id)
            self._save_cache()
            return self.reconciler.get(post_id)
        try:
            confirmed = await self.api.toggle_like(post_id, token.action)
        except CoreError:
            self.reconciler.rollback(token)
            raise
        self.reconciler.on_post_updated(confirmed)
        return self.reconciler.get(post_id) or confirmed

    async def latest_post(self, user_id: str) -> Optional[Post]:
        """Latest post by ``user_id`` from the server, or the local copy on failure."""
        try:
            return await self.api.latest_post(user_id)
        except CoreError as exc:
            logger.info("latest post falling back to cache user=%s reason=%s", user_id, exc.reason)
            return self.reconciler.latest_by_user(user_id)

    # -- local cache ----------------------------------------------------------

    def _load_cache(self) -> None:
        if self._cache_path is None or not self._cache_path.exists():
            return
        try:
            items = json.loads(self._cache_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("local post cache unreadable path=%s", self._cache_path, exc_info=True)
            return
        if isinstance(items, list):
            self.reconciler.load_local(items)

    def _save_cache(self) -> None:
        if self._cache_path is None:
            return
        try:
            self._cache_path.parent.mkdir(parents=True, exist_ok=True)
            self._cache_path.write_text(json.dumps(self.reconciler.export_local()), encoding="utf-8")
        except OSError:
            logger.warning("local post cache not written path=%s", self._cache_path, exc_info=True)
