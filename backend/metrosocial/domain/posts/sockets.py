"""Socket.IO namespace that pushes post changes to every connected feed client."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

import socketio

from metrosocial.domain.errors import AuthorizationError
from metrosocial.domain.posts.fanout import FanoutBus
from metrosocial.domain.proximity.presence import PresenceRegistry
from metrosocial.infra.auth import AuthenticatedUser, resolve_socket_user
from metrosocial.obs import metrics as obs_metrics
from metrosocial.settings import Settings

logger = logging.getLogger(__name__)

FEED_NAMESPACE = "/feed"


class FeedNamespace(socketio.AsyncNamespace):
    """Authenticated broadcast channel for ``postCreated`` and ``postUpdated``.

    The namespace subscribes itself to the fan-out bus on construction. When a
    user's last connection drops they are marked offline if
    ``offline_on_disconnect`` is set.
    """

    def __init__(
        self,
        bus: FanoutBus,
        presence: PresenceRegistry,
        *,
        offline_on_disconnect: bool = True,
        settings: Optional[Settings] = None,
    ) -> None:
        super().__init__(FEED_NAMESPACE)
        self.presence = presence
        self.offline_on_disconnect = offline_on_disconnect
        self.settings = settings
        self.users: Dict[str, AuthenticatedUser] = {}
        self._unsubscribe: Optional[Callable[[], None]] = bus.subscribe(self.broadcast)

    async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
        obs_metrics.socket_connected(self.namespace)
        try:
            user = resolve_socket_user(environ, auth, settings=self.settings)
        except AuthorizationError as exc:
            obs_metrics.socket_disconnected(self.namespace)
            logger.info("feed connect refused sid=%s reason=%s", sid, exc.reason)
            raise ConnectionRefusedError("unauthorized") from None
        self.users[sid] = user
        connections = self.presence.attach_connection(user.id)
        logger.info("feed connect sid=%s user=%s connections=%s", sid, user.id, connections)

    async def on_disconnect(self, sid: str, *args: Any) -> None:
        obs_metrics.socket_disconnected(self.namespace)
        user = self.users.pop(sid, None)
        if user is None:
            return
        remaining = self.presence.detach_connection(user.id)
        logger.info("feed disconnect sid=%s user=%s remaining=%s", sid, user.id, remaining)
        if remaining == 0 and self.offline_on_disconnect:
            self.presence.mark_offline(user.id, reason="disconnect")

    async def broadcast(self, event: str, payload: Dict[str, Any]) -> None:
        obs_metrics.socket_event(self.namespace, event)
        await self.emit(event, payload)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
