"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from metrosocial.api import location, ops, posts
from metrosocial.api.errors import install_error_handlers
from metrosocial.container import build_container
from metrosocial.domain.posts.sockets import FeedNamespace
from metrosocial.obs import init as obs_init
from metrosocial.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

_DEV_ORIGINS = [
	"http://localhost:3000",
	"http://127.0.0.1:3000",
	"http://localhost:5173",
	"http://127.0.0.1:5173",
]


def _allowed_origins(settings: Settings) -> list[str]:
	allow_origins = list(settings.cors_allow_origins or [])
	if not allow_origins:
		allow_origins = list(_DEV_ORIGINS) if settings.is_dev() else []
	# Starlette disallows wildcard '*' with allow_credentials=True. Replace '*' with explicit origins.
	if "*" in allow_origins:
		allow_origins = list(_DEV_ORIGINS) if settings.is_dev() else [o for o in allow_origins if o != "*"]
	return allow_origins


def create_app(settings: Optional[Settings] = None) -> FastAPI:
	"""Build an app with its own empty registries, store, bus and Socket.IO server."""
	settings = settings or default_settings
	container = build_container(settings)

	@asynccontextmanager
	async def lifespan(app: FastAPI):
		logger.info("metrosocial starting env=%s commit=%s", settings.environment, settings.git_commit)
		try:
			yield
		finally:
			feed_namespace.close()
			logger.info("metrosocial stopped")

	app = FastAPI(title="MetroSocial Proximity Core", lifespan=lifespan)
	app.state.container = container
	install_error_handlers(app)

	allow_origins = _allowed_origins(settings)
	app.add_middleware(
		CORSMiddleware,
		allow_origins=allow_origins,
		allow_credentials=True,
		allow_methods=["*"],
		allow_headers=["*"],
	)

	# Use the same allowed origins for Socket.IO as for the REST API
	sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=allow_origins)
	feed_namespace = FeedNamespace(
		container.bus,
		container.presence,
		offline_on_disconnect=settings.presence_offline_on_disconnect,
		settings=settings,
	)
	sio.register_namespace(feed_namespace)
	app.state.sio = sio
	app.state.feed_namespace = feed_namespace
	app.state.socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
	obs_init(app, settings)

	app.include_router(location.router, tags=["proximity"])
	app.include_router(posts.router, tags=["posts"])
	app.include_router(ops.router, tags=["ops"])
	return app


app = create_app()
socket_app = app.state.socket_app
