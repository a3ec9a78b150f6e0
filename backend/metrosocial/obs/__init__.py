"""Observability package bootstrap."""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from metrosocial.obs import logging as obs_logging
from metrosocial.obs import middleware
from metrosocial.settings import Settings, settings as default_settings


def init(app: FastAPI, settings: Optional[Settings] = None) -> None:
	settings = settings or default_settings
	if getattr(app.state, "obs_initialised", False):
		return
	if not settings.obs_enabled:
		return
	obs_logging.configure_logging(settings)
	middleware.install(app)
	app.state.obs_initialised = True


__all__ = ["init"]
