"""Authentication helpers for FastAPI endpoints and Socket.IO handshakes.

The identity provider is external: it issues HS256 access tokens carrying the
principal's public profile. The core trusts those claims over anything a client
puts in a request body.

- Bearer JWT verification using settings.secret_key.
- Dev headers (X-User-Id / X-Username / X-User-Avatar) only respected in development.

Every helper takes the app's ``Settings``; the module-level instance is only the
fallback for callers outside an app.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from metrosocial.domain.errors import AuthorizationError
from metrosocial.infra import jwt as jwt_helper
from metrosocial.settings import Settings, settings as default_settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	username: str
	avatar: Optional[str] = None
	name: Optional[str] = None
	bio: Optional[str] = None


_bearer_scheme = HTTPBearer(auto_error=False)


def _optional_str(value: Any) -> Optional[str]:
	if value is None:
		return None
	text = str(value).strip()
	return text or None


def app_settings(request: Request) -> Settings:
	container = getattr(request.app.state, "container", None)
	return container.settings if container is not None else default_settings


def verify_access_jwt(token: str, settings: Optional[Settings] = None) -> AuthenticatedUser:
	"""Decode and validate an access JWT and return an AuthenticatedUser.

	Requirements:
	- issuer/audience from settings, exp and iat present
	- sub is the canonical user id; username falls back to sub
	"""
	try:
		payload = jwt_helper.decode_access(token, settings=settings)
	except Exception:
		# Normalise all decode failures to invalid_token for the API surface
		raise AuthorizationError("invalid_token") from None

	sub = str(payload.get("sub") or "").strip()
	if not sub:
		raise AuthorizationError("invalid_token")

	return AuthenticatedUser(
		id=sub,
		username=_optional_str(payload.get("username")) or sub,
		avatar=_optional_str(payload.get("avatar")),
		name=_optional_str(payload.get("name")),
		bio=_optional_str(payload.get("bio")),
	)


def _dev_user(
	settings: Settings,
	user_id: Optional[str],
	username: Optional[str],
	avatar: Optional[str],
) -> Optional[AuthenticatedUser]:
	if not settings.is_dev():
		return None
	user_id = _optional_str(user_id)
	if not user_id:
		return None
	return AuthenticatedUser(id=user_id, username=_optional_str(username) or user_id, avatar=_optional_str(avatar))


async def get_current_user(
	request: Request,
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_username: Optional[str] = Header(default=None, alias="X-Username"),
	x_user_avatar: Optional[str] = Header(default=None, alias="X-User-Avatar"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated user.

	In development we allow simple headers. In all other environments, headers are
	ignored and a valid Bearer JWT is required.
	"""
	settings = app_settings(request)
	if credentials and credentials.scheme.lower() == "bearer":
		return verify_access_jwt(credentials.credentials, settings)

	user = _dev_user(settings, x_user_id, x_username, x_user_avatar)
	if user is not None:
		return user

	raise AuthorizationError("invalid_token")


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


def resolve_socket_user(
	environ: dict,
	auth: Optional[dict] = None,
	*,
	settings: Optional[Settings] = None,
) -> AuthenticatedUser:
	"""Resolve the principal for a Socket.IO handshake.

	Accepts ``{"token": ...}`` in the auth payload or an Authorization header; in
	development ``{"userId", "username", "avatar"}`` or the X-User-* headers.
	"""
	settings = settings or default_settings
	scope = environ.get("asgi.scope", environ)
	auth_payload = auth or environ.get("auth") or scope.get("auth") or {}

	token = auth_payload.get("token")
	if not token:
		auth_header = _header(scope, "authorization")
		if auth_header and auth_header.lower().startswith("bearer "):
			token = auth_header.split(" ", 1)[1]
	if token:
		return verify_access_jwt(str(token), settings)

	user = _dev_user(
		settings,
		auth_payload.get("userId") or _header(scope, "x-user-id"),
		auth_payload.get("username") or _header(scope, "x-username"),
		auth_payload.get("avatar") or _header(scope, "x-user-avatar"),
	)
	if user is None:
		raise AuthorizationError("missing_token")
	return user
