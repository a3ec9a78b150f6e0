"""Centralised JWT helpers for access tokens issued by the identity provider.

Uses HS256 with the application's secret key. Validates standard claims
and expected issuer/audience values.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

import jwt
from jwt import InvalidTokenError

from metrosocial.settings import Settings, settings as default_settings


def encode_access(
    payload: dict[str, object],
    *,
    ttl_seconds: int = 3600,
    settings: Optional[Settings] = None,
) -> str:
    """Encode an access token with issuer/audience/expiry defaults.

    The core never issues tokens for real users; this exists for local tools and tests.
    """
    settings = settings or default_settings
    now = int(time.time())
    body: Dict[str, Any] = {
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": now,
        "exp": now + ttl_seconds,
    }
    body.update(payload)
    return jwt.encode(body, settings.secret_key, algorithm="HS256")


def decode_access(token: str, *, settings: Optional[Settings] = None) -> dict[str, object]:
    """Decode and validate an access token.

    Raises jwt.InvalidTokenError subclasses on failure.
    """
    settings = settings or default_settings
    options = {"require": ["exp", "iat", "iss", "aud"]}
    payload = jwt.decode(
        token,
        settings.secret_key,
        algorithms=["HS256"],
        audience=settings.jwt_audience,
        issuer=settings.jwt_issuer,
        leeway=5,
        options=options,
    )
    if not payload.get("sub"):
        raise InvalidTokenError("missing_claim:sub")
    return payload  # type: ignore[return-value]
