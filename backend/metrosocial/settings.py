"""Settings for the MetroSocial backend and its feed client."""

from __future__ import annotations

import json
from typing import Any, Optional, Tuple

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_field(default, *env_names: str):
	if env_names:
		alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
		return Field(default=default, validation_alias=alias)
	return Field(default=default)


class Settings(BaseSettings):
	redis_url: str = _env_field("redis://localhost:6379/0", "REDIS_URL")
	secret_key: str = _env_field("metrosocial-dev-secret-change-me", "SECRET_KEY", "JWT_SECRET")
	jwt_issuer: str = _env_field("metrosocial-api", "JWT_ISSUER")
	jwt_audience: str = _env_field("metrosocial-app", "JWT_AUDIENCE")

	# Nearby discovery
	nearby_default_radius_m: float = _env_field(5000.0, "NEARBY_DEFAULT_RADIUS_M")
	nearby_max_radius_m: float = _env_field(50000.0, "NEARBY_MAX_RADIUS_M")
	nearby_rate_limit_per_minute: int = _env_field(30, "NEARBY_RATE_LIMIT_PER_MINUTE")
	location_rate_limit_per_minute: int = _env_field(60, "LOCATION_RATE_LIMIT_PER_MINUTE")
	rate_limit_enabled: bool = _env_field(True, "RATE_LIMIT_ENABLED")
	# Drop presence when the last feed socket of a user disconnects
	presence_offline_on_disconnect: bool = _env_field(True, "PRESENCE_OFFLINE_ON_DISCONNECT")

	# Post retention bounds (memory only, no durability)
	post_retention_max_posts: int = _env_field(10000, "POST_RETENTION_MAX_POSTS")
	post_max_comments: int = _env_field(1000, "POST_MAX_COMMENTS")

	environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
	obs_enabled: bool = _env_field(True, "OBS_ENABLED")
	obs_metrics_public: bool = _env_field(False, "OBS_METRICS_PUBLIC")
	obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
	obs_log_sampling_rate_info: float = _env_field(0.1, "LOG_SAMPLING_RATE_INFO")
	obs_admin_token: Optional[str] = _env_field(None, "OBS_ADMIN_TOKEN")
	service_name: str = _env_field("metrosocial-api", "SERVICE_NAME")
	git_commit: str = _env_field("unknown", "GIT_COMMIT", "COMMIT_SHA", "SOURCE_VERSION")

	cors_allow_origins: Any = _env_field((), "CORS_ALLOW_ORIGINS")

	model_config = SettingsConfigDict(
		env_prefix="",
		env_file=".env",
		case_sensitive=False,
		extra="ignore",
	)

	def is_dev(self) -> bool:
		return self.environment.lower() in ("dev", "development", "test")

	@field_validator("cors_allow_origins", mode="before")
	def _split_origins(cls, value: Any) -> Tuple[str, ...]:
		"""Accept a comma separated string, a JSON list, or a sequence."""
		if value in (None, ""):
			return ()
		if isinstance(value, (list, tuple, set)):
			return tuple(str(item).strip() for item in value if str(item).strip())
		if isinstance(value, str):
			text = value.strip()
			if text.startswith("["):
				try:
					data = json.loads(text)
				except json.JSONDecodeError:
					data = None
				if isinstance(data, list):
					return tuple(str(item).strip() for item in data if str(item).strip())
			return tuple(part.strip() for part in text.split(",") if part.strip())
		return ()


class ClientSettings(BaseSettings):
	"""Knobs for :class:`metrosocial.client.session.FeedSession`."""

	base_url: str = "http://localhost:5000"
	socketio_path: str = "socket.io"
	feed_namespace: str = "/feed"
	request_timeout_seconds: float = 10.0
	feed_refresh_interval_seconds: float = 30.0
	location_report_interval_seconds: float = 30.0
	nearby_refresh_interval_seconds: float = 15.0
	nearby_radius_m: float = 5000.0
	local_cache_path: Optional[str] = None

	model_config = SettingsConfigDict(
		env_prefix="METROSOCIAL_CLIENT_",
		env_file=".env",
		case_sensitive=False,
		extra="ignore",
	)


settings = Settings()
