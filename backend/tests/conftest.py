import sys
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from metrosocial.infra.auth import AuthenticatedUser
from metrosocial.main import create_app
from metrosocial.settings import settings


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from metrosocial.infra.redis import redis_client, set_redis_client
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Ensure a consistent test environment.

	API tests authenticate via X-User-Id/X-Username headers, which are only
	accepted in dev mode.
	"""
	original_env = settings.environment
	original_metrics_public = settings.obs_metrics_public
	original_admin_token = settings.obs_admin_token
	settings.environment = "dev"
	try:
		yield
	finally:
		settings.environment = original_env
		settings.obs_metrics_public = original_metrics_public
		settings.obs_admin_token = original_admin_token


@pytest.fixture
def app():
	return create_app(settings)


@pytest.fixture
def container(app):
	return app.state.container


@pytest_asyncio.fixture
async def api_client(app):
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client


@pytest.fixture
def alice():
	return AuthenticatedUser(id="user-alice", username="alice", avatar="a.png")


@pytest.fixture
def bob():
	return AuthenticatedUser(id="user-bob", username="bob", avatar="b.png")


@pytest.fixture
def headers_for():
	def _headers(user: AuthenticatedUser) -> dict:
		headers = {"X-User-Id": user.id, "X-Username": user.username}
		if user.avatar:
			headers["X-User-Avatar"] = user.avatar
		return headers

	return _headers
