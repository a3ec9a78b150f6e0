import pytest

from metrosocial.infra.rate_limit import RateLimitExceeded, allow, enforce
from metrosocial.settings import settings


@pytest.mark.asyncio
async def test_rate_limit_allows_within_budget():
    assert await allow("location", "u5", limit=2, window_seconds=60)
    assert await allow("location", "u5", limit=2, window_seconds=60)


@pytest.mark.asyncio
async def test_rate_limit_blocks_when_budget_exhausted():
    await allow("nearby", "u6", limit=1, window_seconds=60)
    assert not await allow("nearby", "u6", limit=1, window_seconds=60)


@pytest.mark.asyncio
async def test_enforce_raises_outside_dev():
    settings.environment = "production"
    await enforce("nearby", "u7", limit=1)
    with pytest.raises(RateLimitExceeded):
        await enforce("nearby", "u7", limit=1)


@pytest.mark.asyncio
async def test_enforce_disabled_is_noop():
    original = settings.rate_limit_enabled
    settings.rate_limit_enabled = False
    try:
        for _ in range(5):
            await enforce("nearby", "u8", limit=1)
    finally:
        settings.rate_limit_enabled = original
