import asyncio
import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from metrosocial.client.session import FeedSession
from metrosocial.client.transport import FeedApiClient
from metrosocial.domain.errors import NotFoundError, TransientNetworkError, ValidationError
from metrosocial.domain.posts.models import Comment, Post
from metrosocial.infra.auth import AuthenticatedUser
from metrosocial.settings import ClientSettings

ME = AuthenticatedUser(id="me", username="mina", avatar="m.png")
NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _post(post_id, user_id="other", *, version=1, likes=None, parent=None):
    return Post(
        id=post_id,
        user_id=user_id,
        username=user_id,
        user_avatar=None,
        text=f"text {post_id}",
        created_at=NOW,
        likes=list(likes or []),
        parent_post_id=parent,
        version=version,
    )


def _fake_api():
    api = AsyncMock(spec=FeedApiClient)
    api.list_posts.return_value = []
    api.nearby.return_value = []
    return api


def _fake_sio():
    sio = MagicMock()
    sio.connect = AsyncMock()
    sio.disconnect = AsyncMock()
    sio.connected = False
    return sio


@pytest.fixture
def client_settings(tmp_path):
    return ClientSettings(local_cache_path=str(tmp_path / "posts.json"))


@pytest.fixture
def fast_settings(tmp_path):
    return ClientSettings(
        feed_refresh_interval_seconds=0.02,
        location_report_interval_seconds=0.02,
        nearby_refresh_interval_seconds=0.02,
        local_cache_path=str(tmp_path / "fast.json"),
    )


def _session(settings):
    return FeedSession(
        ME,
        _fake_api(),
        settings,
        location_provider=lambda: (40.7128, -74.0060),
        sio=_fake_sio(),
        clock=lambda: NOW,
    )


@pytest_asyncio.fixture
async def session(client_settings):
    feed = _session(client_settings)
    try:
        yield feed
    finally:
        await feed.go_offline()


@pytest_asyncio.fixture
async def fast_session(fast_settings):
    feed = _session(fast_settings)
    try:
        yield feed
    finally:
        await feed.go_offline()


@pytest.mark.asyncio
async def test_go_online_refreshes_and_starts_loops(fast_session):
    fast_session.api.list_posts.return_value = [_post("p1")]

    await fast_session.go_online()

    fast_session.api.go_online.assert_awaited_once()
    fast_session.sio.connect.assert_awaited_once()
    assert fast_session.sio.connect.await_args.kwargs["auth"] == {"userId": "me", "username": "mina", "avatar": "m.png"}
    assert [p.id for p in fast_session.reconciler.all_posts()] == ["p1"]
    assert len(fast_session.active_tasks()) == 3

    await asyncio.sleep(0.08)
    assert fast_session.api.list_posts.await_count >= 2
    assert fast_session.api.report_location.await_count >= 2
    assert fast_session.api.nearby.await_count >= 2


@pytest.mark.asyncio
async def test_go_offline_cancels_every_loop(fast_session):
    await fast_session.go_online()
    tasks = list(fast_session.active_tasks())

    await fast_session.go_offline()

    assert fast_session.active_tasks() == []
    assert all(task.cancelled() for task in tasks)
    fast_session.api.go_offline.assert_awaited_once()
    calls = fast_session.api.list_posts.await_count
    await asyncio.sleep(0.06)
    assert fast_session.api.list_posts.await_count == calls


@pytest.mark.asyncio
async def test_failed_refresh_is_logged_and_retried(fast_session):
    calls = []

    async def _list_posts():
        calls.append(1)
        if len(calls) == 1:
            raise TransientNetworkError()
        return [_post("p1")]

    fast_session.api.list_posts.side_effect = _list_posts

    await fast_session.go_online()
    assert fast_session.reconciler.all_posts() == []

    await asyncio.sleep(0.05)
    assert [p.id for p in fast_session.reconciler.all_posts()] == ["p1"]
    assert len(fast_session.active_tasks()) == 3


@pytest.mark.asyncio
async def test_push_events_feed_reconciler(session):
    await session._on_post_created(_post("p1").to_dict())
    await session._on_post_updated(_post("p1", version=2, likes=["x"]).to_dict())
    assert session.reconciler.get("p1").likes == ["x"]


@pytest.mark.asyncio
async def test_create_post_online_confirms_server_copy(session):
    await session.go_online()

    async def _confirm(post):
        confirmed = post.copy()
        confirmed.version = 1
        return confirmed

    session.api.create_post.side_effect = _confirm
    post = await session.create_post("hello")

    assert post.version == 1
    assert post.username == "mina"
    assert session.reconciler.local_ids() == []
    assert session.reconciler.get(post.id).version == 1


@pytest.mark.asyncio
async def test_create_post_failure_rolls_back(session):
    await session.go_online()
    session.api.create_post.side_effect = TransientNetworkError()

    with pytest.raises(TransientNetworkError):
        await session.create_post("hello")

    assert session.reconciler.all_posts() == []


@pytest.mark.asyncio
async def test_create_post_requires_content(session):
    with pytest.raises(ValidationError):
        await session.create_post("   ")
    session.api.create_post.assert_not_awaited()


@pytest.mark.asyncio
async def test_offline_post_stays_local_and_is_cached(session, client_settings):
    post = await session.create_post("drafted on the subway")

    session.api.create_post.assert_not_awaited()
    assert session.reconciler.local_ids() == [post.id]
    cached = json.loads(open(client_settings.local_cache_path, encoding="utf-8").read())
    assert [item["id"] for item in cached] == [post.id]

    reloaded = FeedSession(ME, _fake_api(), client_settings, sio=_fake_sio())
    assert reloaded.reconciler.local_ids() == [post.id]


@pytest.mark.asyncio
async def test_like_is_optimistic_and_rolled_back_on_failure(session):
    session.api.list_posts.return_value = [_post("p1")]
    await session.go_online()
    session.api.toggle_like.side_effect = NotFoundError("post_not_found")

    with pytest.raises(NotFoundError):
        await session.toggle_like("p1")

    session.api.toggle_like.assert_awaited_once_with("p1", "like")
    assert session.reconciler.get("p1").likes == []


@pytest.mark.asyncio
async def test_like_success_takes_server_copy(session):
    session.api.list_posts.return_value = [_post("p1")]
    await session.go_online()
    session.api.toggle_like.return_value = _post("p1", version=2, likes=["me"])

    post = await session.toggle_like("p1")

    assert post.version == 2
    assert post.likes == ["me"]


@pytest.mark.asyncio
async def test_comment_rollback_on_failure(session):
    session.api.list_posts.return_value = [_post("p1")]
    await session.go_online()
    session.api.add_comment.side_effect = TransientNetworkError()

    with pytest.raises(TransientNetworkError):
        await session.add_comment("p1", "nice")

    assert session.reconciler.get("p1").comments == []


@pytest.mark.asyncio
async def test_comment_success_keeps_server_comment(session):
    session.api.list_posts.return_value = [_post("p1")]
    await session.go_online()
    session.api.add_comment.return_value = Comment(
        id="server-c1",
        post_id="p1",
        user_id="me",
        username="mina",
        user_avatar="m.png",
        text="nice",
        created_at=NOW,
    )

    await session.add_comment("p1", "nice")

    assert [c.id for c in session.reconciler.get("p1").comments] == ["server-c1"]


@pytest.mark.asyncio
async def test_reply_online_swaps_optimistic_copy(session):
    session.api.list_posts.return_value = [_post("p1")]
    await session.go_online()
    session.api.create_reply.return_value = _post("r-server", "me", parent="p1")

    reply = await session.reply("p1", "hi back")

    assert reply.id == "r-server"
    thread = session.reconciler.thread("p1")
    assert [r.id for r in thread.direct_replies] == ["r-server"]


@pytest.mark.asyncio
async def test_offline_reply_stays_local(session):
    session.reconciler.apply_refresh([_post("p1")])

    reply = await session.reply("p1", "later")

    assert reply.parent_post_id == "p1"
    assert reply.replying_to_user == "other"
    session.api.create_reply.assert_not_awaited()


@pytest.mark.asyncio
async def test_latest_post_falls_back_to_local(session):
    session.api.latest_post.side_effect = TransientNetworkError()
    session.reconciler.apply_refresh([_post("p1", "someone")])

    latest = await session.latest_post("someone")

    assert latest.id == "p1"


@pytest.mark.asyncio
async def test_go_online_twice_keeps_one_set_of_loops(fast_session):
    await fast_session.go_online()
    first = list(fast_session.active_tasks())

    await fast_session.go_online()

    assert fast_session.active_tasks() == first
    fast_session.api.go_online.assert_awaited_once()

    await fast_session.go_offline()
    assert all(task.done() for task in first)
    calls = fast_session.api.list_posts.await_count
    await asyncio.sleep(0.06)
    assert fast_session.api.list_posts.await_count == calls


@pytest.mark.asyncio
async def test_comment_keeps_update_pushed_during_request(session):
    session.api.list_posts.return_value = [_post("p1")]
    await session.go_online()
    server_comment = Comment(
        id="srv",
        post_id="p1",
        user_id="me",
        username="mina",
        user_avatar="m.png",
        text="nice",
        created_at=NOW,
    )

    async def _add_comment(post_id, text):
        pushed = _post("p1", version=3, likes=["x"])
        pushed.comments = [server_comment]
        await session._on_post_updated(pushed.to_dict())
        return server_comment

    session.api.add_comment.side_effect = _add_comment

    await session.add_comment("p1", "nice")

    post = session.reconciler.get("p1")
    assert post.version == 3
    assert post.likes == ["x"]
    assert [c.id for c in post.comments] == ["srv"]


@pytest.mark.asyncio
async def test_failed_like_keeps_update_pushed_during_request(session):
    session.api.list_posts.return_value = [_post("p1")]
    await session.go_online()

    async def _toggle_like(post_id, action):
        await session._on_post_updated(_post("p1", version=2, likes=["x"]).to_dict())
        raise TransientNetworkError()

    session.api.toggle_like.side_effect = _toggle_like

    with pytest.raises(TransientNetworkError):
        await session.toggle_like("p1")

    post = session.reconciler.get("p1")
    assert post.version == 2
    assert post.likes == ["x"]


@pytest.mark.asyncio
async def test_offline_like_survives_refresh(session):
    session.reconciler.apply_refresh([_post("p1", version=2)])

    await session.toggle_like("p1")
    session.reconciler.apply_refresh([_post("p1", version=2)])

    session.api.toggle_like.assert_not_awaited()
    assert session.reconciler.get("p1").likes == ["me"]
