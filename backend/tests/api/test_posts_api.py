import pytest

from metrosocial.infra import jwt as jwt_helper
from metrosocial.settings import settings

U = {"X-User-Id": "user-u", "X-Username": "ursula", "X-User-Avatar": "u.png"}
V = {"X-User-Id": "user-v", "X-Username": "victor"}


async def _create(api_client, headers=U, **body):
	response = await api_client.post("/posts", json=body, headers=headers)
	assert response.status_code == 201, response.text
	return response.json()["post"]


@pytest.mark.asyncio
async def test_create_post_uses_authenticated_identity(api_client):
	post = await _create(api_client, id="p1", text="hello", userId="spoofed", username="mallory")

	assert post["id"] == "p1"
	assert post["userId"] == "user-u"
	assert post["username"] == "ursula"
	assert post["userAvatar"] == "u.png"
	assert post["likeCount"] == 0 and post["likes"] == []
	assert post["version"] == 1
	assert "parentPostId" not in post


@pytest.mark.asyncio
async def test_create_empty_post_is_rejected(api_client):
	response = await api_client.post("/posts", json={}, headers=U)
	assert response.status_code == 422
	assert response.json()["detail"] == "empty_post"
	assert (await api_client.get("/posts", headers=U)).json() == {"posts": []}


@pytest.mark.asyncio
async def test_duplicate_post_id_is_rejected(api_client):
	await _create(api_client, id="p1", text="first")
	response = await api_client.post("/posts", json={"id": "p1", "text": "again"}, headers=V)
	assert response.status_code == 422
	assert response.json()["detail"] == "duplicate_id"


@pytest.mark.asyncio
async def test_list_posts_newest_first(api_client):
	await _create(api_client, id="old", text="1", createdAt="2024-01-01T00:00:00Z")
	await _create(api_client, id="new", text="2", createdAt="2024-01-02T00:00:00Z")
	posts = (await api_client.get("/posts", headers=U)).json()["posts"]
	assert [p["id"] for p in posts] == ["new", "old"]
	assert posts[0]["createdAt"].startswith("2024-01-02T00:00:00")


@pytest.mark.asyncio
async def test_reply_and_thread(api_client):
	await _create(api_client, id="p1", text="hello")

	response = await api_client.post("/posts/p1/replies", json={"text": "hi back"}, headers=V)
	assert response.status_code == 201
	reply = response.json()["post"]
	assert reply["parentPostId"] == "p1"
	assert reply["replyingToUser"] == "ursula"

	thread = (await api_client.get("/posts/p1/thread", headers=V)).json()
	assert thread["main"]["id"] == "p1"
	assert [r["id"] for r in thread["directReplies"]] == [reply["id"]]


@pytest.mark.asyncio
async def test_reply_to_missing_post(api_client):
	response = await api_client.post("/posts/nope/replies", json={"text": "hello?"}, headers=V)
	assert response.status_code == 404
	assert response.json()["detail"] == "post_not_found"
	assert (await api_client.get("/posts", headers=U)).json()["posts"] == []


@pytest.mark.asyncio
async def test_like_twice_is_idempotent(api_client):
	await _create(api_client, id="p1", text="hello")

	first = await api_client.post("/posts/p1/like", json={"action": "like"}, headers=V)
	second = await api_client.post("/posts/p1/like", json={"action": "like"}, headers=V)

	assert first.status_code == second.status_code == 200
	body = second.json()
	assert body["likeCount"] == 1
	assert body["isLiked"] is True
	assert body["post"]["likes"] == ["user-v"]

	unliked = (await api_client.post("/posts/p1/like", json={"action": "unlike"}, headers=V)).json()
	assert unliked["likeCount"] == 0 and unliked["isLiked"] is False


@pytest.mark.asyncio
async def test_like_rejects_unknown_action(api_client):
	await _create(api_client, id="p1", text="hello")
	response = await api_client.post("/posts/p1/like", json={"action": "love"}, headers=V)
	assert response.status_code == 422


@pytest.mark.asyncio
async def test_comments(api_client):
	await _create(api_client, id="p1", text="hello")

	response = await api_client.post("/posts/p1/comments", json={"text": "nice"}, headers=V)
	assert response.status_code == 201
	comment = response.json()["comment"]
	assert comment["postId"] == "p1"
	assert comment["username"] == "victor"

	listed = (await api_client.get("/posts/p1/comments", headers=U)).json()["comments"]
	assert [c["text"] for c in listed] == ["nice"]

	empty = await api_client.post("/posts/p1/comments", json={"text": " "}, headers=V)
	assert empty.status_code == 422
	missing = await api_client.get("/posts/nope/comments", headers=U)
	assert missing.status_code == 404


@pytest.mark.asyncio
async def test_latest_post_for_user(api_client):
	assert (await api_client.get("/posts/user/user-u/latest", headers=V)).json() == {"latestPost": None}
	await _create(api_client, id="p1", text="1", createdAt="2024-01-01T00:00:00Z")
	await _create(api_client, id="p2", text="2", createdAt="2024-01-03T00:00:00Z")
	body = (await api_client.get("/posts/user/user-u/latest", headers=V)).json()
	assert body["latestPost"]["id"] == "p2"


@pytest.mark.asyncio
async def test_author_refresh_rewrites_profile(api_client):
	await _create(api_client, id="p1", text="hello")
	renamed = {**U, "X-Username": "ursula-2"}

	response = await api_client.post("/posts/authors/self/refresh", headers=renamed)

	assert response.json() == {"updated": 1}
	post = (await api_client.get("/posts", headers=U)).json()["posts"][0]
	assert post["username"] == "ursula-2"


@pytest.mark.asyncio
async def test_debug_summary_only_in_dev(api_client):
	await _create(api_client, id="p1", text="hello")
	body = (await api_client.get("/posts/debug/summary", headers=U)).json()
	assert body["totalPosts"] == 1
	assert body["posts"][0]["contentType"] == "text"

	settings.environment = "production"
	token = jwt_helper.encode_access({"sub": "user-u", "username": "ursula"})
	hidden = await api_client.get("/posts/debug/summary", headers={"Authorization": f"Bearer {token}"})
	assert hidden.status_code == 404


@pytest.mark.asyncio
async def test_posts_mutations_reach_subscribers(api_client, container):
	events = []

	async def record(event, payload):
		events.append((event, payload["id"]))

	container.bus.subscribe(record)
	await _create(api_client, id="p1", text="hello")
	reply = (await api_client.post("/posts/p1/replies", json={"text": "yo"}, headers=V)).json()["post"]
	await api_client.post("/posts/p1/like", json={"action": "like"}, headers=V)

	assert events == [
		("postCreated", "p1"),
		("postCreated", reply["id"]),
		("postUpdated", "p1"),
		("postUpdated", "p1"),
	]
