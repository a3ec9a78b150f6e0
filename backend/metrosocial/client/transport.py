"""HTTP transport for the feed client.

Non-2xx responses are mapped back onto the core error taxonomy; connection
failures, timeouts and 5xx responses surface as ``TransientNetworkError``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from metrosocial.domain.errors import TransientNetworkError, error_for_status
from metrosocial.domain.posts.models import Comment, LikeAction, Post, Thread
from metrosocial.settings import ClientSettings

logger = logging.getLogger(__name__)


def _reason(response: httpx.Response) -> Optional[str]:
	try:
		body = response.json()
	except ValueError:
		return None
	if isinstance(body, dict):
		detail = body.get("detail")
		if isinstance(detail, str):
			return detail
	return None


class FeedApiClient:
	"""Thin async wrapper over the REST surface.

	Pass ``http`` to reuse an existing ``httpx.AsyncClient`` (tests hand in one
	bound to an ASGI transport).
	"""

	def __init__(
		self,
		settings: ClientSettings,
		*,
		token: Optional[str] = None,
		headers: Optional[Dict[str, str]] = None,
		http: Optional[httpx.AsyncClient] = None,
	) -> None:
		self.settings = settings
		request_headers: Dict[str, str] = dict(headers or {})
		if token:
			request_headers["Authorization"] = f"Bearer {token}"
		self._owns_http = http is None
		self.http = http or httpx.AsyncClient(
			base_url=settings.base_url,
			timeout=settings.request_timeout_seconds,
		)
		self.http.headers.update(request_headers)

	async def aclose(self) -> None:
		if self._owns_http:
			await self.http.aclose()

	async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
		try:
			response = await self.http.request(method, path, **kwargs)
		except httpx.HTTPError as exc:
			logger.info("feed request failed method=%s path=%s error=%s", method, path, exc.__class__.__name__)
			raise TransientNetworkError("network") from exc
		if response.is_success:
			return response.json()
		raise error_for_status(response.status_code, _reason(response))

	# -- presence / location --------------------------------------------------

	async def go_online(self) -> None:
		await self._request("POST", "/users/online")

	async def go_offline(self) -> None:
		await self._request("POST", "/users/offline")

	async def report_location(self, latitude: float, longitude: float) -> Dict[str, Any]:
		return await self._request(
			"POST",
			"/location",
			json={"location": {"latitude": latitude, "longitude": longitude}},
		)

	async def nearby(self, latitude: float, longitude: float, radius: Optional[float] = None) -> List[Dict[str, Any]]:
		params: Dict[str, Any] = {"latitude": latitude, "longitude": longitude}
		if radius is not None:
			params["radius"] = radius
		body = await self._request("GET", "/location/nearby", params=params)
		return list(body.get("users") or [])

	# -- posts ----------------------------------------------------------------

	async def list_posts(self) -> List[Post]:
		body = await self._request("GET", "/posts")
		return [Post.from_dict(item) for item in body.get("posts") or []]

	async def create_post(self, post: Post) -> Post:
		payload = {
			"id": post.id,
			"text": post.text or None,
			"url": post.url,
			"image": post.image,
			"createdAt": post.to_dict()["createdAt"],
		}
		body = await self._request("POST", "/posts", json=payload)
		return Post.from_dict(body["post"])

	async def create_reply(self, parent_post_id: str, text: str) -> Post:
		body = await self._request("POST", f"/posts/{parent_post_id}/replies", json={"text": text})
		return Post.from_dict(body["post"])

	async def add_comment(self, post_id: str, text: str) -> Comment:
		body = await self._request("POST", f"/posts/{post_id}/comments", json={"text": text})
		return Comment.from_dict(body["comment"])

	async def toggle_like(self, post_id: str, action: LikeAction) -> Post:
		body = await self._request("POST", f"/posts/{post_id}/like", json={"action": action})
		return Post.from_dict(body["post"])

	async def get_thread(self, post_id: str) -> Thread:
		body = await self._request("GET", f"/posts/{post_id}/thread")
		return Thread(
			main=Post.from_dict(body["main"]),
			direct_replies=[Post.from_dict(item) for item in body.get("directReplies") or []],
		)

	async def latest_post(self, user_id: str) -> Optional[Post]:
		body = await self._request("GET", f"/posts/user/{user_id}/latest")
		latest = body.get("latestPost")
		return Post.from_dict(latest) if latest else None
