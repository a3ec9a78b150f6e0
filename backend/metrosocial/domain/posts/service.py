"""Feed service: every post mutation followed by its fan-out, in order."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from metrosocial.domain.errors import NotFoundError
from metrosocial.domain.posts.fanout import POST_CREATED, POST_UPDATED, FanoutBus
from metrosocial.domain.posts.models import Comment, LikeAction, LikeState, Post
from metrosocial.domain.posts.store import PostStore
from metrosocial.infra.auth import AuthenticatedUser

logger = logging.getLogger(__name__)


class FeedService:
	"""Wraps the store so subscribers observe events in mutation order.

	One asyncio lock is held across mutate and publish.
	"""

	def __init__(self, store: PostStore, bus: FanoutBus) -> None:
		self.store = store
		self.bus = bus
		self._lock = asyncio.Lock()

	async def create_post(
		self,
		author: AuthenticatedUser,
		*,
		post_id: Optional[str] = None,
		text: Optional[str] = None,
		url: Optional[str] = None,
		image: Optional[str] = None,
		created_at: Optional[datetime] = None,
	) -> Post:
		async with self._lock:
			post = self.store.create_post(
				author,
				post_id=post_id,
				text=text,
				url=url,
				image=image,
				created_at=created_at,
			)
			await self.bus.publish(POST_CREATED, post)
		return post

	async def create_reply(self, parent_post_id: str, author: AuthenticatedUser, text: Optional[str]) -> Post:
		async with self._lock:
			reply = self.store.create_reply(parent_post_id, author, text)
			await self.bus.publish(POST_CREATED, reply)
			# Clients showing the parent refresh their reply counts from this
			try:
				parent = self.store.get(parent_post_id)
			except NotFoundError:
				logger.debug("reply parent vanished before publish parent=%s", parent_post_id)
			else:
				await self.bus.publish(POST_UPDATED, parent)
		return reply

	async def add_comment(self, post_id: str, author: AuthenticatedUser, text: Optional[str]) -> Tuple[Comment, Post]:
		async with self._lock:
			comment = self.store.add_comment(post_id, author, text)
			post = self.store.get(post_id)
			await self.bus.publish(POST_UPDATED, post)
		return comment, post

	async def toggle_like(self, post_id: str, user: AuthenticatedUser, action: LikeAction) -> Tuple[LikeState, Post]:
		async with self._lock:
			before = self.store.get(post_id).version
			state = self.store.toggle_like(post_id, user.id, action)
			post = self.store.get(post_id)
			if post.version != before:
				await self.bus.publish(POST_UPDATED, post)
		return state, post

	async def refresh_author(self, user: AuthenticatedUser) -> List[Post]:
		async with self._lock:
			touched = self.store.refresh_author(user)
			for post in touched:
				await self.bus.publish(POST_UPDATED, post)
		return touched
