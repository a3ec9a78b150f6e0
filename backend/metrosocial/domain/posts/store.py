"""In-memory authority for posts, replies, inline comments and likes.

The store is the only writer of post state. Every public method validates before
mutating and runs under one RLock, so a rejected call never leaves a partial
write behind. Callers always receive deep copies.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from metrosocial.domain.errors import NotFoundError, ValidationError
from metrosocial.domain.posts.models import (
	Comment,
	LikeAction,
	LikeState,
	Post,
	Thread,
	chronological_key,
)
from metrosocial.infra.auth import AuthenticatedUser
from metrosocial.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_SUMMARY_LENGTH = 30


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


def _clean(value: Optional[str]) -> Optional[str]:
	if value is None:
		return None
	text = value.strip()
	return text or None


class PostStore:
	def __init__(
		self,
		*,
		max_posts: int = 10000,
		max_comments: int = 1000,
		clock: Clock = _utcnow,
	) -> None:
		self._posts: Dict[str, Post] = {}
		self._lock = threading.RLock()
		self._clock = clock
		self.max_posts = max_posts
		self.max_comments = max_comments

	# -- writes -----------------------------------------------------------

	def create_post(
		self,
		author: AuthenticatedUser,
		*,
		post_id: Optional[str] = None,
		text: Optional[str] = None,
		url: Optional[str] = None,
		image: Optional[str] = None,
		created_at: Optional[datetime] = None,
	) -> Post:
		"""Store a new top-level post authored by ``author``.

		At least one of text, url or image must be non-empty. Username and avatar
		come from the authenticated author, never from the payload.
		"""
		body = _clean(text)
		link = _clean(url)
		picture = _clean(image)
		if not body and not link and not picture:
			obs_metrics.inc_post_mutation("create", "invalid")
			raise ValidationError("empty_post")
		post_id = _clean(post_id) or str(uuid4())
		with self._lock:
			if post_id in self._posts:
				obs_metrics.inc_post_mutation("create", "duplicate")
				raise ValidationError("duplicate_id")
			post = Post(
				id=post_id,
				user_id=author.id,
				username=author.username,
				user_avatar=author.avatar,
				text=body or "",
				url=link,
				image=picture,
				created_at=created_at or self._clock(),
				version=1,
			)
			self._insert(post)
			result = post.copy()
		obs_metrics.inc_post_mutation("create")
		logger.info("post created id=%s user=%s", post_id, author.id)
		return result

	def create_reply(self, parent_post_id: str, author: AuthenticatedUser, text: Optional[str]) -> Post:
		"""Store a reply as a first-class post; the parent is left untouched."""
		body = _clean(text)
		with self._lock:
			parent = self._posts.get(parent_post_id)
			if parent is None:
				obs_metrics.inc_post_mutation("reply", "not_found")
				raise NotFoundError("post_not_found")
			if not body:
				obs_metrics.inc_post_mutation("reply", "invalid")
				raise ValidationError("empty_reply")
			reply = Post(
				id=str(uuid4()),
				user_id=author.id,
				username=author.username,
				user_avatar=author.avatar,
				text=body,
				created_at=self._clock(),
				parent_post_id=parent.id,
				replying_to_user=parent.username,
				version=1,
			)
			self._insert(reply)
			result = reply.copy()
		obs_metrics.inc_post_mutation("reply")
		logger.info("reply created id=%s parent=%s user=%s", result.id, parent_post_id, author.id)
		return result

	def add_comment(self, post_id: str, author: AuthenticatedUser, text: Optional[str]) -> Comment:
		body = _clean(text)
		with self._lock:
			post = self._posts.get(post_id)
			if post is None:
				obs_metrics.inc_post_mutation("comment", "not_found")
				raise NotFoundError("post_not_found")
			if not body:
				obs_metrics.inc_post_mutation("comment", "invalid")
				raise ValidationError("empty_comment")
			if len(post.comments) >= self.max_comments:
				obs_metrics.inc_post_mutation("comment", "limit")
				raise ValidationError("comment_limit")
			comment = Comment(
				id=uuid4().hex,
				post_id=post_id,
				user_id=author.id,
				username=author.username,
				user_avatar=author.avatar,
				text=body,
				created_at=self._clock(),
			)
			post.comments.append(comment)
			post.version += 1
		obs_metrics.inc_post_mutation("comment")
		logger.info("comment added post=%s user=%s count=%s", post_id, author.id, len(post.comments))
		return comment

	def toggle_like(self, post_id: str, user_id: str, action: LikeAction) -> LikeState:
		"""Apply ``like``/``unlike``; repeating the current state is a no-op."""
		if action not in ("like", "unlike"):
			raise ValidationError("invalid_action")
		with self._lock:
			post = self._posts.get(post_id)
			if post is None:
				obs_metrics.inc_post_mutation("like", "not_found")
				raise NotFoundError("post_not_found")
			liked = post.is_liked_by(user_id)
			changed = False
			if action == "like" and not liked:
				post.likes.append(user_id)
				changed = True
			elif action == "unlike" and liked:
				post.likes = [uid for uid in post.likes if uid != user_id]
				changed = True
			if changed:
				post.version += 1
			state = LikeState(like_count=post.like_count, is_liked=post.is_liked_by(user_id))
		obs_metrics.inc_post_mutation("like", "ok" if changed else "noop")
		return state

	def refresh_author(self, user: AuthenticatedUser) -> List[Post]:
		"""Propagate a changed username/avatar to the user's posts and comments.

		Returns copies of every post that changed.
		"""
		touched: List[Post] = []
		with self._lock:
			for post in self._posts.values():
				changed = False
				if post.user_id == user.id and (post.username, post.user_avatar) != (user.username, user.avatar):
					post.username = user.username
					post.user_avatar = user.avatar
					changed = True
				for comment in post.comments:
					if comment.user_id == user.id and (comment.username, comment.user_avatar) != (user.username, user.avatar):
						comment.username = user.username
						comment.user_avatar = user.avatar
						changed = True
				if changed:
					post.version += 1
					touched.append(post.copy())
		if touched:
			obs_metrics.inc_post_mutation("author_refresh")
			logger.info("author refresh user=%s posts=%s", user.id, len(touched))
		return touched

	# -- reads ------------------------------------------------------------

	def get(self, post_id: str) -> Post:
		with self._lock:
			post = self._posts.get(post_id)
			if post is None:
				raise NotFoundError("post_not_found")
			return post.copy()

	def list_all(self) -> List[Post]:
		"""All posts, newest first; equal timestamps fall back to id."""
		with self._lock:
			posts = [post.copy() for post in self._posts.values()]
		posts.sort(key=chronological_key, reverse=True)
		return posts

	def latest_by_user(self, user_id: str) -> Optional[Post]:
		with self._lock:
			own = [post for post in self._posts.values() if post.user_id == user_id]
			if not own:
				return None
			return max(own, key=chronological_key).copy()

	def get_thread(self, post_id: str) -> Thread:
		with self._lock:
			main = self._posts.get(post_id)
			if main is None:
				raise NotFoundError("post_not_found")
			replies = [post.copy() for post in self._posts.values() if post.parent_post_id == post_id]
			main_copy = main.copy()
		replies.sort(key=chronological_key)
		return Thread(main=main_copy, direct_replies=replies)

	def list_comments(self, post_id: str) -> List[Comment]:
		return self.get(post_id).comments

	def count(self) -> int:
		with self._lock:
			return len(self._posts)

	def summary(self) -> List[Dict[str, object]]:
		"""Compact digest of every post for debugging."""
		digest: List[Dict[str, object]] = []
		for post in self.list_all():
			if post.text:
				content_type = "text"
				content = post.text
			elif post.url:
				content_type = "url"
				content = post.url
			elif post.image:
				content_type = "image"
				content = "Has image"
			else:
				content_type = "unknown"
				content = ""
			if len(content) > _SUMMARY_LENGTH:
				content = content[:_SUMMARY_LENGTH] + "..."
			digest.append(
				{
					"id": post.id,
					"userId": post.user_id,
					"username": post.username,
					"contentType": content_type,
					"contentSummary": content,
					"createdAt": post.created_at.isoformat(),
					"commentCount": len(post.comments),
					"likeCount": post.like_count,
					"parentPostId": post.parent_post_id,
				}
			)
		return digest

	# -- internals --------------------------------------------------------

	def _insert(self, post: Post) -> None:
		self._posts[post.id] = post
		evicted = self._evict_overflow()
		obs_metrics.inc_posts_evicted(evicted)
		obs_metrics.set_posts_stored(len(self._posts))

	def _evict_overflow(self) -> int:
		overflow = len(self._posts) - self.max_posts
		if self.max_posts <= 0 or overflow <= 0:
			return 0
		oldest = sorted(self._posts.values(), key=chronological_key)[:overflow]
		for post in oldest:
			del self._posts[post.id]
		logger.info("retention evicted posts=%s", len(oldest))
		return len(oldest)
