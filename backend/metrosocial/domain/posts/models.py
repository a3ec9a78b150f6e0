"""Post, reply and comment records shared by the server store and the feed client."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

LikeAction = Literal["like", "unlike"]


def parse_timestamp(raw: Any) -> datetime:
	"""Accept datetimes or ISO-8601 strings (``Z`` suffix included); naive values are UTC."""
	if isinstance(raw, datetime):
		value = raw
	else:
		text = str(raw).strip()
		if text.endswith("Z"):
			text = text[:-1] + "+00:00"
		value = datetime.fromisoformat(text)
	if value.tzinfo is None:
		value = value.replace(tzinfo=timezone.utc)
	return value


def format_timestamp(value: datetime) -> str:
	return value.astimezone(timezone.utc).isoformat()


@dataclass(slots=True)
class Comment:
	"""Legacy inline comment; immutable once appended."""

	id: str
	post_id: str
	user_id: str
	username: str
	user_avatar: Optional[str]
	text: str
	created_at: datetime

	def to_dict(self) -> Dict[str, Any]:
		return {
			"id": self.id,
			"postId": self.post_id,
			"userId": self.user_id,
			"username": self.username,
			"userAvatar": self.user_avatar,
			"text": self.text,
			"createdAt": format_timestamp(self.created_at),
		}

	@classmethod
	def from_dict(cls, data: Dict[str, Any]) -> "Comment":
		return cls(
			id=str(data["id"]),
			post_id=str(data.get("postId") or ""),
			user_id=str(data["userId"]),
			username=str(data.get("username") or ""),
			user_avatar=data.get("userAvatar"),
			text=str(data.get("text") or ""),
			created_at=parse_timestamp(data["createdAt"]),
		)


@dataclass(slots=True)
class Post:
	"""A feed entry. Replies are posts too, linked to their parent by ``parent_post_id``.

	``version`` is assigned by the server store: 1 on create, +1 on every mutation.
	Posts created offline by a client carry version 0 until the server confirms them.
	"""

	id: str
	user_id: str
	username: str
	user_avatar: Optional[str]
	text: str
	created_at: datetime
	url: Optional[str] = None
	image: Optional[str] = None
	comments: List[Comment] = field(default_factory=list)
	likes: List[str] = field(default_factory=list)
	parent_post_id: Optional[str] = None
	replying_to_user: Optional[str] = None
	version: int = 0

	@property
	def like_count(self) -> int:
		return len(self.likes)

	@property
	def is_reply(self) -> bool:
		return self.parent_post_id is not None

	def is_liked_by(self, user_id: str) -> bool:
		return user_id in self.likes

	def copy(self) -> "Post":
		return copy.deepcopy(self)

	def to_dict(self) -> Dict[str, Any]:
		payload: Dict[str, Any] = {
			"id": self.id,
			"userId": self.user_id,
			"username": self.username,
			"userAvatar": self.user_avatar,
			"text": self.text,
			"url": self.url,
			"image": self.image,
			"createdAt": format_timestamp(self.created_at),
			"comments": [comment.to_dict() for comment in self.comments],
			"likes": list(self.likes),
			"likeCount": self.like_count,
			"version": self.version,
		}
		if self.parent_post_id is not None:
			payload["parentPostId"] = self.parent_post_id
			payload["replyingToUser"] = self.replying_to_user
		return payload

	@classmethod
	def from_dict(cls, data: Dict[str, Any]) -> "Post":
		# likeCount is derived; the likes list is the source of truth
		return cls(
			id=str(data["id"]),
			user_id=str(data["userId"]),
			username=str(data.get("username") or ""),
			user_avatar=data.get("userAvatar"),
			text=str(data.get("text") or ""),
			created_at=parse_timestamp(data["createdAt"]),
			url=data.get("url") or None,
			image=data.get("image") or None,
			comments=[Comment.from_dict(item) for item in data.get("comments") or []],
			likes=[str(user_id) for user_id in data.get("likes") or []],
			parent_post_id=data.get("parentPostId") or None,
			replying_to_user=data.get("replyingToUser") or None,
			version=int(data.get("version") or 0),
		)


@dataclass(frozen=True, slots=True)
class LikeState:
	like_count: int
	is_liked: bool

	def to_dict(self) -> Dict[str, Any]:
		return {"likeCount": self.like_count, "isLiked": self.is_liked}


@dataclass(slots=True)
class Thread:
	"""A post plus its direct replies, oldest reply first."""

	main: Post
	direct_replies: List[Post]

	def to_dict(self) -> Dict[str, Any]:
		return {
			"main": self.main.to_dict(),
			"directReplies": [reply.to_dict() for reply in self.direct_replies],
		}


def chronological_key(post: Post) -> tuple:
	"""Oldest first; feeds sort with ``reverse=True`` so ties fall back to id."""
	return (post.created_at, post.id)
