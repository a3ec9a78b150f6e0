"""Client-side post cache merging full refreshes, live pushes and optimistic edits.

Two partitions keyed by post id:

- ``local``: posts this client created that the server has not confirmed yet,
  plus server posts edited while offline ("pending"), optionally persisted to a
  JSON cache file.
- ``server``: the last full refresh plus live ``postCreated``/``postUpdated`` pushes.

They are merged at read time. For an id present in more than one place the copy
with the higher ``version`` wins; equal versions fall back to the copy with at
least as many comments, and a full tie keeps the incoming/server copy. A pending
local copy also wins a full tie, so an offline edit survives a refresh that
carries the same server version.

Rollback undoes only the edit a token describes. Anything pushed or refreshed
while the request was in flight is left alone.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from metrosocial.domain.errors import NotFoundError
from metrosocial.domain.posts.models import Comment, LikeAction, Post, Thread, chronological_key

logger = logging.getLogger(__name__)

LOCAL = "local"
SERVER = "server"

EDIT_POST = "post"
EDIT_LIKE = "like"
EDIT_COMMENT = "comment"


def prefer(current: Optional[Post], incoming: Post) -> Post:
	"""Pick which of two copies of the same post to keep."""
	if current is None:
		return incoming
	if incoming.version != current.version:
		return incoming if incoming.version > current.version else current
	if len(incoming.comments) >= len(current.comments):
		return incoming
	return current


@dataclass(frozen=True)
class RollbackToken:
	"""Describes one optimistic edit so it can be undone in isolation.

	``versions`` holds the version each partition carried when the edit was
	applied; a partition missing from it did not hold the post.
	"""

	post_id: str
	kind: str
	versions: Dict[str, int] = field(default_factory=dict)
	action: Optional[LikeAction] = None
	user_id: Optional[str] = None
	comment_id: Optional[str] = None


class FeedReconciler:
	def __init__(self) -> None:
		self._local: Dict[str, Post] = {}
		self._server: Dict[str, Post] = {}
		# ids delivered by push since the last full refresh
		self._pushed: Set[str] = set()
		# server posts with an offline edit held in the local partition
		self._pending: Set[str] = set()

	# -- server input -------------------------------------------------------

	def apply_refresh(self, posts: Iterable[Post]) -> None:
		"""Replace the server partition with a full refresh.

		Posts pushed after the refresh was requested survive even if the response
		does not list them yet; confirmed local posts leave the local partition.
		"""
		fresh: Dict[str, Post] = {}
		for post in posts:
			fresh[post.id] = prefer(fresh.get(post.id), post)
		for post_id, post in list(fresh.items()):
			# A late response must not regress a newer copy already held
			fresh[post_id] = prefer(self._server.get(post_id), post)
		for post_id in self._pushed:
			if post_id not in fresh and post_id in self._server:
				fresh[post_id] = self._server[post_id]
		self._server = fresh
		self._pushed.clear()
		for post_id in [pid for pid in self._local if pid in fresh and self._superseded(pid, fresh[pid])]:
			del self._local[post_id]
			self._pending.discard(post_id)
		logger.debug("feed refresh applied posts=%s local=%s", len(self._server), len(self._local))

	def _superseded(self, post_id: str, server_copy: Post) -> bool:
		local = self._local[post_id]
		if post_id in self._pending:
			return server_copy.version > local.version
		return server_copy.version >= local.version

	def on_post_created(self, post: Post) -> bool:
		"""Insert a pushed post unless some copy of it is already held."""
		if post.id in self._server or post.id in self._local:
			return False
		self._server[post.id] = post
		self._pushed.add(post.id)
		return True

	def on_post_updated(self, post: Post) -> bool:
		"""Replace every held copy of the post, unless the held copy is newer."""
		replaced = False
		for name, partition in ((LOCAL, self._local), (SERVER, self._server)):
			current = partition.get(post.id)
			if current is None:
				continue
			if name == LOCAL and post.id in self._pending and post.version <= current.version:
				continue
			if prefer(current, post) is post:
				partition[post.id] = post
				replaced = True
		if replaced and post.id in self._server:
			self._pushed.add(post.id)
		return replaced

	def confirm(self, post: Post) -> None:
		"""Record the server's copy of a post this client just wrote."""
		self._server[post.id] = prefer(self._server.get(post.id), post)
		local = self._local.get(post.id)
		if local is not None and local.version <= post.version:
			del self._local[post.id]
			self._pending.discard(post.id)

	def confirm_comment(self, token: RollbackToken, comment: Comment) -> None:
		"""Swap the optimistic comment for the server's, without duplicating a pushed copy."""
		for partition in (self._local, self._server):
			post = partition.get(token.post_id)
			if post is None:
				continue
			post.comments = [item for item in post.comments if item.id != token.comment_id]
			if all(item.id != comment.id for item in post.comments):
				post.comments.append(comment)

	# -- reads --------------------------------------------------------------

	def _merged(self) -> Dict[str, Post]:
		merged: Dict[str, Post] = dict(self._local)
		for post_id, post in self._server.items():
			local = merged.get(post_id)
			if local is not None and post_id in self._pending:
				merged[post_id] = prefer(post, local)
			else:
				merged[post_id] = prefer(local, post)
		return merged

	def get(self, post_id: str) -> Optional[Post]:
		return self._merged().get(post_id)

	def all_posts(self) -> List[Post]:
		return sorted(self._merged().values(), key=chronological_key, reverse=True)

	def timeline(self, viewer_id: str) -> List[Post]:
		"""Viewer's own posts and replies, plus everyone else's top-level posts."""
		return [post for post in self.all_posts() if post.user_id == viewer_id or not post.is_reply]

	def thread(self, post_id: str) -> Optional[Thread]:
		merged = self._merged()
		main = merged.get(post_id)
		if main is None:
			return None
		replies = sorted(
			(post for post in merged.values() if post.parent_post_id == post_id),
			key=chronological_key,
		)
		return Thread(main=main, direct_replies=replies)

	def latest_by_user(self, user_id: str) -> Optional[Post]:
		own = [post for post in self._merged().values() if post.user_id == user_id]
		if not own:
			return None
		return max(own, key=chronological_key)

	def local_ids(self) -> List[str]:
		return sorted(self._local)

	# -- optimistic edits ---------------------------------------------------

	def _versions(self, post_id: str) -> Dict[str, int]:
		versions: Dict[str, int] = {}
		for name, partition in ((LOCAL, self._local), (SERVER, self._server)):
			if post_id in partition:
				versions[name] = partition[post_id].version
		if not versions:
			raise NotFoundError("post_not_found")
		return versions

	def _partitions(self) -> Dict[str, Dict[str, Post]]:
		return {LOCAL: self._local, SERVER: self._server}

	def add_local(self, post: Post) -> RollbackToken:
		self._local[post.id] = post
		return RollbackToken(post_id=post.id, kind=EDIT_POST, versions={LOCAL: post.version})

	def hold_local(self, post_id: str) -> None:
		"""Keep an offline edit of a server post in the local partition."""
		if post_id in self._server:
			self._local[post_id] = self._merged()[post_id].copy()
			self._pending.add(post_id)

	def apply_local_like(self, post_id: str, user_id: str) -> RollbackToken:
		"""Flip the user's like on every held copy; the token records the action taken."""
		versions = self._versions(post_id)
		liked = self._merged()[post_id].is_liked_by(user_id)
		action: LikeAction = "unlike" if liked else "like"
		for name in versions:
			self._set_like(self._partitions()[name][post_id], user_id, action)
		return RollbackToken(post_id=post_id, kind=EDIT_LIKE, versions=versions, action=action, user_id=user_id)

	@staticmethod
	def _set_like(post: Post, user_id: str, action: LikeAction) -> None:
		if action == "like":
			if not post.is_liked_by(user_id):
				post.likes.append(user_id)
		else:
			post.likes = [uid for uid in post.likes if uid != user_id]

	def append_local_comment(self, post_id: str, comment: Comment) -> RollbackToken:
		versions = self._versions(post_id)
		for name in versions:
			self._partitions()[name][post_id].comments.append(comment)
		return RollbackToken(post_id=post_id, kind=EDIT_COMMENT, versions=versions, comment_id=comment.id)

	def rollback(self, token: RollbackToken) -> None:
		"""Undo the token's edit on every copy that still carries it.

		Copies replaced by a newer version since the edit are left untouched.
		"""
		for name, partition in self._partitions().items():
			post = partition.get(token.post_id)
			if post is None or name not in token.versions:
				continue
			if token.kind == EDIT_COMMENT:
				post.comments = [item for item in post.comments if item.id != token.comment_id]
				continue
			if post.version != token.versions[name]:
				continue
			if token.kind == EDIT_POST:
				del partition[token.post_id]
				self._pending.discard(token.post_id)
			elif token.kind == EDIT_LIKE and token.user_id is not None:
				self._set_like(post, token.user_id, "unlike" if token.action == "like" else "like")
		logger.debug("optimistic change rolled back post=%s kind=%s", token.post_id, token.kind)

	# -- persistence --------------------------------------------------------

	def export_local(self) -> List[Dict[str, Any]]:
		return [post.to_dict() for post in sorted(self._local.values(), key=chronological_key)]

	def load_local(self, items: Iterable[Dict[str, Any]]) -> int:
		"""Load cached local posts; malformed entries are skipped.

		Entries already carrying a server version are offline edits and stay pending.
		"""
		loaded = 0
		for item in items:
			try:
				post = Post.from_dict(item)
			except (KeyError, TypeError, ValueError):
				logger.warning("skipping malformed cached post", exc_info=True)
				continue
			self._local[post.id] = prefer(self._local.get(post.id), post)
			if post.version > 0:
				self._pending.add(post.id)
			loaded += 1
		return loaded
