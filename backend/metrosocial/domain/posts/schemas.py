"""Request bodies for the posts API. Responses are built from the domain models."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
	model_config = ConfigDict(populate_by_name=True)


class CreatePostRequest(_CamelModel):
	"""New top-level post.

	``userId``/``username``/``userAvatar`` sent by older clients are dropped; the
	author is always the authenticated principal. Emptiness is checked by the store.
	"""

	model_config = ConfigDict(populate_by_name=True, extra="ignore")

	id: Optional[str] = Field(default=None, max_length=128)
	text: Optional[str] = Field(default=None, max_length=5000)
	url: Optional[str] = Field(default=None, max_length=2048)
	image: Optional[str] = None
	created_at: Optional[datetime] = Field(default=None, alias="createdAt")


class TextRequest(_CamelModel):
	"""Body shared by replies and inline comments."""

	model_config = ConfigDict(populate_by_name=True, extra="ignore")

	text: str = Field(default="", max_length=5000)


class LikeRequest(_CamelModel):
	action: Literal["like", "unlike"]
