"""Posts domain exports."""

from . import fanout, service, store  # noqa: F401
from .models import Comment, LikeState, Post, Thread  # noqa: F401
