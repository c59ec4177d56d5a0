# entities/comments.py
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from .base import BaseEntity, BaseCollectionProxy, Field

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _timestamp(value: Optional[str]) -> datetime:
    if not value:
        return _EPOCH
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def newest_first(comments: Iterable["Comment"]) -> List["Comment"]:
    """Order by `created_at` descending, equal timestamps by id descending."""
    return sorted(
        comments,
        key=lambda c: (_timestamp(c.data.get("created_at")), str(c.data.get("id", ""))),
        reverse=True,
    )


class Comment(BaseEntity):
    """
    A comment on an article. Immutable once posted; it can only be deleted.

    `username` and `user_avatar` are a snapshot of the author taken when
    the comment was posted.
    """

    TABLE = "comments"

    id: str = Field("id", read_only=True)
    article_id: str = Field("article_id", read_only=True)
    user_id: str = Field("user_id", read_only=True)
    username: str = Field("username", default="", read_only=True)
    user_avatar: str = Field("user_avatar", default="", read_only=True)
    content: str = Field("content", default="", read_only=True)
    created_at: Optional[str] = Field("created_at", read_only=True)

    def save(self, *, only_dirty: bool = False) -> None:
        raise AttributeError("Comments cannot be edited once posted.")


class CommentsProxy(BaseCollectionProxy):
    ENTITY_CLS = Comment
    TABLE = "comments"

    def for_article(self, article_id: str, *, limit: Optional[int] = None) -> List[Comment]:
        """Comments on `article_id`, most recent first."""
        return newest_first(self.list(filters={"article_id": article_id}, limit=limit))
