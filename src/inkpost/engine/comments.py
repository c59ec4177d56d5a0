"""
Posting, listing and deleting comments.

A comment may be deleted by its author or by the author of the article it
belongs to. Both ids are looked up explicitly (comment → article →
author_id) before deciding, and the row-level policy on the gateway
enforces the same rule again on the delete itself. After a delete the
article's `comment_count` is re-read and returned with the outcome.
"""

from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, List, Optional

from ..entities.comments import Comment
from ..exceptions import APIError
from .counters import CounterReconciler
from .results import ErrorKind, Result

if TYPE_CHECKING:
    from ..client import Client, Identity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommentRemoval:
    article_id: str
    count: Optional[int]        # re-read comment_count; None if the read failed


class CommentManager:

    def __init__(self, client: "Client", reconciler: Optional[CounterReconciler] = None) -> None:
        self.client = client
        self.reconciler = reconciler or CounterReconciler(client)

    def list(self, article_id: str) -> Result[List[Comment]]:
        """Comments on the article, most recent first (ties: higher id first)."""
        try:
            comments = self.client.comments.for_article(article_id)
        except APIError as exc:
            logger.error("Loading comments of article %s failed: %s", article_id, exc)
            return Result.from_exception(exc)
        return Result.success(comments)

    def post(self, article_id: str, author: Optional["Identity"], content: str) -> Result[Comment]:
        """
        Post `content` as `author`. The comment_count trigger fires on the
        gateway; nothing is counted here.
        """
        if author is None:
            return Result.failure(ErrorKind.UNAUTHENTICATED, "Sign in to comment.")

        text = (content or "").strip()
        if not text:
            return Result.failure(ErrorKind.INVALID, "Comment must not be empty.")

        row = {
            "article_id": article_id,
            "user_id": author.id,
            "username": author.display_name,
            "user_avatar": author.avatar_url,
            "content": text,
        }
        try:
            created = self.client.insert(Comment.TABLE, row)
        except APIError as exc:
            logger.error("Posting a comment on article %s failed: %s", article_id, exc)
            return Result.from_exception(exc, default=ErrorKind.COMMENT_POST_FAILED)

        logger.info("Comment %s posted on article %s", created.get("id"), article_id)
        return Result.success(Comment(client=self.client, data=created, sync=False))

    @staticmethod
    def can_delete(requester_id: Optional[str], comment_user_id: str, article_author_id: str) -> bool:
        if not requester_id:
            return False
        return requester_id == comment_user_id or requester_id == article_author_id

    def delete(self, comment_id: str, requester: Optional["Identity"]) -> Result[CommentRemoval]:
        """
        Delete a comment on behalf of `requester`.

        On success the article's comment_count is re-read and returned.

        Failures: UNAUTHENTICATED, NOT_FOUND (comment or article missing),
        NOT_AUTHORIZED (neither author; also when the gateway policy filtered
        the row out) and GATEWAY_ERROR.
        """
        if requester is None:
            return Result.failure(ErrorKind.UNAUTHENTICATED, "Sign in to delete comments.")

        try:
            comment = self.client.select_one(
                Comment.TABLE, columns="id,article_id,user_id", filters={"id": comment_id}
            )
            article = self.client.select_one(
                "articles", columns="id,author_id", filters={"id": comment["article_id"]}
            )
        except APIError as exc:
            logger.warning("Cannot delete comment %s: %s", comment_id, exc)
            return Result.from_exception(exc)

        if not self.can_delete(requester.id, comment["user_id"], article["author_id"]):
            logger.warning("User %s may not delete comment %s", requester.id, comment_id)
            return Result.failure(
                ErrorKind.NOT_AUTHORIZED,
                "Only the comment's author or the article's author can delete it.",
            )

        try:
            deleted = self.client.delete_rows(Comment.TABLE, filters={"id": comment_id})
        except APIError as exc:
            logger.error("Deleting comment %s failed: %s", comment_id, exc)
            return Result.from_exception(exc)

        if not deleted:
            logger.warning("Gateway policy kept comment %s from being deleted", comment_id)
            return Result.failure(ErrorKind.NOT_AUTHORIZED, "The gateway refused to delete the comment.")

        logger.info("Comment %s deleted by %s", comment_id, requester.id)
        refreshed = self.reconciler.refresh(article["id"], "comment_count")
        return Result.success(
            CommentRemoval(article_id=article["id"], count=refreshed.value if refreshed.ok else None)
        )
