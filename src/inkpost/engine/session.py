"""
Interaction state of one open article page.

`ArticleSession.open()` is the navigation step: it clears everything held
for the previous article before loading the next one, so liked/bookmarked
flags never carry over. After that the flags only change when the gateway
has confirmed a mutation (or an existence re-check says so).

Example:
    >>> page = ArticleSession(client).open("a1")
    >>> page.toggle_like().ok, page.liked, page.article.like_count
    (True, True, 90)
    >>> page.draft = "Nice write-up"
    >>> page.submit_comment()
"""

import logging
from typing import TYPE_CHECKING, Callable, List, Optional

from ..entities.articles import Article
from ..entities.comments import Comment
from ..exceptions import APIError
from ..fallback import Source, is_sample_id, sample_article
from .comments import CommentManager
from .counters import CounterReconciler
from .results import EngineError, ErrorKind, Result
from .toggles import ToggleController, ToggleKind, ToggleOutcome
from .views import ViewAccrual

if TYPE_CHECKING:
    from ..client import Client, Identity

logger = logging.getLogger(__name__)

ConfirmGate = Callable[[str], bool]


class ArticleSession:
    """
    Args:
        client: Gateway client
        confirm: Default confirmation gate for comment deletion; called
            with the comment id, deletion proceeds only if it returns True
    """

    def __init__(
        self,
        client: "Client",
        *,
        reconciler: Optional[CounterReconciler] = None,
        toggles: Optional[ToggleController] = None,
        comment_manager: Optional[CommentManager] = None,
        views: Optional[ViewAccrual] = None,
        confirm: Optional[ConfirmGate] = None,
    ) -> None:
        self.client = client
        self.reconciler = reconciler or CounterReconciler(client)
        self.toggles = toggles or ToggleController(client, self.reconciler)
        self.comment_manager = comment_manager or CommentManager(client, self.reconciler)
        self.views = views or ViewAccrual(client)
        self.confirm = confirm
        self._reset(None)

    def _reset(self, article_id: Optional[str]) -> None:
        self.article_id = article_id
        self.article: Optional[Article] = None
        self.source: Optional[Source] = None
        self.comments: List[Comment] = []
        self.draft = ""
        self.liked = False
        self.bookmarked = False
        self.current_user: Optional["Identity"] = None
        self.last_error: Optional[EngineError] = None

    def _require_open(self) -> str:
        if self.article_id is None:
            raise RuntimeError("No article is open; call open() first.")
        return self.article_id

    # ------------------------------------------------------------------ #
    # Navigation
    # ------------------------------------------------------------------ #

    def open(self, article_id: str) -> "ArticleSession":
        """Navigate to `article_id`, discarding all state of the previous article."""
        self._reset(article_id)
        self.current_user = self._load_identity()
        self._load_article()
        self._load_comments()
        self._check_interactions()
        self._count_view()
        return self

    def _load_identity(self) -> Optional["Identity"]:
        try:
            return self.client.current_identity()
        except APIError as exc:
            logger.warning("Could not resolve the current user: %s", exc)
            return None

    def _load_article(self) -> None:
        article_id = self._require_open()
        try:
            self.article = Article.get(self.client, article_id)
            self.source = Source.LIVE
        except APIError as exc:
            logger.error("Loading article %s failed, showing a placeholder: %s", article_id, exc)
            self.article = Article(client=self.client, data=sample_article(article_id), sync=False)
            self.source = Source.FALLBACK

    def _load_comments(self) -> None:
        result = self.comment_manager.list(self._require_open())
        if result.ok:
            self.comments = result.value
        else:
            self.last_error = result.error

    def _check_interactions(self) -> None:
        user_id = self.current_user.id if self.current_user else None
        for kind in ToggleKind:
            result = self.toggles.exists(kind, self._require_open(), user_id)
            # an unreadable state shows as "off"
            self._set_state(kind, bool(result.value) if result.ok else False)

    def _count_view(self) -> None:
        article_id = self._require_open()
        if is_sample_id(article_id):
            return
        result = self.views.accrue(article_id)
        if result.ok and result.value is not None and self.article is not None:
            self.article.merge(view_count=result.value)

    # ------------------------------------------------------------------ #
    # Likes and bookmarks
    # ------------------------------------------------------------------ #

    def _state(self, kind: ToggleKind) -> bool:
        return self.liked if kind is ToggleKind.LIKE else self.bookmarked

    def _set_state(self, kind: ToggleKind, value: bool) -> None:
        if kind is ToggleKind.LIKE:
            self.liked = value
        else:
            self.bookmarked = value

    def _toggle(self, kind: ToggleKind) -> Result[ToggleOutcome]:
        article_id = self._require_open()
        user_id = self.current_user.id if self.current_user else None

        result = self.toggles.toggle(kind, article_id, user_id, self._state(kind))
        self.last_error = result.error

        if result.ok:
            outcome = result.value
            self._set_state(kind, outcome.state)
            if outcome.count is not None and self.article is not None:
                self.article.merge(**{kind.counter: outcome.count})
        elif result.kind is ErrorKind.ALREADY_TOGGLED:
            synced = self.toggles.exists(kind, article_id, user_id)
            if synced.ok:
                self._set_state(kind, synced.value)
            self.reconciler.apply(
                self.article, kind.counter, self.reconciler.refresh(article_id, kind.counter)
            )
        return result

    def toggle_like(self) -> Result[ToggleOutcome]:
        return self._toggle(ToggleKind.LIKE)

    def toggle_bookmark(self) -> Result[ToggleOutcome]:
        return self._toggle(ToggleKind.BOOKMARK)

    # ------------------------------------------------------------------ #
    # Comments
    # ------------------------------------------------------------------ #

    def _reconcile_comment_count(self) -> None:
        result = self.reconciler.refresh(self._require_open(), "comment_count")
        self.reconciler.apply(self.article, "comment_count", result)

    def submit_comment(self) -> Result[Comment]:
        """Post the current draft; the draft survives a failure for retry."""
        result = self.comment_manager.post(self._require_open(), self.current_user, self.draft)
        self.last_error = result.error
        if result.ok:
            self.comments.insert(0, result.value)
            self.draft = ""
            self._reconcile_comment_count()
        return result

    def can_delete(self, comment: Comment) -> bool:
        """Whether the current user may be offered deletion of `comment`."""
        if self.article is None:
            return False
        return CommentManager.can_delete(
            self.current_user.id if self.current_user else None,
            comment.user_id,
            self.article.author_id,
        )

    def delete_comment(self, comment_id: str, confirm: Optional[ConfirmGate] = None) -> Result[bool]:
        """
        Delete a comment after the confirmation gate agrees.

        A declined confirmation is a success with value False and touches
        nothing.
        """
        self._require_open()
        gate = confirm or self.confirm
        if gate is not None and not gate(comment_id):
            return Result.success(False)

        result = self.comment_manager.delete(comment_id, self.current_user)
        self.last_error = result.error
        if not result.ok:
            return Result.failure(result.kind, result.error.message)

        self.comments = [c for c in self.comments if c.id != comment_id]
        removal = result.value
        if removal.count is not None and self.article is not None:
            self.article.merge(comment_count=removal.count)
        return Result.success(True)
