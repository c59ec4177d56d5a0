# entities/articles.py
import logging
import re
from typing import TYPE_CHECKING, List, Optional, Sequence

from .base import BaseEntity, BaseCollectionProxy, Field
from ..exceptions import APIError
from ..fallback import Source, Sourced, sample_feed, sample_tagged
from ..query import contains, ilike, or_

if TYPE_CHECKING:
    from ..client import Identity

logger = logging.getLogger(__name__)

SUMMARY_LENGTH = 200
FEED_TABS = {"latest": "created_at.desc,id.desc", "popular": "view_count.desc,id.desc"}
SEARCH_COLUMNS = (
    "id,title,summary,content,author_id,author_name,author_avatar,category,tags,"
    "view_count,like_count,comment_count,bookmark_count,created_at,updated_at"
)

_MARKDOWN_MARKS = re.compile(r"[#*`\[\]()]")


def summarize(content: str, length: int = SUMMARY_LENGTH) -> str:
    """First `length` characters of `content` with markdown marks stripped."""
    text = _MARKDOWN_MARKS.sub("", content).replace("\n", " ")
    return text[:length].strip()


class Article(BaseEntity):
    """
    Schema for rows of the `articles` relation.

    All attributes here are thin accessors over `self.data`. The four
    counters are maintained by the gateway (triggers and the view RPC),
    so they are read-only here; use `merge()` to apply a re-read value.
    """

    TABLE = "articles"
    SERVER_KEYS = frozenset({
        "id", "created_at", "updated_at", "author_id",
        "view_count", "like_count", "comment_count", "bookmark_count",
    })

    id: str = Field("id", read_only=True)
    title: str = Field("title", default="")
    content: str = Field("content", default="")
    summary: str = Field("summary", default="")
    category: Optional[str] = Field("category")
    tags: List[str] = Field("tags", default_factory=list)

    # Authorship
    author_id: str = Field("author_id", read_only=True)
    author_name: str = Field("author_name", default="")
    author_avatar: str = Field("author_avatar", default="")

    # Counters (owned by the gateway)
    view_count: int = Field("view_count", default=0, read_only=True)
    like_count: int = Field("like_count", default=0, read_only=True)
    comment_count: int = Field("comment_count", default=0, read_only=True)
    bookmark_count: int = Field("bookmark_count", default=0, read_only=True)

    # Timestamps
    created_at: Optional[str] = Field("created_at", read_only=True)
    updated_at: Optional[str] = Field("updated_at", read_only=True)


class ArticlesProxy(BaseCollectionProxy):
    ENTITY_CLS = Article
    TABLE = "articles"

    # ------------------------------------------------------------------ #
    # Listings that degrade to placeholders
    # ------------------------------------------------------------------ #

    def _sourced(self, fetch, fallback_rows) -> Sourced[List[Article]]:
        try:
            articles = fetch()
        except APIError as exc:
            logger.error("Article listing failed, showing placeholders: %s", exc)
            return Sourced(
                Source.FALLBACK,
                Article.from_rows(self.client, fallback_rows()),
                error=str(exc),
            )
        if not articles:
            return Sourced(
                Source.FALLBACK,
                Article.from_rows(self.client, fallback_rows()),
                live_empty=True,
            )
        return Sourced(Source.LIVE, articles)

    def feed(self, tab: str = "latest", *, limit: int = 20) -> Sourced[List[Article]]:
        """
        Home feed: newest first ('latest') or most viewed ('popular').

        Falls back to placeholder articles when the gateway fails or has
        nothing to show yet.
        """
        if tab not in FEED_TABS:
            raise ValueError(f"Unknown feed tab {tab!r}; expected one of {sorted(FEED_TABS)}.")
        return self._sourced(
            lambda: self.list(order=FEED_TABS[tab], limit=limit),
            sample_feed,
        )

    def by_tag(self, tag: str, *, limit: int = 50) -> Sourced[List[Article]]:
        """Articles carrying `tag`, newest first."""
        return self._sourced(
            lambda: self.list(filters={"tags": contains([tag])}, limit=limit),
            lambda: sample_tagged(tag),
        )

    # ------------------------------------------------------------------ #
    # Plain listings
    # ------------------------------------------------------------------ #

    def by_author(self, author_id: str, *, limit: Optional[int] = None) -> List[Article]:
        """Articles written by `author_id`, newest first."""
        return self.list(filters={"author_id": author_id}, limit=limit)

    def bookmarked(self, user_id: str, *, limit: Optional[int] = None) -> List[Article]:
        """Articles bookmarked by `user_id`, most recently bookmarked first."""
        rows = self.client.select(
            "bookmarks",
            columns="created_at,articles(*)",
            filters={"user_id": user_id},
            order="created_at.desc",
            limit=limit,
        )
        articles = []
        for row in rows:
            embedded = row.get("articles")
            # one-to-one embeds come back as an object, older servers send a list
            if isinstance(embedded, list):
                articles.extend(embedded)
            elif embedded:
                articles.append(embedded)
        return Article.from_rows(self.client, articles)

    def search_live(self, query: str, *, limit: int = 20) -> List[Article]:
        """
        Case-insensitive match on title and summary, or an exact tag.

        Raises:
            APIError: On any gateway failure
        """
        pattern = ilike(f"*{query}*")
        rows = self.client.select(
            self.TABLE,
            columns=SEARCH_COLUMNS,
            filters={
                "or": or_(
                    ("title", pattern),
                    ("summary", pattern),
                    ("tags", contains([query])),
                )
            },
            order=self.DEFAULT_ORDER,
            limit=limit,
        )
        for row in rows:
            row["bookmark_count"] = row.get("bookmark_count") or 0
        return Article.from_rows(self.client, rows)

    # ------------------------------------------------------------------ #
    # Writing
    # ------------------------------------------------------------------ #

    def publish(
        self,
        author: "Identity",
        *,
        title: str,
        content: str,
        category: str,
        tags: Sequence[str],
    ) -> Article:
        """
        Publish a new article by `author`.

        Raises:
            ValueError: If title or content is blank, or no tag is given
            APIError: If the gateway rejects the insert
        """
        title = title.strip()
        content = content.strip()
        if not title or not content:
            raise ValueError("Title and content must not be empty.")
        tags = [t.strip() for t in tags if t and t.strip()]
        if not tags:
            raise ValueError("Add at least one tag.")

        article = self.create(
            title=title,
            content=content,
            summary=summarize(content),
            author_id=author.id,
            author_name=author.display_name,
            author_avatar=author.avatar_url,
            category=category,
            tags=tags,
            view_count=0,
            like_count=0,
            comment_count=0,
            bookmark_count=0,
        )
        logger.info("Published article %s by %s", article.id, author.display_name)
        return article
