"""
Placeholder content shown when the gateway cannot serve real articles.

Every listing that may degrade returns a `Sourced` value, so callers can
tell a live result (possibly empty) from locally generated samples.
Placeholder rows carry ids prefixed with ``sample-`` and never reach the
gateway as real articles.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")

SAMPLE_PREFIX = "sample-"


class Source(str, Enum):
    LIVE = "live"            # rows came from the gateway
    FALLBACK = "fallback"    # placeholder rows generated locally
    ERROR = "error"          # gateway failed and fallback was disabled


@dataclass
class Sourced(Generic[T]):
    """A result tagged with where its data came from."""

    source: Source
    data: T
    live_empty: bool = False        # gateway answered, but with zero rows
    error: Optional[str] = None     # gateway failure message, if any

    @property
    def is_live(self) -> bool:
        return self.source is Source.LIVE

    @property
    def is_fallback(self) -> bool:
        return self.source is Source.FALLBACK


def is_sample_id(article_id: str) -> bool:
    return str(article_id).startswith(SAMPLE_PREFIX)


def _ago(hours: float) -> str:
    return (datetime.now(timezone.utc) - timedelta(hours=hours)).isoformat()


def _article(
    id: str,
    title: str,
    summary: str,
    *,
    author_id: str,
    author_name: str,
    category: str,
    tags: List[str],
    counts: tuple,
    created_at: str,
    content: Optional[str] = None,
) -> Dict[str, Any]:
    views, likes, comments, bookmarks = counts
    return {
        "id": id,
        "title": title,
        "content": content or summary,
        "summary": summary,
        "author_id": author_id,
        "author_name": author_name,
        "author_avatar": f"https://api.dicebear.com/7.x/avataaars/svg?seed={author_id}",
        "category": category,
        "tags": tags,
        "view_count": views,
        "like_count": likes,
        "comment_count": comments,
        "bookmark_count": bookmarks,
        "created_at": created_at,
        "updated_at": created_at,
    }


def sample_feed() -> List[Dict[str, Any]]:
    return [
        _article(
            f"{SAMPLE_PREFIX}1",
            "What's new in Python 3.13: the free-threaded build",
            "A tour of the experimental no-GIL build, the new REPL and the JIT groundwork.",
            author_id=f"{SAMPLE_PREFIX}author-1",
            author_name="Ada",
            category="Backend",
            tags=["Python", "Concurrency"],
            counts=(1234, 89, 23, 42),
            created_at=_ago(2),
        ),
        _article(
            f"{SAMPLE_PREFIX}2",
            "Typing in practice: Protocols over ABCs",
            "Structural typing keeps interfaces small. Worked examples from a real codebase.",
            author_id=f"{SAMPLE_PREFIX}author-2",
            author_name="Grace",
            category="Languages",
            tags=["Python", "Typing"],
            counts=(2456, 156, 45, 78),
            created_at=_ago(5),
        ),
        _article(
            f"{SAMPLE_PREFIX}3",
            "Row-level security without tears",
            "Writing Postgres policies that stay readable as the schema grows.",
            author_id=f"{SAMPLE_PREFIX}author-3",
            author_name="Edgar",
            category="Databases",
            tags=["PostgreSQL", "Security"],
            counts=(1876, 124, 35, 56),
            created_at=_ago(26),
        ),
    ]


def sample_search(query: str) -> List[Dict[str, Any]]:
    """Three topical samples that mention `query`, filtered like a real search."""
    rows = [
        _article(
            f"{SAMPLE_PREFIX}search-1",
            f"Python fundamentals - notes on {query}",
            f"An introduction to the basics, including how to use {query} well.",
            author_id=f"{SAMPLE_PREFIX}author-101",
            author_name="Tech blogger",
            category="Backend",
            tags=["Python", "Basics", query],
            counts=(1250, 89, 23, 42),
            created_at="2024-01-15T10:00:00+00:00",
        ),
        _article(
            f"{SAMPLE_PREFIX}search-2",
            f"Web apps in practice - integrating {query}",
            f"A step-by-step walk through adding {query} to an existing web project.",
            author_id=f"{SAMPLE_PREFIX}author-102",
            author_name="Web engineer",
            category="Frontend",
            tags=["Web", "Python", query],
            counts=(2341, 156, 42, 78),
            created_at="2024-01-10T14:30:00+00:00",
        ),
        _article(
            f"{SAMPLE_PREFIX}search-3",
            f"Performance tuning and the role of {query}",
            f"Strategies for faster services, and where {query} fits in.",
            author_id=f"{SAMPLE_PREFIX}author-103",
            author_name="Backend engineer",
            category="Backend",
            tags=["Performance", query],
            counts=(1876, 124, 35, 56),
            created_at="2024-01-08T09:15:00+00:00",
        ),
    ]
    needle = query.lower()
    return [
        row for row in rows
        if needle in row["title"].lower()
        or needle in row["summary"].lower()
        or any(needle in tag.lower() for tag in row["tags"])
    ]


def sample_tagged(tag: str) -> List[Dict[str, Any]]:
    rows = sample_feed()
    for row in rows:
        if tag not in row["tags"]:
            row["tags"] = row["tags"] + [tag]
    return rows


def sample_article(article_id: str) -> Dict[str, Any]:
    """Stand-in for an article detail page whose row could not be read."""
    return _article(
        str(article_id),
        "This article is temporarily unavailable",
        "The article could not be loaded. A placeholder is shown instead.",
        author_id=f"{SAMPLE_PREFIX}author-0",
        author_name="inkpost",
        category="Other",
        tags=[],
        counts=(0, 0, 0, 0),
        created_at=_ago(0),
        content="The article could not be loaded right now. Please try again later.",
    )
