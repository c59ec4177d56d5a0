# entities/tags.py
from collections import Counter
from typing import TYPE_CHECKING, List, Optional, Tuple

if TYPE_CHECKING:
    from ..client import Client
    from ..fallback import Sourced
    from .articles import Article


class TagsProxy:
    """
    Tag browsing. Tags are not a relation of their own; they are gathered
    from the `tags` column of recent articles.

        client.tags.popular()        → [("Python", 12), ("PostgreSQL", 7), ...]
        client.tags["Python"]        → Sourced list of articles tagged Python
    """

    SAMPLE_SIZE = 200

    def __init__(self, client: "Client") -> None:
        self.client = client
        self._names: Optional[List[str]] = None

    def popular(self, limit: int = 20, *, sample: Optional[int] = None) -> List[Tuple[str, int]]:
        """Most used tags over the latest `sample` articles, most used first."""
        rows = self.client.select(
            "articles",
            columns="tags",
            order="created_at.desc",
            limit=sample or self.SAMPLE_SIZE,
        )
        counts = Counter(tag for row in rows for tag in (row.get("tags") or []))
        # equal counts fall back to alphabetical order
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        self._names = sorted(counts)
        return ranked[:limit]

    def names(self) -> List[str]:
        """All known tag names, alphabetically (cached after the first call)."""
        if self._names is None:
            self.popular()
        return list(self._names or [])

    def __getitem__(self, tag: str) -> "Sourced[List[Article]]":
        return self.client.articles.by_tag(tag)

    def _ipython_key_completions_(self):
        try:
            return self.names()
        except Exception:
            return []
