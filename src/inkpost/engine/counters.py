"""
Re-reads server-maintained article counters after a mutation.

The counters are written by database triggers and the view RPC, possibly
for other users at the same moment. After a mutation the displayed value
is always a fresh read, never a locally adjusted number.
"""

import logging
from typing import TYPE_CHECKING, Optional

from ..exceptions import APIError, NotFoundError
from .results import ErrorKind, Result

if TYPE_CHECKING:
    from ..client import Client
    from ..entities.articles import Article

logger = logging.getLogger(__name__)

COUNTER_FIELDS = ("view_count", "like_count", "comment_count", "bookmark_count")


class CounterReconciler:
    """
    Args:
        client: Gateway client
        retries: Extra attempts after a retryable read failure (default: 1)
    """

    def __init__(self, client: "Client", *, retries: int = 1) -> None:
        self.client = client
        self.retries = max(0, retries)

    def refresh(self, article_id: str, field: str) -> Result[int]:
        """
        Read one counter of one article.

        A NULL counter reads as 0. On failure the caller keeps showing the
        previous value.

        Raises:
            ValueError: If `field` is not one of the four counters
        """
        if field not in COUNTER_FIELDS:
            raise ValueError(f"Unknown counter {field!r}; expected one of {COUNTER_FIELDS}.")

        attempts = 1 + self.retries
        last_error: Optional[APIError] = None
        for attempt in range(1, attempts + 1):
            try:
                row = self.client.select_one(
                    "articles", columns=field, filters={"id": article_id}
                )
            except NotFoundError as exc:
                logger.warning("Cannot refresh %s: article %s not found", field, article_id)
                return Result.failure(ErrorKind.NOT_FOUND, str(exc))
            except APIError as exc:
                last_error = exc
                logger.warning(
                    "Refreshing %s of article %s failed (attempt %d/%d): %s",
                    field, article_id, attempt, attempts, exc,
                )
                if not exc.retryable:
                    break
                continue

            value = row.get(field)
            count = int(value) if value is not None else 0
            logger.debug("Article %s %s = %d", article_id, field, count)
            return Result.success(count)

        return Result.from_exception(last_error)

    @staticmethod
    def apply(snapshot: Optional["Article"], field: str, result: Result[int]) -> bool:
        """Merge a successful read into `snapshot`; returns whether it changed anything."""
        if snapshot is None or not result.ok:
            return False
        snapshot.merge(**{field: result.value})
        return True
