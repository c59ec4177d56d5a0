"""
View counting, once per article page load.

The increment runs server-side as a single statement
(`update articles set view_count = view_count + 1 where id = $1`) behind
the `increment_view_count` database function, so concurrent viewers do
not lose updates. Failures are logged and returned, never raised: a
missed view must not block the page.
"""

import logging
from typing import TYPE_CHECKING, Any, Optional

from ..exceptions import APIError
from .results import Result

if TYPE_CHECKING:
    from ..client import Client

logger = logging.getLogger(__name__)

INCREMENT_FUNCTION = "increment_view_count"


def _count_from(payload: Any) -> Optional[int]:
    # scalar, a row, or a one-row set depending on how the function is declared
    if isinstance(payload, list):
        payload = payload[0] if payload else None
    if isinstance(payload, dict):
        payload = payload.get("view_count")
    if isinstance(payload, bool) or payload is None:
        return None
    try:
        return int(payload)
    except (TypeError, ValueError):
        return None


class ViewAccrual:

    def __init__(self, client: "Client", *, function: str = INCREMENT_FUNCTION) -> None:
        self.client = client
        self.function = function

    def accrue(self, article_id: str) -> Result[Optional[int]]:
        """Add one view to the article; the value is the new count when reported."""
        try:
            payload = self.client.rpc(self.function, article_id=article_id)
        except APIError as exc:
            logger.warning("Counting a view of article %s failed: %s", article_id, exc)
            return Result.from_exception(exc)
        return Result.success(_count_from(payload))
