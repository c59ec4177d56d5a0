"""
Like / bookmark toggling for one (article, user) pair.

The existence of a `likes` (or `bookmarks`) row is the toggle state. The
gateway's unique constraint on (article_id, user_id) is what prevents
duplicates; a violation is reported as ALREADY_TOGGLED and never hidden.
"""

from dataclasses import dataclass
from enum import Enum
import logging
from typing import TYPE_CHECKING, Optional

from ..exceptions import APIError, ConflictError
from .counters import CounterReconciler
from .results import ErrorKind, Result

if TYPE_CHECKING:
    from ..client import Client

logger = logging.getLogger(__name__)


class ToggleKind(Enum):
    LIKE = ("likes", "like_count", "like")
    BOOKMARK = ("bookmarks", "bookmark_count", "bookmark")

    def __init__(self, table: str, counter: str, verb: str) -> None:
        self.table = table
        self.counter = counter
        self.verb = verb


@dataclass(frozen=True)
class ToggleOutcome:
    state: bool                 # confirmed state after the toggle
    count: Optional[int]        # re-read counter; None if the read failed


class ToggleController:

    def __init__(self, client: "Client", reconciler: Optional[CounterReconciler] = None) -> None:
        self.client = client
        self.reconciler = reconciler or CounterReconciler(client)

    def exists(self, kind: ToggleKind, article_id: str, user_id: Optional[str]) -> Result[bool]:
        """Whether `user_id` currently has a `kind` row for the article."""
        if not user_id:
            return Result.success(False)
        try:
            row = self.client.maybe_one(
                kind.table,
                columns="id",
                filters={"article_id": article_id, "user_id": user_id},
            )
        except APIError as exc:
            logger.warning("Checking %s state of article %s failed: %s", kind.verb, article_id, exc)
            return Result.from_exception(exc)
        return Result.success(row is not None)

    def toggle(
        self,
        kind: ToggleKind,
        article_id: str,
        user_id: Optional[str],
        current_state: bool,
    ) -> Result[ToggleOutcome]:
        """
        Flip the user's `kind` state away from `current_state`.

        On success the matching counter is re-read and returned with the
        new state. On any failure nothing local should change: the state
        the caller holds is still the last confirmed one.
        """
        if not user_id:
            return Result.failure(ErrorKind.UNAUTHENTICATED, f"Sign in to {kind.verb} articles.")

        keys = {"article_id": article_id, "user_id": user_id}
        try:
            if current_state:
                self.client.delete_rows(kind.table, filters=keys)
            else:
                self.client.insert(kind.table, keys)
        except ConflictError as exc:
            if not current_state:
                logger.info("%s of article %s by %s already exists", kind.verb, article_id, user_id)
                return Result.failure(ErrorKind.ALREADY_TOGGLED, str(exc))
            logger.error("Removing %s of article %s failed: %s", kind.verb, article_id, exc)
            return Result.failure(ErrorKind.GATEWAY_ERROR, str(exc))
        except APIError as exc:
            action = "Removing" if current_state else "Adding"
            logger.error("%s %s of article %s failed: %s", action, kind.verb, article_id, exc)
            return Result.from_exception(exc)

        new_state = not current_state
        refreshed = self.reconciler.refresh(article_id, kind.counter)
        logger.debug("Article %s %s -> %s", article_id, kind.verb, new_state)
        return Result.success(
            ToggleOutcome(state=new_state, count=refreshed.value if refreshed.ok else None)
        )
