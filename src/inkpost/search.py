"""
Article search with an explicit degradation path.

    >>> result = search(client, "asyncio")
    >>> result.source, len(result.data)
    (<Source.LIVE: 'live'>, 4)

When the gateway fails, or answers with nothing, sample articles are shown
instead and the result says so: `source` is FALLBACK, and `live_empty`
separates "the backend found nothing" from "the backend was unreachable"
(`error` holds the failure message).
"""

import logging
from typing import TYPE_CHECKING, List

from .entities.articles import Article
from .exceptions import APIError
from .fallback import Source, Sourced, sample_search

if TYPE_CHECKING:
    from .client import Client

logger = logging.getLogger(__name__)


def search(
    client: "Client",
    query: str,
    *,
    fallback: bool = True,
    limit: int = 20,
) -> Sourced[List[Article]]:
    """
    Search titles, summaries and tags for `query`.

    Args:
        client: Gateway client
        query: Free text; a blank query returns an empty live result
            without calling the gateway
        fallback: Replace empty or failed results with samples
        limit: Maximum number of live results
    """
    query = (query or "").strip()
    if not query:
        return Sourced(Source.LIVE, [])

    try:
        articles = client.articles.search_live(query, limit=limit)
    except APIError as exc:
        if not fallback:
            logger.error("Search for %r failed: %s", query, exc)
            return Sourced(Source.ERROR, [], error=str(exc))
        logger.error("Search for %r failed, showing samples: %s", query, exc)
        return Sourced(
            Source.FALLBACK,
            Article.from_rows(client, sample_search(query)),
            error=str(exc),
        )

    if not articles and fallback:
        logger.info("Search for %r found nothing, showing samples", query)
        return Sourced(
            Source.FALLBACK,
            Article.from_rows(client, sample_search(query)),
            live_empty=True,
        )

    return Sourced(Source.LIVE, articles, live_empty=not articles)
