"""inkpost - A client for a community blogging site: feed, articles, comments, likes, bookmarks and accounts."""

from .client import Client, Credentials, Identity, InkpostError
from .engine.session import ArticleSession
from .search import search

__all__ = ["Client", "Credentials", "Identity", "InkpostError", "ArticleSession", "search"]
__version__ = "0.1.0"
