"""
Example: reading the feed and interacting with an article

This example signs in, opens the newest article, likes it, leaves a
comment and then deletes that comment again.

Usage:
    export SUPABASE_URL="https://your-project.supabase.co"
    export SUPABASE_ANON_KEY="your-anon-key"
    export INKPOST_EMAIL="you@example.com"
    export INKPOST_PASSWORD="your-password"
    python examples/article_interactions.py
"""

import os

from inkpost import ArticleSession, Client, Credentials, search
from inkpost.log import setup_logger
from inkpost.settings import Settings


def main():
    # -------------------------------------------------------------------------
    # 1. Initialize the Client
    # -------------------------------------------------------------------------

    settings = Settings()
    setup_logger("inkpost", settings.log_level)

    creds = Credentials(
        email=os.environ["INKPOST_EMAIL"],
        password=os.environ["INKPOST_PASSWORD"],
    )
    client = Client.from_settings(settings, creds)
    me = client.current_identity()
    print(f"Signed in as {me.display_name}\n")

    # -------------------------------------------------------------------------
    # 2. Feed, tags and search
    # -------------------------------------------------------------------------

    feed = client.articles.feed("latest", limit=5)
    print(f"=== Latest ({feed.source.value}) ===")
    for article in feed.data:
        print(f"  - {article.title}  [{', '.join(article.tags)}]")

    print("\nPopular tags:", ", ".join(f"{t} ({n})" for t, n in client.tags.popular(5)))

    found = search(client, "python", fallback=settings.search_fallback)
    print(f"Search 'python': {len(found.data)} result(s) from {found.source.value}")

    if not feed.is_live:
        print("\nNo live articles to interact with.")
        return

    # -------------------------------------------------------------------------
    # 3. Interact with an article
    # -------------------------------------------------------------------------

    page = ArticleSession(client, confirm=lambda comment_id: True).open(feed.data[0].id)
    print(f"\n=== {page.article.title} ===")
    print(f"  liked={page.liked} likes={page.article.like_count}")

    result = page.toggle_like()
    if result.ok:
        print(f"  toggled like -> liked={page.liked} likes={page.article.like_count}")
    else:
        print(f"  like failed: {result.error}")

    page.draft = "Thanks for writing this up!"
    posted = page.submit_comment()
    if posted.ok:
        print(f"  commented; comments={page.article.comment_count}")
        deleted = page.delete_comment(posted.value.id)
        print(f"  deleted own comment: {deleted.ok}; comments={page.article.comment_count}")
    else:
        print(f"  comment failed: {posted.error} (draft kept: {page.draft!r})")


if __name__ == "__main__":
    main()
