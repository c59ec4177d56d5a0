import itertools
import re
import sys
from pathlib import Path

import pytest

# Allow tests to import the package from src without installation
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from inkpost.client import Identity  # noqa: E402
from inkpost.entities.articles import ArticlesProxy  # noqa: E402
from inkpost.entities.comments import CommentsProxy  # noqa: E402
from inkpost.exceptions import ConflictError, NotFoundError  # noqa: E402
from inkpost.query import Op  # noqa: E402


class StubResponse:
    def __init__(self, status_code=200, json_data=None, text=""):
        self.status_code = status_code
        self._json_data = json_data
        self.text = text

    def json(self):
        if isinstance(self._json_data, Exception):
            raise self._json_data
        return self._json_data


class StubSession:
    def __init__(self):
        self.post_calls = []
        self.request_calls = []
        self.post_response = StubResponse()
        self.request_response = StubResponse()
        self.request_error = None
        self.post_error = None

    def mount(self, prefix, adapter):
        pass

    def post(self, url, params=None, json=None, headers=None, verify=None, timeout=None):
        self.post_calls.append(
            {
                "url": url,
                "params": params or {},
                "json": json,
                "headers": headers or {},
                "verify": verify,
                "timeout": timeout,
            }
        )
        if self.post_error is not None:
            raise self.post_error
        return self.post_response

    def request(self, method, url, headers=None, params=None, verify=None, timeout=None, **kwargs):
        self.request_calls.append(
            {
                "method": method,
                "url": url,
                "headers": headers or {},
                "params": params or {},
                "verify": verify,
                "timeout": timeout,
                "kwargs": kwargs,
            }
        )
        if self.request_error is not None:
            raise self.request_error
        return self.request_response


# ---------------------------------------------------------------------------
# In-memory gateway
# ---------------------------------------------------------------------------

UNIQUE_KEYS = {"likes": ("article_id", "user_id"), "bookmarks": ("article_id", "user_id")}
COUNTER_OF = {"likes": "like_count", "bookmarks": "bookmark_count", "comments": "comment_count"}


def _parse_array(value):
    return [item.strip('"') for item in value.strip("{}").split(",") if item]


_OR_TERM = re.compile(r'(\w+)\.(ilike|cs)\.("(?:[^"\\]|\\.)*"|\{[^}]*\}|[^,)]*)')


def _matches_any(row, expression):
    """Evaluate an `or_()` expression limited to ilike and cs terms."""
    for column, op, value in _OR_TERM.findall(expression):
        if op == "ilike":
            needle = value.strip('"').strip("*").lower()
            if needle in str(row.get(column) or "").lower():
                return True
        elif set(_parse_array(value)) <= set(row.get(column) or []):
            return True
    return False


def _matches(row, filters):
    for column, expected in (filters or {}).items():
        if column == "or":
            if not _matches_any(row, expected):
                return False
        elif isinstance(expected, Op):
            if expected.op == "eq":
                if str(row.get(column)) != expected.value:
                    return False
            elif expected.op == "cs":
                if not set(_parse_array(expected.value)) <= set(row.get(column) or []):
                    return False
            else:
                raise NotImplementedError(expected.op)
        elif row.get(column) != expected:
            return False
    return True


def _sort(rows, order):
    for term in reversed((order or "").split(",")):
        if not term:
            continue
        column, _, direction = term.partition(".")
        rows.sort(key=lambda r: (r.get(column) is not None, r.get(column)), reverse=direction == "desc")
    return rows


class FakeGateway:
    """
    Stand-in for `Client` backed by dicts.

    Mimics what the hosted datastore does on its side: the unique
    (article_id, user_id) constraint on likes/bookmarks, counter triggers,
    the atomic view RPC and the row-level delete policy on comments.
    """

    def __init__(self, identity=None):
        self.identity = identity
        self.tables = {name: [] for name in ("articles", "comments", "likes", "bookmarks", "user_profiles")}
        self.calls = []
        self._failures = []
        self._ids = itertools.count(1)
        self._clock = itertools.count(1)
        self.articles = ArticlesProxy(self)
        self.comments = CommentsProxy(self)

    # -- helpers for tests ------------------------------------------------

    def _timestamp(self):
        return f"2024-05-01T10:{next(self._clock):02d}:00+00:00"

    def add_article(self, **fields):
        row = {
            "id": f"a{next(self._ids)}",
            "title": "Untitled",
            "content": "",
            "summary": "",
            "author_id": "author",
            "author_name": "author",
            "category": "Other",
            "tags": [],
            "view_count": 0,
            "like_count": 0,
            "comment_count": 0,
            "bookmark_count": 0,
            "created_at": self._timestamp(),
        }
        row.update(fields)
        self.tables["articles"].append(row)
        return row

    def add_comment(self, article_id, user_id, content="hello", **fields):
        row = {
            "id": f"c{next(self._ids)}",
            "article_id": article_id,
            "user_id": user_id,
            "username": user_id,
            "user_avatar": "",
            "content": content,
            "created_at": self._timestamp(),
        }
        row.update(fields)
        self.tables["comments"].append(row)
        self._bump(row["article_id"], "comments", +1)
        return row

    def article(self, article_id):
        return next(r for r in self.tables["articles"] if r["id"] == article_id)

    def fail(self, method, table=None, exc=None, times=1):
        """Make the next `times` matching calls raise `exc`."""
        from inkpost.exceptions import InternalError

        exc = exc or InternalError(status_code=500, detail="boom")
        self._failures.append([method, table, exc, times])

    def _maybe_fail(self, method, table):
        for failure in self._failures:
            f_method, f_table, exc, remaining = failure
            if remaining > 0 and f_method == method and f_table in (None, table):
                failure[3] -= 1
                raise exc

    def _bump(self, article_id, table, delta):
        counter = COUNTER_OF.get(table)
        if not counter:
            return
        for article in self.tables["articles"]:
            if article["id"] == article_id:
                article[counter] = max(0, (article.get(counter) or 0) + delta)

    def _may_delete(self, table, row):
        if table != "comments":
            return True
        if self.identity is None:
            return False
        article = next((a for a in self.tables["articles"] if a["id"] == row["article_id"]), None)
        return self.identity.id in (row["user_id"], article and article["author_id"])

    # -- gateway surface --------------------------------------------------

    def current_identity(self, *, refresh=False):
        self.calls.append(("current_identity",))
        return self.identity

    def select(self, table, *, columns="*", filters=None, order=None, limit=None, offset=None):
        self.calls.append(("select", table, columns, dict(filters or {})))
        self._maybe_fail("select", table)
        rows = [dict(r) for r in self.tables[table] if _matches(r, filters)]
        rows = _sort(rows, order)
        if offset:
            rows = rows[offset:]
        if limit is not None:
            rows = rows[:limit]
        if "articles(*)" in columns:
            for row in rows:
                row["articles"] = next(
                    (dict(a) for a in self.tables["articles"] if a["id"] == row["article_id"]), None
                )
        elif columns != "*":
            wanted = columns.split(",")
            rows = [{k: r.get(k) for k in wanted} for r in rows]
        return rows

    def maybe_one(self, table, *, columns="*", filters=None):
        rows = self.select(table, columns=columns, filters=filters, limit=1)
        return rows[0] if rows else None

    def select_one(self, table, *, columns="*", filters=None):
        row = self.maybe_one(table, columns=columns, filters=filters)
        if row is None:
            raise NotFoundError(status_code=404, detail=f"No {table} row", code="PGRST116")
        return row

    def insert(self, table, row):
        self.calls.append(("insert", table, dict(row)))
        self._maybe_fail("insert", table)
        keys = UNIQUE_KEYS.get(table)
        if keys and any(all(r[k] == row[k] for k in keys) for r in self.tables[table]):
            raise ConflictError(
                status_code=409,
                code="23505",
                detail=f'duplicate key value violates unique constraint "{table}_article_id_user_id_key"',
            )
        stored = {"id": f"{table[0]}{next(self._ids)}", "created_at": self._timestamp(), **row}
        self.tables[table].append(stored)
        self._bump(stored.get("article_id"), table, +1)
        return dict(stored)

    def upsert(self, table, row, *, on_conflict=None):
        self.calls.append(("upsert", table, dict(row)))
        self._maybe_fail("upsert", table)
        key = on_conflict or "id"
        for existing in self.tables[table]:
            if existing.get(key) == row.get(key):
                existing.update(row)
                return dict(existing)
        self.tables[table].append(dict(row))
        return dict(row)

    def update_rows(self, table, patch, *, filters):
        self.calls.append(("update", table, dict(patch), dict(filters)))
        self._maybe_fail("update", table)
        updated = []
        for row in self.tables[table]:
            if _matches(row, filters):
                row.update(patch)
                updated.append(dict(row))
        return updated

    def delete_rows(self, table, *, filters):
        self.calls.append(("delete", table, dict(filters)))
        self._maybe_fail("delete", table)
        deleted = [r for r in self.tables[table] if _matches(r, filters) and self._may_delete(table, r)]
        for row in deleted:
            self.tables[table].remove(row)
            self._bump(row.get("article_id"), table, -1)
        return [dict(r) for r in deleted]

    def rpc(self, function, **args):
        self.calls.append(("rpc", function, dict(args)))
        self._maybe_fail("rpc", function)
        if function != "increment_view_count":
            raise NotFoundError(status_code=404, code="42883", detail=f"function {function} does not exist")
        article = next((a for a in self.tables["articles"] if a["id"] == args["article_id"]), None)
        if article is None:
            return None
        article["view_count"] = (article.get("view_count") or 0) + 1
        return article["view_count"]

    def update_user_metadata(self, **data):
        self.calls.append(("update_user_metadata", dict(data)))
        self._maybe_fail("update_user_metadata", None)
        self.identity.metadata.update(data)
        return self.identity


def make_identity(user_id, name=None, email=None, **metadata):
    return Identity(
        id=user_id,
        email=email or f"{user_id}@example.com",
        display_name=name or user_id,
        avatar_url=metadata.get("avatar_url", ""),
        metadata=dict(metadata),
    )


@pytest.fixture
def alice():
    return make_identity("alice", "Alice")


@pytest.fixture
def bob():
    return make_identity("bob", "Bob")


@pytest.fixture
def carol():
    return make_identity("carol", "Carol")


@pytest.fixture
def gateway(alice):
    return FakeGateway(identity=alice)


@pytest.fixture
def stub_session():
    return StubSession()


@pytest.fixture
def frozen_time(monkeypatch):
    """
    Fix time.time() used by inkpost.client at a deterministic value.
    """
    current = 1_000.0
    monkeypatch.setattr("inkpost.client.time.time", lambda: current)
    return current
