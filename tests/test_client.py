import pytest
import requests

from inkpost.client import Client, Credentials, Identity, InkpostError
from inkpost.exceptions import AuthenticationError, ConflictError, NotFoundError, TransportError
from inkpost.query import contains
from inkpost.settings import Settings

from conftest import StubResponse

USER = {
    "id": "u1",
    "email": "ada@example.com",
    "created_at": "2024-01-01T00:00:00+00:00",
    "user_metadata": {"username": "Ada", "avatar_url": "https://img/ada.png"},
}


def build_client(monkeypatch, stub_session, credentials=None):
    monkeypatch.setattr("inkpost.client.requests.Session", lambda: stub_session)
    return Client("https://abc.supabase.co", "anon-key", credentials)


def signed_in(monkeypatch, stub_session, expires_in=120):
    stub_session.post_response = StubResponse(
        200,
        {"access_token": "abc123", "expires_in": expires_in, "refresh_token": "r1", "user": USER},
    )
    return build_client(monkeypatch, stub_session, Credentials(email="ada@example.com", password="pw"))


# ---------------------------------------------------------------------------
# Credentials / identity
# ---------------------------------------------------------------------------


def test_credentials_are_mutually_exclusive():
    with pytest.raises(ValueError, match="not both"):
        Credentials(email="a@b.c", password="pw", access_token="tok")
    with pytest.raises(ValueError, match="Must provide"):
        Credentials(email="a@b.c")


def test_identity_display_name_falls_back_to_email_prefix():
    assert Identity.from_user(USER).display_name == "Ada"
    assert Identity.from_user({"id": "u2", "email": "grace@example.com"}).display_name == "grace"
    assert Identity.from_user({"id": "u3"}).display_name == "anonymous"
    assert Identity.from_user(USER).avatar_url == "https://img/ada.png"


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


def test_authenticate_success(monkeypatch, stub_session, frozen_time):
    client = signed_in(monkeypatch, stub_session)

    assert client._token == "abc123"
    # safety_margin = 10% of expires_in = 12
    assert client._token_expiry_ts == pytest.approx(frozen_time + 120 - 12)
    assert client._refresh_token == "r1"
    assert client.current_identity().id == "u1"

    call = stub_session.post_calls[0]
    assert call["url"] == "https://abc.supabase.co/auth/v1/token"
    assert call["params"] == {"grant_type": "password"}
    assert call["json"] == {"email": "ada@example.com", "password": "pw"}
    assert call["headers"] == {"apikey": "anon-key"}


def test_authenticate_fails_without_token(monkeypatch, stub_session):
    stub_session.post_response = StubResponse(200, {"user": USER})
    with pytest.raises(InkpostError, match="missing access_token"):
        build_client(monkeypatch, stub_session, Credentials(email="a@b.c", password="pw"))


def test_authenticate_http_error(monkeypatch, stub_session):
    stub_session.post_response = StubResponse(400, {"error": "invalid_grant"}, text="bad creds")
    with pytest.raises(InkpostError, match="Authentication failed"):
        build_client(monkeypatch, stub_session, Credentials(email="a@b.c", password="pw"))


def test_ensure_token_refreshes_with_refresh_token(monkeypatch, stub_session, frozen_time):
    client = signed_in(monkeypatch, stub_session, expires_in=5)
    client.credentials = Credentials(access_token="old", refresh_token="r1")
    client._token_expiry_ts = 0

    stub_session.post_response = StubResponse(200, {"access_token": "refreshed", "expires_in": 3600})
    client._ensure_token()

    assert client._token == "refreshed"
    assert stub_session.post_calls[-1]["params"] == {"grant_type": "refresh_token"}
    assert stub_session.post_calls[-1]["json"] == {"refresh_token": "r1"}


@pytest.mark.parametrize(
    "response",
    [
        StubResponse(400, {"error": "invalid_grant"}, text="invalid_grant"),
        StubResponse(200, ValueError("not json"), text="<html>"),
        StubResponse(200, {"expires_in": 3600}),
    ],
)
def test_refused_renewal_signs_out(monkeypatch, stub_session, response):
    client = signed_in(monkeypatch, stub_session)
    client._token_expiry_ts = 0
    stub_session.post_response = response

    with pytest.raises(AuthenticationError) as excinfo:
        client.select("articles")

    assert excinfo.value.status_code == 401
    assert client._token is None
    assert client.current_identity() is None
    assert stub_session.request_calls == []


def test_unreachable_auth_endpoint_raises_transport_error(monkeypatch, stub_session):
    client = signed_in(monkeypatch, stub_session)
    client._token_expiry_ts = 0
    stub_session.post_error = requests.ConnectionError("network down")

    with pytest.raises(TransportError) as excinfo:
        client.select("articles")

    assert excinfo.value.status_code == 0
    assert excinfo.value.retryable
    assert stub_session.request_calls == []


def test_bare_access_token_is_used_as_given(monkeypatch, stub_session):
    client = build_client(monkeypatch, stub_session, Credentials(access_token="tok"))
    stub_session.request_response = StubResponse(200, [])

    client.select("articles")

    assert stub_session.post_calls == []
    assert stub_session.request_calls[0]["headers"]["Authorization"] == "Bearer tok"


def test_anonymous_client_sends_anon_key(monkeypatch, stub_session):
    client = build_client(monkeypatch, stub_session)
    stub_session.request_response = StubResponse(200, [])

    client.select("articles")

    headers = stub_session.request_calls[0]["headers"]
    assert headers == {"apikey": "anon-key", "Authorization": "Bearer anon-key"}
    assert client.current_identity() is None
    assert not client.is_authenticated


def test_current_identity_refetches_and_treats_401_as_signed_out(monkeypatch, stub_session):
    client = signed_in(monkeypatch, stub_session)

    stub_session.request_response = StubResponse(200, dict(USER, email="new@example.com"))
    assert client.current_identity(refresh=True).email == "new@example.com"
    assert stub_session.request_calls[-1]["url"] == "https://abc.supabase.co/auth/v1/user"

    stub_session.request_response = StubResponse(401, {"code": 401, "error_code": "bad_jwt", "msg": "expired"})
    assert client.current_identity(refresh=True) is None


def test_change_password_rejects_wrong_current_password(monkeypatch, stub_session):
    client = signed_in(monkeypatch, stub_session)
    stub_session.post_response = StubResponse(400, {"error": "invalid_grant"}, text="invalid")

    with pytest.raises(InkpostError, match="incorrect"):
        client.change_password("wrong", "new-secret")
    assert stub_session.request_calls == []


def test_change_password_updates_user(monkeypatch, stub_session):
    client = signed_in(monkeypatch, stub_session)
    stub_session.request_response = StubResponse(200, USER)

    client.change_password("pw", "new-secret")

    req = stub_session.request_calls[-1]
    assert req["method"] == "PUT"
    assert req["url"] == "https://abc.supabase.co/auth/v1/user"
    assert req["kwargs"]["json"] == {"password": "new-secret"}


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


def test_request_adds_auth_and_merges_headers(monkeypatch, stub_session):
    client = signed_in(monkeypatch, stub_session)

    called_with = {}

    def fake_raise_for_api_error(resp):
        called_with["resp"] = resp

    monkeypatch.setattr("inkpost.client.raise_for_api_error", fake_raise_for_api_error)
    stub_session.request_response = StubResponse(200, {"ok": True})

    resp = client.request(
        "POST",
        "items",
        headers={"Authorization": "override", "X-Test": "yes"},
        json={"hello": "world"},
    )

    assert resp is stub_session.request_response
    req = stub_session.request_calls[0]
    assert req["url"] == "https://abc.supabase.co/rest/v1/items"
    assert req["headers"]["Authorization"] == "Bearer abc123"
    assert req["headers"]["apikey"] == "anon-key"
    assert req["headers"]["X-Test"] == "yes"
    assert req["kwargs"]["json"] == {"hello": "world"}
    assert called_with["resp"] is stub_session.request_response


def test_request_rejects_body_for_get(monkeypatch, stub_session):
    client = build_client(monkeypatch, stub_session)

    with pytest.raises(ValueError):
        client.request("GET", "items", json={"a": 1})


def test_request_timeout_becomes_transport_error(monkeypatch, stub_session):
    client = build_client(monkeypatch, stub_session)
    stub_session.request_error = requests.Timeout("read timed out")

    with pytest.raises(TransportError) as excinfo:
        client.select("articles")

    assert excinfo.value.status_code == 0
    assert excinfo.value.retryable
    assert stub_session.request_calls[0]["timeout"] == 30.0


# ---------------------------------------------------------------------------
# Row gateway
# ---------------------------------------------------------------------------


def test_select_builds_postgrest_query(monkeypatch, stub_session):
    client = build_client(monkeypatch, stub_session)
    stub_session.request_response = StubResponse(200, [{"id": "a1", "title": "Hi"}])

    rows = client.select(
        "articles",
        columns="id,title",
        filters={"author_id": "u1", "tags": contains(["python"])},
        order="created_at.desc,id.desc",
        limit=5,
    )

    assert rows == [{"id": "a1", "title": "Hi"}]
    req = stub_session.request_calls[0]
    assert req["method"] == "GET"
    assert req["url"] == "https://abc.supabase.co/rest/v1/articles"
    assert req["params"] == {
        "select": "id,title",
        "author_id": "eq.u1",
        "tags": "cs.{python}",
        "order": "created_at.desc,id.desc",
        "limit": 5,
    }


def test_select_one_raises_not_found_on_empty_result(monkeypatch, stub_session):
    client = build_client(monkeypatch, stub_session)
    stub_session.request_response = StubResponse(200, [])

    assert client.maybe_one("articles", filters={"id": "nope"}) is None
    with pytest.raises(NotFoundError):
        client.select_one("articles", filters={"id": "nope"})


def test_insert_returns_representation(monkeypatch, stub_session):
    client = build_client(monkeypatch, stub_session, Credentials(access_token="tok"))
    stub_session.request_response = StubResponse(
        201, [{"id": "l1", "article_id": "a1", "user_id": "u1"}]
    )

    row = client.insert("likes", {"article_id": "a1", "user_id": "u1"})

    assert row["id"] == "l1"
    req = stub_session.request_calls[0]
    assert req["method"] == "POST"
    assert req["headers"]["Prefer"] == "return=representation"
    assert req["kwargs"]["json"] == {"article_id": "a1", "user_id": "u1"}


def test_insert_unique_violation_raises_conflict(monkeypatch, stub_session):
    client = build_client(monkeypatch, stub_session, Credentials(access_token="tok"))
    stub_session.request_response = StubResponse(
        409,
        {
            "code": "23505",
            "message": 'duplicate key value violates unique constraint "likes_article_id_user_id_key"',
            "details": "Key (article_id, user_id)=(a1, u1) already exists.",
            "hint": None,
        },
    )

    with pytest.raises(ConflictError, match="duplicate key"):
        client.insert("likes", {"article_id": "a1", "user_id": "u1"})


def test_delete_rows_sends_filters_without_body(monkeypatch, stub_session):
    client = build_client(monkeypatch, stub_session, Credentials(access_token="tok"))
    stub_session.request_response = StubResponse(200, [{"id": "c1"}])

    deleted = client.delete_rows("comments", filters={"id": "c1"})

    assert deleted == [{"id": "c1"}]
    req = stub_session.request_calls[0]
    assert req["method"] == "DELETE"
    assert req["params"] == {"id": "eq.c1"}
    assert req["headers"]["Prefer"] == "return=representation"
    assert req["kwargs"] == {}


def test_update_and_delete_require_filters(monkeypatch, stub_session):
    client = build_client(monkeypatch, stub_session)

    with pytest.raises(ValueError):
        client.update_rows("articles", {"title": "x"}, filters={})
    with pytest.raises(ValueError):
        client.delete_rows("likes", filters={})


def test_upsert_merges_duplicates(monkeypatch, stub_session):
    client = build_client(monkeypatch, stub_session, Credentials(access_token="tok"))
    stub_session.request_response = StubResponse(201, [{"id": "u1", "bio": "hi"}])

    client.upsert("user_profiles", {"id": "u1", "bio": "hi"}, on_conflict="id")

    req = stub_session.request_calls[0]
    assert req["params"] == {"on_conflict": "id"}
    assert req["headers"]["Prefer"] == "resolution=merge-duplicates,return=representation"


def test_rpc_returns_decoded_result(monkeypatch, stub_session):
    client = build_client(monkeypatch, stub_session)
    stub_session.request_response = StubResponse(200, 43)

    assert client.rpc("increment_view_count", article_id="a1") == 43
    req = stub_session.request_calls[0]
    assert req["url"] == "https://abc.supabase.co/rest/v1/rpc/increment_view_count"
    assert req["kwargs"]["json"] == {"article_id": "a1"}

    stub_session.request_response = StubResponse(204, ValueError("no body"))
    assert client.rpc("increment_view_count", article_id="a1") is None


def test_from_settings_requires_configuration():
    settings = Settings(SUPABASE_URL="", SUPABASE_ANON_KEY="")
    with pytest.raises(InkpostError, match="not configured"):
        Client.from_settings(settings)
