"""
A compact, robust HTTP client for the inkpost data gateway
(PostgREST rows under /rest/v1, identity under /auth/v1).
"""

from dataclasses import dataclass, field
import logging
import time
from typing import Any, Dict, List, Mapping, Optional
import urllib.parse
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .exceptions import (
    AuthenticationError,
    NotFoundError,
    TransportError,
    raise_for_api_error,
)
from .query import encode_filters
from .entities.articles import ArticlesProxy
from .entities.comments import CommentsProxy
from .entities.profiles import ProfilesProxy
from .entities.tags import TagsProxy

logger = logging.getLogger(__name__)


# -------------------------------
# Credentials Model
# -------------------------------


@dataclass
class Credentials:
    """
    Either account credentials (email & password) OR an existing session
    (access_token, optionally with refresh_token) must be provided. They
    are mutually exclusive. Anonymous visitors pass no credentials at all.
    """
    email: Optional[str] = None
    password: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None

    def __post_init__(self) -> None:
        has_password = bool(self.email or self.password)
        has_session = bool(self.access_token or self.refresh_token)

        if has_password and has_session:
            raise ValueError("Provide either email/password OR access_token/refresh_token, not both.")

        if not (self.email and self.password) and not (self.access_token or self.refresh_token):
            raise ValueError("Must provide either email/password OR access_token/refresh_token.")

    @property
    def is_password_credentials(self) -> bool:
        return bool(self.email and self.password)

    @property
    def is_session_credentials(self) -> bool:
        return bool(self.access_token or self.refresh_token)


@dataclass
class Identity:
    """The signed-in user as reported by the auth endpoint."""

    id: str
    email: Optional[str] = None
    display_name: str = "anonymous"
    avatar_url: str = ""
    created_at: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_user(cls, user: Mapping[str, Any]) -> "Identity":
        metadata = dict(user.get("user_metadata") or {})
        email = user.get("email")
        display_name = (
            metadata.get("username")
            or (email.split("@")[0] if email else "")
            or "anonymous"
        )
        return cls(
            id=user["id"],
            email=email,
            display_name=display_name,
            avatar_url=metadata.get("avatar_url") or "",
            created_at=user.get("created_at"),
            metadata=metadata,
        )


# -------------------------------
# Exceptions
# -------------------------------


class InkpostError(RuntimeError):
    pass


# -------------------------------
# Main Client
# -------------------------------


class Client:
    """
    HTTP client for the blog's data gateway with session management.

    This client handles all communication with the hosted datastore:
    - Password sign-in or reuse of an existing session, with token refresh
    - Row-level select / insert / upsert / update / delete and RPC calls
    - Connection pooling, retries for idempotent requests and timeouts

    Row-level authorization is enforced server-side; the client only
    forwards the caller's token.

    Args:
        base_url: Project URL (e.g., 'https://abc.supabase.co')
        api_key: Public anon key of the project
        credentials: Credentials, or None for an anonymous visitor
        rest_prefix: Row API prefix (default: '/rest/v1')
        auth_prefix: Auth API prefix (default: '/auth/v1')
        verify_tls: Whether to verify SSL/TLS certificates (default: True)
        default_timeout: Default request timeout in seconds (default: 30.0)
        pool_connections: Number of connection pools to cache (default: 3)
        pool_maxsize: Maximum number of connections to save in the pool (default: 10)

    Example:
        >>> creds = Credentials(email='ada@example.com', password='secret')
        >>> client = Client('https://abc.supabase.co', 'anon-key', creds)
        >>> rows = client.select('articles', filters={'category': 'Backend'})
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        credentials: Optional[Credentials] = None,
        *,
        rest_prefix: str = "/rest/v1",
        auth_prefix: str = "/auth/v1",
        verify_tls: bool = True,
        default_timeout: float = 30.0,
        pool_connections: int = 3,
        pool_maxsize: int = 10,
    ) -> None:

        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.rest_prefix = rest_prefix.strip("/")
        self.auth_prefix = auth_prefix.strip("/")
        self.credentials = credentials
        self.verify_tls = verify_tls
        self.default_timeout = default_timeout

        self._session = requests.Session()

        # Configure connection pooling; only idempotent methods are retried
        # so an insert is never replayed behind the caller's back.
        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=frozenset({"GET", "HEAD", "OPTIONS", "DELETE"}),
        )
        adapter = HTTPAdapter(
            pool_connections=pool_connections,
            pool_maxsize=pool_maxsize,
            max_retries=retry_strategy,
        )
        self._session.mount("http://", adapter)
        self._session.mount("https://", adapter)

        self._token: Optional[str] = None
        self._refresh_token: Optional[str] = credentials.refresh_token if credentials else None
        self._token_expiry_ts: float = 0.0
        self._identity: Optional[Identity] = None

        # Authenticate immediately
        if credentials is not None:
            self.authenticate()

        # Proxies for API resource groups
        self.articles = ArticlesProxy(self)
        self.comments = CommentsProxy(self)
        self.profiles = ProfilesProxy(self)
        self.tags = TagsProxy(self)

    @classmethod
    def from_settings(cls, settings, credentials: Optional[Credentials] = None) -> "Client":
        """Build a client from an `inkpost.settings.Settings` instance."""
        if not settings.is_configured:
            raise InkpostError(
                "Gateway is not configured: set SUPABASE_URL and SUPABASE_ANON_KEY."
            )
        logging.getLogger("inkpost").setLevel(settings.log_level)
        return cls(
            settings.supabase_url,
            settings.supabase_anon_key,
            credentials,
            verify_tls=settings.verify_tls,
            default_timeout=settings.request_timeout,
        )

    # ------------------------------------------------------------------
    # URL helpers
    # ------------------------------------------------------------------

    def _join(self, base: str, path: str) -> str:
        """
        Join base and path cleanly without stripping segments.

        Args:
            base: Base URL or path
            path: Path to append

        Returns:
            Properly joined URL path
        """
        return urllib.parse.urljoin(base.rstrip("/") + "/", path.lstrip("/"))

    @property
    def rest_base(self) -> str:
        """Full row API base URL (e.g., 'https://abc.supabase.co/rest/v1')."""
        return self._join(self.base_url, self.rest_prefix)

    @property
    def auth_base(self) -> str:
        """Full auth API base URL (e.g., 'https://abc.supabase.co/auth/v1')."""
        return self._join(self.base_url, self.auth_prefix)

    def endpoint(self, endpoint: str, *, api: str = "rest") -> str:
        """
        Construct absolute URL for a gateway endpoint.

        Args:
            endpoint: Relative endpoint path (e.g., 'articles' or 'rpc/fn')
            api: 'rest' for rows and RPC, 'auth' for identity endpoints

        Returns:
            Complete URL (e.g., 'https://abc.supabase.co/rest/v1/articles')
        """
        if api == "auth":
            return self._join(self.auth_base, endpoint)
        if api == "rest":
            return self._join(self.rest_base, endpoint)
        raise ValueError(f"Unknown api {api!r}; expected 'rest' or 'auth'.")

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def authenticate(self) -> None:
        """
        Obtain a bearer token and store it with its expiry timestamp.

        Password credentials sign in; session credentials are refreshed when
        a refresh token is available and otherwise trusted as given until
        the gateway rejects them.

        Raises:
            InkpostError: If authentication fails or the response is invalid
        """
        if self.credentials is None:
            return

        if self.credentials.is_password_credentials:
            self._grant(
                "password",
                {"email": self.credentials.email, "password": self.credentials.password},
            )
        elif self._refresh_token:
            self._grant("refresh_token", {"refresh_token": self._refresh_token})
        else:
            self._token = self.credentials.access_token
            self._token_expiry_ts = float("inf")

    def _grant(self, grant_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = self.endpoint("token", api="auth")
        try:
            resp = self._session.post(
                url,
                params={"grant_type": grant_type},
                json=payload,
                headers={"apikey": self.api_key},
                verify=self.verify_tls,
                timeout=self.default_timeout,
            )
        except requests.RequestException as exc:
            logger.warning("POST %s failed without a response: %s", url, exc)
            raise TransportError(
                status_code=0,
                detail=str(exc) or type(exc).__name__,
                title=type(exc).__name__,
            ) from exc

        if resp.status_code != 200:
            raise InkpostError(
                f"Authentication failed ({resp.status_code}): {resp.text}"
            )

        try:
            data = resp.json() or {}
        except ValueError as exc:
            raise InkpostError("Authentication response is not JSON.") from exc
        token = data.get("access_token")

        if not token:
            raise InkpostError("Authentication response missing access_token field.")

        expires_in = float(data.get("expires_in", 3600))
        now = time.time()
        safety_margin = min(60, max(10, expires_in * 0.1))

        self._token = token
        self._token_expiry_ts = now + expires_in - safety_margin
        self._refresh_token = data.get("refresh_token") or self._refresh_token

        user = data.get("user")
        if user:
            self._identity = Identity.from_user(user)
            logger.info("Signed in as %s", self._identity.display_name)
        return data

    def _ensure_token(self) -> None:
        """
        Refresh the bearer token when it is missing or about to expire.

        Raises:
            AuthenticationError: If the gateway refuses to renew the session
            TransportError: If the auth endpoint could not be reached
        """
        if self._token and time.time() < self._token_expiry_ts:
            return
        try:
            self.authenticate()
        except InkpostError as exc:
            logger.warning("Session could not be renewed: %s", exc)
            self._token = None
            self._identity = None
            raise AuthenticationError(status_code=401, detail=str(exc), title="session_expired") from exc

    @property
    def is_authenticated(self) -> bool:
        return self.credentials is not None and self._token is not None

    def current_identity(self, *, refresh: bool = False) -> Optional[Identity]:
        """
        Return the signed-in user, or None for an anonymous visitor.

        An expired or revoked session is reported as None rather than raised.
        """
        if self.credentials is None:
            return None
        if self._identity is not None and not refresh:
            return self._identity

        try:
            user = self.get("user", api="auth").json()
        except AuthenticationError as exc:
            logger.warning("Session rejected by the auth endpoint: %s", exc)
            self._identity = None
            return None

        self._identity = Identity.from_user(user)
        return self._identity

    def update_user(self, **attributes: Any) -> Identity:
        """
        Update the signed-in user's auth record (e.g. `data=` or `password=`).

        Returns the refreshed identity.
        """
        if self.credentials is None:
            raise InkpostError("No signed-in user to update.")
        user = self.put("user", api="auth", json=attributes).json()
        self._identity = Identity.from_user(user)
        return self._identity

    def update_user_metadata(self, **data: Any) -> Identity:
        """Merge `data` into the signed-in user's metadata."""
        return self.update_user(data=data)

    def change_password(self, current_password: str, new_password: str) -> None:
        """
        Re-authenticate with the current password, then set the new one.

        Raises:
            InkpostError: If the current password is wrong
        """
        identity = self.current_identity()
        if identity is None or not identity.email:
            raise InkpostError("No signed-in user to change the password for.")

        try:
            self._grant("password", {"email": identity.email, "password": current_password})
        except InkpostError as exc:
            raise InkpostError("Current password is incorrect.") from exc

        self.update_user(password=new_password)
        logger.info("Password changed for %s", identity.display_name)

    # ------------------------------------------------------------------
    # Low-level request
    # ------------------------------------------------------------------

    def request(
        self,
        method: str,
        endpoint: str,
        *,
        api="rest",
        auth=True,
        timeout=None,
        headers=None,
        params=None,
        **kwargs,
    ):
        """
        Low-level HTTP request method with automatic authentication.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE)
            endpoint: Endpoint path relative to the chosen api base
            api: 'rest' or 'auth'
            auth: Whether to send the user's token (default: True); the
                anon key is sent either way
            timeout: Request timeout in seconds (uses default_timeout if None)
            headers: Additional HTTP headers to include
            params: Query parameters for the request
            **kwargs: Additional arguments passed to requests (e.g., json)

        Returns:
            requests.Response object

        Raises:
            ValueError: If GET/DELETE request includes a body
            APIError: If the gateway returns an error response
            TransportError: If no response arrived (timeout, connection)
        """
        url = self.endpoint(endpoint, api=api)

        req_headers: Dict[str, str] = {"apikey": self.api_key}
        if auth and self.credentials is not None:
            self._ensure_token()
            req_headers["Authorization"] = f"Bearer {self._token}"
        else:
            req_headers["Authorization"] = f"Bearer {self.api_key}"

        # Merge headers but avoid overriding Authorization
        if headers:
            filtered = {
                k: v
                for k, v in headers.items()
                if k.lower() != "authorization"
            }
            req_headers.update(filtered)

        # GET/DELETE must not have bodies
        if kwargs and method.upper() in {"GET", "DELETE"}:
            raise ValueError("GET and DELETE requests cannot include a request body.")

        try:
            resp = self._session.request(
                method.upper(),
                url,
                headers=req_headers,
                params=params,
                verify=self.verify_tls,
                timeout=self.default_timeout if timeout is None else timeout,
                **kwargs,
            )
        except requests.RequestException as exc:
            logger.warning("%s %s failed without a response: %s", method.upper(), url, exc)
            raise TransportError(
                status_code=0,
                detail=str(exc) or type(exc).__name__,
                title=type(exc).__name__,
            ) from exc

        raise_for_api_error(resp)

        return resp

    # ------------------------------------------------------------------
    # API-relative HTTP verbs
    # ------------------------------------------------------------------

    def get(self, endpoint: str, *, api: str = "rest", **params: Any) -> requests.Response:
        return self.request("GET", endpoint, api=api, params=params)

    def post(self, endpoint: str, **kwargs: Any) -> requests.Response:
        return self.request("POST", endpoint, **kwargs)

    def put(self, endpoint: str, **kwargs: Any) -> requests.Response:
        return self.request("PUT", endpoint, **kwargs)

    def patch(self, endpoint: str, **kwargs: Any) -> requests.Response:
        return self.request("PATCH", endpoint, **kwargs)

    def delete(self, endpoint: str, **kwargs: Any) -> requests.Response:
        return self.request("DELETE", endpoint, **kwargs)

    # ------------------------------------------------------------------
    # Row gateway
    # ------------------------------------------------------------------

    @staticmethod
    def _rows(resp: requests.Response) -> List[Dict[str, Any]]:
        try:
            payload = resp.json()
        except ValueError:
            return []
        if payload is None:
            return []
        if isinstance(payload, dict):
            return [payload]
        return list(payload)

    def select(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Optional[Mapping[str, Any]] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Read rows from `table`.

        Args:
            table: Relation name (e.g. 'articles')
            columns: PostgREST select list, embeds allowed ('articles(*)')
            filters: Column → value mapping, see `inkpost.query`
            order: e.g. 'created_at.desc,id.desc'
            limit: Maximum number of rows
            offset: Rows to skip

        Example:
            >>> client.select('comments', filters={'article_id': 'a1'},
            ...               order='created_at.desc,id.desc')
        """
        params: Dict[str, Any] = {"select": columns, **encode_filters(filters)}
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = limit
        if offset:
            params["offset"] = offset
        return self._rows(self.request("GET", table, params=params))

    def maybe_one(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Return the first matching row, or None when nothing matches."""
        rows = self.select(table, columns=columns, filters=filters, limit=1)
        return rows[0] if rows else None

    def select_one(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Return exactly one matching row.

        Raises:
            NotFoundError: If nothing matches
        """
        row = self.maybe_one(table, columns=columns, filters=filters)
        if row is None:
            raise NotFoundError(
                status_code=404,
                detail=f"No {table} row matches {dict(filters or {})!r}.",
                code="PGRST116",
            )
        return row

    def insert(self, table: str, row: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Insert one row and return it as persisted (server id, timestamps).

        Raises:
            ConflictError: If a unique constraint rejects the row
        """
        resp = self.request(
            "POST",
            table,
            json=dict(row),
            headers={"Prefer": "return=representation"},
        )
        rows = self._rows(resp)
        return rows[0] if rows else dict(row)

    def upsert(
        self,
        table: str,
        row: Mapping[str, Any],
        *,
        on_conflict: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Insert, or merge into the row that has the same key."""
        params = {"on_conflict": on_conflict} if on_conflict else None
        resp = self.request(
            "POST",
            table,
            params=params,
            json=dict(row),
            headers={"Prefer": "resolution=merge-duplicates,return=representation"},
        )
        rows = self._rows(resp)
        return rows[0] if rows else dict(row)

    def update_rows(
        self,
        table: str,
        patch: Mapping[str, Any],
        *,
        filters: Mapping[str, Any],
    ) -> List[Dict[str, Any]]:
        """Patch every row matching `filters`; returns the updated rows."""
        if not filters:
            raise ValueError("update_rows() requires at least one filter.")
        resp = self.request(
            "PATCH",
            table,
            params=encode_filters(filters),
            json=dict(patch),
            headers={"Prefer": "return=representation"},
        )
        return self._rows(resp)

    def delete_rows(
        self,
        table: str,
        *,
        filters: Mapping[str, Any],
    ) -> List[Dict[str, Any]]:
        """
        Delete every row matching `filters`; returns the deleted rows.

        Rows hidden by a row-level policy are not deleted and not returned,
        so an empty list can mean "not permitted" as well as "not there".
        """
        if not filters:
            raise ValueError("delete_rows() requires at least one filter.")
        resp = self.request(
            "DELETE",
            table,
            params=encode_filters(filters),
            headers={"Prefer": "return=representation"},
        )
        return self._rows(resp)

    def rpc(self, function: str, **args: Any) -> Any:
        """Call a database function and return its decoded result (or None)."""
        resp = self.request("POST", f"rpc/{function}", json=args)
        try:
            return resp.json()
        except ValueError:
            return None
