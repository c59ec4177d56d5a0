from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class APIError(Exception):
    """
    Base client-side gateway error.

    Mirrors the PostgREST error body:
        {
          "code": "23505",
          "message": "duplicate key value violates unique constraint ...",
          "details": "Key (article_id, user_id)=(...) already exists.",
          "hint": null
        }

    Auth endpoint errors use `error_code` / `msg` (or the older
    `error` / `error_description` pair) instead; both are normalized here.
    """

    status_code: int
    detail: str = ""
    code: Optional[str] = None          # e.g. "23505" or "PGRST116"
    title: Optional[str] = None         # e.g. "invalid_grant"
    hint: Optional[str] = None
    details: Any = None                 # free-form server details
    response_body: Any = None           # raw parsed JSON of the response

    def __post_init__(self) -> None:
        msg = self.detail or self.title or f"HTTP {self.status_code}"
        super().__init__(msg)

    @property
    def retryable(self) -> bool:
        """Whether a retry might make sense (for client backoff logic)."""
        return (
            self.status_code in (429, 503, 504)
            or 500 <= self.status_code < 600
        )


# -------------------------------------------------
# Typed client-side exceptions
# -------------------------------------------------

class InvalidError(APIError):
    pass


class DataError(APIError):
    pass


class AuthenticationError(APIError):
    pass


class AuthorizationError(APIError):
    pass


class NotFoundError(APIError):
    pass


class NotAllowedError(APIError):
    pass


class ConflictError(APIError):
    """Unique-constraint violation (a row with the same key already exists)."""


class RateLimitError(APIError):
    pass


class InternalError(APIError):
    pass


class BadGatewayError(APIError):
    pass


class ServiceUnavailableError(APIError):
    pass


class GatewayTimeoutError(APIError):
    pass


class TransportError(APIError):
    """The request never produced a response (timeout, refused connection)."""

    @property
    def retryable(self) -> bool:
        return True


# -------------------------------------------------
# Mapping helpers
# -------------------------------------------------

# PostgreSQL SQLSTATE / PostgREST code → specific client exception.
# PostgREST answers 409 for both unique and foreign-key violations, so the
# code has to win over the status.
_CODE_TO_EXCEPTION = {
    "23505": ConflictError,
    "23502": DataError,
    "23503": DataError,
    "23514": DataError,
    "22P02": InvalidError,
    "42501": AuthorizationError,
    "42P01": NotFoundError,
    "42883": NotFoundError,
    "PGRST116": NotFoundError,
    "PGRST204": InvalidError,
    "PGRST301": AuthenticationError,
    "PGRST302": AuthenticationError,
    "invalid_credentials": AuthenticationError,
    "invalid_grant": AuthenticationError,
    "bad_jwt": AuthenticationError,
    "session_not_found": AuthenticationError,
    "over_request_rate_limit": RateLimitError,
}

# Fallback mapping by HTTP status code
_STATUS_TO_EXCEPTION = {
    400: InvalidError,
    401: AuthenticationError,
    403: AuthorizationError,
    404: NotFoundError,
    405: NotAllowedError,
    406: NotFoundError,
    409: ConflictError,
    422: DataError,
    429: RateLimitError,
    500: InternalError,
    502: BadGatewayError,
    503: ServiceUnavailableError,
    504: GatewayTimeoutError,
}


def _pick_exception_class(status_code: int, code: Optional[str]) -> type[APIError]:
    if code and code in _CODE_TO_EXCEPTION:
        return _CODE_TO_EXCEPTION[code]
    if status_code in _STATUS_TO_EXCEPTION:
        return _STATUS_TO_EXCEPTION[status_code]
    return APIError


def _format_detail(detail: Any) -> str:
    """
    Turn common detail shapes into a readable string.

    `details` is usually a sentence, but RPC functions raising custom
    exceptions may hand back lists or mappings.
    """
    if detail is None:
        return ""

    if isinstance(detail, str):
        return detail

    if isinstance(detail, list):
        return "; ".join(_format_detail(item) for item in detail)

    if isinstance(detail, dict):
        msg = detail.get("message") or detail.get("msg")
        if msg:
            return str(msg)

    return str(detail)


def error_from_response(response) -> APIError:
    """
    Build a concrete APIError subclass from a `requests.Response`.

    If the body is not JSON or doesn't match a known shape, we still
    build a generic APIError with whatever information we can.
    """

    status_code = response.status_code

    try:
        body = response.json()
    except ValueError:
        return _pick_exception_class(status_code, None)(
            status_code=status_code,
            detail=response.text or f"HTTP {status_code}",
        )

    if not isinstance(body, dict):
        return _pick_exception_class(status_code, None)(
            status_code=status_code,
            detail=str(body),
            response_body=body,
        )

    raw_code = body.get("error_code") or body.get("code")
    code = str(raw_code) if raw_code is not None else None
    title = body.get("error") if isinstance(body.get("error"), str) else None
    if code is None and title:
        code = title

    detail = (
        body.get("message")
        or body.get("msg")
        or body.get("error_description")
        or title
        or ""
    )
    details = body.get("details")

    exc_cls = _pick_exception_class(status_code, code)

    # Constraint failures read better with the offending key attached
    if exc_cls is DataError and details:
        detail = f"{detail}: {_format_detail(details)}" if detail else _format_detail(details)

    return exc_cls(
        status_code=status_code,
        detail=str(detail),
        code=code,
        title=title,
        hint=body.get("hint"),
        details=details,
        response_body=body,
    )


def raise_for_api_error(response) -> None:
    """
    Inspect a `requests.Response` and raise a suitable APIError subclass
    if the gateway indicates failure.

    PostgREST and the auth endpoints signal failure through the HTTP
    status alone, so any 2xx/3xx returns silently.
    """
    if response.status_code >= 400:
        raise error_from_response(response)
