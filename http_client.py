"""
http_client.py
==============
Thin wrappers around the Gamers Cove REST backend.

Two client variants share one request/response pipeline:

* :class:`PublicClient`: anonymous reads; never sends ``Authorization``.
* :class:`AuthClient`: attaches ``Authorization: Bearer <token>`` when the
  session store holds a backend token and omits the header otherwise.  A
  401/403 answer clears the stored token before the error is raised, so the
  next protected call goes out unauthenticated.

Successful bodies are unwrapped by :func:`normalize_payload`; failures are
raised as :class:`ApiError` (HTTP status) or :class:`NetworkError` (no
response at all).

Usage
-----
::

    from app.repositories import SessionRepository
    from http_client import PublicClient, AuthClient

    store = SessionRepository()
    public = PublicClient("http://localhost:8080/api")
    authed = AuthClient("http://localhost:8080/api", store)

    games = public.get("/games", params={"q": "zelda"})
    me = authed.get("/users/me")
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger('gamerscove.http')

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
DEFAULT_BASE_URL = "http://localhost:8080/api"
_DEFAULT_TIMEOUT = 10  # seconds
NO_RESPONSE_MESSAGE = "No response from server. Please check your connection."
_AUTH_FAILURE_STATUSES = (401, 403)


class ApiError(Exception):
    """Raised when the backend answers with a non-2xx status."""

    def __init__(self, status: Optional[int], message: str) -> None:
        self.status = status
        self.message = message
        super().__init__(f"HTTP {status}: {message}" if status is not None else message)

    @property
    def is_auth_failure(self) -> bool:
        return self.status in _AUTH_FAILURE_STATUSES


class NetworkError(ApiError):
    """Raised when a request gets no response (server unreachable, timeout)."""

    def __init__(self, message: str = NO_RESPONSE_MESSAGE) -> None:
        super().__init__(None, message)


def normalize_payload(body: Any) -> Any:
    """Return what the caller asked for, unwrapped from a ``{data: ...}`` envelope.

    * A list is returned unchanged.
    * A dict with a ``data`` key yields that value.
    * Anything else is returned unchanged.
    """
    if isinstance(body, list):
        return body
    if isinstance(body, dict) and 'data' in body:
        return body['data']
    return body


def _error_message(resp: requests.Response, exc: Exception) -> str:
    """Pick the backend's ``message`` field, falling back to the transport text."""
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get('message'):
        return str(body['message'])
    return resp.reason or str(exc) or 'An error occurred'


class HttpClient:
    """Shared request pipeline for both client variants.

    Args:
        base_url: Backend API root, e.g. ``http://localhost:8080/api``.
        timeout:  Per-request timeout in seconds.
        session:  Optional pre-built :class:`requests.Session`.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: Optional[float] = _DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip('/')
        self._timeout = timeout
        self._session = session or requests.Session()

    # ------------------------------------------------------------------
    # Verb helpers
    # ------------------------------------------------------------------

    def get(self, path: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        return self.request('GET', path, params=params, **kwargs)

    def post(self, path: str, json: Any = None, **kwargs) -> Any:
        return self.request('POST', path, json=json, **kwargs)

    def put(self, path: str, json: Any = None, **kwargs) -> Any:
        return self.request('PUT', path, json=json, **kwargs)

    def delete(self, path: str, **kwargs) -> Any:
        return self.request('DELETE', path, **kwargs)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _prepare_headers(self, headers: Optional[Dict[str, str]]) -> Dict[str, str]:
        merged = {'Content-Type': 'application/json'}
        merged.update(headers or {})
        return merged

    def _on_http_error(self, status: int) -> None:
        """Hook run before an :class:`ApiError` is raised."""

    def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
        raw: bool = False,
    ) -> Any:
        """Send a request and return the normalized JSON payload.

        Args:
            method:  HTTP verb.
            path:    Path relative to :attr:`base_url`.
            params:  Query-string parameters.
            json:    JSON-serialisable request body.
            headers: Extra headers (the variant decides about ``Authorization``).
            raw:     Return the decoded body without envelope unwrapping.

        Returns:
            Decoded payload, or ``None`` for an empty body.

        Raises:
            ApiError:     Backend returned a non-2xx status.
            NetworkError: No response was received.
        """
        url = self.url_for(path)
        final_headers = self._prepare_headers(headers)
        logger.debug("%s %s params=%s", method.upper(), url, params)
        try:
            resp = self._session.request(
                method.upper(),
                url,
                params=params,
                json=json,
                headers=final_headers,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            logger.warning("%s %s failed without a response: %s", method.upper(), url, exc)
            raise NetworkError() from exc

        try:
            resp.raise_for_status()
        except requests.HTTPError as exc:
            status = resp.status_code
            message = _error_message(resp, exc)
            logger.warning("%s %s -> HTTP %s: %s", method.upper(), url, status, message)
            self._on_http_error(status)
            raise ApiError(status, message) from exc

        if not resp.content:
            return None
        try:
            body = resp.json()
        except ValueError:
            logger.debug("%s %s returned a non-JSON body", method.upper(), url)
            return resp.text
        return body if raw else normalize_payload(body)


class PublicClient(HttpClient):
    """Client for anonymous reads.  Never sends an ``Authorization`` header."""

    def _prepare_headers(self, headers: Optional[Dict[str, str]]) -> Dict[str, str]:
        merged = super()._prepare_headers(headers)
        for key in [k for k in merged if k.lower() == 'authorization']:
            del merged[key]
        return merged


class AuthClient(HttpClient):
    """Client that authenticates with the stored backend session token.

    Args:
        base_url: Backend API root.
        store:    Session store exposing ``get_token()`` / ``clear_token()``.
        timeout:  Per-request timeout in seconds.
        session:  Optional pre-built :class:`requests.Session`.
    """

    def __init__(
        self,
        base_url: str,
        store,
        timeout: Optional[float] = _DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        super().__init__(base_url, timeout=timeout, session=session)
        self._store = store

    def _prepare_headers(self, headers: Optional[Dict[str, str]]) -> Dict[str, str]:
        merged = super()._prepare_headers(headers)
        for key in [k for k in merged if k.lower() == 'authorization']:
            del merged[key]
        token = self._store.get_token()
        if token:
            merged['Authorization'] = f'Bearer {token}'
        return merged

    def _on_http_error(self, status: int) -> None:
        if status in _AUTH_FAILURE_STATUSES:
            logger.info("HTTP %s on authenticated request; clearing session token", status)
            self._store.clear_token()
