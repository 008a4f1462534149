"""
identity_provider.py
====================
Third-party identity providers used by Gamers Cove to prove who the user is
before the backend session token is issued.

* :class:`FirebaseIdentityProvider`: Firebase Authentication REST API
  (email/password and Google credential sign-in, token refresh, profile
  lookup).
* :class:`StaticIdentityProvider`: in-memory provider for demo mode and
  tests.

Both implement :class:`IdentityProvider`, which also owns the
auth-state-changed notification stream: callbacks registered through
:meth:`IdentityProvider.on_auth_state_changed` receive the new
:class:`Identity` on sign-in/restore and ``None`` on sign-out.

Configuration keys (``config.json``)
-------------------------------------
::

    "firebase_api_key": "YOUR_FIREBASE_WEB_API_KEY",
    "firebase_request_uri": "http://localhost"
"""
from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import requests

from app.repositories import PROVIDER_ACCOUNT_KEY, PROVIDER_REFRESH_KEY

logger = logging.getLogger('gamerscove.identity')

_IDENTITY_TOOLKIT = "https://identitytoolkit.googleapis.com/v1"
_SECURE_TOKEN_URL = "https://securetoken.googleapis.com/v1/token"
_DEFAULT_TIMEOUT = 10  # seconds
# Refresh identity tokens this many seconds before they expire
_TOKEN_MIN_TTL = 60

AuthStateCallback = Callable[[Optional['Identity']], None]


class IdentityProviderError(Exception):
    """Raised when the identity provider rejects a sign-in or refresh."""

    def __init__(self, message: str, code: str = '') -> None:
        self.code = code
        super().__init__(message)


def _ms_to_iso(value: Any) -> Optional[str]:
    """Convert a Firebase millisecond timestamp string to ISO-8601."""
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc).isoformat()
    except (TypeError, ValueError):
        return None


class Identity:
    """A signed-in provider identity.

    Only lives while the provider session is active.  ``get_id_token`` mints
    a fresh identity token through the owning provider.
    """

    def __init__(
        self,
        uid: str,
        display_name: Optional[str] = None,
        email: Optional[str] = None,
        photo_url: Optional[str] = None,
        created_at: Optional[str] = None,
        last_sign_in_at: Optional[str] = None,
        provider: Optional['IdentityProvider'] = None,
    ) -> None:
        self.uid = uid
        self.display_name = display_name
        self.email = email
        self.photo_url = photo_url
        self.created_at = created_at
        self.last_sign_in_at = last_sign_in_at
        self._provider = provider

    def get_id_token(self, force_refresh: bool = False) -> str:
        if self._provider is None:
            raise IdentityProviderError("Identity is not bound to a provider")
        return self._provider.get_id_token(self, force_refresh=force_refresh)

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            'uid': self.uid,
            'display_name': self.display_name,
            'email': self.email,
            'photo_url': self.photo_url,
            'created_at': self.created_at,
            'last_sign_in_at': self.last_sign_in_at,
        }

    def __repr__(self) -> str:
        return f"Identity(uid={self.uid!r}, email={self.email!r})"


class IdentityProvider(ABC):
    """Abstract base class for identity providers."""

    def __init__(self) -> None:
        self._listeners: List[AuthStateCallback] = []
        self._listeners_lock = threading.Lock()
        self._current: Optional[Identity] = None

    @property
    def current_identity(self) -> Optional[Identity]:
        return self._current

    @abstractmethod
    def sign_in(self, **credentials) -> Identity:
        """Run the interactive sign-in flow and return the signed-in identity."""

    @abstractmethod
    def get_id_token(self, identity: Identity, force_refresh: bool = False) -> str:
        """Return a valid identity token for *identity*."""

    def sign_out(self) -> None:
        """End the provider session and notify listeners."""
        self._set_current(None)

    def on_auth_state_changed(self, callback: AuthStateCallback) -> Callable[[], None]:
        """Register *callback*; returns a function that unregisters it."""
        with self._listeners_lock:
            self._listeners.append(callback)

        def unsubscribe() -> None:
            with self._listeners_lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def _set_current(self, identity: Optional[Identity]) -> None:
        self._current = identity
        with self._listeners_lock:
            listeners = list(self._listeners)
        for callback in listeners:
            try:
                callback(identity)
            except Exception as exc:
                logger.exception("Auth state listener failed: %s", exc)


# ---------------------------------------------------------------------------
# Firebase Authentication (REST)
# ---------------------------------------------------------------------------

class FirebaseIdentityProvider(IdentityProvider):
    """Firebase Authentication over its REST API.

    Args:
        api_key:     Firebase Web API key.
        store:       Optional session store; the refresh token is kept in its
                     ``provider_refresh_token`` slot so :meth:`restore` can
                     revive the provider session on the next start.
        request_uri: Redirect URI reported to ``signInWithIdp``.
        timeout:     HTTP request timeout in seconds.
    """

    def __init__(
        self,
        api_key: str,
        store=None,
        request_uri: str = 'http://localhost',
        timeout: int = _DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        super().__init__()
        if not api_key:
            raise ValueError("api_key must not be empty")
        self._api_key = api_key
        self._store = store
        self._request_uri = request_uri
        self._timeout = timeout
        self._session = session or requests.Session()
        self._id_token: Optional[str] = None
        self._refresh_token: Optional[str] = None
        self._token_expiry: float = 0.0

    # ------------------------------------------------------------------
    # Sign-in flows
    # ------------------------------------------------------------------

    def sign_in(self, email: str = '', password: str = '',
                google_id_token: str = '', **_ignored) -> Identity:
        """Sign in with email/password or with a Google ID token.

        Raises:
            ValueError:            Neither credential kind was supplied.
            IdentityProviderError: Firebase rejected the credentials.
        """
        if google_id_token:
            body = self._post_toolkit('accounts:signInWithIdp', {
                'postBody': f'id_token={google_id_token}&providerId=google.com',
                'requestUri': self._request_uri,
                'returnSecureToken': True,
                'returnIdpCredential': True,
            })
        elif email and password:
            body = self._post_toolkit('accounts:signInWithPassword', {
                'email': email,
                'password': password,
                'returnSecureToken': True,
            })
        else:
            raise ValueError("email and password, or google_id_token, are required")

        self._store_tokens(body.get('idToken'), body.get('refreshToken'), body.get('expiresIn'))
        identity = self._lookup_identity(body)
        logger.info("Signed in to Firebase as %s", identity.uid)
        self._set_current(identity)
        return identity

    def restore(self) -> Optional[Identity]:
        """Revive a persisted provider session, notifying listeners on success.

        Returns ``None`` when nothing is persisted or the refresh fails.
        """
        refresh_token = self._store.get(PROVIDER_REFRESH_KEY) if self._store else None
        if not refresh_token:
            return None
        self._refresh_token = refresh_token
        try:
            self._refresh()
        except IdentityProviderError as exc:
            logger.warning("Could not restore Firebase session: %s", exc)
            self._forget_tokens()
            return None
        identity = self._lookup_identity({})
        self._set_current(identity)
        return identity

    def sign_out(self) -> None:
        self._forget_tokens()
        super().sign_out()

    def get_id_token(self, identity: Identity, force_refresh: bool = False) -> str:
        if identity is not self._current:
            raise IdentityProviderError("Identity is no longer signed in")
        if force_refresh or not self._id_token or time.time() >= self._token_expiry - _TOKEN_MIN_TTL:
            self._refresh()
        return self._id_token

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _store_tokens(self, id_token: Optional[str], refresh_token: Optional[str],
                      expires_in: Any) -> None:
        if not id_token:
            raise IdentityProviderError("Firebase response missing idToken")
        self._id_token = id_token
        self._refresh_token = refresh_token or self._refresh_token
        self._token_expiry = time.time() + int(expires_in or 3600)
        if self._store is not None and self._refresh_token:
            self._store.set(PROVIDER_REFRESH_KEY, self._refresh_token)

    def _forget_tokens(self) -> None:
        self._id_token = None
        self._refresh_token = None
        self._token_expiry = 0.0
        if self._store is not None:
            self._store.clear(PROVIDER_REFRESH_KEY)

    def _refresh(self) -> None:
        if not self._refresh_token:
            raise IdentityProviderError("No refresh token available")
        try:
            resp = self._session.post(
                _SECURE_TOKEN_URL,
                params={'key': self._api_key},
                data={'grant_type': 'refresh_token', 'refresh_token': self._refresh_token},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise IdentityProviderError(f"Network error refreshing token: {exc}") from exc
        body = self._decode(resp)
        self._store_tokens(body.get('id_token'), body.get('refresh_token'), body.get('expires_in'))
        logger.debug("Refreshed Firebase identity token")

    def _lookup_identity(self, sign_in_body: Dict[str, Any]) -> Identity:
        """Build an :class:`Identity` from ``accounts:lookup``, falling back to *sign_in_body*."""
        user: Dict[str, Any] = {}
        try:
            users = self._post_toolkit('accounts:lookup', {'idToken': self._id_token}).get('users') or []
            user = users[0] if users else {}
        except IdentityProviderError as exc:
            logger.warning("Firebase profile lookup failed: %s", exc)
        uid = user.get('localId') or sign_in_body.get('localId')
        if not uid:
            raise IdentityProviderError("Firebase did not return a user id")
        return Identity(
            uid=uid,
            display_name=user.get('displayName') or sign_in_body.get('displayName'),
            email=user.get('email') or sign_in_body.get('email'),
            photo_url=user.get('photoUrl') or sign_in_body.get('photoUrl'),
            created_at=_ms_to_iso(user.get('createdAt')),
            last_sign_in_at=_ms_to_iso(user.get('lastLoginAt')),
            provider=self,
        )

    def _post_toolkit(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = self._session.post(
                f"{_IDENTITY_TOOLKIT}/{endpoint}",
                params={'key': self._api_key},
                json=payload,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise IdentityProviderError(f"Network error calling Firebase: {exc}") from exc
        return self._decode(resp)

    @staticmethod
    def _decode(resp: requests.Response) -> Dict[str, Any]:
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if resp.status_code >= 400:
            error = body.get('error') if isinstance(body, dict) else None
            code = error.get('message', '') if isinstance(error, dict) else ''
            raise IdentityProviderError(
                f"Firebase error {resp.status_code}: {code or resp.reason}", code=code
            )
        return body if isinstance(body, dict) else {}


# ---------------------------------------------------------------------------
# In-memory provider
# ---------------------------------------------------------------------------

class StaticIdentityProvider(IdentityProvider):
    """Provider backed by a fixed ``{email: profile}`` mapping.

    Each profile may hold ``uid``, ``password``, ``display_name``,
    ``photo_url`` and ``id_token``.  The identity token is static.  With a
    *store*, the signed-in account is remembered in its
    ``provider_account`` slot so :meth:`restore` can revive it.
    """

    def __init__(self, accounts: Optional[Dict[str, Dict[str, Any]]] = None, store=None) -> None:
        super().__init__()
        self._accounts = accounts or {}
        self._store = store

    def sign_in(self, email: str = '', password: str = '', **_ignored) -> Identity:
        account = self._accounts.get(email)
        if account is None or account.get('password', '') != password:
            raise IdentityProviderError("Invalid email or password", code='INVALID_LOGIN_CREDENTIALS')
        identity = self._identity_for(email, account)
        if self._store is not None:
            self._store.set(PROVIDER_ACCOUNT_KEY, email)
        self._set_current(identity)
        return identity

    def restore(self) -> Optional[Identity]:
        """Sign the remembered account back in, notifying listeners."""
        email = self._store.get(PROVIDER_ACCOUNT_KEY) if self._store else None
        account = self._accounts.get(email) if email else None
        if account is None:
            return None
        identity = self._identity_for(email, account)
        self._set_current(identity)
        return identity

    def sign_out(self) -> None:
        if self._store is not None:
            self._store.clear(PROVIDER_ACCOUNT_KEY)
        super().sign_out()

    def _identity_for(self, email: str, account: Dict[str, Any]) -> Identity:
        now = datetime.now(timezone.utc).isoformat()
        return Identity(
            uid=account.get('uid', email),
            display_name=account.get('display_name'),
            email=email,
            photo_url=account.get('photo_url'),
            created_at=account.get('created_at', now),
            last_sign_in_at=now,
            provider=self,
        )

    def get_id_token(self, identity: Identity, force_refresh: bool = False) -> str:
        if identity is not self._current:
            raise IdentityProviderError("Identity is no longer signed in")
        account = self._accounts.get(identity.email or '', {})
        return account.get('id_token', f'static-id-token-{identity.uid}')
