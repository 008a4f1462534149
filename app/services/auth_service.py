"""Session lifecycle: provider sign-in, backend token exchange, profile completion."""
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from http_client import ApiError

SIGNED_OUT = 'signed_out'
AUTHENTICATING = 'authenticating'
SIGNED_IN = 'signed_in'

logger = logging.getLogger('gamerscove.auth')


class AuthService:
    """Owns the sign-in/sign-out lifecycle for one local session.

    States
    ------
    ``SIGNED_OUT`` → ``AUTHENTICATING`` → ``SIGNED_IN`` (with a
    ``needs_username`` flag).  Sign-in trades the provider's identity token
    for a backend session token (``POST /auth/login``).  The provider's
    auth-state notifications drive the same exchange when a provider session
    appears on its own (e.g. restored on start-up), unless the stored token
    was issued to that same identity: then the session is resumed from the
    store, pending-username flag included, without a new exchange.

    The session store is the single source of truth for the token: the
    authenticated client reads it on every request and clears it on 401/403.
    """

    def __init__(self, provider, store, public_client, auth_client) -> None:
        self._provider = provider
        self._store = store
        self._public = public_client
        self._auth = auth_client
        self._lock = threading.RLock()
        self._state = SIGNED_OUT
        self._identity = None
        self._needs_username = False
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._listeners: List[Callable[['AuthService'], None]] = []

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def state(self) -> str:
        return self._state

    @property
    def identity(self):
        return self._identity

    @property
    def needs_username(self) -> bool:
        return self._needs_username

    @property
    def is_authenticated(self) -> bool:
        """``True`` while a backend session token is stored."""
        return bool(self._store.get_token())

    @property
    def can_write(self) -> bool:
        """Signed in, authenticated and done with profile setup."""
        return self._identity is not None and self.is_authenticated and not self._needs_username

    @property
    def username(self) -> Optional[str]:
        if self._identity is None:
            return None
        return self._store.cached_username(self._identity.uid)

    def snapshot(self) -> Dict[str, Any]:
        identity = self._identity
        return {
            'state': self._state,
            'identity': identity.to_dict() if identity else None,
            'authenticated': self.is_authenticated,
            'needs_username': self._needs_username,
            'username': self.username,
        }

    # ------------------------------------------------------------------
    # Subscription management
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Begin listening to the provider's auth-state notifications."""
        if self._unsubscribe is None:
            self._unsubscribe = self._provider.on_auth_state_changed(self._on_auth_state_changed)

    def dispose(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._listeners = []

    def subscribe(self, listener: Callable[['AuthService'], None]) -> Callable[[], None]:
        """Call *listener* after every state transition.  Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _transition(self, state: str, identity=None, needs_username: Optional[bool] = None) -> None:
        with self._lock:
            self._state = state
            self._identity = identity
            if needs_username is not None:
                self._set_needs_username(needs_username)
        logger.debug("Auth state -> %s (needs_username=%s)", state, self._needs_username)
        self._emit()

    def _set_needs_username(self, value: bool) -> None:
        self._needs_username = value
        if self._identity is None:
            return
        if value:
            self._store.mark_needs_username(self._identity.uid)
        else:
            self._store.clear_needs_username(self._identity.uid)

    # ------------------------------------------------------------------
    # Sign-in / sign-out
    # ------------------------------------------------------------------

    def sign_in(self, **credentials) -> Dict[str, Any]:
        """Run the provider's interactive sign-in, then exchange tokens.

        Returns:
            The backend login response (``{token, needsUsername?}``).

        Raises:
            Whatever the provider raises (state returns to ``SIGNED_OUT``),
            or :class:`~http_client.ApiError` from the exchange (the provider
            identity stays signed in; the backend session does not).
        """
        self._transition(AUTHENTICATING)
        try:
            identity = self._provider.sign_in(**credentials)
        except Exception:
            logger.warning("Provider sign-in failed")
            self._transition(SIGNED_OUT)
            raise
        return self.exchange_token(identity)

    def exchange_token(self, identity) -> Dict[str, Any]:
        """Trade *identity*'s token for a backend session token.

        A username cached locally for *identity* counts as a completed
        profile, whatever the backend says.

        Raises:
            ApiError: The login call failed; the stored token is cleared.
        """
        with self._lock:
            self._identity = identity
            self._state = SIGNED_IN
            self._needs_username = False
        try:
            id_token = identity.get_id_token()
            data = self._public.post('/auth/login', {'idToken': id_token}, raw=True) or {}
        except Exception:
            logger.warning("Token exchange failed for %s; clearing session token", identity.uid)
            self._store.clear_token()
            self._transition(SIGNED_IN, identity)
            raise

        if not isinstance(data, dict):
            data = {}
        token = data.get('token')
        if not token:
            logger.warning("Login response for %s carried no token", identity.uid)
            self._transition(SIGNED_IN, identity)
            return data

        self._store.set_token(token, uid=identity.uid)
        logger.info("Backend session established for %s", identity.uid)
        if self._store.cached_username(identity.uid):
            needs_username = False
        elif data.get('needsUsername'):
            needs_username = True
        else:
            needs_username = self._profile_needs_username()
        self._transition(SIGNED_IN, identity, needs_username=needs_username)
        return data

    def resume(self, identity) -> bool:
        """Adopt a stored backend session issued to *identity*.

        Returns ``False`` (and changes nothing) when the stored token belongs
        to someone else or is missing.
        """
        if not self._store.get_token() or self._store.token_owner() != identity.uid:
            return False
        needs_username = (self._store.needs_username(identity.uid)
                          and not self._store.cached_username(identity.uid))
        self._transition(SIGNED_IN, identity, needs_username=needs_username)
        logger.info("Resumed backend session for %s", identity.uid)
        return True

    def _profile_needs_username(self) -> bool:
        try:
            profile = self.get_profile()
        except ApiError as exc:
            logger.warning("Could not fetch user profile, assuming username is needed: %s", exc)
            return True
        return not (isinstance(profile, dict) and profile.get('username'))

    def sign_out(self) -> None:
        """Sign out of the provider and drop all backend session state."""
        try:
            self._provider.sign_out()
        finally:
            self._store.clear_token()
            self._transition(SIGNED_OUT, None, needs_username=False)
            logger.info("Signed out")

    def _on_auth_state_changed(self, identity) -> None:
        if identity is None:
            with self._lock:
                self._needs_username = False
                self._state = SIGNED_OUT
                self._identity = None
            self._store.clear_token()
            self._emit()
            return
        if self._state == AUTHENTICATING:
            # sign_in() runs the exchange itself
            return
        if self.resume(identity):
            return
        try:
            self.exchange_token(identity)
        except Exception as exc:
            logger.error("Auth state change - could not exchange token: %s", exc)

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def get_profile(self) -> Any:
        return self._auth.get('/users/me')

    def set_username(self, username: str) -> str:
        """Record *username* for the signed-in identity.

        Kept locally until the backend gains a profile-update endpoint.

        Raises:
            ValueError:   Empty username.
            RuntimeError: Nobody is signed in.
        """
        name = (username or '').strip()
        if not name:
            raise ValueError("Please enter a username")
        if self._identity is None:
            raise RuntimeError("Sign in before choosing a username")
        self._store.cache_username(self._identity.uid, name)
        with self._lock:
            self._set_needs_username(False)
        logger.info("Username saved locally for %s", self._identity.uid)
        self._emit()
        return name
