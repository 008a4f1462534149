"""Repository for the local session slots (backend token + per-identity flags)."""
from typing import Any, Dict, Optional

from .base import BaseRepository

TOKEN_KEY = 'backend_jwt'
TOKEN_OWNER_KEY = 'backend_jwt_uid'
PROVIDER_REFRESH_KEY = 'provider_refresh_token'
PROVIDER_ACCOUNT_KEY = 'provider_account'


class SessionRepository(BaseRepository):
    """Key/value store holding the single backend session token.

    Schema::

        {
            "backend_jwt":               "<session token>",
            "backend_jwt_uid":           "<uid the token was issued to>",
            "provider_refresh_token":    "<identity provider refresh token>",
            "provider_account":          "<demo provider account>",
            "needs_username_<uid>":      true,
            "username_<uid>":            "<locally cached username>"
        }

    The token slot is the only signal the authenticated HTTP client uses to
    decide whether to send an ``Authorization`` header.  The per-identity
    keys are a local stopgap until the backend exposes a profile-update
    endpoint.
    """

    def __init__(self, file_path: Optional[str] = '.gamerscove_session.json') -> None:
        super().__init__(file_path)
        self.data: Dict[str, Any] = self._load({})
        if not isinstance(self.data, dict):
            self._log.warning("Ignoring malformed session file %s", file_path)
            self.data = {}

    # ------------------------------------------------------------------
    # Generic slots
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            return self.data.get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self.data[key] = value
            self.save()

    def clear(self, key: str) -> bool:
        """Remove *key*.  Returns ``True`` if it existed."""
        with self._lock:
            if key not in self.data:
                return False
            del self.data[key]
            self.save()
            return True

    # ------------------------------------------------------------------
    # Session token
    # ------------------------------------------------------------------

    def get_token(self) -> Optional[str]:
        token = self.get(TOKEN_KEY)
        return token or None

    def set_token(self, token: str, uid: Optional[str] = None) -> None:
        """Store *token*, remembering which identity it was issued to."""
        with self._lock:
            self.data[TOKEN_KEY] = token
            if uid is None:
                self.data.pop(TOKEN_OWNER_KEY, None)
            else:
                self.data[TOKEN_OWNER_KEY] = uid
            self.save()

    def token_owner(self) -> Optional[str]:
        return self.get(TOKEN_OWNER_KEY)

    def clear_token(self) -> bool:
        with self._lock:
            self.data.pop(TOKEN_OWNER_KEY, None)
            return self.clear(TOKEN_KEY)

    # ------------------------------------------------------------------
    # Per-identity profile flags
    # ------------------------------------------------------------------

    def mark_needs_username(self, uid: str) -> None:
        self.set(f'needs_username_{uid}', True)

    def needs_username(self, uid: str) -> bool:
        return bool(self.get(f'needs_username_{uid}'))

    def clear_needs_username(self, uid: str) -> bool:
        return self.clear(f'needs_username_{uid}')

    def cache_username(self, uid: str, username: str) -> None:
        self.set(f'username_{uid}', username)

    def cached_username(self, uid: str) -> Optional[str]:
        return self.get(f'username_{uid}')

    def save(self) -> None:
        """Persist the current in-memory data to disk."""
        self._save(self.data)
