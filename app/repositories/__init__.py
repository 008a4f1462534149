"""Repositories package: local persistence used by the services."""
from .base import BaseRepository
from .session_repository import (
    SessionRepository, TOKEN_KEY, TOKEN_OWNER_KEY, PROVIDER_REFRESH_KEY, PROVIDER_ACCOUNT_KEY,
)

__all__ = [
    'BaseRepository',
    'SessionRepository',
    'TOKEN_KEY',
    'TOKEN_OWNER_KEY',
    'PROVIDER_REFRESH_KEY',
    'PROVIDER_ACCOUNT_KEY',
]
