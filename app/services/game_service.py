"""Catalog access for the games resource."""
import logging
from typing import Any, Dict, List, Optional

from http_client import ApiError

logger = logging.getLogger('gamerscove.games')


def filter_games(games: List[Dict[str, Any]], query: Optional[str]) -> List[Dict[str, Any]]:
    """Case-insensitive substring search over title, description and genres.

    A blank *query* returns *games* unchanged.
    """
    needle = (query or '').strip().lower()
    if not needle:
        return list(games)

    def _matches(game: Dict[str, Any]) -> bool:
        if needle in (game.get('title') or '').lower():
            return True
        if needle in (game.get('description') or '').lower():
            return True
        return any(needle in str(genre).lower() for genre in game.get('genres') or [])

    return [g for g in games if _matches(g)]


class GameService:
    """Request/response mapping for ``/games``.

    Reads go through the public client, mutations through the authenticated
    one.  Only :meth:`list_games` swallows failures, so the catalog view
    stays usable while the backend is flaky.
    """

    def __init__(self, public_client, auth_client) -> None:
        self._public = public_client
        self._auth = auth_client

    def list_games(self, search: Optional[str] = None) -> List[Dict[str, Any]]:
        """Return the catalog, optionally filtered by the backend's ``q`` param.

        Returns ``[]`` on any failure.
        """
        params: Dict[str, str] = {}
        if search and search.strip():
            params['q'] = search.strip()
        try:
            games = self._public.get('/games', params=params)
        except ApiError as exc:
            logger.error("Error listing games: %s", exc)
            return []
        if not isinstance(games, list):
            logger.warning("Unexpected /games payload type: %s", type(games).__name__)
            return []
        return games

    def get_game(self, game_id) -> Dict[str, Any]:
        return self._public.get(f'/games/{game_id}')

    def create_game(self, body: Dict[str, Any]) -> Dict[str, Any]:
        return self._auth.post('/games', body)

    def update_game(self, game_id, body: Dict[str, Any]) -> Dict[str, Any]:
        return self._auth.put(f'/games/{game_id}', body)

    def delete_game(self, game_id) -> None:
        self._auth.delete(f'/games/{game_id}')
