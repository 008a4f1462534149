"""Review access: listing, submission and display helpers for game reviews."""
import logging
from typing import Any, Dict, List, Optional, Tuple

from http_client import ApiError

logger = logging.getLogger('gamerscove.reviews')

MIN_RATING = 1
MAX_RATING = 5
DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20


class NotAuthenticatedError(Exception):
    """Raised when a write needs a backend session token and none is stored."""


class ReviewValidationError(ValueError):
    """Raised when a review fails client-side validation."""

    def __init__(self, errors: List[str]) -> None:
        self.errors = errors
        super().__init__('; '.join(errors))


def decode_review_list(body: Any) -> Tuple[str, List[Dict[str, Any]]]:
    """Classify a review-list response and extract its items.

    Returns:
        ``(shape, items)`` where *shape* is ``'array'``, ``'data'``,
        ``'content'`` or ``'unknown'`` (the latter with ``[]``).
    """
    if isinstance(body, list):
        return 'array', body
    if isinstance(body, dict):
        if isinstance(body.get('data'), list):
            return 'data', body['data']
        if isinstance(body.get('content'), list):
            return 'content', body['content']
    return 'unknown', []


def map_review(dto: Dict[str, Any]) -> Dict[str, Any]:
    """Add the display fields ``comment``, ``userId`` and ``isPublic`` to a review DTO."""
    user = dto.get('user') or {}
    review = dict(dto)
    review['comment'] = dto.get('content') or ''
    review['userId'] = user.get('id') if isinstance(user, dict) else None
    review['isPublic'] = dto['isPublic'] if dto.get('isPublic') is not None else True
    return review


def validate_review(rating: Any, comment: Optional[str]) -> List[str]:
    """Return validation errors for a review draft (empty list when valid)."""
    errors = []
    if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
        errors.append(f"Rating must be a whole number from {MIN_RATING} to {MAX_RATING}")
    if not (comment or '').strip():
        errors.append("Please write a comment")
    return errors


def review_label(review: Dict[str, Any], identity_uid: Optional[str], index: int) -> str:
    """``"Your Review"`` for the current identity's review, else ``"Review #<index>"``."""
    if identity_uid is not None and str(review.get('userId')) == str(identity_uid):
        return "Your Review"
    return f"Review #{index}"


def average_rating(reviews: List[Dict[str, Any]]) -> Optional[float]:
    ratings = [r['rating'] for r in reviews if isinstance(r.get('rating'), (int, float))]
    if not ratings:
        return None
    return round(sum(ratings) / len(ratings), 1)


class ReviewService:
    """Request/response mapping for game reviews.

    Rules
    -----
    * ``rating`` must be an integer in the range **1–5** (inclusive).
    * ``comment`` must be non-empty after trimming.
    * Submitted reviews are always public; the backend has no visibility
      field wired up yet.
    """

    def __init__(self, auth_client, store, public_client=None) -> None:
        self._auth = auth_client
        self._store = store
        self._public = public_client or auth_client

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_reviews_by_game(self, game_id, page: int = DEFAULT_PAGE,
                             limit: int = DEFAULT_LIMIT) -> List[Dict[str, Any]]:
        """Return one page of reviews for *game_id*.

        401/403 yield ``[]`` so anonymous visitors still see the page with a
        stale token around.

        Raises:
            ApiError: Any other HTTP error, or no response at all.
        """
        logger.debug("Fetching reviews for game %s - page %s, limit %s", game_id, page, limit)
        try:
            body = self._auth.get(f'/games/{game_id}/reviews',
                                  params={'page': page, 'limit': limit}, raw=True)
        except ApiError as exc:
            if exc.is_auth_failure:
                logger.info("Reviews for game %s not visible (%s)", game_id, exc)
                return []
            raise
        shape, items = decode_review_list(body)
        if shape == 'unknown':
            logger.warning("Unrecognised reviews payload for game %s", game_id)
        return [map_review(item) for item in items if isinstance(item, dict)]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_review(self, game_id, rating: Any, comment: str,
                      is_public: bool = True) -> Dict[str, Any]:
        """Submit a review for *game_id*.

        Raises:
            ReviewValidationError: Draft failed validation (no request sent).
            NotAuthenticatedError: No backend session token is stored.
            ApiError:              Backend rejected the submission.
        """
        errors = validate_review(rating, comment)
        if errors:
            raise ReviewValidationError(errors)
        if not self._store.get_token():
            raise NotAuthenticatedError("No authentication token found. Please log in again.")
        if not is_public:
            logger.info("Private reviews are not supported yet; submitting review for game %s as public",
                        game_id)
        created = self._auth.post(f'/games/{game_id}/reviews', {
            'rating': rating,
            'content': comment.strip(),
            'isPublic': True,
        }, raw=True)
        return map_review(created) if isinstance(created, dict) else created

    def get_review(self, game_id, review_id) -> Dict[str, Any]:
        review = self._public.get(f'/games/{game_id}/reviews/{review_id}')
        return map_review(review) if isinstance(review, dict) else review

    def update_review(self, review_id, body: Dict[str, Any]) -> Dict[str, Any]:
        payload = dict(body)
        if 'comment' in payload:
            payload['content'] = payload.pop('comment')
        return self._auth.put(f'/reviews/{review_id}', payload)

    def delete_review(self, review_id) -> None:
        self._auth.delete(f'/reviews/{review_id}')
