"""Services package: expose all concrete services from one import."""
from .auth_service import AuthService, SIGNED_OUT, AUTHENTICATING, SIGNED_IN
from .game_service import GameService, filter_games
from .review_service import (
    ReviewService, NotAuthenticatedError, ReviewValidationError,
    decode_review_list, map_review, validate_review, review_label, average_rating,
)

__all__ = [
    'AuthService',
    'SIGNED_OUT',
    'AUTHENTICATING',
    'SIGNED_IN',
    'GameService',
    'filter_games',
    'ReviewService',
    'NotAuthenticatedError',
    'ReviewValidationError',
    'decode_review_list',
    'map_review',
    'validate_review',
    'review_label',
    'average_rating',
]
