#!/usr/bin/env python3
"""
Gamers Cove - games catalog and reviews client
Browse the catalog, sign in and post star-rated reviews against a Gamers Cove backend.
"""

import argparse
import json
import logging
import os
import sys
from typing import Dict, List, Optional

from colorama import init, Fore, Style
from dotenv import load_dotenv

from app.repositories import SessionRepository
from app.services import (
    AuthService, GameService, ReviewService, NotAuthenticatedError,
    filter_games, review_label, validate_review,
)
from http_client import ApiError, AuthClient, PublicClient, DEFAULT_BASE_URL
from identity_provider import (
    FirebaseIdentityProvider, IdentityProviderError, StaticIdentityProvider,
)

# Initialize colorama for cross-platform colored terminal output
init(autoreset=True)

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def setup_logging(level: str = 'WARNING') -> logging.Logger:
    """Attach one console handler to the ``gamerscove`` logger tree.

    Every module logs under a ``gamerscove.*`` child (``http``, ``auth``,
    ``identity``, ``games``, ``reviews``, ``repository``, ``gui``), so one
    handler here covers the CLI and the GUI.  Calling it again only changes
    the level.  Unknown level names fall back to WARNING.
    """
    root = logging.getLogger('gamerscove')
    if not root.handlers:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter('[%(levelname)s] %(name)s: %(message)s'))
        root.addHandler(console)
    root.setLevel(getattr(logging, str(level).upper(), logging.WARNING))
    return root


logger = setup_logging()

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEFAULT_CONFIG: Dict = {
    'api_base_url': DEFAULT_BASE_URL,
    'firebase_api_key': '',
    'firebase_request_uri': 'http://localhost',
    'session_file': '.gamerscove_session.json',
    'request_timeout': 10,
    'log_level': 'WARNING',
}

_ENV_OVERRIDES = {
    'GAMERSCOVE_API_BASE_URL': 'api_base_url',
    'FIREBASE_API_KEY': 'firebase_api_key',
    'GAMERSCOVE_SESSION_FILE': 'session_file',
    'GAMERSCOVE_LOG_LEVEL': 'log_level',
}

DEMO_ACCOUNTS = {
    'demo@gamerscove.local': {
        'uid': 'demo-user',
        'password': 'demo',
        'display_name': 'Demo Player',
    },
}


def is_placeholder_value(value: str) -> bool:
    """Check if a config value is an unset ``YOUR_...`` placeholder."""
    if not value or not isinstance(value, str):
        return True
    return value.startswith('YOUR_')


def load_config(config_path: str = 'config.json') -> Dict:
    """Load configuration: defaults, then *config_path*, then environment.

    A missing or unreadable config file leaves the defaults in place.
    """
    load_dotenv()
    config = dict(DEFAULT_CONFIG)
    if config_path and os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                loaded = json.load(f)
            if isinstance(loaded, dict):
                config.update(loaded)
            else:
                logger.warning("Ignoring %s: top-level value must be an object", config_path)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read config %s: %s", config_path, e)

    for env_name, key in _ENV_OVERRIDES.items():
        if os.getenv(env_name):
            config[key] = os.getenv(env_name)
    return config


class Services:
    """Wired-up session store, HTTP clients, identity provider and services."""

    def __init__(self, config: Dict, provider=None, store=None) -> None:
        self.config = config
        timeout = config.get('request_timeout') or None
        self.store = store if store is not None else SessionRepository(config.get('session_file'))
        self.public_client = PublicClient(config.get('api_base_url'), timeout=timeout)
        self.auth_client = AuthClient(config.get('api_base_url'), self.store, timeout=timeout)
        if provider is None:
            api_key = config.get('firebase_api_key', '')
            if is_placeholder_value(api_key):
                raise ValueError("firebase_api_key is not configured (config.json or FIREBASE_API_KEY)")
            provider = FirebaseIdentityProvider(
                api_key,
                store=self.store,
                request_uri=config.get('firebase_request_uri', 'http://localhost'),
            )
        self.provider = provider
        self.auth = AuthService(provider, self.store, self.public_client, self.auth_client)
        self.games = GameService(self.public_client, self.auth_client)
        self.reviews = ReviewService(self.auth_client, self.store, public_client=self.public_client)

    def start(self) -> None:
        """Subscribe to provider notifications and revive a persisted provider session."""
        self.auth.start()
        restore = getattr(self.provider, 'restore', None)
        if restore is not None:
            restore()

    def close(self) -> None:
        self.auth.dispose()


def build_services(config: Dict, demo: bool = False, start: bool = True) -> Services:
    """Create a :class:`Services` container from *config*.

    ``demo`` swaps the Firebase provider for the in-memory demo accounts,
    which remember the signed-in account in the same session file.
    """
    store = SessionRepository(config.get('session_file'))
    provider = StaticIdentityProvider(DEMO_ACCOUNTS, store=store) if demo else None
    services = Services(config, provider=provider, store=store)
    if start:
        services.start()
    return services


# ---------------------------------------------------------------------------
# CLI output helpers
# ---------------------------------------------------------------------------

def stars(rating) -> str:
    try:
        value = int(rating)
    except (TypeError, ValueError):
        value = 0
    value = max(0, min(value, 5))
    return '★' * value + '☆' * (5 - value)


def print_game(game: Dict, detailed: bool = False) -> None:
    print(f"{Fore.CYAN}{Style.BRIGHT}[{game.get('id')}] {game.get('title', 'Untitled')}")
    if game.get('genres'):
        print(f"  {Fore.YELLOW}Genres: {', '.join(game['genres'])}")
    if detailed:
        for label, key in (('Developer', 'developer'), ('Publisher', 'publisher'),
                           ('Released', 'releaseDate')):
            if game.get(key):
                print(f"  {label}: {game[key]}")
        if game.get('platforms'):
            print(f"  Platforms: {', '.join(game['platforms'])}")
        if game.get('description'):
            print(f"\n  {game['description']}")


def print_reviews(reviews: List[Dict], identity_uid: Optional[str]) -> None:
    if not reviews:
        print(f"{Fore.YELLOW}No reviews yet.")
        return
    for index, review in enumerate(reviews, start=1):
        author = (review.get('user') or {}).get('username') or 'Anonymous'
        print(f"{Fore.GREEN}{review_label(review, identity_uid, index)} "
              f"{Fore.YELLOW}{stars(review.get('rating'))}{Style.RESET_ALL} by {author}")
        print(f"  {review.get('comment', '')}")


def _fail(message: str) -> int:
    print(f"{Fore.RED}✗ {message}")
    return 1


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_games(services: Services, args) -> int:
    if args.local:
        games = filter_games(services.games.list_games(), args.search)
    else:
        games = services.games.list_games(args.search)
    if not games:
        print(f"{Fore.YELLOW}No games found.")
        return 0
    for game in games:
        print_game(game)
    print(f"\n{Fore.WHITE}{len(games)} game(s)")
    return 0


def cmd_game(services: Services, args) -> int:
    print_game(services.games.get_game(args.game_id), detailed=True)
    return 0


def cmd_reviews(services: Services, args) -> int:
    reviews = services.reviews.list_reviews_by_game(args.game_id, page=args.page, limit=args.limit)
    identity = services.auth.identity
    print_reviews(reviews, identity.uid if identity else None)
    return 0


def cmd_review(services: Services, args) -> int:
    errors = validate_review(args.rating, args.comment)
    if errors:
        return _fail('; '.join(errors))
    if not services.auth.can_write:
        if services.auth.needs_username:
            return _fail("Choose a username first (gamerscove set-username NAME)")
        return _fail("Sign in first (gamerscove login)")
    created = services.reviews.create_review(
        args.game_id, args.rating, args.comment, is_public=not args.private
    )
    print(f"{Fore.GREEN}✓ Review submitted (id {created.get('id') if isinstance(created, dict) else '?'})")
    return 0


def cmd_login(services: Services, args) -> int:
    if not args.google_id_token and not (args.email and args.password):
        return _fail("Provide --email and --password, or --google-id-token")
    services.auth.sign_in(email=args.email or '', password=args.password or '',
                          google_id_token=args.google_id_token or '')
    identity = services.auth.identity
    print(f"{Fore.GREEN}✓ Signed in as {identity.display_name or identity.email}")
    if services.auth.needs_username:
        print(f"{Fore.YELLOW}Choose a username with: gamerscove set-username NAME")
    return 0


def cmd_logout(services: Services, args) -> int:
    services.auth.sign_out()
    print(f"{Fore.GREEN}✓ Signed out")
    return 0


def cmd_whoami(services: Services, args) -> int:
    snap = services.auth.snapshot()
    identity = snap['identity']
    if not identity:
        print(f"{Fore.YELLOW}Not signed in")
        return 0
    print(f"{Fore.CYAN}{identity.get('display_name') or 'User'} <{identity.get('email') or 'no email'}>")
    print(f"  Username: {snap['username'] or '(not set)'}")
    print(f"  Backend session: {'yes' if snap['authenticated'] else 'no'}")
    if snap['needs_username']:
        print(f"{Fore.YELLOW}  Username setup pending")
    return 0


def cmd_set_username(services: Services, args) -> int:
    name = services.auth.set_username(args.username)
    print(f"{Fore.GREEN}✓ Username set to {name}")
    return 0


def cmd_request(services: Services, args) -> int:
    """Ad hoc API tester: send one JSON request and print the payload."""
    body = None
    if args.data:
        try:
            body = json.loads(args.data)
        except json.JSONDecodeError as e:
            return _fail(f"Invalid JSON: {e}")
    client = services.auth_client if args.auth else services.public_client
    result = client.request(args.method, args.path, json=body, raw=args.raw)
    print(json.dumps(result, indent=2))
    return 0


COMMANDS = {
    'games': cmd_games,
    'game': cmd_game,
    'reviews': cmd_reviews,
    'review': cmd_review,
    'login': cmd_login,
    'logout': cmd_logout,
    'whoami': cmd_whoami,
    'set-username': cmd_set_username,
    'request': cmd_request,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Gamers Cove - games catalog and reviews',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  gamerscove games --search zelda          # Search the catalog
  gamerscove reviews 42 --page 2           # Second page of reviews for game 42
  gamerscove login --email me@x.io --password secret
  gamerscove review 42 --rating 5 --comment "Loved it"
  gamerscove request GET /users/me --auth  # Ad hoc API call
        """
    )
    parser.add_argument('--config', '-c', default='config.json',
                        help='Path to config file (default: config.json)')
    parser.add_argument('--log-level', help='Log level (DEBUG, INFO, WARNING, ERROR)')
    parser.add_argument('--demo', action='store_true',
                        help='Use the built-in demo identity instead of Firebase')
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('games', help='List or search the catalog')
    p.add_argument('--search', '-s', help='Search term')
    p.add_argument('--local', action='store_true',
                   help='Filter client-side (title, description, genres) instead of via the backend')

    p = sub.add_parser('game', help='Show one game')
    p.add_argument('game_id')

    p = sub.add_parser('reviews', help='List reviews for a game')
    p.add_argument('game_id')
    p.add_argument('--page', type=int, default=1)
    p.add_argument('--limit', type=int, default=20)

    p = sub.add_parser('review', help='Post a review')
    p.add_argument('game_id')
    p.add_argument('--rating', '-r', type=int, required=True, help='Stars, 1-5')
    p.add_argument('--comment', '-m', required=True)
    p.add_argument('--private', action='store_true',
                   help='Request a private review (currently submitted as public)')

    p = sub.add_parser('login', help='Sign in and start a backend session')
    p.add_argument('--email')
    p.add_argument('--password')
    p.add_argument('--google-id-token')

    sub.add_parser('logout', help='Sign out and drop the backend session')
    sub.add_parser('whoami', help='Show the signed-in identity')

    p = sub.add_parser('set-username', help='Choose your username')
    p.add_argument('username')

    p = sub.add_parser('request', help='Send an ad hoc request (API tester)')
    p.add_argument('method', choices=['GET', 'POST', 'PUT', 'DELETE'], type=str.upper)
    p.add_argument('path')
    p.add_argument('--data', '-d', help='JSON request body')
    p.add_argument('--auth', action='store_true', help='Use the authenticated client')
    p.add_argument('--raw', action='store_true', help='Do not unwrap {data: ...} envelopes')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(args.log_level or config.get('log_level', 'WARNING'))

    try:
        services = build_services(config, demo=args.demo)
    except (ValueError, IdentityProviderError) as e:
        return _fail(str(e))

    try:
        return COMMANDS[args.command](services, args)
    except (ApiError, IdentityProviderError, NotAuthenticatedError, ValueError, RuntimeError) as e:
        return _fail(str(e))
    finally:
        services.close()


if __name__ == "__main__":
    sys.exit(main())
