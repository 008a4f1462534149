#!/usr/bin/env python3
"""
Gamers Cove GUI - local web interface for the games catalog and reviews.
Serves server-rendered pages on 127.0.0.1; one running GUI is one session.
"""

import argparse
import logging
import os
import threading
from typing import Optional, Tuple

from flask import Flask, abort, flash, jsonify, redirect, render_template, request, url_for

import gamerscove
from app.services import (
    NotAuthenticatedError, ReviewValidationError, average_rating, filter_games, review_label,
)
from app.services.review_service import MAX_RATING, MIN_RATING
from http_client import ApiError
from identity_provider import IdentityProviderError

# Initialize logging early so service module logs are captured
log_level = os.getenv('GAMERSCOVE_LOG_LEVEL', 'INFO')
gamerscove.setup_logging(log_level)
gui_logger = logging.getLogger('gamerscove.gui')
try:
    os.makedirs('logs', exist_ok=True)
    fh = logging.FileHandler('logs/gamerscove_gui.log')
    fh.setFormatter(logging.Formatter('[%(asctime)s] %(levelname)s %(name)s: %(message)s'))
    fh.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    logging.getLogger('gamerscove').addHandler(fh)
except OSError:
    gui_logger.warning('Could not create log file handler')

app = Flask(__name__, template_folder=os.path.join(os.path.dirname(os.path.abspath(__file__)), 'templates'))
app.secret_key = os.urandom(24)

# Wired services; set by init_services() (or patched in tests)
services: Optional[gamerscove.Services] = None
services_lock = threading.Lock()

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


def init_services(config_path: str = 'config.json', demo: bool = False) -> gamerscove.Services:
    """Build and start the shared services for this GUI process."""
    global services
    config = gamerscove.load_config(config_path)
    with services_lock:
        if services is not None:
            services.close()
        services = gamerscove.build_services(config, demo=demo)
    gui_logger.info('Services ready (backend %s, demo=%s)', config.get('api_base_url'), demo)
    return services


def _svc() -> gamerscove.Services:
    if services is None:
        abort(503)
    return services


def _page_args() -> Tuple[int, int]:
    page = request.args.get('page', 1, type=int) or 1
    limit = request.args.get('limit', DEFAULT_LIMIT, type=int) or DEFAULT_LIMIT
    return max(page, 1), max(1, min(limit, MAX_LIMIT))


def _current_uid() -> Optional[str]:
    identity = _svc().auth.identity
    return identity.uid if identity else None


def _load_reviews(game_id, page: int, limit: int):
    """Return ``(labelled_reviews, error_message)`` for one page of reviews."""
    try:
        reviews = _svc().reviews.list_reviews_by_game(game_id, page=page, limit=limit)
    except ApiError as e:
        gui_logger.warning('Could not load reviews for game %s: %s', game_id, e)
        return [], str(e)
    uid = _current_uid()
    offset = (page - 1) * limit
    labelled = [
        {'label': review_label(r, uid, offset + i), 'review': r}
        for i, r in enumerate(reviews, start=1)
    ]
    return labelled, None


# ===========================================================================================
# Template helpers
# ===========================================================================================

@app.template_filter('stars')
def stars_filter(rating) -> str:
    return gamerscove.stars(rating)


@app.context_processor
def inject_session():
    context = {
        'session_info': None,
        'can_write': False,
        'rating_choices': list(range(MIN_RATING, MAX_RATING + 1)),
    }
    if services is not None:
        context['session_info'] = services.auth.snapshot()
        context['can_write'] = services.auth.can_write
    return context


# ===========================================================================================
# Pages
# ===========================================================================================

@app.route('/')
def index():
    return redirect(url_for('games_page'))


@app.route('/games')
def games_page():
    """Catalog with client-side search over title, description and genres."""
    query = request.args.get('q', '').strip()
    all_games = _svc().games.list_games()
    shown = filter_games(all_games, query)
    return render_template('games.html', games=shown, total=len(all_games), query=query)


@app.route('/games/<game_id>')
def game_detail(game_id):
    """Game page: details, one page of reviews and the review composer."""
    try:
        game = _svc().games.get_game(game_id)
    except ApiError as e:
        if e.status == 404:
            abort(404)
        gui_logger.warning('Could not load game %s: %s', game_id, e)
        return render_template('game_detail.html', game=None, game_id=game_id, error=str(e),
                               reviews=[], reviews_error=None, page=1, limit=DEFAULT_LIMIT,
                               has_next=False, average=None), 502
    if not isinstance(game, dict):
        abort(404)

    page, limit = _page_args()
    labelled, reviews_error = _load_reviews(game_id, page, limit)
    return render_template(
        'game_detail.html',
        game=game,
        game_id=game_id,
        error=None,
        reviews=labelled,
        reviews_error=reviews_error,
        page=page,
        limit=limit,
        has_next=len(labelled) == limit,
        average=average_rating([item['review'] for item in labelled]),
    )


@app.route('/games/<game_id>/reviews', methods=['POST'])
def submit_review(game_id):
    """Handle the review composer."""
    svc = _svc()
    rating = request.form.get('rating', type=int)
    comment = request.form.get('comment', '')
    is_public = request.form.get('visibility', 'public') == 'public'

    if not svc.auth.can_write:
        if svc.auth.needs_username:
            flash('Choose a username before posting reviews.', 'error')
            return redirect(url_for('profile'))
        flash('Please sign in to post a review.', 'error')
        return redirect(url_for('login'))

    try:
        svc.reviews.create_review(game_id, rating, comment, is_public=is_public)
    except ReviewValidationError as e:
        for message in e.errors:
            flash(message, 'error')
    except NotAuthenticatedError as e:
        flash(str(e), 'error')
        return redirect(url_for('login'))
    except ApiError as e:
        gui_logger.warning('Review submission for game %s failed: %s', game_id, e)
        flash(str(e), 'error')
    else:
        flash('Review submitted!', 'success')
    return redirect(url_for('game_detail', game_id=game_id))


@app.route('/reviews')
def reviews_page():
    """Pick a game from a searchable list and read its reviews."""
    query = request.args.get('q', '').strip()
    selected_id = request.args.get('game')
    games = filter_games(_svc().games.list_games(), query)

    selected = None
    labelled, reviews_error = [], None
    page, limit = _page_args()
    if selected_id:
        selected = next((g for g in games if str(g.get('id')) == str(selected_id)), None)
        labelled, reviews_error = _load_reviews(selected_id, page, limit)
    return render_template('reviews.html', games=games, query=query, selected=selected,
                           selected_id=selected_id, reviews=labelled,
                           reviews_error=reviews_error, page=page, limit=limit,
                           has_next=len(labelled) == limit)


@app.route('/profile')
def profile():
    svc = _svc()
    if svc.auth.identity is None:
        flash('Please sign in to view your profile.', 'info')
        return redirect(url_for('login'))
    return render_template('profile.html', identity=svc.auth.identity)


@app.route('/profile/username', methods=['POST'])
def save_username():
    svc = _svc()
    try:
        name = svc.auth.set_username(request.form.get('username', ''))
    except ValueError as e:
        flash(str(e), 'error')
    except RuntimeError as e:
        flash(str(e), 'error')
        return redirect(url_for('login'))
    else:
        flash(f'Username set to {name}.', 'success')
    return redirect(url_for('profile'))


@app.route('/login', methods=['GET', 'POST'])
def login():
    svc = _svc()
    if request.method == 'GET':
        if svc.auth.identity is not None:
            return redirect(url_for('index'))
        return render_template('login.html')

    email = request.form.get('email', '').strip()
    password = request.form.get('password', '')
    google_id_token = request.form.get('google_id_token', '').strip()
    gui_logger.info('Login attempt for %s', email or 'google credential')
    try:
        svc.auth.sign_in(email=email, password=password, google_id_token=google_id_token)
    except (IdentityProviderError, ValueError) as e:
        flash(str(e), 'error')
        return render_template('login.html', email=email), 401
    except ApiError as e:
        flash(f'Signed in, but the backend session could not be started ({e}). '
              'Browsing is read-only.', 'warning')
        return redirect(url_for('index'))

    if svc.auth.needs_username:
        flash('Welcome! Pick a username to finish setting up your profile.', 'info')
        return redirect(url_for('profile'))
    flash('Signed in.', 'success')
    return redirect(url_for('index'))


@app.route('/logout', methods=['POST'])
def logout():
    try:
        _svc().auth.sign_out()
    except IdentityProviderError as e:
        gui_logger.warning('Provider sign-out failed: %s', e)
    flash('Signed out.', 'success')
    return redirect(url_for('index'))


@app.route('/api/status')
def api_status():
    """Current session snapshot as JSON."""
    if services is None:
        return jsonify({'ready': False, 'message': 'Services not initialized'}), 503
    status = services.auth.snapshot()
    status['ready'] = True
    return jsonify(status)


@app.errorhandler(404)
def not_found(e):
    return render_template('not_found.html', path=request.path), 404


def main():
    """Main entry point for GUI"""
    parser = argparse.ArgumentParser(description='Gamers Cove Web GUI')
    parser.add_argument('--config', default='config.json', help='Path to config file')
    parser.add_argument('--demo', action='store_true', help='Use the built-in demo identity')
    parser.add_argument('--port', type=int, default=5000)
    args = parser.parse_args()

    try:
        init_services(args.config, demo=args.demo)
    except (ValueError, IdentityProviderError) as e:
        gui_logger.error('Cannot start: %s', e)
        return 1

    print("\n" + "="*60)
    print("🎮 Gamers Cove is starting...")
    print("="*60)
    print("\nOpen your browser and go to:")
    print(f"  http://127.0.0.1:{args.port}")
    print("\nPress Ctrl+C to stop the server")
    print("="*60 + "\n")

    try:
        app.run(host='127.0.0.1', port=args.port, debug=False)
    except KeyboardInterrupt:
        print("\n🛑 Gamers Cove stopped\n")
    finally:
        if services is not None:
            services.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
