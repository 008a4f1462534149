#!/usr/bin/env python3
"""
Tests for the Flask pages in gamerscove_gui.py.

Run with:
    python -m pytest tests/test_gui.py
"""
import json
import os
import sys
import unittest
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import gamerscove
import gamerscove_gui
from app.repositories import SessionRepository
from identity_provider import StaticIdentityProvider
from tests.helpers import make_response, make_session

ACCOUNTS = {
    'link@hyrule.test': {'uid': 'uid-link', 'password': 'triforce', 'display_name': 'Link'},
}
CATALOG = [
    {'id': 1, 'title': 'The Legend of Zelda', 'description': 'Explore Hyrule', 'genres': ['Adventure']},
    {'id': 2, 'title': 'Pong', 'description': 'Paddles', 'genres': ['Sports']},
]
REVIEWS = [
    {'id': 11, 'user': {'id': 'uid-link', 'username': 'link'}, 'rating': 5, 'content': 'Mine'},
    {'id': 12, 'user': {'id': 7, 'username': 'zelda'}, 'rating': 3, 'content': 'Theirs'},
]


class GuiTestCase(unittest.TestCase):
    """Real services over fake HTTP sessions and the static provider."""

    def setUp(self):
        config = dict(gamerscove.DEFAULT_CONFIG, api_base_url='http://backend.test/api')
        self.store = SessionRepository(None)
        self.provider = StaticIdentityProvider(ACCOUNTS)
        self.svc = gamerscove.Services(config, provider=self.provider, store=self.store)
        self.svc.public_client._session = MagicMock()
        self.svc.auth_client._session = MagicMock()
        self.svc.start()
        self._patch = patch.object(gamerscove_gui, 'services', self.svc)
        self._patch.start()
        gamerscove_gui.app.config['TESTING'] = True
        self.client = gamerscove_gui.app.test_client()

    def tearDown(self):
        self._patch.stop()
        self.svc.close()

    def public_returns(self, *responses):
        self.svc.public_client._session = make_session(*responses)
        return self.svc.public_client._session

    def auth_returns(self, *responses):
        self.svc.auth_client._session = make_session(*responses)
        return self.svc.auth_client._session

    def sign_in_with_username(self):
        """Sign Link in with a username already chosen on this machine."""
        self.store.cache_username('uid-link', 'link')
        self.public_returns(make_response(200, {'token': 'jwt', 'needsUsername': True}))
        self.svc.auth.sign_in(email='link@hyrule.test', password='triforce')


class TestCatalogPages(GuiTestCase):

    def test_index_redirects_to_games(self):
        resp = self.client.get('/')
        self.assertEqual(resp.status_code, 302)
        self.assertTrue(resp.headers['Location'].endswith('/games'))

    def test_games_lists_catalog(self):
        self.public_returns(make_response(200, CATALOG))
        resp = self.client.get('/games')
        self.assertEqual(resp.status_code, 200)
        self.assertIn(b'The Legend of Zelda', resp.data)
        self.assertIn(b'Pong', resp.data)

    def test_games_client_side_search(self):
        session = self.public_returns(make_response(200, CATALOG))
        resp = self.client.get('/games?q=zelda')
        self.assertIn(b'The Legend of Zelda', resp.data)
        self.assertNotIn(b'Pong', resp.data)
        self.assertEqual(session.request.call_args.kwargs['params'], {})

    def test_games_backend_down_shows_empty_state(self):
        self.public_returns(make_response(500, {}, reason='Server Error'))
        resp = self.client.get('/games')
        self.assertEqual(resp.status_code, 200)
        self.assertIn(b'No games found', resp.data)

    def test_unknown_route_renders_404(self):
        resp = self.client.get('/nowhere')
        self.assertEqual(resp.status_code, 404)
        self.assertIn(b'Return to Home', resp.data)

    def test_missing_game_is_404(self):
        self.public_returns(make_response(404, {'message': 'Game not found'}, reason='Not Found'))
        self.assertEqual(self.client.get('/games/99').status_code, 404)


class TestGameDetail(GuiTestCase):

    def test_shows_reviews_with_ownership_labels(self):
        self.public_returns(
            make_response(200, {'token': 'jwt', 'needsUsername': True}),
            make_response(200, CATALOG[0]),
        )
        self.provider.sign_in(email='link@hyrule.test', password='triforce')
        self.auth_returns(make_response(200, REVIEWS))
        resp = self.client.get('/games/1')
        self.assertEqual(resp.status_code, 200)
        self.assertIn(b'Your Review', resp.data)
        self.assertIn(b'Review #2', resp.data)
        self.assertIn(b'Theirs', resp.data)

    def test_anonymous_viewer_sees_sign_in_prompt(self):
        self.public_returns(make_response(200, CATALOG[0]))
        self.auth_returns(make_response(200, []))
        resp = self.client.get('/games/1')
        self.assertIn(b'to write a review', resp.data)
        self.assertNotIn(b'review-form', resp.data)

    def test_composer_submit_starts_disabled(self):
        self.sign_in_with_username()
        self.public_returns(make_response(200, CATALOG[0]))
        self.auth_returns(make_response(200, []))
        resp = self.client.get('/games/1')
        self.assertIn(b'id="review-submit" disabled', resp.data)

    def test_reviews_error_rendered_inline(self):
        self.public_returns(make_response(200, CATALOG[0]))
        self.auth_returns(make_response(500, {}, reason='Internal Server Error'))
        resp = self.client.get('/games/1')
        self.assertEqual(resp.status_code, 200)
        self.assertIn(b'HTTP 500: Internal Server Error', resp.data)

    def test_expired_token_still_renders(self):
        self.store.set_token('expired')
        self.public_returns(make_response(200, CATALOG[0]))
        self.auth_returns(make_response(401, {}, reason='Unauthorized'))
        resp = self.client.get('/games/1')
        self.assertEqual(resp.status_code, 200)
        self.assertIn(b'No reviews yet', resp.data)
        self.assertIsNone(self.store.get_token())


class TestReviewSubmission(GuiTestCase):

    def setUp(self):
        super().setUp()
        self.sign_in_with_username()

    def test_empty_comment_never_posts(self):
        session = self.auth_returns(make_response(201, REVIEWS[0]))
        resp = self.client.post('/games/1/reviews', data={'rating': '5', 'comment': '  '})
        self.assertEqual(resp.status_code, 302)
        session.request.assert_not_called()
        with self.client.session_transaction() as sess:
            messages = [m for _, m in sess.get('_flashes', [])]
        self.assertIn('Please write a comment', messages)

    def test_out_of_range_rating_never_posts(self):
        session = self.auth_returns(make_response(201, REVIEWS[0]))
        self.client.post('/games/1/reviews', data={'rating': '6', 'comment': 'Great'})
        session.request.assert_not_called()

    def test_valid_review_posts(self):
        session = self.auth_returns(make_response(201, REVIEWS[0]))
        resp = self.client.post('/games/1/reviews', data={'rating': '4', 'comment': 'Great'})
        self.assertTrue(resp.headers['Location'].endswith('/games/1'))
        self.assertEqual(session.request.call_args.kwargs['json'],
                         {'rating': 4, 'content': 'Great', 'isPublic': True})

    def test_signed_out_redirects_to_login(self):
        self.store.clear_token()
        session = self.auth_returns(make_response(201, REVIEWS[0]))
        resp = self.client.post('/games/1/reviews', data={'rating': '4', 'comment': 'Great'})
        self.assertTrue(resp.headers['Location'].endswith('/login'))
        session.request.assert_not_called()

    def test_token_without_identity_cannot_post(self):
        self.svc.provider.sign_out()
        self.store.set_token('jwt')
        session = self.auth_returns(make_response(201, REVIEWS[0]))
        resp = self.client.post('/games/1/reviews', data={'rating': '4', 'comment': 'Great'})
        self.assertTrue(resp.headers['Location'].endswith('/login'))
        session.request.assert_not_called()

    def test_pending_username_blocks_posting(self):
        self.store.clear('username_uid-link')
        self.public_returns(make_response(200, {'token': 'jwt', 'needsUsername': True}))
        self.svc.auth.sign_in(email='link@hyrule.test', password='triforce')
        session = self.auth_returns(make_response(201, REVIEWS[0]))
        resp = self.client.post('/games/1/reviews', data={'rating': '4', 'comment': 'Great'})
        self.assertTrue(resp.headers['Location'].endswith('/profile'))
        session.request.assert_not_called()


class TestLoginAndProfile(GuiTestCase):

    def test_login_page(self):
        resp = self.client.get('/login')
        self.assertEqual(resp.status_code, 200)
        self.assertIn(b'Sign in with Google', resp.data)

    def test_login_without_username_goes_to_profile(self):
        self.public_returns(make_response(200, {'token': 'jwt-new'}))
        self.auth_returns(make_response(200, {'id': 9}))
        resp = self.client.post('/login', data={'email': 'link@hyrule.test', 'password': 'triforce'})
        self.assertTrue(resp.headers['Location'].endswith('/profile'))
        self.assertEqual(self.store.get_token(), 'jwt-new')
        self.assertTrue(self.svc.auth.needs_username)

        page = self.client.get('/profile')
        self.assertIn(b'Choose a username', page.data)

    def test_username_form_resolves_profile(self):
        self.public_returns(make_response(200, {'token': 'jwt-new', 'needsUsername': True}))
        self.client.post('/login', data={'email': 'link@hyrule.test', 'password': 'triforce'})
        resp = self.client.post('/profile/username', data={'username': 'hero'}, follow_redirects=True)
        self.assertIn(b'hero', resp.data)
        self.assertFalse(self.svc.auth.needs_username)
        self.assertTrue(self.svc.auth.can_write)

    def test_bad_credentials(self):
        resp = self.client.post('/login', data={'email': 'link@hyrule.test', 'password': 'nope'})
        self.assertEqual(resp.status_code, 401)
        self.assertIn(b'Invalid email or password', resp.data)

    def test_backend_down_leaves_read_only_session(self):
        self.public_returns(make_response(503, {}, reason='Service Unavailable'))
        resp = self.client.post('/login', data={'email': 'link@hyrule.test', 'password': 'triforce'},
                                follow_redirects=True)
        self.assertIn(b'read-only', resp.data)
        self.assertIsNotNone(self.svc.auth.identity)
        self.assertFalse(self.svc.auth.is_authenticated)

    def test_profile_requires_identity(self):
        resp = self.client.get('/profile')
        self.assertTrue(resp.headers['Location'].endswith('/login'))

    def test_logout(self):
        self.public_returns(make_response(200, {'token': 'jwt-new', 'needsUsername': True}))
        self.client.post('/login', data={'email': 'link@hyrule.test', 'password': 'triforce'})
        self.client.post('/logout')
        self.assertIsNone(self.svc.auth.identity)
        self.assertIsNone(self.store.get_token())


class TestStatusApi(GuiTestCase):

    def test_status_snapshot(self):
        data = json.loads(self.client.get('/api/status').data)
        self.assertTrue(data['ready'])
        self.assertEqual(data['state'], 'signed_out')
        self.assertFalse(data['authenticated'])

    def test_status_without_services(self):
        with patch.object(gamerscove_gui, 'services', None):
            resp = self.client.get('/api/status')
        self.assertEqual(resp.status_code, 503)

    def test_pages_without_services(self):
        with patch.object(gamerscove_gui, 'services', None):
            self.assertEqual(self.client.get('/games').status_code, 503)


class TestReviewsPage(GuiTestCase):

    def test_select_game(self):
        self.public_returns(make_response(200, CATALOG))
        self.auth_returns(make_response(200, {'content': REVIEWS}))
        resp = self.client.get('/reviews?game=2')
        self.assertEqual(resp.status_code, 200)
        self.assertIn(b'Theirs', resp.data)
        self.assertIn(b'Open game page', resp.data)

    def test_no_selection(self):
        self.public_returns(make_response(200, CATALOG))
        resp = self.client.get('/reviews')
        self.assertIn(b'Select a game', resp.data)


if __name__ == '__main__':
    unittest.main()
