"""
Test suite for accounts
Tests: sign-in/up, welcome bonus, session restore, admin role, route guard,
OAuth callback timeout and performance levels
"""
from django.test import SimpleTestCase

from storefront.accounts.auth import AuthContext
from storefront.accounts.profile import ProfileService, performance_level, points_to_next_step
from storefront.accounts.route_guard import OAuthCallbackGuard, RouteDecision, guard_route
from storefront.core.exceptions import AuthenticationFailed, BackendError, NotAuthenticated
from storefront.core.test_utils import StorefrontTestCase


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class AuthContextTests(StorefrontTestCase):

    def setUp(self):
        super().setUp()
        self.auth = AuthContext(self.backend, self.query_client, self.toaster)

    def test_starts_loading_without_user(self):
        self.assertTrue(self.auth.loading)
        self.assertFalse(self.auth.is_authenticated)

    def test_sign_in_loads_profile(self):
        user = self.factory.create_user(email='rider@test.com', display_name='Rider', points=40)
        self.auth.sign_in('rider@test.com', 'testpass123')
        self.assertEqual(self.auth.user_id, user['id'])
        self.assertEqual(self.auth.profile['display_name'], 'Rider')
        self.assertEqual(self.auth.performance_points, 40)
        self.assertFalse(self.auth.is_admin)
        self.assertFalse(self.auth.loading)

    def test_wrong_password_raises(self):
        self.factory.create_user(email='rider@test.com')
        with self.assertRaises(AuthenticationFailed):
            self.auth.sign_in('rider@test.com', 'nope')
        self.assertFalse(self.auth.is_authenticated)

    def test_admin_role_detected(self):
        self.factory.create_user(email='boss@test.com', is_admin=True)
        self.auth.sign_in('boss@test.com', 'testpass123')
        self.assertTrue(self.auth.is_admin)

    def test_sign_up_credits_welcome_bonus(self):
        self.auth.sign_up('new@test.com', 'secret123', 'Nouveau')
        self.assertTrue(self.auth.is_authenticated)
        self.assertEqual(self.auth.performance_points, 100)
        self.assertEqual(self.auth.profile['display_name'], 'Nouveau')

    def test_sign_up_duplicate_email_raises(self):
        self.factory.create_user(email='taken@test.com')
        with self.assertRaises(AuthenticationFailed):
            self.auth.sign_up('taken@test.com', 'secret123', 'Dup')

    def test_initialize_restores_session(self):
        self.factory.create_user(email='rider@test.com')
        session = self.backend.sign_in_with_password('rider@test.com', 'testpass123')
        self.auth.initialize(session['access_token'])
        self.assertTrue(self.auth.is_authenticated)
        self.assertFalse(self.auth.loading)

    def test_initialize_with_invalid_token_ends_anonymous(self):
        self.auth.initialize('expired-token')
        self.assertFalse(self.auth.is_authenticated)
        self.assertFalse(self.auth.loading)

    def test_sign_out_clears_state(self):
        self.factory.create_user(email='rider@test.com')
        self.auth.sign_in('rider@test.com', 'testpass123')
        self.auth.sign_out()
        self.assertIsNone(self.auth.user)
        self.assertIsNone(self.auth.profile)
        self.assertIsNone(self.backend.access_token)

    def test_google_url_redirects_to_garage(self):
        url = self.auth.google_sign_in_url()
        self.assertIn('provider=google', url)
        self.assertIn('redirect_to=http://shop.test/garage', url)

    def test_refresh_profile_rereads_points(self):
        user = self.factory.create_user(email='rider@test.com', points=10)
        self.auth.sign_in('rider@test.com', 'testpass123')
        self.auth.profiles.add_points(user['id'], 5)
        self.assertEqual(self.auth.refresh_profile()['performance_points'], 15)


class ProfileServiceTests(StorefrontTestCase):

    def setUp(self):
        super().setUp()
        self.profiles = ProfileService(self.backend, self.query_client)

    def test_add_points_creates_missing_profile(self):
        balance = self.profiles.add_points('ghost-user', 10)
        self.assertEqual(balance, 10)
        self.assertEqual(self.backend.rows('profiles')[0]['id'], 'ghost-user')

    def test_add_points_increments(self):
        user = self.factory.create_user(points=95)
        self.assertEqual(self.profiles.add_points(user['id'], 5), 100)

    def test_add_points_requires_user(self):
        with self.assertRaises(NotAuthenticated):
            self.profiles.add_points(None, 5)

    def test_write_failure_propagates(self):
        user = self.factory.create_user()
        self.backend.fail_on('update', 'profiles')
        with self.assertRaises(BackendError):
            self.profiles.add_points(user['id'], 5)


class PerformanceLevelTests(SimpleTestCase):

    def test_levels(self):
        self.assertEqual(performance_level(0), 'DÉBUTANT')
        self.assertEqual(performance_level(100), 'INTERMÉDIAIRE')
        self.assertEqual(performance_level(500), 'AVANCÉ')
        self.assertEqual(performance_level(1200), 'EXPERT')
        self.assertEqual(performance_level(None), 'DÉBUTANT')

    def test_points_to_next_step(self):
        self.assertEqual(points_to_next_step(120), 380)
        self.assertEqual(points_to_next_step(0), 500)


class RouteGuardTests(StorefrontTestCase):

    def setUp(self):
        super().setUp()
        self.auth = AuthContext(self.backend, self.query_client, self.toaster)

    def test_public_paths_allowed(self):
        self.assertEqual(guard_route(self.auth, '/catalogue'), RouteDecision.ALLOW)

    def test_loading_waits(self):
        self.assertEqual(guard_route(self.auth, '/garage'), RouteDecision.LOADING)

    def test_anonymous_redirected_to_login(self):
        self.auth.initialize(None)
        self.assertEqual(guard_route(self.auth, '/garage'), RouteDecision.REDIRECT_LOGIN)

    def test_signed_in_allowed(self):
        self.factory.create_user(email='rider@test.com')
        self.auth.sign_in('rider@test.com', 'testpass123')
        self.assertEqual(guard_route(self.auth, '/garage'), RouteDecision.ALLOW)
        self.assertEqual(guard_route(self.auth, '/admin'), RouteDecision.FORBIDDEN)


class OAuthCallbackGuardTests(StorefrontTestCase):

    def setUp(self):
        super().setUp()
        self.auth = AuthContext(self.backend, self.query_client, self.toaster)
        self.clock = FakeClock()
        self.guard = OAuthCallbackGuard(self.auth, clock=self.clock)

    def test_waits_before_timeout(self):
        self.clock.now = 9.5
        self.assertEqual(self.guard.poll(), (RouteDecision.LOADING, None))

    def test_forces_login_after_ten_seconds(self):
        self.clock.now = 10
        self.assertEqual(self.guard.poll(), (RouteDecision.REDIRECT_LOGIN, '/login'))

    def test_user_arrival_goes_to_garage(self):
        self.factory.create_user(email='g@test.com')
        session = self.backend.sign_in_with_password('g@test.com', 'testpass123')
        self.auth.complete_oauth(session['access_token'])
        self.clock.now = 30
        self.assertEqual(self.guard.poll(), (RouteDecision.ALLOW, '/garage'))
