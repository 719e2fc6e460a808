"""
Authenticated-user context: session, profile and admin role.

One AuthContext lives in AppState; every hook that needs the current user
receives it explicitly.
"""
from django.conf import settings
import logging

from storefront.core.exceptions import AuthenticationFailed, BackendError

from .profile import ProfileService

logger = logging.getLogger(__name__)

USER_ROLES_TABLE = 'user_roles'
ADMIN_ROLE = 'admin'


class AuthContext:

    def __init__(self, backend, query_client, toaster, profiles=None):
        self.backend = backend
        self.query_client = query_client
        self.toaster = toaster
        self.profiles = profiles or ProfileService(backend, query_client)
        self.user = None
        self.session = None
        self.profile = None
        self.is_admin = False
        # True until the initial session check has finished
        self.loading = True

    @property
    def user_id(self):
        return self.user['id'] if self.user else None

    @property
    def is_authenticated(self):
        return self.user is not None

    def _apply_session(self, session):
        self.session = session
        self.user = (session or {}).get('user')
        self.backend.set_access_token((session or {}).get('access_token'))
        if self.user:
            self._load_profile()
        else:
            self.profile = None
            self.is_admin = False

    def _load_profile(self):
        try:
            self.profile = self.profiles.get(self.user_id)
        except BackendError as e:
            logger.error(f"Error fetching profile for {self.user_id}: {str(e)}")
            self.profile = None
        try:
            self.is_admin = self.backend.select_one(
                USER_ROLES_TABLE, filters={'user_id': self.user_id, 'role': ADMIN_ROLE}
            ) is not None
        except BackendError as e:
            logger.error(f"Error fetching roles for {self.user_id}: {str(e)}")
            self.is_admin = False

    def initialize(self, access_token=None):
        """Restore a stored session; loading ends only once the profile is known"""
        session = None
        if access_token:
            try:
                user = self.backend.get_user(access_token)
                session = {'access_token': access_token, 'user': user}
            except BackendError as e:
                logger.warning(f"Stored session rejected: {str(e)}")
        self._apply_session(session)
        self.loading = False
        return self.user

    def complete_oauth(self, access_token):
        """Called by the OAuth callback once the provider returned a token"""
        return self.initialize(access_token)

    def sign_in(self, email, password):
        try:
            session = self.backend.sign_in_with_password(email, password)
        except BackendError as e:
            logger.warning(f"Sign-in refused for {email}: {str(e)}")
            raise AuthenticationFailed(e.message, details=e.details) from e
        self._apply_session(session)
        self.loading = False
        return self.user

    def sign_up(self, email, password, display_name):
        """Create the account and credit the welcome bonus"""
        try:
            session = self.backend.sign_up(
                email,
                password,
                data={'display_name': display_name},
                redirect_to=f"{settings.SITE_URL}/",
            )
        except BackendError as e:
            logger.warning(f"Sign-up refused for {email}: {str(e)}")
            raise AuthenticationFailed(e.message, details=e.details) from e

        # Email confirmation may be pending: no session yet
        if not session or not session.get('access_token'):
            return (session or {}).get('user')

        self.backend.set_access_token(session['access_token'])
        user_id = session['user']['id']
        try:
            self.profiles.add_points(user_id, getattr(settings, 'SIGNUP_BONUS_POINTS', 100))
            if display_name:
                self.profiles.update_display_name(user_id, display_name)
        except BackendError as e:
            logger.error(f"Welcome bonus not credited for {user_id}: {str(e)}")
        self._apply_session(session)
        self.loading = False
        return self.user

    def google_sign_in_url(self):
        return self.backend.oauth_authorize_url('google', f"{settings.SITE_URL}/garage")

    def sign_out(self):
        try:
            self.backend.sign_out()
        except BackendError as e:
            logger.warning(f"Remote sign-out failed: {str(e)}")
        self._apply_session(None)

    def refresh_profile(self):
        if not self.user:
            return None
        self.query_client.invalidate('profile')
        self._load_profile()
        return self.profile

    @property
    def performance_points(self):
        return (self.profile or {}).get('performance_points') or 0
