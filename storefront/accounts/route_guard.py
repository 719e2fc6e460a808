"""Auth-gated navigation and the OAuth callback timeout"""
from django.conf import settings
import enum
import logging
import time

logger = logging.getLogger(__name__)

LOGIN_PATH = '/login'
PROTECTED_PREFIXES = ('/garage', '/admin')


class RouteDecision(enum.Enum):
    ALLOW = 'allow'
    LOADING = 'loading'
    REDIRECT_LOGIN = 'redirect_login'
    FORBIDDEN = 'forbidden'


def is_protected(path):
    return any(path == prefix or path.startswith(prefix + '/') for prefix in PROTECTED_PREFIXES)


def guard_route(auth, path, require_admin=False):
    """Loading -> wait; no user -> login; admin pages also need the admin role"""
    if not is_protected(path) and not require_admin:
        return RouteDecision.ALLOW
    if auth.loading:
        return RouteDecision.LOADING
    if not auth.is_authenticated:
        return RouteDecision.REDIRECT_LOGIN
    if (require_admin or path.startswith('/admin')) and not auth.is_admin:
        return RouteDecision.FORBIDDEN
    return RouteDecision.ALLOW


class OAuthCallbackGuard:
    """
    Watches the OAuth callback page.

    The provider redirect normally yields a session quickly; if no user has
    appeared after `timeout` seconds the page gives up and sends the visitor
    back to the login page instead of spinning forever.
    """

    def __init__(self, auth, timeout=None, clock=time.monotonic):
        self.auth = auth
        self.timeout = timeout if timeout is not None else getattr(settings, 'OAUTH_CALLBACK_TIMEOUT', 10)
        self.clock = clock
        self.started_at = clock()

    def poll(self):
        """Return (decision, redirect path or None)"""
        if self.auth.is_authenticated:
            return RouteDecision.ALLOW, '/garage'
        if self.clock() - self.started_at >= self.timeout:
            logger.warning(f"OAuth callback timed out after {self.timeout}s, redirecting to login")
            return RouteDecision.REDIRECT_LOGIN, LOGIN_PATH
        return RouteDecision.LOADING, None
