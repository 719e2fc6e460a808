"""
Request/response client for the hosted backend.

Tables are reached through the PostgREST endpoint (/rest/v1), images through
object storage (/storage/v1), sessions through the auth endpoint (/auth/v1)
and side-effect functions through /functions/v1.

Filters use Django-style lookups so call sites read like queryset filters:

    backend.select('parts', filters={'category_id': cat_id, 'is_featured': True})
    backend.select('parts', filters={'id__in': ids}, order='name')
    backend.select('scooter_models', filters={'name__ilike_any': ['%xiao%']}, limit=4)
"""
import logging
from urllib.parse import quote, urlencode

import requests
from django.conf import settings

from .exceptions import BackendError

logger = logging.getLogger(__name__)

LOOKUP_SEPARATOR = '__'
SIMPLE_OPERATORS = {
    'eq': 'eq',
    'neq': 'neq',
    'gt': 'gt',
    'gte': 'gte',
    'lt': 'lt',
    'lte': 'lte',
    'ilike': 'ilike',
}


def _format_value(value):
    if value is True:
        return 'true'
    if value is False:
        return 'false'
    return str(value)


def _quote_in_value(value):
    text = _format_value(value).replace('"', '\\"')
    return f'"{text}"'


def split_lookup(key):
    """'name__ilike' -> ('name', 'ilike'); 'name' -> ('name', 'eq')"""
    if LOOKUP_SEPARATOR in key:
        column, lookup = key.rsplit(LOOKUP_SEPARATOR, 1)
        return column, lookup
    return key, 'eq'


def build_filter_params(filters):
    """Translate Django-style lookups into PostgREST query parameters"""
    params = []
    for key, value in (filters or {}).items():
        column, lookup = split_lookup(key)
        if lookup == 'in':
            values = ','.join(_quote_in_value(v) for v in value)
            params.append((column, f'in.({values})'))
        elif lookup == 'isnull':
            params.append((column, 'is.null' if value else 'not.is.null'))
        elif lookup == 'ilike_any':
            clauses = ','.join(f'{column}.ilike.{pattern}' for pattern in value)
            params.append(('or', f'({clauses})'))
        elif lookup in SIMPLE_OPERATORS:
            if lookup == 'eq' and value is None:
                params.append((column, 'is.null'))
            else:
                params.append((column, f'{SIMPLE_OPERATORS[lookup]}.{_format_value(value)}'))
        else:
            raise ValueError(f"Unsupported lookup '{lookup}' in filter '{key}'")
    return params


def build_order_param(order):
    """'-added_at' -> 'added_at.desc'; accepts a string or a list of strings"""
    if not order:
        return None
    if isinstance(order, str):
        order = [order]
    parts = []
    for field in order:
        if field.startswith('-'):
            parts.append(f'{field[1:]}.desc')
        else:
            parts.append(f'{field}.asc')
    return ','.join(parts)


class BackendClient:
    """Typed query/mutation interface to the hosted backend"""

    def __init__(self, url, api_key, timeout=None, session=None):
        self.url = url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout or getattr(settings, 'BACKEND_TIMEOUT', 10)
        self.session = session or requests.Session()
        self.access_token = None

    # ------------------------------------------------------------------ utils

    def set_access_token(self, token):
        """Run subsequent requests on behalf of a signed-in user"""
        self.access_token = token

    def _headers(self, extra=None):
        headers = {
            'apikey': self.api_key,
            'Authorization': f'Bearer {self.access_token or self.api_key}',
            'Content-Type': 'application/json',
        }
        if extra:
            headers.update(extra)
        return headers

    def _request(self, method, path, params=None, json=None, data=None, headers=None):
        url = f'{self.url}{path}'
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json,
                data=data,
                headers=self._headers(headers),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Backend request failed: {method} {path}: {str(e)}")
            raise BackendError(f'Erreur réseau: {str(e)}') from e

        if response.status_code >= 400:
            error = BackendError.from_response(response)
            logger.error(f"Backend error {response.status_code} on {method} {path}: {error.message}")
            raise error

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise BackendError('Réponse invalide du serveur', status_code=response.status_code) from e

    # ----------------------------------------------------------------- tables

    def select(self, table, columns='*', filters=None, order=None, limit=None):
        """Return the rows of `table` matching `filters`"""
        params = [('select', columns)]
        params.extend(build_filter_params(filters))
        order_param = build_order_param(order)
        if order_param:
            params.append(('order', order_param))
        if limit:
            params.append(('limit', str(limit)))
        return self._request('GET', f'/rest/v1/{table}', params=params) or []

    def select_one(self, table, columns='*', filters=None, order=None):
        """Return the first matching row or None"""
        rows = self.select(table, columns=columns, filters=filters, order=order, limit=1)
        return rows[0] if rows else None

    def insert(self, table, rows):
        """Insert one row (dict) or many (list); returns the created rows"""
        return self._request(
            'POST',
            f'/rest/v1/{table}',
            json=rows,
            headers={'Prefer': 'return=representation'},
        ) or []

    def update(self, table, values, filters):
        """Update matching rows; returns the updated rows"""
        if not filters:
            raise ValueError('update() requires at least one filter')
        return self._request(
            'PATCH',
            f'/rest/v1/{table}',
            params=build_filter_params(filters),
            json=values,
            headers={'Prefer': 'return=representation'},
        ) or []

    def delete(self, table, filters):
        if not filters:
            raise ValueError('delete() requires at least one filter')
        self._request('DELETE', f'/rest/v1/{table}', params=build_filter_params(filters))

    # ---------------------------------------------------------------- storage

    def upload(self, bucket, path, content, content_type='application/octet-stream', upsert=True):
        """Upload a file to object storage and return its storage key"""
        self._request(
            'POST',
            f'/storage/v1/object/{bucket}/{quote(path)}',
            data=content,
            headers={
                'Content-Type': content_type,
                'x-upsert': 'true' if upsert else 'false',
            },
        )
        return f'{bucket}/{path}'

    def public_url(self, bucket, path):
        return f'{self.url}/storage/v1/object/public/{bucket}/{quote(path)}'

    # ------------------------------------------------------------------- auth

    def sign_in_with_password(self, email, password):
        """Return the session payload (access_token, refresh_token, user)"""
        return self._request(
            'POST',
            '/auth/v1/token',
            params={'grant_type': 'password'},
            json={'email': email, 'password': password},
        )

    def sign_up(self, email, password, data=None, redirect_to=None):
        params = {'redirect_to': redirect_to} if redirect_to else None
        return self._request(
            'POST',
            '/auth/v1/signup',
            params=params,
            json={'email': email, 'password': password, 'data': data or {}},
        )

    def get_user(self, access_token):
        previous = self.access_token
        self.access_token = access_token
        try:
            return self._request('GET', '/auth/v1/user')
        finally:
            self.access_token = previous

    def sign_out(self):
        if self.access_token:
            self._request('POST', '/auth/v1/logout')
        self.access_token = None

    def oauth_authorize_url(self, provider, redirect_to):
        query = urlencode({'provider': provider, 'redirect_to': redirect_to})
        return f'{self.url}/auth/v1/authorize?{query}'

    # -------------------------------------------------------------- functions

    def function_url(self, name):
        return f'{self.url}/functions/v1/{name}'

    def function_headers(self):
        return self._headers()


def get_backend_client(service_role=False):
    """Build a client from settings; the service role bypasses row policies"""
    api_key = settings.SUPABASE_SERVICE_ROLE_KEY if service_role else settings.SUPABASE_ANON_KEY
    return BackendClient(settings.SUPABASE_URL, api_key, timeout=settings.BACKEND_TIMEOUT)
