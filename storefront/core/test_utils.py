"""
Test utilities and factories for creating test data
"""
from django.core.cache import caches
from django.test import SimpleTestCase
from decimal import Decimal
import copy
import random
import re
import string
import uuid

from storefront.core.backend_client import split_lookup
from storefront.core.exceptions import BackendError
from storefront.core.local_storage import LocalStorage
from storefront.core.notifications import Toaster
from storefront.core.query_cache import QueryClient


def _like_to_regex(pattern):
    parts = [re.escape(chunk) for chunk in str(pattern).split('%')]
    return re.compile('^' + '.*'.join(parts) + '$', re.IGNORECASE | re.DOTALL)


def _comparable(value):
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return Decimal(str(value))
    return value


def _matches(row, key, expected):
    column, lookup = split_lookup(key)
    value = row.get(column)
    if lookup == 'eq':
        if expected is None:
            return value is None
        return _comparable(value) == _comparable(expected)
    if lookup == 'neq':
        return _comparable(value) != _comparable(expected)
    if lookup == 'in':
        return _comparable(value) in [_comparable(v) for v in expected]
    if lookup == 'isnull':
        return (value is None) == bool(expected)
    if lookup == 'ilike':
        return value is not None and bool(_like_to_regex(expected).match(str(value)))
    if lookup == 'ilike_any':
        return value is not None and any(_like_to_regex(p).match(str(value)) for p in expected)
    if value is None:
        return False
    if lookup == 'gt':
        return _comparable(value) > _comparable(expected)
    if lookup == 'gte':
        return _comparable(value) >= _comparable(expected)
    if lookup == 'lt':
        return _comparable(value) < _comparable(expected)
    if lookup == 'lte':
        return _comparable(value) <= _comparable(expected)
    raise ValueError(f"Unsupported lookup '{lookup}' in filter '{key}'")


class InMemoryBackend:
    """
    Stand-in for BackendClient holding tables as lists of dicts.

    Every call is recorded in `calls` as (operation, table) so tests can assert
    on backend traffic. `fail_on('insert', 'order_items')` makes the next
    matching operations raise BackendError.
    """

    def __init__(self, url='http://backend.test'):
        self.url = url
        self.tables = {}
        self.storage = {}
        self.users = {}
        self.sessions = {}
        self.calls = []
        self.failures = {}
        self.access_token = None

    # ------------------------------------------------------------- test hooks

    def fail_on(self, operation, table, message='Erreur simulée', times=None):
        self.failures[(operation, table)] = {'message': message, 'times': times}

    def clear_failures(self):
        self.failures = {}

    def calls_for(self, operation=None, table=None):
        return [
            call for call in self.calls
            if (operation is None or call[0] == operation) and (table is None or call[1] == table)
        ]

    def reset_calls(self):
        self.calls = []

    def rows(self, table):
        return self.tables.setdefault(table, [])

    def seed(self, table, **values):
        row = dict(values)
        row.setdefault('id', str(uuid.uuid4()))
        self.rows(table).append(row)
        return copy.deepcopy(row)

    def _record(self, operation, table):
        self.calls.append((operation, table))
        failure = self.failures.get((operation, table))
        if failure is None:
            return
        if failure['times'] is not None:
            failure['times'] -= 1
            if failure['times'] <= 0:
                del self.failures[(operation, table)]
        raise BackendError(failure['message'], status_code=500)

    def _filter(self, table, filters):
        return [
            row for row in self.rows(table)
            if all(_matches(row, key, value) for key, value in (filters or {}).items())
        ]

    # ----------------------------------------------------------------- tables

    def set_access_token(self, token):
        self.access_token = token

    def select(self, table, columns='*', filters=None, order=None, limit=None):
        self._record('select', table)
        rows = self._filter(table, filters)
        if order:
            for field in reversed([order] if isinstance(order, str) else list(order)):
                reverse = field.startswith('-')
                name = field.lstrip('-')
                rows = sorted(
                    rows,
                    key=lambda r: (r.get(name) is None, _comparable(r.get(name)) if r.get(name) is not None else 0),
                    reverse=reverse,
                )
        if limit:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    def select_one(self, table, columns='*', filters=None, order=None):
        rows = self.select(table, columns=columns, filters=filters, order=order, limit=1)
        return rows[0] if rows else None

    def insert(self, table, rows):
        self._record('insert', table)
        many = isinstance(rows, list)
        created = []
        for values in (rows if many else [rows]):
            row = copy.deepcopy(values)
            row.setdefault('id', str(uuid.uuid4()))
            self.rows(table).append(row)
            created.append(copy.deepcopy(row))
        return created

    def update(self, table, values, filters):
        if not filters:
            raise ValueError('update() requires at least one filter')
        self._record('update', table)
        updated = []
        for row in self._filter(table, filters):
            row.update(copy.deepcopy(values))
            updated.append(copy.deepcopy(row))
        return updated

    def delete(self, table, filters):
        if not filters:
            raise ValueError('delete() requires at least one filter')
        self._record('delete', table)
        doomed = {id(row) for row in self._filter(table, filters)}
        self.tables[table] = [row for row in self.rows(table) if id(row) not in doomed]

    # ---------------------------------------------------------------- storage

    def upload(self, bucket, path, content, content_type='application/octet-stream', upsert=True):
        self._record('upload', bucket)
        self.storage[f'{bucket}/{path}'] = content
        return f'{bucket}/{path}'

    def public_url(self, bucket, path):
        return f'{self.url}/storage/v1/object/public/{bucket}/{path}'

    # ------------------------------------------------------------------- auth

    def add_user(self, email, password='testpass123', user_id=None, metadata=None):
        user = {
            'id': user_id or str(uuid.uuid4()),
            'email': email,
            'user_metadata': metadata or {},
        }
        self.users[email] = {'password': password, 'user': user}
        return copy.deepcopy(user)

    def _session_for(self, user):
        token = f'token-{uuid.uuid4().hex}'
        self.sessions[token] = user
        return {'access_token': token, 'refresh_token': f'refresh-{uuid.uuid4().hex}', 'user': copy.deepcopy(user)}

    def sign_in_with_password(self, email, password):
        self._record('sign_in', 'auth')
        account = self.users.get(email)
        if account is None or account['password'] != password:
            raise BackendError('Invalid login credentials', status_code=400, code='invalid_credentials')
        return self._session_for(account['user'])

    def sign_up(self, email, password, data=None, redirect_to=None):
        self._record('sign_up', 'auth')
        if email in self.users:
            raise BackendError('User already registered', status_code=422, code='user_already_exists')
        user = self.add_user(email, password, metadata=data)
        return self._session_for(user)

    def get_user(self, access_token):
        self._record('get_user', 'auth')
        user = self.sessions.get(access_token)
        if user is None:
            raise BackendError('Invalid JWT', status_code=401)
        return copy.deepcopy(user)

    def sign_out(self):
        self._record('sign_out', 'auth')
        self.sessions.pop(self.access_token, None)
        self.access_token = None

    def oauth_authorize_url(self, provider, redirect_to):
        return f'{self.url}/auth/v1/authorize?provider={provider}&redirect_to={redirect_to}'

    # -------------------------------------------------------------- functions

    def function_url(self, name):
        return f'{self.url}/functions/v1/{name}'

    def function_headers(self):
        return {'Authorization': 'Bearer test-anon-key', 'Content-Type': 'application/json'}


class TestDataFactory:
    """Factory class for creating backend rows"""

    def __init__(self, backend):
        self.backend = backend

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    def create_user(self, email=None, password='testpass123', display_name=None, points=0, is_admin=False):
        """Create an auth user with a profile row"""
        if not email:
            email = f'user_{self.random_string(6).lower()}@test.com'
        user = self.backend.add_user(email, password, metadata={'display_name': display_name})
        self.backend.seed('profiles', id=user['id'], display_name=display_name, performance_points=points)
        if is_admin:
            self.backend.seed('user_roles', user_id=user['id'], role='admin')
        return user

    def create_brand(self, name=None):
        name = name or f'Brand {self.random_string(4)}'
        return self.backend.seed('brands', name=name, slug=name.lower().replace(' ', '-'), logo_url=None)

    def create_category(self, name=None, slug=None, parent_id=None, display_order=0):
        name = name or f'Category {self.random_string(4)}'
        return self.backend.seed(
            'categories',
            name=name,
            slug=slug or name.lower().replace(' ', '-'),
            parent_id=parent_id,
            display_order=display_order,
        )

    def create_scooter_model(self, name=None, brand=None, **extra):
        name = name or f'Scooter {self.random_string(4)}'
        brand = brand or self.create_brand()
        values = {
            'name': name,
            'slug': name.lower().replace(' ', '-'),
            'brand_id': brand['id'],
            'voltage': 36,
            'amperage': 7.8,
            'power_watts': 250,
            'max_speed_kmh': 25,
            'range_km': 30,
            'tire_size': '8.5"',
            'image_url': None,
            'youtube_video_id': None,
        }
        values.update(extra)
        return self.backend.seed('scooter_models', **values)

    def create_part(self, name=None, price='19.99', stock=10, category=None, **extra):
        name = name or f'Part {self.random_string(4)}'
        values = {
            'name': name,
            'slug': name.lower().replace(' ', '-'),
            'category_id': category['id'] if category else None,
            'price': float(price),
            'stock_quantity': stock,
            'image_url': f'https://img.test/{self.random_string(6)}.jpg',
            'difficulty_level': 2,
            'estimated_install_time_minutes': 30,
            'required_tools': [],
            'technical_metadata': {},
            'is_featured': False,
            'youtube_video_id': None,
            'description': None,
        }
        values.update(extra)
        return self.backend.seed('parts', **values)

    def create_compatibility(self, part, scooter):
        return self.backend.seed('part_compatibility', part_id=part['id'], scooter_model_id=scooter['id'])

    def create_tutorial(self, title=None, scooter=None, **extra):
        title = title or f'Tutorial {self.random_string(4)}'
        values = {
            'title': title,
            'slug': title.lower().replace(' ', '-'),
            'difficulty': 2,
            'duration_minutes': 15,
            'scooter_model_id': scooter['id'] if scooter else None,
            'youtube_video_id': None,
        }
        values.update(extra)
        return self.backend.seed('tutorials', **values)

    def create_order(self, user=None, status='pending', total='107.98', **extra):
        values = {
            'order_number': f'PT-{self.random_string(8).upper()}',
            'user_id': user['id'] if user else None,
            'customer_email': user['email'] if user else 'guest@test.com',
            'customer_first_name': 'Jean',
            'customer_last_name': 'Dupont',
            'status': status,
            'subtotal_ht': 89.98,
            'tva_amount': 18.00,
            'total_ttc': float(total),
            'created_at': '2026-01-01T10:00:00+00:00',
        }
        values.update(extra)
        return self.backend.seed('orders', **values)

    def create_garage_entry(self, user, scooter, is_owned=False, **extra):
        values = {
            'user_id': user['id'],
            'scooter_model_id': scooter['id'],
            'is_owned': is_owned,
            'nickname': None,
            'custom_photo_url': None,
            'current_km': None,
            'next_maintenance_km': None,
            'last_maintenance_date': None,
            'added_at': '2026-01-01T10:00:00+00:00',
        }
        values.update(extra)
        return self.backend.seed('user_garage', **values)


def part_as_cart_input(part):
    """Shape a part row the way product cards hand it to the cart"""
    return {
        'id': part['id'],
        'name': part['name'],
        'price': part['price'],
        'image_url': part.get('image_url'),
        'stock_quantity': part.get('stock_quantity', 0),
    }


class StorefrontTestCase(SimpleTestCase):
    """Base test case: fresh caches, an in-memory backend and a toaster"""

    def setUp(self):
        caches['default'].clear()
        caches['local'].clear()
        self.backend = InMemoryBackend()
        self.factory = TestDataFactory(self.backend)
        self.query_client = QueryClient()
        self.toaster = Toaster()
        self.storage = LocalStorage(namespace=f'test-{TestDataFactory.random_string(6)}')
