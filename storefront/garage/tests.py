"""
Test suite for the garage and favorites
Tests: membership, points crediting (and its non-atomic failure),
promote/demote round trip, details, custom photo upload and favorites toggle
"""
from django.test import SimpleTestCase

from storefront.accounts.auth import AuthContext
from storefront.catalog.queries import CatalogQueries
from storefront.core.exceptions import BackendError, NotAuthenticated, ValidationFailed
from storefront.core.test_utils import StorefrontTestCase
from storefront.garage.entries import GarageEntry, GarageStatus
from storefront.garage.favorites import Favorites
from storefront.garage.garage import Garage, PHOTO_BUCKET, points_for_new_entry


class GarageEntryTests(SimpleTestCase):

    def test_status_from_flag(self):
        self.assertIs(GarageStatus.from_flag(True), GarageStatus.OWNED)
        self.assertIs(GarageStatus.from_flag(None), GarageStatus.FAVORITED)

    def test_display_name_and_maintenance(self):
        entry = GarageEntry.from_row(
            {'id': 'e1', 'scooter_model_id': 's1', 'is_owned': True, 'current_km': 900, 'next_maintenance_km': 1000},
            scooter={'name': 'Mi Pro 2'},
        )
        self.assertEqual(entry.display_name, 'Mi Pro 2')
        self.assertEqual(entry.km_to_maintenance, 100)
        self.assertTrue(entry.is_owned)

    def test_points_for_new_entry(self):
        self.assertEqual(points_for_new_entry(False), 5)
        self.assertEqual(points_for_new_entry(True), 10)
        self.assertEqual(points_for_new_entry(False, 'Flash'), 100)


class GarageTests(StorefrontTestCase):

    def setUp(self):
        super().setUp()
        self.user = self.factory.create_user(email='rider@test.com')
        self.auth = AuthContext(self.backend, self.query_client, self.toaster)
        self.auth.sign_in('rider@test.com', 'testpass123')
        self.catalog = CatalogQueries(self.backend, self.query_client)
        self.garage = Garage(self.backend, self.query_client, self.auth, self.toaster, catalog=self.catalog)
        self.scooter = self.factory.create_scooter_model('Mi Pro 2')

    def _points(self):
        return self.backend.rows('profiles')[0]['performance_points']

    def test_add_favorited_credits_five_points(self):
        self.garage.add(self.scooter['id'], scooter_name='Mi Pro 2')
        self.assertEqual(self._points(), 5)
        self.assertEqual(self.auth.performance_points, 5)
        self.assertEqual(self.toaster.last.message, 'Mi Pro 2 ajoutée au garage')

    def test_add_owned_with_nickname_credits_hundred(self):
        self.garage.add(self.scooter['id'], is_owned=True, nickname='Flash')
        self.assertEqual(self._points(), 100)

    def test_membership_follows_mutations(self):
        self.assertFalse(self.garage.membership(self.scooter['id']).in_garage)
        entry = self.garage.add(self.scooter['id'], is_owned=True)
        membership = self.garage.membership(self.scooter['id'])
        self.assertTrue(membership.in_garage)
        self.assertTrue(membership.is_owned)
        self.assertEqual(self.garage.entries()[0].scooter['name'], 'Mi Pro 2')
        self.garage.remove(entry.id)
        self.assertFalse(self.garage.membership(self.scooter['id']).in_garage)

    def test_membership_survives_catalogue_failure(self):
        self.garage.add(self.scooter['id'], is_owned=True)
        self.query_client.invalidate('scooter-models', 'brands')
        self.backend.fail_on('select', 'brands')
        self.backend.fail_on('select', 'scooter_models')
        membership = self.garage.membership(self.scooter['id'])
        self.assertTrue(membership.in_garage)
        self.assertTrue(membership.is_owned)
        [entry] = self.garage.entries()
        self.assertIsNone(entry.scooter)
        self.assertEqual(entry.scooter_model_id, self.scooter['id'])

    def test_garage_list_is_cached(self):
        self.garage.entries()
        self.backend.reset_calls()
        self.garage.entries()
        self.assertEqual(self.backend.calls_for('select', 'user_garage'), [])

    def test_points_failure_keeps_garage_entry(self):
        self.backend.fail_on('update', 'profiles')
        self.garage.add(self.scooter['id'])
        self.assertEqual(len(self.backend.rows('user_garage')), 1)
        self.assertEqual(self._points(), 0)
        self.assertIsNone(self.toaster.last.description)

    def test_promote_then_demote_preserves_details(self):
        entry = self.garage.add(self.scooter['id'], nickname='Flash', current_km=1200)
        self.garage.promote(entry.id)
        self.assertTrue(self.garage.membership(self.scooter['id']).is_owned)
        self.assertEqual(self._points(), 105)
        self.garage.demote(entry.id)

        row = self.backend.rows('user_garage')[0]
        self.assertFalse(row['is_owned'])
        self.assertEqual(row['nickname'], 'Flash')
        self.assertEqual(row['current_km'], 1200)
        self.assertEqual(self._points(), 105)

    def test_toggle_flips_status(self):
        entry = self.garage.add(self.scooter['id'])
        toggled = self.garage.toggle(entry)
        self.assertIs(toggled.status, GarageStatus.OWNED)

    def test_insert_failure_raises_with_toast(self):
        self.backend.fail_on('insert', 'user_garage')
        with self.assertRaises(BackendError):
            self.garage.add(self.scooter['id'])
        self.assertEqual(self.toaster.last.message, "Erreur lors de l'ajout au garage")
        self.assertEqual(self._points(), 0)

    def test_anonymous_user_cannot_add(self):
        self.auth.sign_out()
        with self.assertRaises(NotAuthenticated):
            self.garage.add(self.scooter['id'])
        self.assertEqual(self.garage.entries(), [])

    def test_update_details(self):
        entry = self.garage.add(self.scooter['id'])
        updated = self.garage.update_details(entry.id, current_km=3400, last_maintenance_date='2026-03-01')
        self.assertEqual(updated.current_km, 3400)
        self.assertEqual(self.backend.rows('user_garage')[0]['last_maintenance_date'], '2026-03-01')

    def test_update_details_rejects_negative_mileage(self):
        entry = self.garage.add(self.scooter['id'])
        with self.assertRaises(ValidationFailed) as ctx:
            self.garage.update_details(entry.id, current_km=-5)
        self.assertIn('current_km', ctx.exception.errors)

    def test_upload_photo(self):
        entry = self.garage.add(self.scooter['id'])
        url = self.garage.upload_photo(entry.id, b'\x89PNG...', 'Photo.PNG', 'image/png')
        [key] = self.backend.storage.keys()
        self.assertRegex(key, rf"^{PHOTO_BUCKET}/{self.user['id']}/{entry.id}-\d+\.png$")
        self.assertEqual(self.backend.rows('user_garage')[0]['custom_photo_url'], url)

    def test_upload_photo_only_touches_own_entry(self):
        stranger = self.factory.create_user(email='stranger@test.com')
        foreign = self.factory.create_garage_entry(stranger, self.scooter)
        self.garage.upload_photo(foreign['id'], b'\x89PNG...', 'photo.png', 'image/png')
        row = next(r for r in self.backend.rows('user_garage') if r['id'] == foreign['id'])
        self.assertIsNone(row['custom_photo_url'])

    def test_upload_rejects_non_image(self):
        entry = self.garage.add(self.scooter['id'])
        with self.assertRaises(ValidationFailed):
            self.garage.upload_photo(entry.id, b'%PDF', 'doc.pdf', 'application/pdf')
        self.assertEqual(self.backend.calls_for('upload'), [])


class FavoritesTests(StorefrontTestCase):

    def setUp(self):
        super().setUp()
        self.factory.create_user(email='rider@test.com')
        self.auth = AuthContext(self.backend, self.query_client, self.toaster)
        self.favorites = Favorites(self.backend, self.query_client, self.auth, self.toaster)
        self.part = self.factory.create_part('Pneu 10')

    def test_anonymous_toggle_shows_info(self):
        self.assertIsNone(self.favorites.toggle(self.part['id']))
        self.assertEqual(self.toaster.last.message, 'Connectez-vous pour ajouter des favoris')
        self.assertEqual(self.backend.calls_for('insert', 'favorites'), [])

    def test_toggle_adds_then_removes(self):
        self.auth.sign_in('rider@test.com', 'testpass123')
        self.assertTrue(self.favorites.toggle(self.part['id'], 'Pneu 10'))
        self.assertTrue(self.favorites.is_favorite(self.part['id']))
        self.assertEqual(self.favorites.list()[0]['part']['name'], 'Pneu 10')
        self.assertFalse(self.favorites.toggle(self.part['id']))
        self.assertFalse(self.favorites.is_favorite(self.part['id']))
        self.assertEqual(self.toaster.last.message, 'Retiré des favoris')
