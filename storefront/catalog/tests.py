"""
Comprehensive test suite for the catalogue
Tests: cached queries, compatibility graph and check, unified search and
history, spotlight, CSV import/export and the management commands
"""
from django.core.management import call_command
from django.test import SimpleTestCase
from io import StringIO
from unittest import mock
import os
import tempfile

from storefront.catalog.compatibility import CompatibilityChecker, ScooterSelection, SELECTED_SCOOTER_KEY
from storefront.catalog.exporter import EXPORT_HEADERS, export_parts_csv
from storefront.catalog.importer import PartsImporter, read_csv_rows
from storefront.catalog.queries import CatalogQueries
from storefront.catalog.search import (
    QUICK_ACTIONS,
    SearchHistory,
    Spotlight,
    UnifiedSearch,
    fuzzy_variants,
    parse_query,
)
from storefront.core.cache_signals import catalog_changed
from storefront.core.exceptions import ImportFileError
from storefront.core.test_utils import StorefrontTestCase


class CatalogQueriesTests(StorefrontTestCase):

    def setUp(self):
        super().setUp()
        self.catalog = CatalogQueries(self.backend, self.query_client)
        self.brand = self.factory.create_brand('Xiaomi')
        self.scooter = self.factory.create_scooter_model('Mi Pro 2', brand=self.brand)
        self.other_scooter = self.factory.create_scooter_model('Ninebot G30')
        self.tires = self.factory.create_category('Pneus')
        self.tire = self.factory.create_part('Pneu 10', category=self.tires, is_featured=True)
        self.brake = self.factory.create_part('Plaquettes', category=self.tires)
        self.factory.create_compatibility(self.tire, self.scooter)

    def test_parts_carry_category_name(self):
        parts = self.catalog.parts()
        self.assertEqual([p['name'] for p in parts], ['Plaquettes', 'Pneu 10'])
        self.assertEqual(parts[0]['category_name'], 'Pneus')

    def test_repeated_reads_are_cached(self):
        self.catalog.parts()
        self.backend.reset_calls()
        self.catalog.parts()
        self.assertEqual(self.backend.calls_for('select', 'parts'), [])

    def test_featured_parts(self):
        self.assertEqual([p['slug'] for p in self.catalog.featured_parts()], ['pneu-10'])

    def test_part_by_slug(self):
        self.assertEqual(self.catalog.part_by_slug('pneu-10')['id'], self.tire['id'])
        self.assertIsNone(self.catalog.part_by_slug('missing'))

    def test_scooter_models_by_brand(self):
        models = self.catalog.scooter_models(brand_slug='xiaomi')
        self.assertEqual([m['name'] for m in models], ['Mi Pro 2'])
        self.assertEqual(models[0]['brand_name'], 'Xiaomi')
        self.assertEqual(self.catalog.scooter_models(brand_slug='unknown'), [])

    def test_compatible_parts_and_count(self):
        self.assertEqual([p['id'] for p in self.catalog.compatible_parts(self.scooter['id'])], [self.tire['id']])
        self.assertEqual(self.catalog.compatible_parts_count(self.scooter['id']), 1)
        self.assertEqual(self.catalog.compatible_parts(self.other_scooter['id']), [])
        self.assertEqual(self.catalog.compatible_parts_count(None), 0)

    def test_compatible_scooters(self):
        scooters = self.catalog.compatible_scooters(self.tire['id'])
        self.assertEqual([s['name'] for s in scooters], ['Mi Pro 2'])

    def test_category_parts_count_rolls_up_children(self):
        inner = self.factory.create_category('Chambres', parent_id=self.tires['id'])
        self.factory.create_part('Chambre à air', category=inner)
        counts = {c['name']: c['parts_count'] for c in self.catalog.category_parts_count()}
        self.assertEqual(counts, {'Pneus': 3})

    def test_tutorial_for_scooter_falls_back_to_generic(self):
        generic = self.factory.create_tutorial('Entretien général')
        self.assertEqual(self.catalog.tutorial_for_scooter(self.scooter['id'])['id'], generic['id'])
        specific = self.factory.create_tutorial('Changer le pneu', scooter=self.other_scooter)
        self.assertEqual(self.catalog.tutorial_for_scooter(self.other_scooter['id'])['id'], specific['id'])


class CompatibilityCheckTests(StorefrontTestCase):

    def setUp(self):
        super().setUp()
        self.catalog = CatalogQueries(self.backend, self.query_client)
        self.selection = ScooterSelection(self.storage)
        self.checker = CompatibilityChecker(self.catalog, self.selection)
        self.scooter = self.factory.create_scooter_model('Mi Pro 2')
        self.part = self.factory.create_part('Pneu 10')

    def test_idle_without_selected_scooter(self):
        result = self.checker.check(self.part['id'])
        self.assertTrue(result.is_idle)
        self.assertEqual(self.backend.calls_for('select', 'part_compatibility'), [])

    def test_not_compatible(self):
        self.selection.select(self.scooter)
        result = self.checker.check(self.part['id'])
        self.assertTrue(result.is_success)
        self.assertFalse(result.data)

    def test_compatible(self):
        self.factory.create_compatibility(self.part, self.scooter)
        self.selection.select(self.scooter)
        self.assertTrue(self.checker.check(self.part['id']).data)

    def test_lookup_failure_is_an_error_not_false(self):
        self.selection.select(self.scooter)
        self.backend.fail_on('select', 'part_compatibility')
        result = self.checker.check(self.part['id'])
        self.assertTrue(result.is_error)
        self.assertIsNone(result.data)

    def test_selection_persists(self):
        self.selection.select(dict(self.scooter, brand_name='Xiaomi'))
        restored = ScooterSelection(self.storage)
        self.assertEqual(restored.scooter_id, self.scooter['id'])
        self.assertEqual(restored.selected['brand_name'], 'Xiaomi')
        restored.clear()
        self.assertIsNone(ScooterSelection(self.storage).selected)

    def test_corrupt_selection_ignored(self):
        self.storage.set_raw(SELECTED_SCOOTER_KEY, 'not-json{')
        self.assertIsNone(ScooterSelection(self.storage).selected)


class QueryParsingTests(SimpleTestCase):

    def test_prefixes(self):
        self.assertEqual(parse_query('p:pneu'), ('parts', 'pneu'))
        self.assertEqual(parse_query('piece: frein '), ('parts', 'frein'))
        self.assertEqual(parse_query('T:crevaison'), ('tutorials', 'crevaison'))
        self.assertEqual(parse_query('model:g30'), ('scooters', 'g30'))
        self.assertEqual(parse_query('pneu'), (None, 'pneu'))

    def test_fuzzy_variants(self):
        self.assertEqual(fuzzy_variants('Pneu'), ['pneu', 'pnneu', 'pnéu'])

    def test_fuzzy_variants_capped(self):
        variants = fuzzy_variants('Trottinette')
        self.assertEqual(variants[0], 'trottinette')
        self.assertEqual(len(variants), 4)


class UnifiedSearchTests(StorefrontTestCase):

    def setUp(self):
        super().setUp()
        self.catalog = CatalogQueries(self.backend, self.query_client)
        self.search = UnifiedSearch(self.backend, self.query_client, self.catalog)
        brand = self.factory.create_brand('Xiaomi')
        self.scooter = self.factory.create_scooter_model('Xiaomi Pro 2', brand=brand)
        category = self.factory.create_category('Pneus')
        self.factory.create_part('Pneu Xiaomi 8.5', category=category, price='24.90')
        self.factory.create_tutorial('Réparer un pneu Xiaomi', scooter=self.scooter)
        self.backend.reset_calls()

    def test_single_character_makes_no_backend_call(self):
        results = self.search.search('x')
        self.assertTrue(results.is_empty)
        self.assertEqual(self.backend.calls, [])

    def test_prefixed_single_character_makes_no_backend_call(self):
        self.search.search('p:x')
        self.assertEqual(self.backend.calls, [])

    def test_two_characters_query_backend(self):
        self.search.search('xi')
        self.assertTrue(self.backend.calls_for('select', 'parts'))

    def test_groups_in_fixed_order(self):
        results = self.search.search('xiaomi')
        self.assertEqual([name for name, _ in results.groups()], ['scooters', 'parts', 'tutorials'])
        self.assertEqual(results.scooters[0]['brand_name'], 'Xiaomi')
        self.assertEqual(results.parts[0]['category'], 'Pneus')
        self.assertEqual(results.tutorials[0]['scooter_name'], 'Xiaomi Pro 2')

    def test_prefix_limits_to_one_group(self):
        results = self.search.search('p:xiaomi')
        self.assertEqual(results.active_filter, 'parts')
        self.assertEqual(results.scooters, [])
        self.assertEqual(len(results.parts), 1)
        self.assertEqual(self.backend.calls_for('select', 'scooter_models'), [])

    def test_fuzzy_match(self):
        results = self.search.search('xiaommi')
        self.assertEqual(len(results.parts), 0)
        results = self.search.search('tuto:reparer')
        self.assertEqual(results.tutorials, [])
        results = self.search.search('tuto:réparer')
        self.assertEqual(len(results.tutorials), 1)

    def test_results_cached(self):
        self.search.search('xiaomi')
        self.backend.reset_calls()
        self.search.search('xiaomi')
        self.assertEqual(self.backend.calls, [])

    def test_limits(self):
        for i in range(6):
            self.factory.create_part(f'Pneu test {i}')
        results = self.search.search('p:pneu')
        self.assertEqual(len(results.parts), 4)

    def test_palette_for_short_input_shows_history_and_actions(self):
        history = SearchHistory(self.storage)
        history.add('part', 'pneu-xiaomi-8-5', 'Pneu Xiaomi 8.5')
        palette = self.search.palette('', history)
        self.assertEqual(len(palette['history']), 1)
        self.assertEqual([a['href'] for a in palette['quick_actions']],
                         ['/garage', '/tutos', '/catalogue', '/trottinettes'])
        self.assertIsNone(palette['results'])
        self.assertEqual(self.backend.calls, [])


class SearchHistoryTests(StorefrontTestCase):

    def test_most_recent_first_and_deduplicated(self):
        history = SearchHistory(self.storage)
        history.add('part', 'a', 'A')
        history.add('scooter', 'b', 'B')
        history.add('part', 'a', 'A again')
        self.assertEqual([h['slug'] for h in history.items], ['a', 'b'])
        self.assertEqual(history.items[0]['name'], 'A again')

    def test_same_slug_different_type_kept(self):
        history = SearchHistory(self.storage)
        history.add('part', 'g30', 'G30 part')
        history.add('scooter', 'g30', 'G30')
        self.assertEqual(len(history.items), 2)

    def test_capped_at_five_and_persisted(self):
        history = SearchHistory(self.storage)
        for i in range(7):
            history.add('part', f'slug-{i}', f'Part {i}')
        self.assertEqual(len(history.items), 5)
        self.assertEqual(history.items[0]['slug'], 'slug-6')
        self.assertEqual([h['slug'] for h in SearchHistory(self.storage).items],
                         [h['slug'] for h in history.items])

    def test_remove_and_clear(self):
        history = SearchHistory(self.storage)
        first = history.add('part', 'a', 'A')
        history.add('part', 'b', 'B')
        history.remove(first['id'])
        self.assertEqual([h['slug'] for h in history.items], ['b'])
        history.clear()
        self.assertEqual(SearchHistory(self.storage).items, [])


class SpotlightTests(SimpleTestCase):

    def test_open_close_toggle(self):
        spotlight = Spotlight()
        spotlight.toggle()
        self.assertTrue(spotlight.is_open)
        spotlight.close()
        self.assertFalse(spotlight.is_open)
        spotlight.open()
        self.assertTrue(spotlight.is_open)

    def test_shortcut_only_with_empty_query(self):
        spotlight = Spotlight()
        spotlight.open()
        self.assertIsNone(spotlight.shortcut('g', query='ga'))
        self.assertEqual(spotlight.shortcut('g'), '/garage')
        self.assertFalse(spotlight.is_open)

    def test_quick_actions(self):
        self.assertEqual(len(QUICK_ACTIONS), 4)


CSV_WITH_BAD_THIRD_ROW = (
    'Nom,Catégorie,Prix,Stock\n'
    'Pneu 10,Pneus,19.99,5\n'
    'Chambre à air,Pneus,"9,90",10\n'
    'Frein,Pneus,abc,3\n'
    'Garde-boue,Pneus,12,1\n'
    'Plaquettes,pneus,8,2\n'
)


class PartsImportTests(StorefrontTestCase):

    def setUp(self):
        super().setUp()
        self.tires = self.factory.create_category('Pneus')
        self.importer = PartsImporter(self.backend, self.query_client)

    def test_one_bad_row_is_reported_and_skipped(self):
        report = self.importer.run(CSV_WITH_BAD_THIRD_ROW)
        self.assertEqual(report.total, 5)
        self.assertEqual(report.success_count, 4)
        self.assertEqual(report.error_count, 1)
        self.assertEqual(report.errors[0]['row'], 3)
        self.assertIn('price', report.errors[0]['errors'])
        self.assertEqual(len(self.backend.rows('parts')), 4)

    def test_row_values_written(self):
        self.importer.run(CSV_WITH_BAD_THIRD_ROW)
        inner_tube = next(p for p in self.backend.rows('parts') if p['slug'] == 'chambre-a-air')
        self.assertEqual(inner_tube['price'], 9.9)
        self.assertEqual(inner_tube['stock_quantity'], 10)
        self.assertEqual(inner_tube['category_id'], self.tires['id'])

    def test_existing_slug_is_updated(self):
        self.factory.create_part('Pneu 10', price='15.00', category=self.tires)
        report = self.importer.run(CSV_WITH_BAD_THIRD_ROW)
        self.assertEqual(report.updated, 1)
        self.assertEqual(report.created, 3)
        tire = next(p for p in self.backend.rows('parts') if p['slug'] == 'pneu-10')
        self.assertEqual(tire['price'], 19.99)

    def test_ambiguous_category_fails_row(self):
        self.factory.create_category('Freins', slug='freins')
        self.factory.create_category('freins', slug='freins-2')
        report = self.importer.run('Nom,Catégorie\nDisque,Freins\n')
        self.assertEqual(report.success_count, 0)
        self.assertIn('category', report.errors[0]['errors'])

    def test_unknown_category_fails_row(self):
        report = self.importer.run('Nom,Catégorie\nDisque,Inconnue\n')
        self.assertEqual(report.errors[0]['row'], 1)

    def test_category_slug_fallback(self):
        self.factory.create_category('Éclairage', slug='eclairage')
        report = self.importer.run('Nom,Catégorie\nPhare LED,eclairage\n')
        self.assertEqual(report.success_count, 1)

    def test_semicolon_delimiter_with_bom_and_french_fields(self):
        content = (
            '\ufeffNom;Catégorie;Prix;Outils;Métadonnées;Pépite\n'
            'Pneu plein;Pneus;29,90;"Clé 8; Démonte-pneu";"{""taille"": ""8.5""}";oui\n'
        ).encode('utf-8')
        report = self.importer.run(content)
        self.assertEqual(report.error_count, 0, report.errors)
        part = self.backend.rows('parts')[0]
        self.assertEqual(part['required_tools'], ['Clé 8', 'Démonte-pneu'])
        self.assertEqual(part['technical_metadata'], {'taille': '8.5'})
        self.assertTrue(part['is_featured'])

    def test_invalid_metadata_reported(self):
        report = self.importer.run('Nom,Catégorie,Métadonnées\nPneu,Pneus,"[1, 2]"\n')
        self.assertIn('technical_metadata', report.errors[0]['errors'])

    def test_progress_called_per_row(self):
        progress = mock.Mock()
        self.importer.run(CSV_WITH_BAD_THIRD_ROW, progress=progress)
        self.assertEqual(progress.call_count, 5)
        progress.assert_called_with(5, 5)

    def test_catalog_invalidated_once(self):
        handler = mock.Mock()
        catalog_changed.connect(handler, dispatch_uid='import-test-handler')
        try:
            self.query_client.set_query_data('parts', ['stale'], category_id=None)
            self.importer.run(CSV_WITH_BAD_THIRD_ROW)
        finally:
            catalog_changed.disconnect(dispatch_uid='import-test-handler')
        self.assertEqual(handler.call_count, 1)
        self.assertIsNone(self.query_client.get_query_data('parts', category_id=None))

    def test_backend_write_failure_is_row_error(self):
        self.backend.fail_on('insert', 'parts', times=1)
        report = self.importer.run(CSV_WITH_BAD_THIRD_ROW)
        self.assertEqual(report.success_count, 3)
        self.assertEqual([e['row'] for e in report.errors], [1, 3])

    def test_missing_name_column_rejected(self):
        with self.assertRaises(ImportFileError):
            read_csv_rows('Prix,Stock\n1,2\n')

    def test_blank_lines_keep_file_row_numbers(self):
        content = (
            'Nom,Catégorie,Prix\n'
            'Pneu A,Pneus,10\n'
            '\n'
            'Pneu B,Pneus,11\n'
            'Pneu C,Pneus,abc\n'
        )
        self.assertEqual([number for number, _ in read_csv_rows(content)], [1, 3, 4])
        report = self.importer.run(content)
        self.assertEqual(report.total, 3)
        self.assertEqual(report.success_count, 2)
        self.assertEqual(report.errors[0]['row'], 4)

    def test_empty_file_rejected(self):
        with self.assertRaises(ImportFileError):
            self.importer.run(b'')


class PartsExportTests(StorefrontTestCase):

    def test_export_reimports_cleanly(self):
        tires = self.factory.create_category('Pneus')
        self.factory.create_part(
            'Pneu 10', category=tires, price='19.9', required_tools=['Clé 8', 'Levier'],
            technical_metadata={'taille': '10"'}, is_featured=True,
        )
        catalog = CatalogQueries(self.backend, self.query_client)
        text = export_parts_csv(catalog.parts())
        self.assertTrue(text.startswith('"' + '","'.join(EXPORT_HEADERS) + '"'))
        self.assertIn('"19.90"', text)
        self.assertIn('"Clé 8; Levier"', text)

        report = PartsImporter(self.backend, self.query_client).run(text)
        self.assertEqual(report.error_count, 0, report.errors)
        self.assertEqual(report.updated, 1)
        part = self.backend.rows('parts')[0]
        self.assertEqual(part['required_tools'], ['Clé 8', 'Levier'])
        self.assertTrue(part['is_featured'])


class ManagementCommandTests(StorefrontTestCase):

    def setUp(self):
        super().setUp()
        self.factory.create_category('Pneus')
        patcher_import = mock.patch(
            'storefront.catalog.management.commands.import_parts.get_backend_client',
            return_value=self.backend,
        )
        patcher_export = mock.patch(
            'storefront.catalog.management.commands.export_parts.get_backend_client',
            return_value=self.backend,
        )
        patcher_import.start()
        patcher_export.start()
        self.addCleanup(patcher_import.stop)
        self.addCleanup(patcher_export.stop)

    def test_import_and_export_commands(self):
        with tempfile.TemporaryDirectory() as tmp:
            source = os.path.join(tmp, 'parts.csv')
            with open(source, 'w', encoding='utf-8') as f:
                f.write(CSV_WITH_BAD_THIRD_ROW)
            out = StringIO()
            call_command('import_parts', source, '--quiet-rows', stdout=out)
            self.assertIn('Parts created: 4', out.getvalue())
            self.assertIn('Row 3', out.getvalue())

            target = os.path.join(tmp, 'export.csv')
            out = StringIO()
            call_command('export_parts', '--output', target, stdout=out)
            self.assertIn('Exported 4 parts', out.getvalue())
            with open(target, encoding='utf-8-sig') as f:
                self.assertEqual(len(f.read().strip().splitlines()), 5)
