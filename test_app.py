# test_app.py

import json
import os
import shutil
import tempfile
import unittest
from unittest import mock

from app import create_app
from store import DEFAULT_SHIFT_TIMES, SESSION_TOKEN, SHIFT_TIMES, StoreConfigurationError
from test_store import BackendCase, MongoBackend, SqlBackend, by_key


class RosterApiContract(BackendCase):
    """HTTP behaviour shared by every storage backend."""

    def setUp(self):
        super().setUp()
        self.flask_app = self.make_app()
        self.app = self.flask_app.test_client()

    def _post(self, url, payload):
        return self.app.post(url, data=json.dumps(payload), content_type='application/json')

    def _roster(self, date=None):
        response = self.app.get('/api/roster' + (f'?date={date}' if date else ''))
        self.assertEqual(response.status_code, 200)
        return json.loads(response.data)

    @property
    def store(self):
        return self.flask_app.extensions['roster_store']

    # --- Login ---
    def test_login_with_bootstrap_password(self):
        response = self._post('/api/login', {'password': '2010'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(json.loads(response.data), {'success': True, 'token': SESSION_TOKEN})

    def test_login_rejects_wrong_password(self):
        for payload in ({'password': 'nope'}, {'password': 2010}, {}):
            response = self._post('/api/login', payload)
            self.assertEqual(response.status_code, 401)
            self.assertEqual(json.loads(response.data), {'success': False, 'message': 'Invalid password'})

    # --- Settings ---
    def test_settings_default_to_three_shifts(self):
        response = self.app.get('/api/settings')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(json.loads(response.data), DEFAULT_SHIFT_TIMES)

    def test_settings_update_round_trip(self):
        shift_times = {"Day": {"start": "07:00", "end": "19:00"}, "Night": {"start": "19:00", "end": "07:00"}}
        response = self._post('/api/settings', {'shift_times': shift_times})
        self.assertEqual(json.loads(response.data), {'success': True})
        self.assertEqual(json.loads(self.app.get('/api/settings').data), shift_times)

    def test_password_change_takes_effect_until_next_boot(self):
        self._post('/api/settings', {'admin_password': 'hunter2'})
        self.assertEqual(self._post('/api/login', {'password': 'hunter2'}).status_code, 200)
        self.assertEqual(self._post('/api/login', {'password': '2010'}).status_code, 401)
        rebooted = self.make_app().test_client()
        response = rebooted.post('/api/login', data=json.dumps({'password': '2010'}), content_type='application/json')
        self.assertEqual(response.status_code, 200)

    def test_empty_settings_update_changes_nothing(self):
        response = self._post('/api/settings', {'shift_times': {}, 'admin_password': ''})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(json.loads(self.app.get('/api/settings').data), DEFAULT_SHIFT_TIMES)
        self.assertEqual(self._post('/api/login', {'password': '2010'}).status_code, 200)

    def test_unparsable_shift_times_surface_as_server_error(self):
        with self.flask_app.app_context():
            self.store.ensure_ready()
            self.store.set_setting(SHIFT_TIMES, '{broken')
        response = self.app.get('/api/settings')
        self.assertEqual(response.status_code, 500)
        self.assertEqual(json.loads(response.data), {'error': 'An unexpected server error occurred.'})

    # --- Roster ---
    def test_confirm_duplicate_key_keeps_last(self):
        response = self._post('/api/roster/confirm', {'data': [
            {'date': '2024-01-01', 'engineer_name': 'Alice', 'shift_type': 'Morning'},
            {'date': '2024-01-01', 'engineer_name': 'Alice', 'shift_type': 'Evening'},
        ]})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(json.loads(response.data), {'success': True})
        self.assertEqual(self._roster('2024-01-01'),
                         [{'date': '2024-01-01', 'engineer_name': 'Alice', 'shift_type': 'Evening'}])

    def test_confirm_twice_is_idempotent_and_non_destructive(self):
        first = [
            {'date': '2024-02-01', 'engineer_name': 'Alice', 'shift_type': 'Morning'},
            {'date': '2024-02-01', 'engineer_name': 'Bob', 'shift_type': 'Night'},
        ]
        self._post('/api/roster/confirm', {'data': first})
        self._post('/api/roster/confirm', {'data': first})
        self._post('/api/roster/confirm', {'data': [{'date': '2024-02-02', 'engineer_name': 'Bob', 'shift_type': 'Evening'}]})
        self.assertEqual(by_key(self._roster()), [
            {'date': '2024-02-01', 'engineer_name': 'Alice', 'shift_type': 'Morning'},
            {'date': '2024-02-01', 'engineer_name': 'Bob', 'shift_type': 'Night'},
            {'date': '2024-02-02', 'engineer_name': 'Bob', 'shift_type': 'Evening'},
        ])
        self.assertEqual(len(self._roster('2024-02-01')), 2)

    def test_confirm_rejects_non_list_data(self):
        for payload in ({'data': '2024-01-01,Alice,Morning'}, {'data': {'date': '2024-01-01'}}, {}, [1, 2]):
            response = self._post('/api/roster/confirm', payload)
            self.assertEqual(response.status_code, 400)
            self.assertEqual(json.loads(response.data), {'success': False, 'message': 'Invalid data'})
        self.assertEqual(self._roster(), [])

    def test_confirm_empty_list_succeeds(self):
        response = self._post('/api/roster/confirm', {'data': []})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self._roster(), [])

    def test_confirm_with_malformed_entry_saves_nothing(self):
        response = self._post('/api/roster/confirm', {'data': [
            {'date': '2024-01-01', 'engineer_name': 'Alice', 'shift_type': 'Morning'},
            {'date': '2024-01-01', 'shift_type': 'Night'},
        ]})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(json.loads(response.data), {'success': False, 'message': 'Failed to save roster'})
        self.assertEqual(self._roster(), [])

    def test_confirm_storage_failure_reports_error(self):
        with mock.patch.object(self.store, 'sync_roster', side_effect=RuntimeError('disk full')):
            response = self._post('/api/roster/confirm', {'data': [
                {'date': '2024-01-01', 'engineer_name': 'Alice', 'shift_type': 'Morning'}]})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(json.loads(response.data), {'success': False, 'message': 'Failed to save roster'})

    def test_roster_read_failure_is_server_error(self):
        self._roster()
        with mock.patch.object(self.store, 'list_roster', side_effect=RuntimeError('connection reset')):
            response = self.app.get('/api/roster')
        self.assertEqual(response.status_code, 500)

    def test_cors_headers_present(self):
        response = self.app.get('/api/settings', headers={'Origin': 'http://localhost:5173'})
        self.assertEqual(response.headers.get('Access-Control-Allow-Origin'), '*')


class SqlApiTestCase(SqlBackend, RosterApiContract, unittest.TestCase):

    def test_missing_database_url_is_reported(self):
        client = self.make_app(SQLALCHEMY_DATABASE_URI='').test_client()
        response = client.get('/api/roster')
        self.assertEqual(response.status_code, 500)
        self.assertIn('Database connection error', json.loads(response.data)['message'])


class MongoApiTestCase(MongoBackend, RosterApiContract, unittest.TestCase):

    def test_missing_connection_string_is_reported(self):
        client = self.make_app(MONGODB_URI=None).test_client()
        for response in (client.get('/api/roster'), client.post('/api/login', json={'password': '2010'})):
            self.assertEqual(response.status_code, 500)
            self.assertEqual(json.loads(response.data)['success'], False)
            self.assertIn('Database connection error', json.loads(response.data)['message'])


class AppFactoryTestCase(unittest.TestCase):

    def test_unknown_backend_is_rejected(self):
        with self.assertRaises(StoreConfigurationError):
            create_app({'ROSTER_BACKEND': 'csv'})


class FrontendTestCase(SqlBackend, BackendCase, unittest.TestCase):

    def setUp(self):
        super().setUp()
        self.dist = tempfile.mkdtemp()
        with open(os.path.join(self.dist, 'index.html'), 'w') as f:
            f.write('<div id="root"></div>')
        os.makedirs(os.path.join(self.dist, 'assets'))
        with open(os.path.join(self.dist, 'assets', 'app.js'), 'w') as f:
            f.write('console.log("roster")')

    def tearDown(self):
        super().tearDown()
        shutil.rmtree(self.dist, ignore_errors=True)

    def test_serves_index_and_assets(self):
        client = self.make_app(STATIC_DIR=self.dist).test_client()
        self.assertIn(b'id="root"', client.get('/').data)
        self.assertIn(b'roster', client.get('/assets/app.js').data)
        # client-side routes fall back to the SPA shell
        self.assertIn(b'id="root"', client.get('/schedule/2024-01').data)
        self.assertEqual(client.get('/api/unknown').status_code, 404)

    def test_no_build_directory_means_404(self):
        client = self.make_app().test_client()
        self.assertEqual(client.get('/').status_code, 404)


if __name__ == '__main__':
    unittest.main()
