"""
Integration Tests for the kiosk HTTP endpoints

Tests cover:
- Health check
- Close wizard draft, login and confirmation
- Close history and support deletion
- Manual sync and sync status
- Operator cache maintenance
- Check-in / check-out
- Dashboard metrics, summary, weekly CSV and logs
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kiosk.services.api_client import GraphQLRequestError


pytestmark = pytest.mark.integration

BOOTSTRAP_LOGIN = {'phone': '521999999999', 'pin': '1234'}


@pytest.fixture
def logged_in(client):
    response = client.post('/operators/login', json=BOOTSTRAP_LOGIN)
    assert response.status_code == 200
    return client


def _fill_draft(client, sample_items, bank=15000):
    client.put('/day-close/draft/items', json={'value': sample_items})
    client.put('/day-close/draft/cash', json={'value': 50000})
    client.put('/day-close/draft/bank', json={'value': bank})
    client.put('/day-close/draft/other-expenses', json={'value': 1000})
    client.put('/day-close/draft/delivery', json={'value': 2000})
    client.put('/day-close/draft/notes', json={'value': 'Sin novedades'})


class TestHealth:

    def test_health(self, client):
        data = client.get('/health').get_json()
        assert data['ok'] is True
        assert data['deviceId'] == 'kiosk-test'
        assert data['hydrated'] is True

    def test_unknown_route(self, client):
        response = client.get('/nope')
        assert response.status_code == 404
        assert response.get_json()['success'] is False


class TestDraftRoutes:

    def test_products(self, client):
        products = client.get('/day-close/products').get_json()['products']
        assert [product['productId'] for product in products] == ['001', '002', '003']

    def test_empty_draft(self, client):
        data = client.get('/day-close/draft').get_json()
        assert data['draft'] == {}
        assert data['resumeScreen'] == 'OperatorLoginScreen'

    def test_set_step(self, client, sample_items):
        response = client.put('/day-close/draft/items', json={'value': sample_items})
        assert response.status_code == 200
        data = response.get_json()
        assert data['draft']['stepPosition'] == 1
        assert data['resumeScreen'] == 'DailySalesConfirmScreen'

    def test_unknown_step(self, client):
        assert client.put('/day-close/draft/tips', json={'value': 1}).status_code == 404

    def test_missing_value(self, client):
        assert client.put('/day-close/draft/cash', json={}).status_code == 400

    def test_negative_amount(self, client):
        response = client.put('/day-close/draft/cash', json={'value': -100})
        assert response.status_code == 400
        assert 'non-negative' in response.get_json()['error']

    @pytest.mark.parametrize('value', ['abc', [1], {'productId': '001'}, [None]])
    def test_malformed_items(self, client, value):
        response = client.put('/day-close/draft/items', json={'value': value})
        assert response.status_code == 400
        assert response.get_json()['success'] is False
        assert client.get('/day-close/draft').get_json()['draft'] == {}

    def test_preview_flags_descuadre(self, client, sample_items):
        _fill_draft(client, sample_items, bank=13500)
        data = client.get('/day-close/draft/preview').get_json()
        assert data['metrics']['salesTotal'] == 65000
        assert data['metrics']['descuadreAmount'] == -1500
        assert data['descuadre'] is True

    def test_reset_draft(self, logged_in, sample_items):
        _fill_draft(logged_in, sample_items)
        data = logged_in.delete('/day-close/draft').get_json()
        assert data['draft'] == {}
        assert data['closeOperator'] is None


class TestConfirmClose:

    def test_confirm_requires_operator(self, client, sample_items):
        _fill_draft(client, sample_items)
        response = client.post('/day-close/confirm', json={'date': '2026-02-25'})
        assert response.status_code == 400

    def test_confirm(self, logged_in, sample_items, store):
        _fill_draft(logged_in, sample_items)

        response = logged_in.post('/day-close/confirm', json={'date': '2026-02-25'})

        assert response.status_code == 201
        close = response.get_json()['close']
        assert close['date'] == '2026-02-25'
        assert close['expectedTotal'] == 65000
        assert close['closedByName'] == 'Super Admin'
        assert store.is_closed('2026-02-25')
        assert logged_in.get('/day-close/draft').get_json()['draft'] == {}

    def test_confirm_invalid_date(self, logged_in, sample_items):
        _fill_draft(logged_in, sample_items)
        assert logged_in.post('/day-close/confirm', json={'date': 'yesterday'}).status_code == 400


class TestCloseHistory:

    def test_list_and_get(self, client, store, make_close):
        store.upsert_close(make_close('2026-02-25'))
        store.upsert_close(make_close('2026-02-24'))

        data = client.get('/day-close/closes').get_json()
        assert [close['date'] for close in data['closes']] == ['2026-02-24', '2026-02-25']
        assert data['shouldSync'] is True

        detail = client.get('/day-close/closes/2026-02-25').get_json()
        assert detail['metrics']['salesTotal'] == 65000

    def test_get_missing(self, client):
        assert client.get('/day-close/closes/2026-02-25').status_code == 404

    def test_delete(self, client, store, make_close):
        store.upsert_close(make_close('2026-02-25'))
        assert client.delete('/day-close/closes/2026-02-25').status_code == 200
        assert client.delete('/day-close/closes/2026-02-25').status_code == 404


class TestSyncRoutes:

    def test_sync_now(self, client, store, make_close, reporter):
        store.upsert_close(make_close('2026-02-25'))

        data = client.post('/day-close/sync').get_json()

        assert data['success'] is True
        assert data['result']['syncedAt'] == '2026-02-25'
        status = client.get('/day-close/sync/status').get_json()
        assert status['lastSyncedDate'] == '2026-02-25'
        assert status['shouldSync'] is False
        assert status['syncStatus'] == 'SUCCESS'

    def test_sync_unreachable(self, client, backend, store, make_close):
        store.upsert_close(make_close('2026-02-25'))
        backend.is_reachable.return_value = False
        assert client.post('/day-close/sync').status_code == 503


class TestOperatorRoutes:

    def test_login_offline_bootstrap(self, client, backend, store):
        backend.is_reachable.return_value = False

        response = client.post('/operators/login', json=BOOTSTRAP_LOGIN)

        assert response.status_code == 200
        operator = response.get_json()['operator']
        assert operator['source'] == 'offline_cache'
        assert 'raw' not in operator
        assert store.close_operator['userId'] == '11111111-1111-4111-8111-111111111111'
        backend.validate_operator.assert_not_called()

    def test_login_numeric_pin(self, client):
        response = client.post('/operators/login', json={'phone': 521999999999, 'pin': 1234})
        assert response.status_code == 200

    def test_login_rejected(self, client):
        response = client.post('/operators/login', json={'phone': '521999999999', 'pin': '0000'})
        assert response.status_code == 401
        assert response.get_json()['success'] is False

    def test_sync_operators(self, client, backend):
        backend.fetch_operators.return_value = [
            {'userId': 'a-user', 'name': 'Ana', 'phone': '5215550001111', 'role': 'MANAGER',
             'pin': '1111', 'active': True},
        ]
        data = client.post('/operators/sync').get_json()
        assert data['changed'] is True
        assert data['count'] == 1

        summary = client.get('/operators/summary').get_json()
        assert summary['count'] == 1
        assert summary['hasOperators'] is True

    def test_sync_operators_failure(self, client, backend, db_session):
        from kiosk.models import ErrorLog

        backend.fetch_operators.side_effect = GraphQLRequestError('Network error')

        response = client.post('/operators/sync')

        assert response.status_code == 502
        assert ErrorLog.query.filter_by(scope='daily_close_operator_bootstrap').count() == 1


class TestClockRoutes:

    def test_check_in_and_out(self, client):
        response = client.post('/clock/emp-1/check-in')
        assert response.status_code == 200
        assert response.get_json()['record']['status'] == 'IN'

        assert client.post('/clock/emp-1/check-in').status_code == 409

        data = client.post('/clock/emp-1/check-out').get_json()
        assert data['record']['status'] == 'OUT'
        assert data['shiftDuration'] == '0h 00m'

        assert client.get('/clock/emp-1').get_json()['record']['status'] == 'OUT'
        assert 'emp-1' in client.get('/clock/records').get_json()['records']

    def test_check_out_when_out(self, client):
        assert client.post('/clock/emp-1/check-out').status_code == 409


class TestDashboardRoutes:

    def test_dashboard_with_descuadre(self, client, store, make_close):
        store.upsert_close(make_close('2026-02-25', bank_transfers_received=13500))

        data = client.get('/dashboard/?date=2026-02-25').get_json()

        assert data['metrics']['descuadreAmount'] == -1500
        assert data['metrics']['isSynced'] is False
        assert 'descuadre' in [alert['id'] for alert in data['alerts']]

    def test_dashboard_invalid_date(self, client):
        assert client.get('/dashboard/?date=ayer').status_code == 400

    def test_summary(self, client, store, make_close):
        store.upsert_close(make_close('2026-02-25'))
        data = client.get('/dashboard/summary/2026-02-25').get_json()
        assert data['summary'].startswith('MOJARRERIA Daily Close 2026-02-25')
        assert client.get('/dashboard/summary/2026-02-24').status_code == 404

    def test_weekly_csv(self, client, store, make_close):
        store.upsert_close(make_close('2026-02-25'))
        response = client.get('/dashboard/weekly.csv?date=2026-02-25')
        assert response.status_code == 200
        assert response.mimetype == 'text/csv'
        assert 'daily-closes-week-2026-02-25.csv' in response.headers['Content-Disposition']

    def test_sync_logs(self, client, store, make_close, reporter):
        store.upsert_close(make_close('2026-02-25'))
        client.post('/day-close/sync')
        logs = client.get('/dashboard/sync-logs').get_json()['logs']
        assert len(logs) == 1
        assert logs[0]['status'] == 'SUCCESS'

    def test_error_logs_filtered_by_scope(self, client, backend):
        backend.fetch_operators.side_effect = GraphQLRequestError('Network error')
        client.post('/operators/sync')

        logs = client.get('/dashboard/error-logs?scope=daily_close_operator_bootstrap').get_json()['logs']
        assert len(logs) == 1
        assert client.get('/dashboard/error-logs?scope=other').get_json()['logs'] == []
