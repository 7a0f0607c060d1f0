"""
Shared pytest fixtures and configuration for all tests.

Provides the Flask application with an in-memory database, a mocked
backend client, the hydrated service container and sample closes.
"""

import pytest
import sys
import os
from unittest.mock import Mock

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kiosk import create_app
from kiosk.models import db
from kiosk.services.api_client import BackendClient
from kiosk.services.close_records import build_daily_close


@pytest.fixture
def backend():
    """Backend client double: reachable, accepts every close, no operators"""
    client = Mock(spec=BackendClient)
    client.is_reachable.return_value = True
    client.upsert_daily_close_raw.return_value = {'success': True}
    client.fetch_operators.return_value = []
    client.validate_operator.return_value = {'success': False, 'message': None}
    return client


@pytest.fixture(scope='session')
def app_factory():
    """Factory fixture for creating test app instances."""
    def _create_app(config='testing', client=None, hydrate=True, brightness_controller=None):
        app = create_app(config, client=client or Mock(spec=BackendClient), hydrate=hydrate,
                         brightness_controller=brightness_controller)
        app.config['TESTING'] = True
        return app
    return _create_app


@pytest.fixture(scope='function')
def fresh_app(app_factory, backend):
    """Create a fresh application for each test with clean database."""
    app = app_factory(client=backend)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(fresh_app):
    """Create a test client for each test."""
    return fresh_app.test_client()


@pytest.fixture(scope='function')
def db_session(fresh_app):
    """Provide a database session for testing."""
    with fresh_app.app_context():
        yield db.session
        db.session.rollback()


@pytest.fixture
def services(fresh_app):
    return fresh_app.extensions['kiosk']


@pytest.fixture
def storage(services):
    return services.storage


@pytest.fixture
def store(services):
    """Hydrated daily close store"""
    return services.store


@pytest.fixture
def reporter(services):
    """Replace the error reporting sink of the sync service with a mock"""
    mock_reporter = Mock()
    services.sync.reporter = mock_reporter
    return mock_reporter


@pytest.fixture
def sample_items():
    return [
        {'productId': '001', 'name': 'Mojarra Frita', 'price': 15000, 'qty': 3},
        {'productId': '002', 'name': 'Empanada de Camaron con Queso (Orden)', 'price': 10000, 'qty': 2},
    ]


@pytest.fixture
def make_close(sample_items):
    """Build a valid close for a date; keyword overrides go to build_daily_close"""
    def _make_close(close_date, **overrides):
        fields = {
            'cash_received': 50000,
            'bank_transfers_received': 15000,
            'delivery_cash_paid': 2000,
            'other_cash_expenses': 1000,
            'notes': 'Test close',
            'closed_by_user_id': 'user-1',
            'closed_by_name': 'Operator One',
            'closed_by_phone': '5215550001111',
            'created_at': f'{close_date}T23:00:00.000Z',
        }
        fields.update(overrides)
        items = fields.pop('items', sample_items)
        return build_daily_close(close_date, items, **fields)
    return _make_close


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
    config.addinivalue_line(
        "markers", "edge_case: marks tests exercising malformed or boundary input"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "api: marks tests as API endpoint tests"
    )
    config.addinivalue_line(
        "markers", "sync: marks tests touching the daily close sync"
    )


def pytest_collection_modifyitems(config, items):
    """Automatically add markers based on test module names."""
    for item in items:
        if 'routes' in item.nodeid:
            item.add_marker(pytest.mark.api)

        if 'sync' in item.name.lower():
            item.add_marker(pytest.mark.sync)

        keywords = ['invalid', 'corrupt', 'malformed', 'negative']
        if any(kw in item.name.lower() for kw in keywords):
            item.add_marker(pytest.mark.edge_case)

        if 'integration' not in item.keywords:
            item.add_marker(pytest.mark.unit)
