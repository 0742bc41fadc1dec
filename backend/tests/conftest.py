"""
Pytest fixtures for the stock ledger backend tests.

Provides the test database setup, a test client and a few seeded lots.
"""

import pytest
from copperwire import create_app
from copperwire.config import TestConfig
from copperwire.extensions import db
from copperwire.services import ledger_store


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def raw_entry(db_session):
    """100 kg of raw copper bought at 40 per kg."""
    return ledger_store.create_entry(
        "RAW_PURCHASE", None, "Copper rod 8mm", "100", "40", created_by="tester"
    )


@pytest.fixture(scope='function')
def small_entry(db_session):
    """10 kg of finished wire."""
    return ledger_store.create_entry(
        "PRODUCTION_OUTPUT", None, "Ready wire 1.5mm", "10", "900", created_by="tester"
    )
