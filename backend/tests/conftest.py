"""
Pytest fixtures for stockledger backend tests.

Provides test database setup, catalog factories and test client.
"""

import pytest

from stockledger import create_app
from stockledger.extensions import db
from stockledger.services import catalog_service, unit_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'AUDIT_TIMEZONE': 'UTC',
        'AUDIT_RESCAN_POLICY': 'reset',
    })

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
def make_product(db_session):
    """Factory: create a product through the catalog service."""
    def _make(name="Kaos Polos", *, unit_tracked=True, price=50000, min_stock=0, manual_stock=0, category="Pakaian"):
        patch = {
            "name": name,
            "category": category,
            "price": price,
            "min_stock": min_stock,
            "unit_tracked": unit_tracked,
        }
        if not unit_tracked:
            patch["manual_stock"] = manual_stock
        return catalog_service.create_product(patch=patch)

    return _make


@pytest.fixture(scope='function')
def tag_units(db_session):
    """Factory: assign each tag to the product, returning the units."""
    def _tag(product, *tags):
        return [unit_service.assign_tag(product.id, tag) for tag in tags]

    return _tag
