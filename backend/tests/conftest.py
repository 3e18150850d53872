"""
Pytest fixtures for stock ledger backend tests.

Provides test database setup, item/category factories, and test client.
"""

import pytest

from stockledger import create_app
from stockledger.extensions import db
from stockledger.models import Category
from stockledger.services import item_service


ACTOR = "tester"
DEVICE = "dev-1"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
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
def headers():
    """Operator and device headers forwarded by the POS front end."""
    return {'X-Actor': ACTOR, 'X-Device-Id': DEVICE}


@pytest.fixture(scope='function')
def category(db_session):
    """Register a category factory: category("Minuman", "MN")."""
    def _make(name, code):
        cat = Category(name=name, code=code)
        db_session.add(cat)
        db_session.commit()
        return cat
    return _make


@pytest.fixture(scope='function')
def make_item(db_session):
    """
    Item factory. Opening stock is posted through the ledger so the cached
    quantity always equals the movement sum.
    """
    def _make(name, category="General", quantity=0, price_cents=0, code=None, sku=None):
        item = item_service.create_item(
            name=name,
            category=category,
            actor=ACTOR,
            price_cents=price_cents,
            sku=sku,
            opening_quantity=quantity,
            code=code,
        )
        db_session.commit()
        return item
    return _make
