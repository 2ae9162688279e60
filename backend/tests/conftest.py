"""
Pytest fixtures for StockLedger backend tests.

Provides test database setup, one user per role, a seeded product and a
test client with actor headers.
"""

import pytest
from stockledger import create_app
from stockledger.extensions import db
from stockledger.models import User
from stockledger.models.auth import ROLE_ADMIN, ROLE_SALES, ROLE_STOCK
from stockledger.services import products_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ATOMIC_SCOPE_RETRIES': 2,
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


def _make_user(db_session, username: str, role: str, **extra) -> User:
    user = User(
        username=username,
        full_name=extra.pop("full_name", username.title()),
        email=f"{username}@stockledger.test",
        role=role,
        is_active=extra.pop("is_active", True),
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def make_user(db_session):
    """Factory for extra users beyond the one-per-role fixtures."""
    def _factory(username: str, role: str, **extra) -> User:
        return _make_user(db_session, username, role, **extra)
    return _factory


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _make_user(db_session, "admin", ROLE_ADMIN)


@pytest.fixture(scope='function')
def sales_user(db_session):
    return _make_user(db_session, "clerk", ROLE_SALES)


@pytest.fixture(scope='function')
def stock_user(db_session):
    return _make_user(db_session, "keeper", ROLE_STOCK)


@pytest.fixture(scope='function')
def widget(db_session, admin_user):
    """Product with 10 units on hand (opening balance), cost 80, price 150."""
    return products_service.create_product(
        patch={
            "sku": "wid-001",
            "name": "Widget",
            "category": "Hardware",
            "cost_price_cents": 80,
            "selling_price_cents": 150,
            "stock_quantity": 10,
        },
        actor_user_id=admin_user.id,
    )


def actor_headers(user) -> dict:
    """Gateway identity headers for a user."""
    return {'X-Actor-Id': str(user.id), 'X-Actor-Role': user.role}


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return actor_headers(admin_user)


@pytest.fixture(scope='function')
def sales_headers(sales_user):
    return actor_headers(sales_user)


@pytest.fixture(scope='function')
def stock_headers(stock_user):
    return actor_headers(stock_user)
