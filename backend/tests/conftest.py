"""
Pytest fixtures for inventory API tests.

Provides the test database, a manager and a staff account, product
factories and the test client.
"""

from decimal import Decimal

import pytest
from inventory_api import create_app
from inventory_api.extensions import db
from inventory_api.services import auth_service, product_service


TEST_PASSWORD = "Stockroom42"


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'JWT_SECRET': 'test-secret',
        'UPLOAD_PATH': str(tmp_path_factory.mktemp('uploads')),
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


def _account(username, email, role):
    user = auth_service.create_user(username, email, TEST_PASSWORD, role="staff")
    if role != "staff":
        user.role = role
        db.session.commit()
    return user


@pytest.fixture(scope='function')
def manager_user(db_session):
    """Manager account."""
    return _account("manager", "manager@test.local", "manager")


@pytest.fixture(scope='function')
def staff_user(db_session):
    """Staff account."""
    return _account("staff", "staff@test.local", "staff")


@pytest.fixture(scope='function')
def manager_headers(client, manager_user):
    return auth_headers(get_auth_token(client, manager_user.email, TEST_PASSWORD))


@pytest.fixture(scope='function')
def staff_headers(client, staff_user):
    return auth_headers(get_auth_token(client, staff_user.email, TEST_PASSWORD))


@pytest.fixture(scope='function')
def make_product(db_session, manager_user):
    """Factory creating products through the service (initial stock is audited)."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        patch = {
            "sku": f"ITEM-{counter['n']:03d}",
            "name": f"Test Item {counter['n']}",
            "category": "General",
            "price": Decimal("10.00"),
            "quantity": 50,
            "reorder_level": 10,
            "location": "Shelf A",
        }
        patch.update(overrides)
        return product_service.create_product(patch=patch, user_id=manager_user.id)

    return _make


def get_auth_token(client, email: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
