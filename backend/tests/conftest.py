"""
Pytest fixtures for pawnops backend tests.

Provides an in-memory database, a test client, branch/account/item
factories and bearer-token helpers.
"""

import pytest

from pawnops import create_app
from pawnops.extensions import db
from pawnops.models import Account, Branch, InventoryItem
from pawnops.roles import (
    ROLE_ACCOUNT_EXECUTIVE,
    ROLE_ADMIN,
    ROLE_AUDITOR,
    ROLE_LOGISTICS,
)
from pawnops.services import session_service, tracking_service
from pawnops.services.auth_service import hash_password


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'LEDGER_LOCK_TIMEOUT_SECONDS': 1.0,
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
    """Create fresh database (and tracker) for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        tracking_service.get_tracker().clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_branch(db_session):
    """Factory: make_branch("Main", code="MAIN", latitude=..., longitude=...)."""
    def _make(name, **fields):
        branch = Branch(name=name, **fields)
        db_session.add(branch)
        db_session.commit()
        return branch
    return _make


@pytest.fixture(scope='function')
def make_account(db_session):
    """Factory: make_account("driver1", "logistics")."""
    def _make(username, role, **fields):
        fields.setdefault("is_active", True)
        account = Account(
            username=username,
            role=role,
            password_hash=hash_password(TEST_PASSWORD),
            **fields,
        )
        db_session.add(account)
        db_session.commit()
        return account
    return _make


@pytest.fixture(scope='function')
def make_item(db_session):
    """Factory: make_item(branch, "SN-1")."""
    def _make(branch, serial_number, **fields):
        item = InventoryItem(branch_id=branch.id, serial_number=serial_number, **fields)
        db_session.add(item)
        db_session.commit()
        return item
    return _make


@pytest.fixture(scope='function')
def branch_a(make_branch):
    return make_branch("Branch A", code="A", latitude=10.31, longitude=123.89)


@pytest.fixture(scope='function')
def branch_b(make_branch):
    return make_branch("Branch B", code="B", latitude=10.33, longitude=123.93)


@pytest.fixture(scope='function')
def branch_c(make_branch):
    return make_branch("Branch C", code="C")


@pytest.fixture(scope='function')
def admin(make_account):
    return make_account("admin", ROLE_ADMIN)


@pytest.fixture(scope='function')
def auditor(make_account):
    return make_account("auditor", ROLE_AUDITOR)


@pytest.fixture(scope='function')
def account_executive(make_account):
    return make_account("ae", ROLE_ACCOUNT_EXECUTIVE)


@pytest.fixture(scope='function')
def driver(make_account):
    return make_account("driver", ROLE_LOGISTICS)


@pytest.fixture(scope='function')
def other_driver(make_account):
    return make_account("driver2", ROLE_LOGISTICS)


@pytest.fixture(scope='function')
def headers_for(db_session):
    """Factory: bearer headers for an account, issued without the login route."""
    def _headers(account):
        _, token = session_service.create_session(account.id)
        return auth_headers(token)
    return _headers


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
