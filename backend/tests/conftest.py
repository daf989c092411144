"""
Pytest fixtures for CertFlow backend tests.

Provides test database setup, caller identities and test client.
"""

import os

# Config reads DATABASE_URL at import time
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

import pytest
from certflow import create_app
from certflow.extensions import db
from certflow.services.identity_service import Caller, sync_user


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app()
    app.config.update({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SMTP_HOST': '',
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

        yield db.session()

        # Cleanup after test
        db.session.rollback()


def make_caller(user_id: str, *roles: str, name: str | None = None, email: str | None = None) -> Caller:
    return Caller(
        id=user_id,
        name=name or user_id.replace("_", " ").title(),
        email=email or f"{user_id}@certflow.test",
        roles=tuple(roles),
    )


@pytest.fixture(scope='function')
def requester(db_session):
    """Staff member who files requests and requisitions."""
    caller = make_caller("req_1", "Requester", name="Ada Requester")
    sync_user(caller)
    return caller


@pytest.fixture(scope='function')
def other_requester(db_session):
    caller = make_caller("req_2", "requester", name="Ben Requester")
    sync_user(caller)
    return caller


@pytest.fixture(scope='function')
def qa_tester(db_session):
    """Reviewer; role spelled the way the identity service sends it."""
    caller = make_caller("qa_1", "QA Testers", name="Quinn Tester")
    sync_user(caller)
    return caller


@pytest.fixture(scope='function')
def manager(db_session):
    caller = make_caller("mgr_1", "manager", name="Mia Manager")
    sync_user(caller)
    return caller


@pytest.fixture(scope='function')
def hr_admin(db_session):
    caller = make_caller("hr_1", "HR Admin", name="Hal Finance")
    sync_user(caller)
    return caller


@pytest.fixture(scope='function')
def admin(db_session):
    caller = make_caller("admin_1", "admin", name="Root Admin")
    sync_user(caller)
    return caller


def caller_headers(caller: Caller) -> dict:
    """Helper to create the gateway identity headers for a caller."""
    return {
        'X-User-Id': caller.id,
        'X-User-Name': caller.name,
        'X-User-Email': caller.email or '',
        'X-User-Roles': ','.join(caller.roles),
    }
