"""
Pytest configuration and fixtures for Fleetdesk
"""

import os

import pytest

# Set test environment before importing app
os.environ.update({
    'FLASK_ENV': 'testing',
    'SESSION_SECRET': 'test_secret_key_for_testing_only_0123456789',
    'JWT_SECRET_KEY': 'test_jwt_secret_for_testing_only_0123456789',
    'DATABASE_URL': 'sqlite:///:memory:',
    'APP_TIMEZONE': 'Asia/Colombo',
    'LOG_LEVEL': 'WARNING',
})

from flask_jwt_extended import create_access_token

from app import create_app, db
from tests.factories import UserFactory, DepartmentFactory


@pytest.fixture(scope='function')
def app():
    """Create application for testing"""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'WTF_CSRF_ENABLED': False,
        'APPROVAL_COST_THRESHOLD': 50000,
        'GPS_REPLAY_MAX_POINTS': 50,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client"""
    return app.test_client()


@pytest.fixture(scope='function')
def runner(app):
    """Create test CLI runner"""
    return app.test_cli_runner()


@pytest.fixture(scope='function')
def db_session(app):
    """Database session bound to the test app"""
    yield db.session
    db.session.rollback()


@pytest.fixture
def employee(db_session):
    """Employee in the Engineering department"""
    return UserFactory(department=DepartmentFactory(name='Engineering'))


@pytest.fixture
def approver(db_session):
    return UserFactory(first_name='Nimal', last_name='Perera')


@pytest.fixture
def auth_headers(app, employee):
    """Bearer token for the employee fixture"""
    token = create_access_token(identity=employee.id)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def approver_headers(app, approver):
    token = create_access_token(identity=approver.id)
    return {'Authorization': f'Bearer {token}'}
