"""
Member portal - Test Configuration and Fixtures
"""
import os

import mongomock
import pytest
from faker import Faker
from fastapi.testclient import TestClient

# Set testing environment
os.environ.pop('DATABASE_URL', None)
os.environ['JWT_SECRET'] = 'test-jwt-secret-key-for-testing'

from main import app
from database import ensure_indexes, get_db, now
import auth

fake = Faker()


@pytest.fixture
def db():
    """Fresh in-memory database for each test"""
    database = mongomock.MongoClient()['member_portal_test']
    ensure_indexes(database)
    return database


@pytest.fixture
def client(db):
    """Test client with database override"""
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def make_account(db, role='member', status='active', password='testpassword123', email=None):
    email = email or fake.unique.email()
    uid = db['identities'].insert_one({
        'email': email,
        'passwordHash': auth.hash_password(password),
        'createdAt': now(),
    }).inserted_id
    db['users'].insert_one({
        '_id': uid,
        'fullName': fake.name(),
        'email': email,
        'studentId': fake.bothify('S######'),
        'course': 'Computer Science',
        'year': '2',
        'role': role,
        'status': status,
        'createdAt': now(),
    })
    return db['users'].find_one({'_id': uid})


@pytest.fixture
def test_user(db):
    return make_account(db)


@pytest.fixture
def admin_user(db):
    return make_account(db, role='admin')


def headers_for(user) -> dict:
    token = auth.create_access_token({'sub': str(user['_id'])})
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def auth_headers(test_user):
    return headers_for(test_user)


@pytest.fixture
def admin_auth_headers(admin_user):
    return headers_for(admin_user)
