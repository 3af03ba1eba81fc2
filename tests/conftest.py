"""
TeachnGrow - Test Configuration and Fixtures
"""
import os
import itertools

import mongomock
import mongomock.gridfs
import pytest

# Set testing environment
os.environ['MAIL_SUPPRESS_SEND'] = 'true'
os.environ['SCHEDULER_ENABLED'] = 'false'

from accounts import create_account
from app import create_app
from config import TestingConfig
from db_config import mongo, ensure_indexes, db_categories, new_id
from security import create_access_token

mongomock.gridfs.enable_gridfs_integration()

_emails = itertools.count(1)

DEPARTMENT = "Computer"


@pytest.fixture
def app(monkeypatch):
    """Application wired to an in-memory Mongo for each test"""
    app = create_app(TestingConfig)
    client = mongomock.MongoClient()
    monkeypatch.setattr(mongo, "cx", client)
    monkeypatch.setattr(mongo, "db", client["teachngrow_test"])
    with app.app_context():
        ensure_indexes()
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user(app):
    """Create an account and return (user, headers)"""
    def _make(role="faculty", password="secret123", **fields):
        data = {
            "name": fields.pop("name", f"{role.title()} User"),
            "email": fields.pop("email", f"{role}{next(_emails)}@college.edu"),
            "password": password,
        }
        data.update(fields)
        with app.app_context():
            user = create_account(data, role)
            token = create_access_token(user)
        return user, auth_headers(token)
    return _make


@pytest.fixture
def faculty(make_user):
    return make_user("faculty", name="Asha Patil", department=DEPARTMENT, designation="Assistant Professor")


@pytest.fixture
def hod(make_user):
    return make_user("hod", name="Ravi Kulkarni", department=DEPARTMENT, designation="Professor")


@pytest.fixture
def principal(make_user):
    return make_user("principal", name="Meera Joshi")


@pytest.fixture
def admin(make_user):
    return make_user("admin", name="Admin")


@pytest.fixture
def category(app):
    """A category with one designation override"""
    record = {
        "_id": new_id(),
        "name": "Publications",
        "description": "Research papers",
        "maxCredits": 20,
        "perDocumentCredits": 5,
        "fields": ["Journal", "Year"],
        "roleSpecificCriteria": {
            "Professor": {"maxCredits": 25, "perDocumentCredits": 6},
        },
    }
    with app.app_context():
        db_categories().insert_one(record)
    return record
