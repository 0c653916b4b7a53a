"""
Pytest configuration and shared fixtures
"""
import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import issue_token
from database import Store
from main import app


@pytest.fixture
def store():
    """In-memory store injected in place of the MongoDB connection"""
    store = Store(mongomock.MongoClient()["skillHorizonTest"])
    store.ensure_indexes()
    app.state.store = store
    yield store
    app.state.store = None


@pytest.fixture
def client(store):
    return TestClient(app)


def bearer(email):
    return {"Authorization": f"Bearer {issue_token({'email': email})}"}


@pytest.fixture
def make_user(store):
    """Insert a user with the given role and return auth headers for them"""

    def _make(email, role="Student", **fields):
        store.users.insert_one({"email": email, "role": role, **fields})
        return bearer(email)

    return _make


@pytest.fixture
def admin_headers(make_user):
    return make_user("admin@skillhorizon.io", role="Admin")


@pytest.fixture
def teacher_headers(make_user):
    return make_user("teacher@skillhorizon.io", role="Teacher")


@pytest.fixture
def student_headers(make_user):
    return make_user("student@skillhorizon.io")


@pytest.fixture
def headers_for():
    """Auth headers for an email whether or not a user document exists"""
    return bearer
