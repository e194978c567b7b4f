import os

os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ["DATABASE_URL"] = ""

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import MongoStore, get_store
from main import app


@pytest.fixture
def store():
    s = MongoStore(mongomock.MongoClient()["ecocollect_test"])
    s.ensure_indexes()
    return s


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(store):
    def _make(email, xp=0, streak=0, badges=None):
        store.create_document("user", {
            "email": email,
            "password_hash": "x",
            "xp": xp,
            "streak": streak,
            "badges": badges or [],
        })
        return store.find_one("user", {"email": email})
    return _make
