import os

# the module-level app in app.py is built at import time
os.environ["DISABLE_MONGO"] = "1"
os.environ["MONGO_ENSURE_INDEXES"] = "0"

from datetime import timedelta

import mongomock
import pytest

from app import create_app
from canelink.mongo import mongo
from canelink.utils.helpers import utcnow

TEST_CONFIG = {
    "TESTING": True,
    "JWT_SECRET_KEY": "canelink-test-secret-0123456789abcdef",
    "BCRYPT_LOG_ROUNDS": 4,
}


@pytest.fixture
def app():
    app = create_app(TEST_CONFIG)
    client = mongomock.MongoClient()
    mongo.cx = client
    mongo.db = client["canelink_test"]
    with app.app_context():
        yield app
    mongo.cx = None
    mongo.db = None


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return mongo.db


def future(days=5):
    return (utcnow() + timedelta(days=days)).isoformat()


class Account:
    def __init__(self, user, token, refresh):
        self.user = user
        self.id = user["_id"]
        self.token = token
        self.refresh = refresh
        self.headers = {"Authorization": f"Bearer {token}"}


@pytest.fixture
def register(client):
    """register("Farmer", "ravi", **extra) -> Account"""
    counter = {"n": 0}

    def _register(role, username, **extra):
        counter["n"] += 1
        payload = {
            "name": username.title(),
            "username": username,
            "phone": f"+91 98765 {counter['n']:05d}",
            "email": f"{username}@example.com",
            "role": role,
            "password": "secret123",
        }
        payload.update(extra)
        res = client.post("/api/auth/register", json=payload)
        assert res.status_code == 201, res.get_json()
        data = res.get_json()["data"]
        return Account(data["user"], data["token"], data["refreshToken"])

    return _register


@pytest.fixture
def farmer(register):
    return register("Farmer", "ravi", location="Kolhapur")


@pytest.fixture
def hhm(register):
    return register("HHM", "harvestco", location="Kolhapur")


@pytest.fixture
def factory(register):
    return register("Factory", "sugarmill", factoryName="Sahyadri Sugars", factoryLocation="Karad")


@pytest.fixture
def worker(register):
    return register("Worker", "sunil", skills=["cutting", "loading"])
