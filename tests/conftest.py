"""
Shared fixtures: an in-memory MongoDB (mongomock) behind the real gateway.
"""

import uuid

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import Database
from main import create_app

ORIGINS = ["http://localhost:5173", "https://chef.example.com"]


@pytest.fixture
def database():
    # Unique name per test: mongomock clients may share a server store
    db = Database("mongodb://localhost:27017", f"chef_test_{uuid.uuid4().hex}",
                  client_factory=lambda url: mongomock.MongoClient())
    yield db
    db.close()


@pytest.fixture
def app(database):
    return create_app(database, ORIGINS)


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)
