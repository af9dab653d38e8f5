"""Pytest fixtures for integration tests against a real MongoDB."""
import os
import uuid
from types import SimpleNamespace

import pytest
from pymongo import MongoClient

from resource_control import model, resource_control_plugin


@pytest.fixture(scope='session')
def mongo_uri() -> str:
    """Get the MongoDB URI from environment; skip when it is not set."""
    uri = os.getenv('MONGO_URI')
    if not uri:
        pytest.skip('MONGO_URI environment variable is not set')
    return uri


@pytest.fixture(scope='session')
def mongo_client(mongo_uri: str):
    client = MongoClient(mongo_uri, serverSelectionTimeoutMS=2000)
    yield client
    client.close()


@pytest.fixture
def test_db(mongo_client):
    """A throwaway database, dropped after the test."""
    name = f'resource_control_test_{uuid.uuid4().hex[:8]}'
    db = mongo_client[name]
    yield db
    mongo_client.drop_database(name)


@pytest.fixture
def live_models(test_db, blog_schema, blog_anon_schema, user_schema) -> SimpleNamespace:
    """Blog, BlogAnon and User models bound to the throwaway database."""
    blog_schema.plugin(resource_control_plugin)
    blog_anon_schema.plugin(resource_control_plugin)
    return SimpleNamespace(
        Blog=model('Blog', blog_schema, db=test_db),
        BlogAnon=model('BlogAnon', blog_anon_schema, db=test_db),
        User=model('User', user_schema, db=test_db),
    )


@pytest.fixture
def users(live_models) -> list:
    return live_models.User.create([{'displayName': f'Reader {i}'} for i in range(3)])
