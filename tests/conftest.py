"""Shared fixtures: the Blog / Comment / User schemas and models bound to mocked collections."""
import os

os.environ.setdefault('APP_ENV', 'test')

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from bson import ObjectId

from resource_control import Field, Schema, model, resource_control_plugin
from resource_control.repository.model import clear_models


def utcnow():
    return datetime.now(timezone.utc)


def make_user_schema():
    return Schema({'displayName': str})


def make_comment_schema():
    schema = Schema({
        'body': Field(str, required=True),
        'created': {
            'by': Field(ObjectId, ref='User', select=False),
            'date': Field(datetime, default=utcnow, select=False),
        },
    })
    schema.virtual('tags', lambda doc: (doc.body or '').split(' ')[:3])
    return schema


def make_blog_anon_schema():
    schema = Schema({
        'title': Field(str, required=True),
        'blog': str,
        'created': {
            'date': Field(datetime, default=utcnow, select=False),
        },
        'comments': Field([make_comment_schema()], select=False),
    })
    schema.virtual('tags', lambda doc: (doc.blog or '').split(' ')[:3])
    return schema


def make_blog_schema():
    schema = make_blog_anon_schema()
    schema.add({
        'created': {
            'by': Field(ObjectId, ref='User', required=True, select=False),
        },
        'readers': Field([Field(ObjectId, ref='User')], select=False),
    })
    return schema


@pytest.fixture
def collections() -> dict:
    """Mocked pymongo collections by name, filled as models are compiled."""
    return {}


@pytest.fixture
def mock_db(collections: dict) -> MagicMock:
    """A mocked pymongo Database handing out one MagicMock per collection name."""
    db = MagicMock(name='db')
    db.list_collection_names.return_value = []

    def _collection(name):
        if name not in collections:
            coll = MagicMock(name=name)
            coll.name = name
            collections[name] = coll
        return collections[name]

    db.__getitem__.side_effect = _collection
    return db


@pytest.fixture(autouse=True)
def _clear_model_registry():
    yield
    clear_models()


@pytest.fixture
def models(mock_db: MagicMock) -> SimpleNamespace:
    """Blog, BlogAnon and User models (the blog models carry the resource plugin)."""
    blog = make_blog_schema()
    blog.plugin(resource_control_plugin)
    anon = make_blog_anon_schema()
    anon.plugin(resource_control_plugin)
    return SimpleNamespace(
        Blog=model('Blog', blog, db=mock_db),
        BlogAnon=model('BlogAnon', anon, db=mock_db),
        User=model('User', make_user_schema(), db=mock_db),
    )


@pytest.fixture
def blog_data() -> dict:
    return {
        'title': 'A day at the lake',
        'blog': 'We walked around the lake and watched the herons fish.',
    }


@pytest.fixture
def blog_schema() -> Schema:
    return make_blog_schema()


@pytest.fixture
def blog_anon_schema() -> Schema:
    return make_blog_anon_schema()


@pytest.fixture
def user_schema() -> Schema:
    return make_user_schema()
