"""Unit tests for Document, SubDocument and DocumentArray."""
from datetime import datetime
from unittest.mock import MagicMock

import pytest
from bson import ObjectId

from resource_control.exception import ValidationError
from resource_control.schema import DocumentArray, SubDocument


@pytest.mark.unit
class TestNewDocument:
    """Tests for documents that have not been stored yet."""

    def test_defaults_applied(self, models) -> None:
        doc = models.BlogAnon.new({'title': 'Hello'})

        assert isinstance(doc._id, ObjectId)
        assert isinstance(doc.get('created.date'), datetime)
        assert isinstance(doc.comments, DocumentArray)
        assert len(doc.comments) == 0
        assert doc.is_new
        assert doc.id == str(doc._id)

    def test_unknown_paths_dropped(self, models) -> None:
        doc = models.BlogAnon.new({'title': 'Hello', 'owner': 'someone'})

        assert 'owner' not in doc

    def test_virtuals(self, models, blog_data) -> None:
        doc = models.BlogAnon.new(blog_data)

        assert doc.tags == ['We', 'walked', 'around']
        assert doc.to_dict(virtuals=True)['tags'] == ['We', 'walked', 'around']
        assert doc.to_dict(virtuals=True)['id'] == doc.id
        assert 'tags' not in doc.to_dict()

    def test_save_inserts_with_version(self, models, collections, blog_data) -> None:
        doc = models.BlogAnon.new(blog_data)

        result = doc.save()

        assert result is doc
        collections['bloganons'].insert_one.assert_called_once()
        stored = collections['bloganons'].insert_one.call_args[0][0]
        assert stored['_id'] == doc._id
        assert stored['title'] == blog_data['title']
        assert stored['comments'] == []
        assert stored['__v'] == 0
        assert not doc.is_new

    def test_validation_failure_writes_nothing(self, models, collections) -> None:
        doc = models.Blog.new({'blog': 'no title'})

        with pytest.raises(ValidationError) as exc_info:
            doc.save()

        assert set(exc_info.value.errors) == {'title', 'created.by'}
        collections['blogs'].insert_one.assert_not_called()

    def test_cast_error_reported_on_validate(self, models) -> None:
        doc = models.Blog.new({'title': 'Hello', 'created': {'by': 'not-an-id'}})

        with pytest.raises(ValidationError) as exc_info:
            doc.validate()

        assert 'created.by' in exc_info.value.errors
        assert 'not a valid ObjectId' in exc_info.value.errors['created.by']

    def test_hooks_run_around_save(self, blog_anon_schema, mock_db) -> None:
        from resource_control import model

        calls = []
        blog_anon_schema.pre('validate', lambda doc: calls.append('pre-validate'))
        blog_anon_schema.pre('save', lambda doc: calls.append('pre-save'))
        blog_anon_schema.post('save', lambda doc: calls.append('post-save'))
        Blog = model('HookBlog', blog_anon_schema, db=mock_db)

        Blog.create({'title': 'Hooks'})

        assert calls == ['pre-validate', 'pre-save', 'post-save']

    def test_save_without_model_raises(self, blog_anon_schema) -> None:
        from resource_control.schema import Document

        with pytest.raises(TypeError):
            Document(blog_anon_schema, {'title': 'x'}).save()


@pytest.mark.unit
class TestStoredDocument:
    """Tests for documents loaded from the collection."""

    def _stored(self, models, **extra):
        raw = {'_id': ObjectId(), 'title': 'Stored', 'blog': 'Some text here', '__v': 0}
        raw.update(extra)
        return models.BlogAnon.hydrate(raw), raw

    def test_targeted_update(self, models, collections) -> None:
        doc, raw = self._stored(models, created={'date': datetime(2024, 1, 1)})

        doc.set({'blog': 'Rewritten', 'created.date': None}).save()

        collections['bloganons'].update_one.assert_called_once_with(
            {'_id': raw['_id']},
            {'$set': {'blog': 'Rewritten'}, '$unset': {'created.date': ''}},
        )

    def test_unmodified_save_skips_update(self, models, collections) -> None:
        doc, _ = self._stored(models)

        doc.save()

        collections['bloganons'].update_one.assert_not_called()

    def test_hydrate_does_not_share_raw_data(self, models) -> None:
        doc, raw = self._stored(models)

        doc.set('title', 'Changed')

        assert raw['title'] == 'Stored'
        assert doc.is_modified('title')
        assert not doc.is_modified('blog')

    def test_push_appends_and_bumps_version(self, models, collections) -> None:
        doc, raw = self._stored(models, comments=[])

        doc.comments.push({'body': 'First comment'})
        doc.save()

        update = collections['bloganons'].update_one.call_args[0][1]
        pushed = update['$push']['comments']['$each']
        assert len(pushed) == 1
        assert pushed[0]['body'] == 'First comment'
        assert isinstance(pushed[0]['_id'], ObjectId)
        assert update['$inc'] == {'__v': 1}
        assert doc.get('__v') == 1

    def test_push_validation_error_keyed_by_index(self, models, collections) -> None:
        doc, _ = self._stored(models, comments=[{'_id': ObjectId(), 'body': 'existing'}])

        doc.comments.push({})

        with pytest.raises(ValidationError) as exc_info:
            doc.save()

        assert set(exc_info.value.errors) == {'comments.1.body'}
        collections['bloganons'].update_one.assert_not_called()

    def test_partial_projection_saves(self, models, collections) -> None:
        oid = ObjectId()
        doc = models.Blog.hydrate({'_id': oid, 'blog': 'x'}, projection={'blog': 1})

        doc.set('blog', 'y').save()

        collections['blogs'].update_one.assert_called_once_with({'_id': oid}, {'$set': {'blog': 'y'}})

    def test_unloaded_collection_left_missing(self, models) -> None:
        doc = models.BlogAnon.hydrate({'_id': ObjectId(), 'title': 't'}, projection={'title': 1})

        assert doc.comments is None

    def test_to_json_serializes_ids(self, models) -> None:
        doc, raw = self._stored(models)

        assert doc.to_json()['_id'] == str(raw['_id'])
        assert doc.to_json()['id'] == str(raw['_id'])


@pytest.mark.unit
class TestSubDocument:
    """Tests for subdocument collections."""

    def test_loaded_collection_wrapped(self, models) -> None:
        comment_id = ObjectId()
        doc = models.BlogAnon.hydrate({'_id': ObjectId(), 'title': 't', 'comments': [
            {'_id': comment_id, 'body': 'one two three four'},
        ]})

        comment = doc.comments[0]

        assert isinstance(comment, SubDocument)
        assert comment.parent() is doc
        assert comment.tags == ['one', 'two', 'three']
        assert doc.comments.id(str(comment_id)) is comment
        assert doc.comments.id('bad') is None

    def test_validate_prefix(self, models) -> None:
        doc = models.BlogAnon.hydrate({'_id': ObjectId(), 'title': 't', 'comments': [
            {'_id': ObjectId(), 'body': 'a'},
            {'_id': ObjectId(), 'body': 'b'},
        ]})
        comment = doc.comments[1]

        with pytest.raises(ValidationError) as exc_info:
            comment.set('body', '').validate()

        assert set(exc_info.value.errors) == {'comments.1.body'}

    def test_subdocument_save_saves_parent(self, models) -> None:
        doc = models.BlogAnon.hydrate({'_id': ObjectId(), 'title': 't', 'comments': []})
        doc.save = MagicMock()
        doc.comments.push({'body': 'hi'})

        doc.comments[0].save()

        doc.save.assert_called_once_with()

    def test_pre_save_hooks_for_pushed_subdocs(self, mock_db) -> None:
        from resource_control import Field, Schema, model

        seen = []
        comment = Schema({'body': Field(str, required=True)})
        comment.pre('save', lambda sub: seen.append(sub.body))
        Post = model('Post', Schema({'comments': [comment]}), db=mock_db)
        doc = Post.hydrate({'_id': ObjectId(), 'comments': [{'_id': ObjectId(), 'body': 'old'}]})

        doc.comments.push({'body': 'new'})
        doc.save()

        assert seen == ['new']
