"""Models: a schema compiled against a pymongo collection."""
import logging
from types import MethodType
from typing import Dict, Optional

from bson.errors import InvalidId
from pymongo.errors import PyMongoError

from config import config
from resource_control.exception import ModelNotFoundError
from resource_control.query.query import Query
from resource_control.repository.base_repository import BaseRepository
from resource_control.repository.mongo_helper import MongoRepositorySingleton
from resource_control.schema.document import Document
from resource_control.schema.schema import Schema
from resource_control.utils.helpers import to_object_id

logger = logging.getLogger(__name__)

_models: Dict[str, 'Model'] = {}


class Model(BaseRepository):
    """Document type bound to a collection.

    Query methods return a `Query`; call `.exec()` to run it. Statics
    registered on the schema are bound as methods of the model.
    """

    def __init__(self, name: str, schema: Schema, collection):
        self.name = name
        self.schema = schema
        self.collection = collection
        for static_name, fn in schema.statics.items():
            if hasattr(type(self), static_name):
                raise ValueError(f"Static '{static_name}' would shadow Model.{static_name}")
            setattr(self, static_name, MethodType(fn, self))

    def __repr__(self):
        return f"Model('{self.name}', collection='{getattr(self.collection, 'name', None)}')"

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def new(self, data=None) -> Document:
        return Document(self.schema, data, model=self, is_new=True)

    def hydrate(self, raw, projection=None) -> Document:
        """Wrap a stored document (as returned by the driver) in a Document."""
        return Document(self.schema, raw, model=self, is_new=False, projection=projection)

    def create(self, data):
        """Validate, run save hooks and insert. A list creates one document per item."""
        if isinstance(data, (list, tuple)):
            return [self.create(item) for item in data]
        doc = data if isinstance(data, Document) else self.new(data)
        return doc.save()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find(self, query=None) -> Query:
        return Query(self, 'find', query)

    def find_one(self, query=None) -> Query:
        return Query(self, 'find_one', query)

    def _by_id(self, query: Query, doc_id) -> Query:
        try:
            query.where({'_id': to_object_id(doc_id)})
        except InvalidId:
            logger.debug('%s: %r is not a valid id, query cannot match', self.name, doc_id)
            query.void()
        return query

    def find_by_id(self, doc_id) -> Query:
        return self._by_id(Query(self, 'find_one'), doc_id)

    def find_by_id_and_remove(self, doc_id) -> Query:
        return self._by_id(Query(self, 'find_one_and_delete'), doc_id)

    def find_by_id_and_update(self, doc_id, update, new: bool = False) -> Query:
        return self._by_id(Query(self, 'find_one_and_update', update=update, new=new), doc_id)

    def find_one_and_update(self, query, update, new: bool = False) -> Query:
        return Query(self, 'find_one_and_update', query, update=update, new=new)

    # ------------------------------------------------------------------
    # Repository surface
    # ------------------------------------------------------------------

    def update(self, query, update_fields) -> int:
        """Set fields on the first matching document without loading it. Returns modified count."""
        result = self.collection.update_one(self.schema.cast_filter(query), {'$set': update_fields})
        return result.modified_count

    def delete(self, query) -> int:
        """Delete documents matching the query. Returns deleted count."""
        result = self.collection.delete_many(self.schema.cast_filter(query))
        return result.deleted_count

    def count(self, query=None) -> int:
        return self.collection.count_documents(self.schema.cast_filter(query or {}))

    def ensure_indexes(self):
        """Create the indexes declared on the schema (idempotent)."""
        created = []
        for keys, options in self.schema.indexes:
            try:
                created.append(self.collection.create_index(keys, **options))
            except PyMongoError as e:
                logger.exception('Error creating index %s on %s: %s', keys, self.name, e)
        if created:
            logger.info('Ensured indexes for %s: %s', self.name, created)
        return created


def model(name: str, schema: Schema, db=None, collection_name: Optional[str] = None) -> Model:
    """Compile `schema` into a Model and register it under `name`.

    The collection defaults to the lower-cased name plus 's' in the configured
    database (or `db`).
    """
    collection_name = collection_name or f'{name.lower()}s'
    collection = MongoRepositorySingleton.get_collection(collection_name, db)
    compiled = Model(name, schema, collection)
    if name in _models:
        logger.debug('Replacing registered model %s', name)
    _models[name] = compiled
    if config.AUTO_INDEX and schema.indexes:
        compiled.ensure_indexes()
    return compiled


def get_model(name: str) -> Model:
    try:
        return _models[name]
    except KeyError:
        raise ModelNotFoundError(name) from None


def registered_models() -> Dict[str, Model]:
    return dict(_models)


def clear_models():
    _models.clear()
