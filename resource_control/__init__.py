"""Generic CRUD operations for MongoDB documents and their subdocument collections.

    from resource_control import Field, Schema, model, resource_control_plugin

    comment = Schema({'body': Field(str, required=True)})
    blog = Schema({'title': Field(str, required=True), 'comments': [comment]})
    blog.plugin(resource_control_plugin)
    Blog = model('Blog', blog)

    post = Blog.create_doc({'title': 'Hello'})
    Blog.create_coll_doc(post.id, 'comments', {'body': 'First'})
    Blog.read_docs({'select': 'title', 'sort': '-title', 'limit': 10, 'lean': True})
"""
from resource_control.exception import ModelNotFoundError, QueryParamError, ValidationError
from resource_control.schema import Document, DocumentArray, Field, Schema, SubDocument
from resource_control.query import Query, query_builder
from resource_control.repository import Model, get_model, model
from resource_control.plugins import resource_control_plugin

__version__ = '0.1.0'

__all__ = [
    'Field', 'Schema', 'Document', 'SubDocument', 'DocumentArray',
    'Query', 'query_builder',
    'Model', 'model', 'get_model',
    'resource_control_plugin',
    'ValidationError', 'QueryParamError', 'ModelNotFoundError',
]
