"""Generic CRUD statics for documents and their subdocument collections.

Attach with `schema.plugin(resource_control_plugin)` before compiling the
model; every function below then becomes a method of the model, e.g.
`Blog.read_doc_by_id(blog_id, {'select': 'title', 'lean': True})`.

All functions take an optional `params` dict (select, where, sort, skip,
limit, populate, lean) applied through `query_builder`. A document that does
not exist, or does not match `params['where']`, gives None.
"""
import logging
from collections.abc import Mapping

from bson.errors import InvalidId

from resource_control.exception import ValidationError
from resource_control.query.builder import query_builder
from resource_control.query.params import parse_select
from resource_control.schema.document import Document, to_storage
from resource_control.schema.schema import is_inclusive
from resource_control.utils.helpers import get_path, has_path, to_object_id

logger = logging.getLogger(__name__)


def _params(params):
    # shallow copy, callers' dicts are never modified
    return dict(params or {})


def _without(params, *keys):
    return {k: v for k, v in _params(params).items() if k not in keys}


def _first(parent, coll_path):
    if parent is None:
        return None
    items = get_path(parent, coll_path) or []
    return items[0] if items else None


def _coll_id(model, coll_id):
    try:
        return to_object_id(coll_id)
    except InvalidId:
        logger.debug('%s: %r is not a valid subdocument id', model.name, coll_id)
        return None


def _elem_match(coll_path, oid):
    return {coll_path: {'$elemMatch': {'_id': oid}}}


# ----------------------------------------------------------------------
# Documents
# ----------------------------------------------------------------------

def create_doc(model, obj, params=None):
    """Create a document, then read it back so selection defaults and params apply."""
    try:
        doc = model.create(obj)
    except ValidationError as e:
        logger.info('%s.create_doc rejected: %s', model.name, e.errors)
        raise
    logger.debug('%s.create_doc: created %s', model.name, doc.id)
    return read_doc_by_id(model, doc.get('_id'), params)


def read_docs(model, params=None):
    return query_builder(model.find(), _params(params)).exec()


def read_doc_by_id(model, doc_id, params=None):
    return query_builder(model.find_by_id(doc_id), _params(params)).exec()


def patch_doc_by_id(model, doc_id, patch, params=None):
    """Load the document, apply `patch` and save it so validation and save hooks run."""
    params = _params(params)
    lean = bool(params.pop('lean', False))
    doc = read_doc_by_id(model, doc_id, params)
    if doc is None:
        return None
    try:
        doc.set(patch or {}).save()
    except ValidationError as e:
        logger.info('%s.patch_doc_by_id(%s) rejected: %s', model.name, doc_id, e.errors)
        raise
    logger.debug('%s.patch_doc_by_id: saved %s', model.name, doc.id)
    return doc.to_dict() if lean else doc


def destroy_doc_by_id(model, doc_id, params=None):
    doc = query_builder(model.find_by_id_and_remove(doc_id), _params(params)).exec()
    if isinstance(doc, Document):
        doc._run_hooks('post', 'remove')
    if doc is not None:
        logger.debug('%s.destroy_doc_by_id: removed %s', model.name, doc_id)
    return doc


# ----------------------------------------------------------------------
# Subdocument collections
# ----------------------------------------------------------------------

def create_coll_doc(model, doc_id, coll_path, coll_obj, params=None):
    """Push a new subdocument onto the collection at `coll_path` of one document.

    The parent is loaded with an empty slice of the collection, the new
    subdocument is pushed and the parent saved (validation errors are keyed
    `<coll_path>.0.<field>`). The new subdocument is then read back with
    `params`, minus `where`.
    """
    params = _params(params)
    coll_params = {'select': {'_id': 1, coll_path: {'$slice': 0}}}
    if params.get('where'):
        coll_params['where'] = params['where']

    coll = read_coll_docs(model, doc_id, coll_path, coll_params)
    if coll is None:
        return None

    coll.push(coll_obj)
    # the slice was empty, the new subdocument is the only element
    coll_doc = coll[0]
    coll_doc_id = coll_doc.get('_id')
    try:
        coll_doc.parent().save()
    except ValidationError as e:
        logger.info('%s.create_coll_doc(%s, %s) rejected: %s', model.name, doc_id, coll_path, e.errors)
        raise
    logger.debug('%s.create_coll_doc: pushed %s onto %s.%s', model.name, coll_doc_id, doc_id, coll_path)

    return read_coll_doc_by_id(model, doc_id, coll_path, coll_doc_id, _without(params, 'where'))


def read_coll_docs(model, doc_id, coll_path, params=None):
    """Read the whole collection at `coll_path` of one document."""
    params = _params(params)
    if not params.get('select'):
        params['select'] = coll_path
    else:
        # subdocuments need their _id to be addressable afterwards
        select = parse_select(params['select'])
        coll_select = select.get(coll_path)
        if isinstance(coll_select, Mapping):
            if '$slice' not in coll_select and '$elemMatch' not in coll_select:
                select[coll_path] = {**coll_select, '_id': 1}
        elif not coll_select and f'{coll_path}._id' not in select and is_inclusive(select):
            select[f'{coll_path}._id'] = 1
        params['select'] = select

    doc = read_doc_by_id(model, doc_id, params)
    if doc is None:
        return None
    return get_path(doc, coll_path)


def read_coll_doc_by_id(model, doc_id, coll_path, coll_id, params=None):
    oid = _coll_id(model, coll_id)
    if oid is None:
        return None
    query = model.find_by_id(doc_id).select(_elem_match(coll_path, oid))
    parent = query_builder(query, _params(params)).exec()
    return _first(parent, coll_path)


def patch_coll_doc_by_id(model, doc_id, coll_path, coll_id, coll_patch, params=None):
    """Patch one subdocument in place.

    The subdocument is loaded and validated with the patch applied, then only
    its modified fields are written with a positional (`<coll_path>.$.<field>`)
    update. None values unset fields.
    """
    params = _params(params)
    coll_doc = read_coll_doc_by_id(model, doc_id, coll_path, coll_id, _without(params, 'lean'))
    if coll_doc is None:
        return None
    oid = coll_doc.get('_id')

    try:
        coll_doc.set(coll_patch or {}).validate()
    except ValidationError as e:
        logger.info('%s.patch_coll_doc_by_id(%s, %s, %s) rejected: %s', model.name, doc_id, coll_path,
                    coll_id, e.errors)
        raise

    sets, unsets = {}, {}
    for path in coll_doc._modified:
        if has_path(coll_doc._data, path):
            sets[f'{coll_path}.$.{path}'] = to_storage(get_path(coll_doc._data, path))
        else:
            unsets[f'{coll_path}.$.{path}'] = ''
    update = {}
    if sets:
        update['$set'] = sets
    if unsets:
        update['$unset'] = unsets
    if not update:
        return read_coll_doc_by_id(model, doc_id, coll_path, oid, params)

    conditions = {'_id': doc_id, **_elem_match(coll_path, oid)}
    query = model.find_one_and_update(conditions, update, new=True).select(_elem_match(coll_path, oid))
    parent = query_builder(query, params).exec()
    logger.debug('%s.patch_coll_doc_by_id: updated %s.%s.%s', model.name, doc_id, coll_path, oid)
    return _first(parent, coll_path)


def destroy_coll_doc_by_id(model, doc_id, coll_path, coll_id, params=None):
    """Pull one subdocument from the collection. Returns the removed subdocument."""
    oid = _coll_id(model, coll_id)
    if oid is None:
        return None
    update = {'$pull': {coll_path: {'_id': oid}}}
    query = model.find_by_id_and_update(doc_id, update).select(_elem_match(coll_path, oid))
    parent = query_builder(query, _params(params)).exec()
    removed = _first(parent, coll_path)
    if removed is not None:
        logger.debug('%s.destroy_coll_doc_by_id: pulled %s from %s.%s', model.name, oid, doc_id, coll_path)
    return removed


STATICS = {
    'create_doc': create_doc,
    'read_docs': read_docs,
    'read_doc_by_id': read_doc_by_id,
    'patch_doc_by_id': patch_doc_by_id,
    'destroy_doc_by_id': destroy_doc_by_id,
    'create_coll_doc': create_coll_doc,
    'read_coll_docs': read_coll_docs,
    'read_coll_doc_by_id': read_coll_doc_by_id,
    'patch_coll_doc_by_id': patch_coll_doc_by_id,
    'destroy_coll_doc_by_id': destroy_coll_doc_by_id,
}


def resource_control_plugin(schema, options=None):
    """Register the CRUD statics on `schema`."""
    for name, fn in STATICS.items():
        schema.static(name, fn)
    return schema
