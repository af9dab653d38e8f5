"""Document instances: the loaded (or new) state of one stored document.

A Document tracks which paths were modified and which subdocuments were
pushed onto its collections, so `save()` writes a targeted update instead
of replacing a document that may have been read with a partial projection.
"""
import logging
from collections.abc import Mapping
from typing import Any, Dict, List, Optional

from bson.errors import InvalidId

from resource_control.exception import ValidationError
from resource_control.schema.schema import Schema, is_loaded
from resource_control.utils.helpers import get_path, has_path, normalize_doc, set_path, to_object_id, unset_path

logger = logging.getLogger(__name__)

_MISSING = object()


def to_storage(value):
    """Convert document values to what the driver stores.

    Subdocuments become plain dicts, populated references collapse back to their _id.
    """
    if isinstance(value, SubDocument):
        return value.to_storage()
    if isinstance(value, Document):
        return value._data.get('_id')
    if isinstance(value, Mapping):
        return {k: to_storage(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_storage(v) for v in value]
    return value


def _plain(value, virtuals):
    if isinstance(value, Document):
        return value.to_dict(virtuals=virtuals)
    if isinstance(value, Mapping):
        return {k: _plain(v, virtuals) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v, virtuals) for v in value]
    return value


def _copy_tree(value):
    if isinstance(value, Mapping) and not isinstance(value, Document):
        return {k: _copy_tree(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_copy_tree(v) for v in value]
    return value


class Document:
    """One document of a model.

    Fields are readable as attributes (`doc.title`) or by dotted path
    (`doc.get('created.by')`); schema virtuals are computed on access.
    """

    def __init__(self, schema: Schema, data: Optional[Mapping] = None, model=None, is_new: bool = True,
                 projection: Optional[Mapping] = None):
        self._schema = schema
        self._model = model
        self._is_new = is_new
        self._projection = dict(projection) if projection else None
        self._data: Dict[str, Any] = {}
        self._modified: List[str] = []
        self._pushes: Dict[str, list] = {}
        self._cast_errors: Dict[str, str] = {}
        if is_new:
            self._apply_defaults()
            if data:
                self.set(data)
            self._modified = []
        else:
            self._init(data or {})

    def _apply_defaults(self):
        for path, field in self._schema.paths.items():
            if field.is_collection:
                set_path(self._data, path, DocumentArray([], parent=self, path=path, schema=field.schema))
            elif field.default is not None:
                set_path(self._data, path, field.get_default())

    def _init(self, raw: Mapping):
        self._data = _copy_tree(raw)
        for path in self._schema.collection_paths():
            field = self._schema.paths[path]
            items = get_path(self._data, path)
            if items is None:
                if is_loaded(path, self._projection):
                    set_path(self._data, path, DocumentArray([], parent=self, path=path, schema=field.schema))
                continue
            subdocs = [SubDocument(field.schema, item, parent=self, path=path, is_new=False) for item in items]
            set_path(self._data, path, DocumentArray(subdocs, parent=self, path=path, schema=field.schema))

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def __getattr__(self, name):
        data = self.__dict__.get('_data')
        schema = self.__dict__.get('_schema')
        if data is None or schema is None:
            raise AttributeError(name)
        if name in schema.virtuals:
            return schema.virtuals[name](self)
        if name in data:
            return data[name]
        if schema.has_path(name):
            return None
        raise AttributeError(f"'{type(self).__name__}' has no field '{name}'")

    def __getitem__(self, path):
        return self.get(path)

    def __contains__(self, path):
        return has_path(self._data, path)

    @property
    def id(self) -> Optional[str]:
        oid = self._data.get('_id')
        return str(oid) if oid is not None else None

    @property
    def is_new(self) -> bool:
        return self._is_new

    def get(self, path: str, default=None):
        if path in self._schema.virtuals:
            return self._schema.virtuals[path](self)
        return get_path(self._data, path, default)

    def is_modified(self, path: Optional[str] = None) -> bool:
        if path is None:
            return bool(self._modified or self._pushes)
        return any(m == path or m.startswith(path + '.') or path.startswith(m + '.') for m in self._modified)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set(self, path_or_patch, value=_MISSING):
        """Apply a patch dict (nested or dotted keys) or a single `path, value`.

        None unsets a path. Values are cast to the field type; failed casts are
        reported by the next `validate()`.
        """
        if isinstance(path_or_patch, str):
            pairs = [(path_or_patch, None if value is _MISSING else value)]
        else:
            pairs = self._schema.leaf_paths(path_or_patch)
        for path, val in pairs:
            self._set_path(path, val)
        return self

    def _set_path(self, path, value):
        field = self._schema.paths.get(path)
        self._cast_errors.pop(path, None)
        if value is None:
            unset_path(self._data, path)
        elif field is not None and field.is_collection:
            items = value if isinstance(value, (list, tuple)) else [value]
            arr = DocumentArray(items, parent=self, path=path, schema=field.schema)
            set_path(self._data, path, arr)
            self._pushes.pop(path, None)
        elif field is not None:
            try:
                value = field.cast(value)
            except ValueError as e:
                self._cast_errors[path] = str(e)
                return
            set_path(self._data, path, value)
        else:
            set_path(self._data, path, value)
        self._mark_modified(path)

    def _mark_modified(self, path):
        if any(path == m or path.startswith(m + '.') for m in self._modified):
            return
        self._modified = [m for m in self._modified if not m.startswith(path + '.')]
        self._modified.append(path)

    # ------------------------------------------------------------------
    # Validation / persistence
    # ------------------------------------------------------------------

    def _error_prefix(self) -> str:
        return ''

    def _subdocs(self):
        for path in self._schema.collection_paths():
            arr = get_path(self._data, path)
            for i, sub in enumerate(arr or []):
                yield path, i, sub

    def _run_hooks(self, kind, event):
        for hook in self._schema.hooks(kind, event):
            hook(self)

    def validate(self):
        """Run validate hooks and schema validation. Raises ValidationError."""
        self._run_hooks('pre', 'validate')
        prefix = self._error_prefix()
        _, errors = self._schema.validate(self._data, prefix=prefix, projection=self._projection,
                                          modified=self._modified)
        for path, message in self._cast_errors.items():
            errors[f'{prefix}{path}'] = message
        for path, i, sub in self._subdocs():
            for sub_path, message in sub._cast_errors.items():
                errors[f'{prefix}{path}.{i}.{sub_path}'] = message
        if errors:
            logger.info('Validation failed for %s: %s', self._describe(), errors)
            raise ValidationError(errors)
        self._run_hooks('post', 'validate')
        return self

    def _touched_subdocs(self):
        if self._is_new:
            return [sub for _, _, sub in self._subdocs()]
        touched = [sub for subs in self._pushes.values() for sub in subs]
        for path, _, sub in self._subdocs():
            if self.is_modified(path) and sub not in touched:
                touched.append(sub)
        return touched

    def save(self):
        """Validate, run save hooks and persist. Returns the document."""
        if self._model is None:
            raise TypeError(f'{self._describe()} is not bound to a model')
        self.validate()
        self._run_hooks('pre', 'save')
        for sub in self._touched_subdocs():
            sub._run_hooks('pre', 'save')

        collection = self._model.collection
        version_key = self._schema.version_key
        if self._is_new:
            doc = self.to_storage()
            if version_key:
                doc.setdefault(version_key, 0)
                self._data.setdefault(version_key, 0)
            collection.insert_one(doc)
            logger.debug('Inserted %s', self._describe())
        else:
            update = self._build_update()
            if update:
                collection.update_one({'_id': self._data['_id']}, update)
                logger.debug('Updated %s: %s', self._describe(), sorted(update))

        self._reset_tracking()
        self._run_hooks('post', 'save')
        return self

    def _build_update(self) -> dict:
        sets, unsets = {}, {}
        for path in self._modified:
            if has_path(self._data, path):
                sets[path] = to_storage(get_path(self._data, path))
            else:
                unsets[path] = ''
        pushes = {}
        for path, subs in self._pushes.items():
            if subs and not self.is_modified(path):
                pushes[path] = {'$each': [sub.to_storage() for sub in subs]}

        update = {}
        if sets:
            update['$set'] = sets
        if unsets:
            update['$unset'] = unsets
        if pushes:
            update['$push'] = pushes

        arrays_changed = bool(pushes) or any(
            (self._schema.paths.get(p) is not None and self._schema.paths[p].is_array) for p in self._modified)
        version_key = self._schema.version_key
        if update and arrays_changed and version_key and version_key not in sets:
            update['$inc'] = {version_key: 1}
            if version_key in self._data:
                self._data[version_key] += 1
        return update

    def _reset_tracking(self):
        self._is_new = False
        self._modified = []
        self._pushes = {}
        for _, _, sub in self._subdocs():
            sub._is_new = False
            sub._modified = []

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def to_storage(self) -> dict:
        return {k: to_storage(v) for k, v in self._data.items()}

    def to_dict(self, virtuals: bool = False) -> dict:
        out = {k: _plain(v, virtuals) for k, v in self._data.items()}
        if virtuals:
            for name, getter in self._schema.virtuals.items():
                out[name] = getter(self)
            if self.id is not None:
                out['id'] = self.id
        return out

    def to_json(self) -> dict:
        """JSON-safe dict including virtuals (ObjectIds and datetimes as strings)."""
        return normalize_doc(self.to_dict(virtuals=True))

    def _describe(self) -> str:
        name = getattr(self._model, 'name', None) or type(self).__name__
        return f'{name}({self.id})'

    def __repr__(self):
        return f'<{self._describe()}>'


class SubDocument(Document):
    """An element of a subdocument collection, owned by a parent Document."""

    def __init__(self, schema: Schema, data: Optional[Mapping] = None, parent: Optional[Document] = None,
                 path: Optional[str] = None, is_new: bool = True):
        self._parent = parent
        self._path = path
        super().__init__(schema, data, model=None, is_new=is_new)

    def parent(self) -> Optional[Document]:
        return self._parent

    def _index(self) -> int:
        arr = self._parent.get(self._path) if self._parent is not None else None
        for i, sub in enumerate(arr or []):
            if sub is self:
                return i
        return 0

    def _error_prefix(self) -> str:
        if self._path is None:
            return ''
        return f'{self._path}.{self._index()}.'

    def save(self):
        if self._parent is None:
            raise TypeError(f'{self._describe()} has no parent document')
        self._parent.save()
        return self

    def _describe(self) -> str:
        return f'{self._path or "subdocument"}({self.id})'


class DocumentArray(list):
    """A subdocument collection bound to its parent document.

    `push()` casts plain dicts into SubDocuments (assigning `_id` and defaults)
    and records them so the parent's next `save()` appends them with `$push`.
    """

    def __init__(self, items=(), parent: Optional[Document] = None, path: Optional[str] = None,
                 schema: Optional[Schema] = None):
        super().__init__()
        self._parent = parent
        self._path = path
        self._schema = schema
        for item in items:
            super().append(self._cast(item))

    def _cast(self, item):
        if isinstance(item, SubDocument):
            item._parent = self._parent
            item._path = self._path
            return item
        if isinstance(item, Document):
            item = item.to_storage()
        return SubDocument(self._schema, item, parent=self._parent, path=self._path, is_new=True)

    def push(self, *items) -> int:
        for item in items:
            sub = self._cast(item)
            self.append(sub)
            if self._parent is not None:
                self._parent._pushes.setdefault(self._path, []).append(sub)
        return len(self)

    def create(self, item) -> SubDocument:
        """Cast `item` to a SubDocument without adding it to the collection."""
        return self._cast(item)

    def id(self, coll_id) -> Optional[SubDocument]:
        """Find a subdocument by its _id."""
        try:
            oid = to_object_id(coll_id)
        except InvalidId:
            return None
        for sub in self:
            if sub.get('_id') == oid:
                return sub
        return None
