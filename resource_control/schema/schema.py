"""Schema: the path definitions, hooks, statics and indexes of a document type."""
import logging
from collections import defaultdict
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Optional, Tuple

from bson import ObjectId

from resource_control.exception import QueryParamError
from resource_control.schema.field import Field
from resource_control.utils.helpers import get_path

logger = logging.getLogger(__name__)

HOOK_EVENTS = ('validate', 'save', 'remove')


def is_loaded(path: str, projection: Optional[Mapping]) -> bool:
    """Whether `path` is present in a document fetched with `projection`."""
    if not projection:
        return True
    if path == '_id':
        return projection.get('_id') not in (0, False)
    inclusive = is_inclusive(projection)
    for key, value in projection.items():
        if key == path or path.startswith(key + '.'):
            if inclusive:
                return _includes(value)
            return _includes(value) or isinstance(value, Mapping)
        if inclusive and key.startswith(path + '.') and _includes(value):
            return True
    return not inclusive


def _touches(path: str, modified: Optional[List[str]]) -> bool:
    return any(m == path or path.startswith(m + '.') or m.startswith(path + '.') for m in modified or ())


def _includes(value) -> bool:
    if isinstance(value, Mapping):
        return '$elemMatch' in value or '$slice' in value or not any(k.startswith('$') for k in value)
    return bool(value)


def is_inclusive(projection: Optional[Mapping]) -> bool:
    """An inclusive projection returns only the paths it names (plus `_id`)."""
    if not projection:
        return False
    for key, value in projection.items():
        if isinstance(value, Mapping):
            if '$elemMatch' in value or not any(k.startswith('$') for k in value):
                return True
        elif value and key != '_id':
            return True
    return projection.get('_id') in (1, True)


class Schema:
    """Definition of a document type.

    `definition` maps names to a Field, a python type, a nested dict (nested
    path) or a one-element list (`[Schema]` for subdocument collections,
    `[Field]`/`[type]` for arrays of values).

    Every schema gets an `_id` ObjectId path unless `_id=False` is passed.
    `version_key` names the path bumped when array contents change; set it to
    None to disable versioning.
    """

    def __init__(self, definition: Optional[Mapping] = None, _id: bool = True, version_key: Optional[str] = '__v',
                 strict: bool = True):
        self.paths: Dict[str, Field] = {}
        self.virtuals: Dict[str, Callable[[Any], Any]] = {}
        self.statics: Dict[str, Callable] = {}
        self.indexes: List[Tuple[list, dict]] = []
        self.version_key = version_key
        self.strict = strict
        self._hooks = {'pre': defaultdict(list), 'post': defaultdict(list)}
        if _id:
            self.paths['_id'] = Field(ObjectId, default=ObjectId)
        if definition:
            self.add(definition)

    # ------------------------------------------------------------------
    # Definition
    # ------------------------------------------------------------------

    def add(self, definition: Mapping, prefix: str = ''):
        """Add paths to the schema. Nested dicts are merged with existing nested paths."""
        for key, value in definition.items():
            path = f'{prefix}{key}'
            if isinstance(value, Field):
                self.paths[path] = value
            elif isinstance(value, list):
                self.paths[path] = Field(value)
            elif isinstance(value, Schema):
                self.paths[path] = Field([value])
            elif isinstance(value, Mapping):
                self.add(value, prefix=f'{path}.')
            else:
                self.paths[path] = Field(value)
        return self

    def virtual(self, name: str, getter: Callable[[Any], Any]):
        self.virtuals[name] = getter
        return self

    def pre(self, event: str, fn: Callable):
        self._register_hook('pre', event, fn)
        return self

    def post(self, event: str, fn: Callable):
        self._register_hook('post', event, fn)
        return self

    def _register_hook(self, kind, event, fn):
        if event not in HOOK_EVENTS:
            raise ValueError(f"Unsupported hook event '{event}', expected one of {HOOK_EVENTS}")
        self._hooks[kind][event].append(fn)

    def hooks(self, kind: str, event: str) -> List[Callable]:
        return list(self._hooks[kind][event])

    def index(self, keys, **options):
        """Declare an index. `keys` is a pymongo key spec (path or list of (path, direction))."""
        if isinstance(keys, Mapping):
            keys = list(keys.items())
        self.indexes.append((keys, options))
        return self

    def static(self, name: str, fn: Callable):
        """Register a function exposed as a bound method on every model compiled from this schema."""
        self.statics[name] = fn
        return self

    def plugin(self, fn: Callable, options: Optional[Mapping] = None):
        fn(self, options or {})
        return self

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def has_path(self, name: str) -> bool:
        """True when `name` is a path or the prefix of nested paths."""
        if name in self.paths:
            return True
        prefix = name + '.'
        return any(p.startswith(prefix) for p in self.paths)

    def field_for_path(self, path: str) -> Optional[Field]:
        """Resolve a dotted path to its Field, descending into subdocument collections."""
        if path in self.paths:
            return self.paths[path]
        parts = path.split('.')
        for i in range(len(parts) - 1, 0, -1):
            head = '.'.join(parts[:i])
            field = self.paths.get(head)
            if field is None:
                continue
            rest = [p for p in parts[i:] if not p.isdigit() and p != '$']
            if field.is_collection:
                return field.schema.field_for_path('.'.join(rest)) if rest else field
            if field.item is not None and not rest:
                return field
            return None
        return None

    def collection_paths(self) -> List[str]:
        return [p for p, f in self.paths.items() if f.is_collection]

    def deselected_paths(self) -> List[str]:
        return [p for p, f in self.paths.items() if not f.select]

    def leaf_paths(self, value: Mapping, prefix: str = '') -> List[Tuple[str, Any]]:
        """Flatten a (possibly nested) patch into (path, value) pairs known to the schema.

        Dotted keys are accepted. Unknown paths are dropped when the schema is strict.
        """
        pairs = []
        for key, val in value.items():
            path = f'{prefix}{key}'
            if path in self.paths:
                pairs.append((path, val))
            elif isinstance(val, Mapping) and self.has_path(path):
                pairs.extend(self.leaf_paths(val, prefix=f'{path}.'))
            elif val is None and self.has_path(path):
                pairs.append((path, None))
            elif not self.strict:
                pairs.append((path, val))
            else:
                logger.debug('Dropping unknown path %s', path)
        return pairs

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, data: Mapping, prefix: str = '', projection: Optional[Mapping] = None,
                 modified: Optional[List[str]] = None) -> Tuple[bool, Dict[str, str]]:
        """Validate `data` against the schema.

        Only paths loaded under `projection` or listed in `modified` are
        checked, so documents read with a partial selection can still be saved
        while every path written by the save is validated.

        Returns:
            (ok, errors) where errors maps full dotted paths to messages.
        """
        errors = {}
        for path, field in self.paths.items():
            if not (is_loaded(path, projection) or _touches(path, modified)):
                continue
            value = get_path(data, path)
            if field.is_collection:
                for i, item in enumerate(value or []):
                    item_data = getattr(item, '_data', item)
                    _, sub_errors = field.schema.validate(item_data, prefix=f'{prefix}{path}.{i}.')
                    errors.update(sub_errors)
                continue
            message = field.validate(value, f'{prefix}{path}')
            if message:
                errors[f'{prefix}{path}'] = message
        return (len(errors) == 0, errors)

    def cast_filter(self, query: Mapping) -> dict:
        """Cast filter values for ObjectId/datetime paths (string ids become ObjectIds)."""
        out = {}
        for key, value in query.items():
            if key in ('$or', '$and', '$nor') and isinstance(value, (list, tuple)):
                out[key] = [self.cast_filter(v) for v in value]
                continue
            if key.startswith('$'):
                out[key] = value
                continue
            field = self.field_for_path(key)
            if field is None:
                out[key] = value
            elif field.is_collection and isinstance(value, Mapping) and '$elemMatch' in value:
                out[key] = dict(value)
                out[key]['$elemMatch'] = field.schema.cast_filter(value['$elemMatch'])
            elif field.is_collection:
                out[key] = value
            else:
                out[key] = field.cast_query_value(value, key)
        return out

    def __repr__(self):
        return f'Schema(paths={list(self.paths)})'


def resolve_ref(schema: Schema, path: str, explicit: Any = None) -> Any:
    """Return the model reference for populating `path`."""
    if explicit is not None:
        return explicit
    field = schema.field_for_path(path)
    if field is None or not field.ref:
        raise QueryParamError(f'Cannot populate path "{path}": no ref declared')
    return field.ref

