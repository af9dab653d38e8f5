"""Constructed queries: accumulate conditions and options, then run one driver call."""
import logging
from collections.abc import Mapping
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from resource_control.exception import QueryParamError
from resource_control.query.params import parse_populate, parse_select, parse_sort
from resource_control.schema.schema import is_inclusive, resolve_ref
from resource_control.utils.helpers import collect_path, map_path

logger = logging.getLogger(__name__)

OPERATIONS = ('find', 'find_one', 'find_one_and_delete', 'find_one_and_update')

# operator name accepted by `range()` -> (method, mongo operator)
RANGE_OPERATORS = {
    'gt': ('gt', '$gt'),
    'gte': ('gte', '$gte'),
    'lt': ('lt', '$lt'),
    'lte': ('lte', '$lte'),
    'ne': ('ne', '$ne'),
    'in': ('in_', '$in'),
    'nin': ('nin', '$nin'),
}

_MISSING = object()


class Query:
    """A query against one model's collection.

    Builder methods return the query so calls can be chained; nothing touches
    the database until `exec()`.
    """

    def __init__(self, model, op: str = 'find', conditions: Optional[Mapping] = None,
                 update: Optional[Mapping] = None, new: bool = False):
        if op not in OPERATIONS:
            raise ValueError(f"Unsupported query operation '{op}'")
        self.model = model
        self.op = op
        self._conditions: Dict[str, Any] = {}
        self._fields: Dict[str, Any] = {}
        self._forced: List[str] = []
        self._sort: List[tuple] = []
        self._skip: Optional[int] = None
        self._limit: Optional[int] = None
        self._populate: List[Dict[str, Any]] = []
        self._lean = False
        self._update = update
        self._new = new
        self._void = False
        if conditions:
            self.where(conditions)

    # ------------------------------------------------------------------
    # Builder
    # ------------------------------------------------------------------

    def select(self, fields):
        for key, value in parse_select(fields).items():
            if key.startswith('+'):
                if key[1:] not in self._forced:
                    self._forced.append(key[1:])
            else:
                self._fields[key] = value
        return self

    def where(self, conditions, value=_MISSING):
        """Merge filter conditions. Accepts a dict or a single `path, value`."""
        if isinstance(conditions, str):
            if value is _MISSING:
                raise QueryParamError(f'where("{conditions}") needs a value')
            conditions = {conditions: value}
        if not isinstance(conditions, Mapping):
            raise QueryParamError(f'Invalid where {conditions!r}')
        for key, val in self.model.schema.cast_filter(conditions).items():
            self._add_condition(key, val)
        return self

    def _add_condition(self, key, val):
        # a second condition on a path narrows the filter, it never replaces the first
        if key not in self._conditions:
            self._conditions[key] = val
            return
        current = self._conditions[key]
        if key == '$and' and isinstance(val, (list, tuple)):
            self._conditions[key] = list(current) + list(val)
        elif current == val:
            return
        elif _is_operator_dict(current) and _is_operator_dict(val) and not set(current) & set(val):
            merged = dict(current)
            merged.update(val)
            self._conditions[key] = merged
        else:
            self._conditions['$and'] = list(self._conditions.get('$and', [])) + [{key: val}]

    def _condition(self, path, operator, val):
        cast = self.model.schema.cast_filter({path: {operator: val}})[path]
        self._add_condition(path, cast)
        return self

    def gt(self, path, val):
        return self._condition(path, '$gt', val)

    def gte(self, path, val):
        return self._condition(path, '$gte', val)

    def lt(self, path, val):
        return self._condition(path, '$lt', val)

    def lte(self, path, val):
        return self._condition(path, '$lte', val)

    def ne(self, path, val):
        return self._condition(path, '$ne', val)

    def in_(self, path, val):
        return self._condition(path, '$in', _values('in', path, val))

    def nin(self, path, val):
        return self._condition(path, '$nin', _values('nin', path, val))

    def range(self, operator: str, path: str, val):
        """Apply a named range operator, e.g. `range('lt', 'created.date', d)` for keyset paging."""
        if operator not in RANGE_OPERATORS:
            raise QueryParamError(f"Unsupported range operator '{operator}'")
        method, _ = RANGE_OPERATORS[operator]
        return getattr(self, method)(path, val)

    def sort(self, spec):
        for path, direction in parse_sort(spec):
            self._sort = [(p, d) for p, d in self._sort if p != path]
            self._sort.append((path, direction))
        return self

    def skip(self, n):
        self._skip = int(n)
        return self

    def limit(self, n):
        self._limit = int(n)
        return self

    def populate(self, spec):
        self._populate.extend(parse_populate(spec))
        return self

    def lean(self, flag: bool = True):
        self._lean = bool(flag)
        return self

    def void(self):
        """Mark the query as unable to match (e.g. a malformed id); exec() skips the driver."""
        self._void = True
        return self

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def conditions(self) -> dict:
        return dict(self._conditions)

    @property
    def is_lean(self) -> bool:
        return self._lean

    def projection(self) -> Optional[dict]:
        """The projection sent to the driver, with schema-deselected paths applied."""
        fields = dict(self._fields)
        inclusive = is_inclusive(fields)
        for path in self._forced:
            if inclusive and path not in fields:
                fields[path] = 1
        if not inclusive:
            for path in self.model.schema.deselected_paths():
                if path in self._forced:
                    continue
                if any(k == path or path.startswith(k + '.') or k.startswith(path + '.') for k in fields):
                    continue
                fields[path] = 0
        return fields or None

    def _options(self) -> dict:
        options = {}
        if self._sort:
            options['sort'] = list(self._sort)
        if self.op in ('find', 'find_one') and self._skip:
            options['skip'] = self._skip
        if self.op == 'find' and self._limit is not None:
            options['limit'] = self._limit
        return options

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def exec(self):
        """Run the query.

        Returns a list for `find`, otherwise a single document or None.
        Documents are model instances unless the query is lean.
        """
        name = getattr(self.model, 'name', '?')
        if self._void:
            logger.debug('%s.%s skipped: query cannot match', name, self.op)
            return [] if self.op == 'find' else None

        collection = self.model.collection
        projection = self.projection()
        options = self._options()
        logger.debug('%s.%s filter=%s projection=%s options=%s', name, self.op, self._conditions, projection, options)
        try:
            if self.op == 'find':
                raw = list(collection.find(self._conditions, projection, **options))
            elif self.op == 'find_one':
                raw = collection.find_one(self._conditions, projection, **options)
            elif self.op == 'find_one_and_delete':
                raw = collection.find_one_and_delete(self._conditions, projection=projection, **options)
            else:
                return_document = ReturnDocument.AFTER if self._new else ReturnDocument.BEFORE
                raw = collection.find_one_and_update(self._conditions, self._update, projection=projection,
                                                     return_document=return_document, **options)
        except PyMongoError:
            logger.exception('%s.%s failed', name, self.op)
            raise

        if raw is None:
            return None
        docs = raw if isinstance(raw, list) else [raw]
        for spec in self._populate:
            self._apply_populate(docs, spec)
        if not self._lean:
            docs = [self.model.hydrate(doc, projection) for doc in docs]
        return docs if self.op == 'find' else docs[0]

    def _ref_model(self, spec):
        ref = resolve_ref(self.model.schema, spec['path'], spec.get('model'))
        if hasattr(ref, 'find'):
            return ref
        # imported lazily, the model module imports this one
        from resource_control.repository.model import get_model
        return get_model(ref)

    def _apply_populate(self, docs: list, spec: dict):
        path = spec['path']
        ref_model = self._ref_model(spec)
        ids = []
        for doc in docs:
            for value in collect_path(doc, path):
                if isinstance(value, ObjectId) and value not in ids:
                    ids.append(value)
        if not ids:
            return
        query = ref_model.find({'_id': {'$in': ids}})
        if spec.get('select'):
            query.select(spec['select'])
        if spec.get('match'):
            query.where(spec['match'])
        if self._lean:
            query.lean()
        found = query.exec()
        by_id = {}
        for item in found:
            oid = item.get('_id')
            if oid is not None:
                by_id[oid] = item

        def _replace(value):
            if isinstance(value, list):
                return [by_id[v] for v in value if v in by_id]
            return by_id.get(value)

        for doc in docs:
            map_path(doc, path, _replace)
        logger.debug('Populated %s.%s with %d %s document(s)', getattr(self.model, 'name', '?'), path,
                     len(by_id), getattr(ref_model, 'name', '?'))


def _is_operator_dict(value) -> bool:
    return isinstance(value, Mapping) and bool(value) and all(str(k).startswith('$') for k in value)


def _values(operator, path, val) -> list:
    if not isinstance(val, (list, tuple)):
        raise QueryParamError(f'"{operator}" on "{path}" needs a list of values, got {val!r}')
    return list(val)
