from collections.abc import Mapping
from datetime import datetime

from bson import ObjectId
from bson.errors import InvalidId


def normalize_doc(obj):
    """Recursively convert BSON types (ObjectId) and datetimes to JSON-serializable values.

    - ObjectId -> str(ObjectId)
    - datetime -> ISO string
    - recursively handles dicts and lists
    Returns a new object (does not mutate input).
    """
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return {k: normalize_doc(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [normalize_doc(v) for v in obj]
    if isinstance(obj, ObjectId):
        return str(obj)
    if isinstance(obj, datetime):
        try:
            return obj.isoformat()
        except Exception:
            return str(obj)
    return obj


def deep_merge(base: Mapping, override: Mapping) -> dict:
    """Deep merge two dictionaries. Values from `override` win."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], Mapping) and isinstance(value, Mapping):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _container(value):
    # Documents keep their fields in `_data`
    data = getattr(value, '_data', None)
    return data if isinstance(data, dict) else value


def get_path(data, path: str, default=None):
    """Read a dotted path from nested dicts/lists. Numeric parts index into lists."""
    cur = data
    for part in path.split('.'):
        cur = _container(cur)
        if isinstance(cur, Mapping):
            if part not in cur:
                return default
            cur = cur[part]
        elif isinstance(cur, list) and part.isdigit():
            idx = int(part)
            if idx >= len(cur):
                return default
            cur = cur[idx]
        else:
            return default
    return cur


def has_path(data, path: str) -> bool:
    marker = object()
    return get_path(data, path, marker) is not marker


def set_path(data: dict, path: str, value):
    """Assign `value` at a dotted path, creating intermediate dicts."""
    parts = path.split('.')
    cur = data
    for part in parts[:-1]:
        nxt = cur.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            cur[part] = nxt
        cur = nxt
    cur[parts[-1]] = value


def unset_path(data: dict, path: str):
    parts = path.split('.')
    cur = data
    for part in parts[:-1]:
        cur = cur.get(part)
        if not isinstance(cur, dict):
            return
    cur.pop(parts[-1], None)


def map_path(data, path: str, fn):
    """Replace every value found at `path` with fn(value), descending through lists."""
    parts = path.split('.')

    def _walk(cur, idx):
        cur = _container(cur)
        if isinstance(cur, list):
            for item in cur:
                _walk(item, idx)
            return
        if not isinstance(cur, dict):
            return
        key = parts[idx]
        if key not in cur:
            return
        if idx == len(parts) - 1:
            cur[key] = fn(cur[key])
        else:
            _walk(cur[key], idx + 1)

    _walk(data, 0)
    return data


def collect_path(data, path: str) -> list:
    """Return every leaf value stored at `path`, flattening lists along the way."""
    found = []

    def _collect(value):
        if isinstance(value, list):
            found.extend(value)
        elif value is not None:
            found.append(value)
        return value

    map_path(data, path, _collect)
    return found


def to_object_id(value) -> ObjectId:
    """Cast a value to ObjectId. Raises bson.errors.InvalidId for malformed input."""
    if isinstance(value, ObjectId):
        return value
    oid = getattr(value, '_id', None)
    if isinstance(oid, ObjectId):
        return oid
    if isinstance(value, Mapping) and isinstance(value.get('_id'), ObjectId):
        return value['_id']
    if isinstance(value, (str, bytes)) and ObjectId.is_valid(value):
        return ObjectId(value)
    raise InvalidId(f'{value!r} is not a valid ObjectId')


def is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
