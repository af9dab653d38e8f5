"""Parsing of the declarative selection, sort and populate parameter forms."""
from collections.abc import Mapping
from typing import Any, Dict, List, Tuple

from resource_control.exception import QueryParamError

SORT_DIRECTIONS = {
    1: 1, -1: -1,
    'asc': 1, 'ascending': 1,
    'desc': -1, 'descending': -1,
}


def _tokens(value: str) -> List[str]:
    return [t for t in value.replace(',', ' ').split() if t]


def parse_select(value) -> Dict[str, Any]:
    """Normalize a selection to a projection dict.

    'title -blog +comments' -> {'title': 1, 'blog': 0, '+comments': 1}

    '+path' keeps its marker: it asks for a path the schema deselects without
    turning the projection into an inclusive one.
    """
    if not value:
        return {}
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, str):
        value = _tokens(value)
    if isinstance(value, (list, tuple)):
        projection = {}
        for token in value:
            if not isinstance(token, str):
                raise QueryParamError(f'Invalid select entry {token!r}')
            if token.startswith('-'):
                projection[token[1:]] = 0
            elif token.startswith('+'):
                projection[token] = 1
            else:
                projection[token] = 1
        return projection
    raise QueryParamError(f'Invalid select {value!r}')


def _direction(value, path):
    key = value.lower() if isinstance(value, str) else value
    if key not in SORT_DIRECTIONS:
        raise QueryParamError(f'Invalid sort direction {value!r} for "{path}"')
    return SORT_DIRECTIONS[key]


def parse_sort(value) -> List[Tuple[str, int]]:
    """Normalize a sort to pymongo's list of (path, direction).

    Accepts 'a -b', {'a': 1, 'b': 'desc'} or [('a', 1), '-b'].
    """
    if not value:
        return []
    if isinstance(value, str):
        value = _tokens(value)
    if isinstance(value, Mapping):
        return [(path, _direction(direction, path)) for path, direction in value.items()]
    if isinstance(value, (list, tuple)):
        spec = []
        for entry in value:
            if isinstance(entry, str):
                spec.append((entry[1:], -1) if entry.startswith('-') else (entry, 1))
            elif isinstance(entry, (list, tuple)) and len(entry) == 2:
                spec.append((entry[0], _direction(entry[1], entry[0])))
            else:
                raise QueryParamError(f'Invalid sort entry {entry!r}')
        return spec
    raise QueryParamError(f'Invalid sort {value!r}')


def parse_populate(value) -> List[Dict[str, Any]]:
    """Normalize populate options to a list of {'path', 'select', 'model', 'match'} dicts.

    A space separated path string expands to one entry per path.
    """
    if not value:
        return []
    if isinstance(value, str):
        return [{'path': path} for path in _tokens(value)]
    if isinstance(value, Mapping):
        if not value.get('path'):
            raise QueryParamError(f'Populate option without a path: {dict(value)!r}')
        options = {k: v for k, v in value.items() if k != 'path'}
        return [{'path': path, **options} for path in _tokens(value['path'])]
    if isinstance(value, (list, tuple)):
        specs = []
        for entry in value:
            specs.extend(parse_populate(entry))
        return specs
    raise QueryParamError(f'Invalid populate {value!r}')
