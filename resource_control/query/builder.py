from collections.abc import Mapping

from resource_control.exception import QueryParamError
from resource_control.utils.helpers import is_number


def query_builder(query, params=None):
    """Apply a parameter object to a query.

    Supported keys: select, where, sort, skip, limit, populate, lean.
    `skip` is either a count or a range dict {'operator', 'path', 'val'}
    (e.g. {'operator': 'lt', 'path': 'created.date', 'val': last_date}) that
    pages by key instead of by offset.
    """
    params = params or {}

    if params.get('select'):
        query.select(params['select'])
    if params.get('where'):
        query.where(params['where'])
    if params.get('sort'):
        query.sort(params['sort'])

    skip = params.get('skip')
    if isinstance(skip, Mapping):
        missing = [k for k in ('operator', 'path', 'val') if k not in skip]
        if missing:
            raise QueryParamError(f"Range skip is missing {', '.join(missing)}")
        query.range(skip['operator'], skip['path'], skip['val'])
    elif is_number(skip):
        if skip < 0:
            raise QueryParamError(f'skip must not be negative, got {skip}')
        query.skip(skip)

    if is_number(params.get('limit')):
        query.limit(params['limit'])

    if params.get('populate'):
        query.populate(params['populate'])

    if params.get('lean'):
        query.lean()

    return query
