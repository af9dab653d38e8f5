from .params import parse_populate, parse_select, parse_sort
from .query import Query, RANGE_OPERATORS
from .builder import query_builder

__all__ = ['Query', 'RANGE_OPERATORS', 'query_builder', 'parse_select', 'parse_sort', 'parse_populate']
