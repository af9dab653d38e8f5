"""Field definitions used by Schema.

A Field describes a single path: its type (used for casting), whether it is
required, its default, whether queries select it by default and, for
ObjectId paths, which model it references.
"""
import copy
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId

from resource_control.exception import QueryParamError
from resource_control.utils.helpers import to_object_id

# Query operators whose operand is a list of values of the field's type
LIST_OPERATORS = ('$in', '$nin', '$all')
# Query operators whose operand is a single value of the field's type
VALUE_OPERATORS = ('$eq', '$ne', '$gt', '$gte', '$lt', '$lte')


def _cast_datetime(value):
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    raise ValueError(f'{value!r} is not a datetime')


def _cast_bool(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ('1', 'true', 'yes'):
            return True
        if lowered in ('0', 'false', 'no'):
            return False
    if isinstance(value, (int, float)):
        return bool(value)
    raise ValueError(f'{value!r} is not a boolean')


CASTERS = {
    ObjectId: to_object_id,
    datetime: _cast_datetime,
    bool: _cast_bool,
    int: int,
    float: float,
    str: str,
}


class Field:
    """A typed schema path.

    Args:
        type: Python type used for casting (ObjectId, datetime, str, int, float,
            bool). A one-element list declares an array; `[Schema]` declares a
            subdocument collection.
        required: fail validation when the value is missing (or an empty string).
        default: value or zero-argument callable applied to new documents.
        select: when False the path is left out of query results unless the
            query selects it explicitly.
        ref: model name resolved by `populate`.
        validators: iterable of `(predicate, message)` pairs.
    """

    def __init__(self, type=None, required: bool = False, default: Any = None, select: bool = True,
                 ref: Optional[str] = None, validators: Iterable[Tuple[Callable[[Any], bool], str]] = ()):
        self.item = None
        self.schema = None
        if isinstance(type, list):
            if len(type) != 1:
                raise TypeError('Array fields take exactly one item definition')
            item = type[0]
            # imported lazily, schema.py imports this module
            from resource_control.schema.schema import Schema
            if isinstance(item, Schema):
                self.schema = item
            elif isinstance(item, Field):
                self.item = item
            else:
                self.item = Field(item)
            if default is None:
                default = list
        self.type = type
        self.required = required
        self.default = default
        self.select = select
        self.ref = ref if ref is not None else (self.item.ref if self.item is not None else None)
        self.validators = list(validators)

    @property
    def is_array(self) -> bool:
        return self.item is not None or self.schema is not None

    @property
    def is_collection(self) -> bool:
        return self.schema is not None

    def get_default(self):
        if callable(self.default):
            return self.default()
        return copy.deepcopy(self.default)

    def cast(self, value):
        """Cast a value to this field's type. Raises ValueError when that is impossible."""
        if value is None:
            return None
        if self.item is not None:
            if not isinstance(value, (list, tuple)):
                value = [value]
            return [self.item.cast(v) for v in value]
        caster = CASTERS.get(self.type)
        if caster is None:
            return value
        # populated references keep their document until they are stored
        if self.type is ObjectId and hasattr(value, '_data'):
            return value
        try:
            return caster(value)
        except InvalidId as e:
            raise ValueError(str(e))
        except (TypeError, ValueError) as e:
            raise ValueError(f'Cast to {self.type.__name__} failed for value {value!r}: {e}')

    def validate(self, value, path: str) -> Optional[str]:
        """Return an error message for `value` or None when it is valid."""
        if value is None or (isinstance(value, str) and value == '' and self.type is str):
            if self.required:
                return f'{path} is required.'
            return None
        for predicate, message in self.validators:
            if not predicate(value):
                return message
        return None

    def cast_query_value(self, value, path: str):
        """Cast a filter operand for this path.

        Only ObjectId and datetime paths are cast; other values are passed to
        the driver unchanged.
        """
        field = self.item if self.item is not None else self
        if field.type not in (ObjectId, datetime):
            return value
        if isinstance(value, Mapping) and value and all(str(k).startswith('$') for k in value):
            out = {}
            for op, operand in value.items():
                if op in LIST_OPERATORS and isinstance(operand, (list, tuple)):
                    out[op] = [field._cast_operand(v, path) for v in operand]
                elif op in VALUE_OPERATORS:
                    out[op] = field._cast_operand(operand, path)
                else:
                    out[op] = operand
            return out
        if isinstance(value, (list, tuple)) and self.item is None:
            return [field._cast_operand(v, path) for v in value]
        return field._cast_operand(value, path)

    def _cast_operand(self, value, path):
        if value is None:
            return None
        try:
            cast = self.cast(value)
        except ValueError as e:
            raise QueryParamError(f'{e} at path "{path}"')
        if self.type is ObjectId and hasattr(cast, '_data'):
            return to_object_id(cast)
        return cast

    def __repr__(self):
        return f'Field(type={self.type!r}, required={self.required}, select={self.select})'
