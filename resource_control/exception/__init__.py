from .ValidationError import ValidationError
from .QueryParamError import QueryParamError
from .ModelNotFoundError import ModelNotFoundError

__all__ = ['ValidationError', 'QueryParamError', 'ModelNotFoundError']
