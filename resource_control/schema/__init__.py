from .field import Field
from .schema import Schema, is_inclusive, is_loaded
from .document import Document, DocumentArray, SubDocument, to_storage

__all__ = ['Field', 'Schema', 'Document', 'SubDocument', 'DocumentArray', 'is_inclusive', 'is_loaded', 'to_storage']
