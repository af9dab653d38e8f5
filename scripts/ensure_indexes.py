"""Migration script: create the indexes declared on model schemas.

Imports the given modules (which compile their models with `model()`), then
creates every index declared with `schema.index(...)` on each registered
model.

Usage:
    python scripts/ensure_indexes.py myapp.models [other.models ...]

Ensure MONGO_URI and MONGO_DB environment variables are set.
"""
import importlib
import logging
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pymongo.errors import PyMongoError

from resource_control.repository.model import registered_models
from resource_control.utils.logging_utils import configure_logging

logger = logging.getLogger(__name__)


def create_index_safe(coll, index_spec, **kwargs):
    """Create an index, handling if it already exists."""
    if coll is None:
        logger.warning('  Collection is None, skipping index')
        return False
    try:
        index_name = coll.create_index(index_spec, **kwargs)
        logger.info('  Created index: %s', index_name)
        return True
    except PyMongoError as e:
        if 'already exists' in str(e).lower():
            logger.info('  Index already exists: %s', index_spec)
            return False
        logger.error('  Error creating index %s: %s', index_spec, e)
        return False


def ensure_model_indexes(models):
    """Create declared indexes for every model. Returns the number created."""
    created = 0
    for name, compiled in sorted(models.items()):
        if not compiled.schema.indexes:
            logger.info('%s: no indexes declared', name)
            continue
        logger.info('%s: ensuring %d index(es) on %s', name, len(compiled.schema.indexes),
                    getattr(compiled.collection, 'name', name))
        for keys, options in compiled.schema.indexes:
            if create_index_safe(compiled.collection, keys, **options):
                created += 1
    return created


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    configure_logging()
    if not argv:
        logger.error('Usage: python scripts/ensure_indexes.py <models module> [...]')
        return 1

    for module_name in argv:
        logger.info('Importing %s', module_name)
        importlib.import_module(module_name)

    logger.info('Starting index migration...')
    logger.info('=' * 50)
    created = ensure_model_indexes(registered_models())
    logger.info('=' * 50)
    logger.info('Index migration complete: %d index(es) created.', created)
    return 0


if __name__ == '__main__':
    sys.exit(main())
