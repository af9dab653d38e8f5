import logging

from pymongo import MongoClient
from pymongo.errors import PyMongoError

from config import config

logger = logging.getLogger(__name__)


class MongoRepositorySingleton:
    _client = None
    _db_instance = None

    @classmethod
    def get_client(cls):
        if cls._client is None:
            logger.info('Connecting to MongoDB URI: %s', config.to_dict()['database']['mongo_uri'])
            cls._client = MongoClient(config.MONGO_URI,
                                      serverSelectionTimeoutMS=config.MONGO_SERVER_SELECTION_TIMEOUT_MS)
        return cls._client

    @classmethod
    def get_db(cls):
        """Singleton utility to get the MongoDB database object.

        Uses config.MONGO_URI and config.MONGO_DB (both overridable through the
        environment). For local development these default to
        mongodb://localhost:27017 and 'resource_control'.
        """
        if cls._db_instance is not None:
            return cls._db_instance
        db_name = config.MONGO_DB
        logger.info('Using MongoDB database: %s', db_name)
        cls._db_instance = cls.get_client()[db_name]
        return cls._db_instance

    @classmethod
    def get_collection(cls, collection_name, db=None):
        """
        Get a collection from the database, creating it if it does not exist.
        Logs creation and errors. Returns the collection object.
        """
        if db is None:
            db = cls.get_db()
        try:
            if collection_name not in db.list_collection_names():
                db.create_collection(collection_name)
                logger.info("Created '%s' collection in DB.", collection_name)
        except PyMongoError as e:
            logger.warning("Error ensuring '%s' collection exists: %s", collection_name, e)
        return db[collection_name]

    @classmethod
    def reset(cls):
        """Close the client and forget the cached database (used by tests and after config reloads)."""
        if cls._client is not None:
            cls._client.close()
        cls._client = None
        cls._db_instance = None
