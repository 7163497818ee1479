"""
MongoDB connection handling for CampusFlow.

One client per process is cached and reused. Every reuse pings the server
first; a failed ping drops the cached handle and opens a new connection.
"""
import logging
import os
import threading

from pymongo import MongoClient
from pymongo.errors import PyMongoError
from pymongo.server_api import ServerApi

logger = logging.getLogger(__name__)

DEFAULT_DB_NAME = 'campusflow'

_cached_client = None
_cached_db = None
_lock = threading.Lock()


class DatabaseConfigurationError(RuntimeError):
    """Raised when the MongoDB connection string is missing."""


def _connection_settings():
    uri = os.environ.get('MONGODB_URI')
    if not uri:
        raise DatabaseConfigurationError(
            'Please define the MONGODB_URI environment variable inside .env'
        )
    return uri, os.environ.get('MONGODB_DB_NAME') or DEFAULT_DB_NAME


def _cached_handle_alive():
    try:
        _cached_client.admin.command('ping')
        return True
    except PyMongoError:
        logger.warning('Cached MongoDB client connection lost. Reconnecting...')
        return False


def connect_to_database():
    """Return a (client, db) pair, reusing the cached connection when it still answers a ping."""
    global _cached_client, _cached_db

    with _lock:
        if _cached_client is not None and _cached_db is not None:
            if _cached_handle_alive():
                return _cached_client, _cached_db
            _discard_cached()

        uri, db_name = _connection_settings()
        client = MongoClient(
            uri,
            server_api=ServerApi('1', strict=True, deprecation_errors=True),
        )
        try:
            # MongoClient connects lazily; force a round trip so failures surface here
            client.admin.command('ping')
        except PyMongoError:
            logger.exception('Failed to connect to MongoDB')
            client.close()
            raise

        db = client[db_name]
        logger.info('Successfully connected to MongoDB database %s', db_name)

        _cached_client = client
        _cached_db = db
        return client, db


def get_db():
    """Shortcut returning only the database handle."""
    _, db = connect_to_database()
    return db


def _discard_cached():
    global _cached_client, _cached_db
    client = _cached_client
    _cached_client = None
    _cached_db = None
    if client is not None:
        try:
            client.close()
        except PyMongoError as e:
            logger.warning('Error closing stale MongoDB client: %s', e)


def reset_connection():
    """Close and forget the cached connection."""
    with _lock:
        _discard_cached()


def ping():
    """Report whether the database answers a ping. Used by the health endpoint."""
    try:
        client, _ = connect_to_database()
        client.admin.command('ping')
        return True
    except (PyMongoError, DatabaseConfigurationError) as e:
        logger.warning('Database ping failed: %s', e)
        return False
