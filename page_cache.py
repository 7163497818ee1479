"""
Shared cache for dashboard page payloads.

GET routes that back a dashboard page are wrapped with ``cached_page(path)``.
Payloads live in the ``page_cache`` collection, so every worker process sees
the same entries. Actions that change data call ``revalidate_path(path)`` for
every page that shows that data, which drops all payloads stored under that
path. Entries also expire after ``PAGE_CACHE_TTL`` seconds.
"""
import logging
from datetime import datetime, timedelta
from functools import wraps
from urllib.parse import urlencode

from flask import current_app, request, session
from pymongo.errors import PyMongoError

from app_models import PAGE_CACHE
from database import get_db

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300


def _cache_key(query_args):
    args = sorted((name, request.args.get(name)) for name in query_args if request.args.get(name) is not None)
    url = request.path
    if args:
        url = f'{url}?{urlencode(args)}'
    return f"{session.get('school_id')}|{session.get('user_id')}|{url}"


def _lookup(path, key):
    try:
        entry = get_db()[PAGE_CACHE].find_one({'path': path, 'key': key, 'expires_at': {'$gt': datetime.utcnow()}})
    except PyMongoError:
        logger.warning('Page cache read failed for %s', path, exc_info=True)
        return None
    return entry['payload'] if entry else None


def _store(path, key, payload):
    now = datetime.utcnow()
    ttl = current_app.config.get('PAGE_CACHE_TTL', DEFAULT_TTL)
    try:
        get_db()[PAGE_CACHE].update_one(
            {'path': path, 'key': key},
            {'$set': {'payload': payload, 'cached_at': now, 'expires_at': now + timedelta(seconds=ttl)}},
            upsert=True,
        )
    except PyMongoError:
        logger.warning('Page cache write failed for %s', path, exc_info=True)


def revalidate_path(path):
    """Drop every cached payload stored for a dashboard path."""
    try:
        result = get_db()[PAGE_CACHE].delete_many({'path': path})
    except PyMongoError:
        logger.exception('Page cache revalidation failed for %s', path)
        return
    if result.deleted_count:
        logger.debug('Revalidated %s (%d cached entries)', path, result.deleted_count)


def cached_page(path, query_args=()):
    """Cache the JSON payload of a GET view under a dashboard path.

    Only the query arguments named in ``query_args`` are part of the cache key;
    any other query string is ignored.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if request.method != 'GET':
                return f(*args, **kwargs)

            key = _cache_key(query_args)
            cached = _lookup(path, key)
            if cached is not None:
                return cached

            result = f(*args, **kwargs)
            # Only successful payloads are cached
            if isinstance(result, dict) and result.get('success'):
                _store(path, key, result)
            return result
        return decorated_function
    return decorator


def is_cached(path):
    return get_db()[PAGE_CACHE].count_documents({'path': path, 'expires_at': {'$gt': datetime.utcnow()}}, limit=1) > 0
