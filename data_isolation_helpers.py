"""
Helpers that keep school data separated between tenants.
"""
from flask import session

from app_models import SUPERADMIN, MASTERADMIN

# Roles that may act on any school
CROSS_SCHOOL_ROLES = (SUPERADMIN, MASTERADMIN)


def get_current_school_id():
    """Get the current user's school id from the session"""
    return session.get('school_id')


def get_current_user_id():
    return session.get('user_id')


def get_current_role():
    return session.get('user_role')


def ensure_school_access(school_id):
    """Check the logged-in user may act on the given school"""
    if get_current_role() in CROSS_SCHOOL_ROLES:
        return True
    current_school_id = get_current_school_id()
    return bool(current_school_id) and str(school_id) == str(current_school_id)


def resolve_school_id(requested=None):
    """School id for a request: scoped roles always get their own school."""
    if get_current_role() in CROSS_SCHOOL_ROLES:
        return requested or get_current_school_id()
    return get_current_school_id()


def scope_payload(payload, field='school_id'):
    """Force the session's school onto an incoming payload for scoped roles."""
    payload = dict(payload or {})
    if get_current_role() not in CROSS_SCHOOL_ROLES:
        payload[field] = get_current_school_id()
    return payload
