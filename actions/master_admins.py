import logging
from datetime import datetime

from app_models import USERS, SCHOOLS, ADMIN, MASTERADMIN, hash_password, serialize_document, to_object_id
from database import get_db
from forms import MasterAdminForm, form_errors
from page_cache import revalidate_path
from actions.admin_users import attach_school_names

logger = logging.getLogger(__name__)

MASTER_ADMINS_PAGE = '/dashboard/super-admin/master-admins'


def create_master_admin(values):
    try:
        form = MasterAdminForm(data=values)
        if not form.validate():
            return {'success': False, 'message': 'Validation failed', 'error': form_errors(form) or 'Invalid fields!'}

        password = form.password.data
        if not password or len(password) < 6:
            return {
                'success': False,
                'message': 'Validation failed',
                'error': 'Password is required and must be at least 6 characters for new master admins.',
            }

        school_oid = to_object_id(form.school_id.data)
        if school_oid is None:
            return {'success': False, 'message': 'Invalid School ID provided.'}

        db = get_db()
        email = form.email.data
        if db[USERS].find_one({'email': email}):
            return {'success': False, 'message': 'User with this email already exists.', 'error': 'Email already in use.'}
        if not db[SCHOOLS].find_one({'_id': school_oid}):
            return {'success': False, 'message': 'Selected school not found.'}

        now = datetime.utcnow()
        master_admin = {
            'name': form.name.data,
            'email': email,
            'password': hash_password(password),
            'role': MASTERADMIN,
            'school_id': school_oid,
            'created_at': now,
            'updated_at': now,
        }
        result = db[USERS].insert_one(master_admin)
        if not result.inserted_id:
            return {'success': False, 'message': 'Failed to create master admin.', 'error': 'Database insertion failed.'}

        revalidate_path(MASTER_ADMINS_PAGE)
        return {
            'success': True,
            'message': 'Master Admin created successfully!',
            'user': serialize_document(master_admin),
        }
    except Exception as e:
        logger.exception('Create master admin error')
        return {'success': False, 'message': 'An unexpected error occurred during admin creation.', 'error': str(e)}


def update_master_admin(user_id, values):
    """Update a master admin; the password only changes when a new one is supplied."""
    try:
        user_oid = to_object_id(user_id)
        if user_oid is None:
            return {'success': False, 'message': 'Invalid User ID format.', 'error': 'Invalid User ID.'}

        form = MasterAdminForm(data=values)
        if not form.validate():
            errors = form_errors(form)
            if form.password.errors:
                errors = 'New password must be at least 6 characters.'
            return {'success': False, 'message': 'Validation failed', 'error': errors or 'Invalid fields!'}

        school_oid = to_object_id(form.school_id.data)
        if school_oid is None:
            return {'success': False, 'message': 'Invalid School ID provided.'}

        db = get_db()
        email = form.email.data
        existing = db[USERS].find_one({'email': email})
        if existing and existing['_id'] != user_oid:
            return {'success': False, 'message': 'This email is already in use by another account.', 'error': 'Email already in use.'}
        if not db[SCHOOLS].find_one({'_id': school_oid}):
            return {'success': False, 'message': 'Selected school not found.'}

        changes = {
            'name': form.name.data,
            'email': email,
            'school_id': school_oid,
            'updated_at': datetime.utcnow(),
        }
        if form.password.data and form.password.data.strip():
            changes['password'] = hash_password(form.password.data)

        result = db[USERS].update_one({'_id': user_oid, 'role': MASTERADMIN}, {'$set': changes})
        if result.matched_count == 0:
            return {'success': False, 'message': 'Master admin user not found for update.', 'error': 'User not found.'}

        revalidate_path(MASTER_ADMINS_PAGE)

        updated = db[USERS].find_one({'_id': user_oid})
        if not updated:
            return {'success': False, 'message': 'Failed to retrieve admin after update.', 'error': 'Could not fetch updated user.'}
        return {'success': True, 'message': 'Master Admin updated successfully!', 'user': serialize_document(updated)}
    except Exception as e:
        logger.exception('Update master admin error')
        return {'success': False, 'message': 'An unexpected error occurred during admin update.', 'error': str(e)}


def get_master_admins():
    try:
        db = get_db()
        admins = list(db[USERS].find({'role': MASTERADMIN}, {'password': 0}).sort('created_at', -1))
        attach_school_names(db, admins)
        return {'success': True, 'admins': serialize_document(admins)}
    except Exception as e:
        logger.exception('Get master admins error')
        return {'success': False, 'error': str(e), 'message': 'Failed to fetch master admins.'}


def delete_master_admin(user_id):
    """Delete a master admin unless school admins still report to them."""
    try:
        user_oid = to_object_id(user_id)
        if user_oid is None:
            return {'success': False, 'message': 'Invalid User ID format.', 'error': 'Invalid User ID.'}

        db = get_db()
        managed_admins = db[USERS].count_documents({'role': ADMIN, 'master_admin_id': user_oid})
        if managed_admins > 0:
            return {
                'success': False,
                'message': 'Cannot delete Master Admin.',
                'error': 'This Master Admin still manages school administrators. Please reassign them first.',
            }

        result = db[USERS].delete_one({'_id': user_oid, 'role': MASTERADMIN})
        if result.deleted_count == 0:
            return {'success': False, 'message': 'Master admin user not found or already deleted.', 'error': 'User not found.'}

        revalidate_path(MASTER_ADMINS_PAGE)
        return {'success': True, 'message': 'Master Admin deleted successfully!'}
    except Exception as e:
        logger.exception('Delete master admin error')
        return {'success': False, 'message': 'An unexpected error occurred during admin deletion.', 'error': str(e)}


def get_master_admins_count():
    try:
        count = get_db()[USERS].count_documents({'role': MASTERADMIN})
        return {'success': True, 'count': count}
    except Exception as e:
        logger.exception('Get master admins count error')
        return {'success': False, 'error': str(e), 'message': 'Failed to fetch master admins count.'}
