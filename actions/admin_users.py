import logging
from datetime import datetime

from app_models import USERS, SCHOOLS, ADMIN, MASTERADMIN, hash_password, serialize_document, to_object_id
from database import get_db
from forms import AdminUserForm, form_errors
from page_cache import revalidate_path

logger = logging.getLogger(__name__)


def attach_school_names(db, users):
    """Add school_name to each user document that has a school_id."""
    school_ids = list({u['school_id'] for u in users if u.get('school_id')})
    names = {}
    if school_ids:
        for school in db[SCHOOLS].find({'_id': {'$in': school_ids}}, {'school_name': 1}):
            names[school['_id']] = school.get('school_name')
    for user in users:
        user['school_name'] = names.get(user.get('school_id'))
    return users


def create_school_admin(values, master_admin_id=None):
    """Create an admin for one school; master_admin_id links the admin to the master admin who made it."""
    try:
        form = AdminUserForm(data=values)
        if not form.validate():
            return {'success': False, 'message': 'Validation failed', 'error': form_errors(form) or 'Invalid fields!'}

        db = get_db()
        email = form.email.data
        if db[USERS].find_one({'email': email}):
            return {'success': False, 'message': 'User with this email already exists.', 'error': 'Email already in use.'}

        school_oid = to_object_id(form.school_id.data)
        if school_oid is None:
            return {'success': False, 'message': 'Invalid School ID format.', 'error': 'Invalid School ID.'}
        if not db[SCHOOLS].find_one({'_id': school_oid}):
            return {'success': False, 'message': 'Selected school not found.', 'error': 'School not found.'}

        now = datetime.utcnow()
        admin = {
            'name': form.name.data,
            'email': email,
            'password': hash_password(form.password.data),
            'role': ADMIN,
            'school_id': school_oid,
            'created_at': now,
            'updated_at': now,
        }
        master_oid = to_object_id(master_admin_id)
        if master_oid and db[USERS].find_one({'_id': master_oid, 'role': MASTERADMIN}):
            admin['master_admin_id'] = master_oid

        result = db[USERS].insert_one(admin)
        if not result.inserted_id:
            return {'success': False, 'message': 'Failed to create school admin.', 'error': 'Database insertion failed.'}

        revalidate_path('/dashboard/super-admin/users')
        return {
            'success': True,
            'message': 'School Admin created successfully!',
            'user': serialize_document(admin),
        }
    except Exception as e:
        logger.exception('Create school admin error')
        return {'success': False, 'message': 'An unexpected error occurred during admin creation.', 'error': str(e)}


def get_school_admins():
    """All school admins, newest first, with the name of their school."""
    try:
        db = get_db()
        projection = {'name': 1, 'email': 1, 'role': 1, 'school_id': 1, 'master_admin_id': 1, 'created_at': 1, 'updated_at': 1}
        admins = list(db[USERS].find({'role': ADMIN}, projection).sort('created_at', -1))
        attach_school_names(db, admins)
        return {'success': True, 'admins': serialize_document(admins)}
    except Exception as e:
        logger.exception('Get school admins error')
        return {'success': False, 'error': str(e), 'message': 'Failed to fetch school admins.'}
