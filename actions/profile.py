import logging
from datetime import datetime

from actions.classes import CLASSES_PAGE
from app_models import USERS, TEACHER, to_object_id
from database import get_db
from forms import ProfileForm, form_errors
from page_cache import revalidate_path

logger = logging.getLogger(__name__)

PROFILE_PAGES = ('/dashboard/profile', '/dashboard/student/profile', '/dashboard/teacher/profile')


def update_user_profile(user_id, values):
    """Update name, phone and avatar of a user and return the refreshed profile."""
    try:
        user_oid = to_object_id(user_id)
        if user_oid is None:
            return {'success': False, 'message': 'Invalid User ID format.', 'error': 'Invalid User ID.'}

        form = ProfileForm(data=values)
        if not form.validate():
            return {'success': False, 'message': 'Validation failed.', 'error': form_errors(form, separator='; ') or 'Invalid fields.'}

        update = {'$set': {'name': form.name.data, 'updated_at': datetime.utcnow()}}
        if form.phone.data is not None:
            update['$set']['phone'] = form.phone.data
        if form.avatar_url.data is not None:
            if form.avatar_url.data == '':
                update['$unset'] = {'avatar_url': ''}
            else:
                update['$set']['avatar_url'] = form.avatar_url.data

        users = get_db()[USERS]
        result = users.update_one({'_id': user_oid}, update)
        if result.matched_count == 0:
            return {'success': False, 'message': 'User not found.', 'error': 'User not found.'}

        for path in PROFILE_PAGES:
            revalidate_path(path)

        user = users.find_one({'_id': user_oid})
        if not user:
            return {
                'success': False,
                'message': 'Failed to retrieve updated user information.',
                'error': 'Could not fetch user after update.',
            }
        # Class lists show the class teacher's name
        if user.get('role') == TEACHER:
            revalidate_path(CLASSES_PAGE)

        school_id = user.get('school_id')
        return {
            'success': True,
            'message': 'Profile updated successfully!',
            'user': {
                '_id': str(user['_id']),
                'name': user.get('name'),
                'email': user.get('email'),
                'role': user.get('role'),
                'school_id': str(school_id) if school_id else None,
                'class_id': user.get('class_id'),
                'phone': user.get('phone'),
                'avatar_url': user.get('avatar_url'),
            },
        }
    except Exception as e:
        logger.exception('Update user profile error')
        return {'success': False, 'message': 'An unexpected error occurred during profile update.', 'error': str(e)}
