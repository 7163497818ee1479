import logging

from app_models import USERS, STUDENT, check_password
from database import get_db
from forms import LoginForm, form_errors

logger = logging.getLogger(__name__)


def user_projection(user):
    """Session-safe view of a user document."""
    school_id = user.get('school_id')
    return {
        '_id': str(user['_id']),
        'email': user.get('email'),
        'name': user.get('name'),
        'role': user.get('role'),
        'school_id': str(school_id) if school_id else None,
        'class_id': user.get('class_id') or None,
    }


def login_user(values):
    """Authenticate by email, or by admission number for students."""
    try:
        form = LoginForm(data=values)
        if not form.validate():
            return {'success': False, 'error': form_errors(form) or 'Invalid fields!'}

        identifier = form.identifier.data
        password = form.password.data

        users = get_db()[USERS]
        if '@' in identifier:
            # Email lookups are exact and case-sensitive
            user = users.find_one({'email': identifier})
        else:
            user = users.find_one({'admission_id': identifier, 'role': STUDENT})

        if not user:
            return {'success': False, 'error': 'User not found. Please check your credentials.'}

        if not user.get('password'):
            return {'success': False, 'error': 'Password not set for this user. Please contact support.'}

        if not check_password(password, user['password']):
            return {'success': False, 'error': 'Invalid password. Please try again.'}

        logger.info('User %s logged in as %s', user['_id'], user.get('role'))
        return {
            'success': True,
            'message': 'Login successful! Redirecting...',
            'user': user_projection(user),
        }
    except Exception:
        logger.exception('Login action error')
        return {'success': False, 'error': 'An unexpected error occurred during login. Please try again later.'}
