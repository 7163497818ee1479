import logging
from datetime import datetime

from app_models import SCHOOLS, serialize_document, to_object_id
from database import get_db
from forms import SchoolForm, form_errors
from page_cache import revalidate_path

logger = logging.getLogger(__name__)


def create_school(values):
    """Create a school profile with its per-class fee configuration."""
    try:
        form = SchoolForm(data=values)
        if not form.validate():
            return {'success': False, 'message': 'Validation failed', 'error': form_errors(form) or 'Invalid fields!'}

        now = datetime.utcnow()
        school = {
            'school_name': form.school_name.data,
            'class_fees': [
                {
                    'class_name': entry['class_name'],
                    'tuition_fee': entry['tuition_fee'],
                    'bus_fee': entry.get('bus_fee') or 0,
                    'canteen_fee': entry.get('canteen_fee') or 0,
                }
                for entry in form.class_fees.data
            ],
            'school_logo_url': form.school_logo_url.data or None,
            'report_card_template': form.report_card_template.data or 'none',
            'created_at': now,
            'updated_at': now,
        }
        result = get_db()[SCHOOLS].insert_one(school)
        if not result.inserted_id:
            return {'success': False, 'message': 'Failed to create school profile.', 'error': 'Database insertion failed.'}

        revalidate_path('/dashboard/super-admin/schools')

        return {
            'success': True,
            'message': 'School profile created successfully!',
            'school': serialize_document(school),
        }
    except Exception as e:
        logger.exception('Create school error')
        return {'success': False, 'message': 'An unexpected error occurred during school creation.', 'error': str(e)}


def get_schools():
    try:
        schools = get_db()[SCHOOLS].find({}).sort('created_at', -1)
        return {'success': True, 'schools': serialize_document(list(schools))}
    except Exception as e:
        logger.exception('Get schools error')
        return {'success': False, 'error': str(e), 'message': 'Failed to fetch schools.'}


def get_school_by_id(school_id):
    try:
        school_oid = to_object_id(school_id)
        if school_oid is None:
            return {'success': False, 'message': 'Invalid School ID format.', 'error': 'Invalid School ID.'}

        school = get_db()[SCHOOLS].find_one({'_id': school_oid})
        if not school:
            return {'success': False, 'message': 'School not found.'}
        return {'success': True, 'school': serialize_document(school)}
    except Exception as e:
        logger.exception('Get school by id error')
        return {'success': False, 'error': str(e), 'message': 'Failed to fetch school details.'}
