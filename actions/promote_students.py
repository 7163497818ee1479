import logging
from datetime import datetime

from app_models import USERS, STUDENT, STATUS_DISCONTINUED, to_object_id
from database import get_db
from forms import PromoteStudentsForm, DiscontinueStudentsForm, form_errors
from page_cache import revalidate_path

logger = logging.getLogger(__name__)


def _student_ids(ids):
    object_ids = [to_object_id(student_id) for student_id in ids]
    if any(oid is None for oid in object_ids):
        return None
    return object_ids


def promote_students(payload):
    """Move a batch of students to a new class and academic year."""
    form = PromoteStudentsForm(data=payload)
    if not form.validate():
        return {'success': False, 'message': 'Validation failed.', 'error': form_errors(form, separator='; ')}

    school_id = to_object_id(form.school_id.data)
    to_class_id = form.to_class_id.data
    student_ids = _student_ids(form.student_ids.data)
    if school_id is None or to_object_id(to_class_id) is None or student_ids is None:
        return {'success': False, 'message': 'Invalid ID format provided.'}

    try:
        result = get_db()[USERS].update_many(
            {'_id': {'$in': student_ids}, 'school_id': school_id, 'role': STUDENT},
            {'$set': {
                'class_id': to_class_id,
                'academic_year': form.academic_year.data,
                'updated_at': datetime.utcnow(),
            }},
        )
        if result.matched_count == 0:
            return {'success': False, 'message': 'No matching students found to promote.'}

        revalidate_path('/dashboard/admin/students')
        revalidate_path('/dashboard/admin/classes')

        return {
            'success': True,
            'message': f'{result.modified_count} student(s) promoted successfully to the new class and academic year.',
            'updated_count': result.modified_count,
        }
    except Exception:
        logger.exception('Promote students error')
        return {'success': False, 'message': 'An unexpected error occurred during promotion.'}


def discontinue_students(payload):
    """Mark a batch of students as discontinued."""
    form = DiscontinueStudentsForm(data=payload)
    if not form.validate():
        return {'success': False, 'message': 'Validation failed.', 'error': form_errors(form, separator='; ')}

    school_id = to_object_id(form.school_id.data)
    student_ids = _student_ids(form.student_ids.data)
    if school_id is None or student_ids is None:
        return {'success': False, 'message': 'Invalid ID format provided.'}

    try:
        result = get_db()[USERS].update_many(
            {'_id': {'$in': student_ids}, 'school_id': school_id, 'role': STUDENT},
            {'$set': {'status': STATUS_DISCONTINUED, 'updated_at': datetime.utcnow()}},
        )
        if result.matched_count == 0:
            return {'success': False, 'message': 'No matching students found to discontinue.'}

        revalidate_path('/dashboard/admin/students')

        return {
            'success': True,
            'message': f'{result.modified_count} student(s) marked as discontinued.',
            'updated_count': result.modified_count,
        }
    except Exception:
        logger.exception('Discontinue students error')
        return {'success': False, 'message': 'An unexpected error occurred.'}
