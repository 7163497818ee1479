import logging
import re
from datetime import datetime

from app_models import SUBJECTS, SCHOOL_CLASSES, serialize_document, to_object_id
from database import get_db
from forms import SubjectForm
from page_cache import revalidate_path

logger = logging.getLogger(__name__)

SUBJECTS_PAGE = '/dashboard/master-admin/subjects'


def _name_pattern(name):
    # Case-insensitive exact match on the subject name
    return {'$regex': f'^{re.escape(name)}$', '$options': 'i'}


def create_subject(values):
    try:
        form = SubjectForm(data=values)
        if not form.validate():
            return {'success': False, 'message': 'Validation failed', 'error': 'Invalid fields!'}

        name = form.name.data
        collection = get_db()[SUBJECTS]
        if collection.find_one({'name': _name_pattern(name)}):
            return {'success': False, 'message': 'A subject with this name already exists.'}

        now = datetime.utcnow()
        subject = {'name': name, 'created_at': now, 'updated_at': now}
        result = collection.insert_one(subject)
        if not result.inserted_id:
            return {'success': False, 'message': 'Failed to create subject.'}

        revalidate_path(SUBJECTS_PAGE)
        return {'success': True, 'message': 'Subject created successfully!', 'subject': serialize_document(subject)}
    except Exception:
        logger.exception('Create subject error')
        return {'success': False, 'message': 'An unexpected error occurred.'}


def get_subjects():
    try:
        subjects = get_db()[SUBJECTS].find({}).sort('name', 1)
        return {'success': True, 'subjects': serialize_document(list(subjects))}
    except Exception:
        logger.exception('Get subjects error')
        return {'success': False, 'message': 'Failed to fetch subjects.'}


def update_subject(subject_id, values):
    try:
        subject_oid = to_object_id(subject_id)
        if subject_oid is None:
            return {'success': False, 'message': 'Invalid Subject ID.'}

        form = SubjectForm(data=values)
        if not form.validate():
            return {'success': False, 'message': 'Validation failed', 'error': 'Invalid fields!'}

        name = form.name.data
        collection = get_db()[SUBJECTS]
        if collection.find_one({'name': _name_pattern(name), '_id': {'$ne': subject_oid}}):
            return {'success': False, 'message': 'Another subject with this name already exists.'}

        result = collection.update_one(
            {'_id': subject_oid},
            {'$set': {'name': name, 'updated_at': datetime.utcnow()}},
        )
        if result.matched_count == 0:
            return {'success': False, 'message': 'Subject not found.'}

        revalidate_path(SUBJECTS_PAGE)
        return {
            'success': True,
            'message': 'Subject updated successfully!',
            'subject': serialize_document(collection.find_one({'_id': subject_oid})),
        }
    except Exception:
        logger.exception('Update subject error')
        return {'success': False, 'message': 'An unexpected error occurred.'}


def delete_subject(subject_id):
    """Delete a subject unless a class still teaches it."""
    try:
        subject_oid = to_object_id(subject_id)
        if subject_oid is None:
            return {'success': False, 'message': 'Invalid Subject ID.'}

        db = get_db()
        subject = db[SUBJECTS].find_one({'_id': subject_oid})
        if not subject:
            return {'success': False, 'message': 'Subject not found.'}

        classes_using_subject = db[SCHOOL_CLASSES].count_documents({'subjects.name': subject['name']})
        if classes_using_subject > 0:
            return {
                'success': False,
                'message': f'Cannot delete subject. It is currently assigned to {classes_using_subject} class(es). '
                           'Please remove it from all classes first.',
            }

        result = db[SUBJECTS].delete_one({'_id': subject_oid})
        if result.deleted_count == 0:
            return {'success': False, 'message': 'Subject not found or already deleted.'}

        revalidate_path(SUBJECTS_PAGE)
        return {'success': True, 'message': 'Subject deleted successfully!'}
    except Exception:
        logger.exception('Delete subject error')
        return {'success': False, 'message': 'An unexpected error occurred.'}
