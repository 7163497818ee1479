import logging
from datetime import datetime

from app_models import (
    SCHOOL_CLASSES,
    USERS,
    STUDENT,
    TEACHER,
    NONE_TEACHER_OPTION,
    serialize_document,
    to_object_id,
)
from database import get_db
from forms import SchoolClassForm, form_errors
from page_cache import revalidate_path

logger = logging.getLogger(__name__)

CLASSES_PAGE = '/dashboard/admin/classes'


def _set_teacher_primary_class(db, teacher_id, class_id, school_oid):
    """Point a teacher's class_id at the class they lead, or clear it when class_id is None."""
    if not teacher_id:
        return
    query = {'_id': teacher_id, 'school_id': school_oid, 'role': TEACHER}
    if not db[USERS].find_one(query):
        logger.warning('Teacher %s not found in school %s', teacher_id, school_oid)
        return

    if class_id:
        update = {'$set': {'class_id': str(class_id), 'updated_at': datetime.utcnow()}}
    else:
        update = {'$set': {'updated_at': datetime.utcnow()}, '$unset': {'class_id': ''}}
    db[USERS].update_one(query, update)
    logger.info('Teacher %s class_id set to %s', teacher_id, class_id)


def _requested_teacher(class_teacher_id):
    """Returns (wants_teacher, teacher ObjectId or None)."""
    if not class_teacher_id or class_teacher_id == NONE_TEACHER_OPTION:
        return False, None
    return True, to_object_id(class_teacher_id)


def _teacher_conflict(db, school_oid, teacher_oid, exclude_class_id=None):
    query = {'school_id': school_oid, 'class_teacher_id': teacher_oid}
    if exclude_class_id is not None:
        query['_id'] = {'$ne': exclude_class_id}
    other_class = db[SCHOOL_CLASSES].find_one(query)
    if not other_class:
        return None
    teacher = db[USERS].find_one({'_id': teacher_oid})
    teacher_name = teacher.get('name') if teacher else 'Selected Teacher'
    return (
        f'Teacher "{teacher_name}" is already assigned as class teacher to class "{other_class["name"]}". '
        'A teacher can only be a class teacher for one class.'
    )


def _subjects(form):
    return [{'name': entry['name']} for entry in form.subjects.data]


def create_school_class(school_id, values):
    try:
        school_oid = to_object_id(school_id)
        if school_oid is None:
            return {'success': False, 'message': 'Invalid School ID format.'}

        form = SchoolClassForm(data=values)
        if not form.validate():
            return {'success': False, 'message': 'Validation failed', 'error': form_errors(form, separator='; ')}

        name = form.name.data
        db = get_db()
        if db[SCHOOL_CLASSES].find_one({'name': name, 'school_id': school_oid}):
            return {'success': False, 'message': f'Class with name "{name}" already exists in this school.'}

        wants_teacher, teacher_oid = _requested_teacher(form.class_teacher_id.data)
        if wants_teacher:
            if teacher_oid is None:
                return {'success': False, 'message': 'Invalid Class Teacher ID format.'}
            if not db[USERS].find_one({'_id': teacher_oid, 'school_id': school_oid, 'role': TEACHER}):
                return {'success': False, 'message': 'Selected class teacher not found or is not a teacher in this school.'}
            conflict = _teacher_conflict(db, school_oid, teacher_oid)
            if conflict:
                return {'success': False, 'message': conflict}

        now = datetime.utcnow()
        school_class = {
            'school_id': school_oid,
            'name': name,
            'class_teacher_id': teacher_oid,
            'subjects': _subjects(form),
            'created_at': now,
            'updated_at': now,
        }
        result = db[SCHOOL_CLASSES].insert_one(school_class)
        if not result.inserted_id:
            return {'success': False, 'message': 'Failed to create class.', 'error': 'Database insertion failed.'}

        if teacher_oid:
            _set_teacher_primary_class(db, teacher_oid, result.inserted_id, school_oid)

        revalidate_path(CLASSES_PAGE)
        return {
            'success': True,
            'message': f'Class "{name}" created successfully!',
            'class': serialize_document(school_class),
        }
    except Exception:
        logger.exception('Create school class error')
        return {'success': False, 'message': 'An unexpected error occurred during class creation.'}


def get_school_classes(school_id):
    """Classes of a school sorted by name, with the class teacher's name."""
    try:
        school_oid = to_object_id(school_id)
        if school_oid is None:
            return {'success': False, 'message': 'Invalid School ID format.'}

        db = get_db()
        classes = list(db[SCHOOL_CLASSES].find({'school_id': school_oid}).sort('name', 1))

        teacher_ids = [c['class_teacher_id'] for c in classes if c.get('class_teacher_id')]
        teacher_names = {}
        if teacher_ids:
            for teacher in db[USERS].find({'_id': {'$in': teacher_ids}}, {'name': 1}):
                teacher_names[teacher['_id']] = teacher.get('name')

        for school_class in classes:
            school_class.setdefault('subjects', [])
            school_class['class_teacher_name'] = teacher_names.get(school_class.get('class_teacher_id'))

        return {'success': True, 'classes': serialize_document(classes)}
    except Exception:
        logger.exception('Get school classes error')
        return {'success': False, 'error': 'Failed to fetch classes.', 'message': 'An unexpected error occurred.'}


def update_school_class(class_id, school_id, values):
    try:
        class_oid = to_object_id(class_id)
        school_oid = to_object_id(school_id)
        if class_oid is None or school_oid is None:
            return {'success': False, 'message': 'Invalid Class or School ID format.'}

        form = SchoolClassForm(data=values)
        if not form.validate():
            return {'success': False, 'message': 'Validation failed', 'error': form_errors(form, separator='; ')}

        name = form.name.data
        db = get_db()
        existing = db[SCHOOL_CLASSES].find_one({'_id': class_oid, 'school_id': school_oid})
        if not existing:
            return {'success': False, 'message': 'Class not found or does not belong to this school.'}

        if name != existing['name']:
            if db[SCHOOL_CLASSES].find_one({'name': name, 'school_id': school_oid, '_id': {'$ne': class_oid}}):
                return {'success': False, 'message': f'Another class with name "{name}" already exists in this school.'}

        wants_teacher, new_teacher_oid = _requested_teacher(form.class_teacher_id.data)
        if wants_teacher:
            if new_teacher_oid is None:
                return {'success': False, 'message': 'Invalid New Class Teacher ID format.'}
            if not db[USERS].find_one({'_id': new_teacher_oid, 'school_id': school_oid, 'role': TEACHER}):
                return {'success': False, 'message': 'Selected new class teacher not found or is not a teacher in this school.'}
            conflict = _teacher_conflict(db, school_oid, new_teacher_oid, exclude_class_id=class_oid)
            if conflict:
                return {'success': False, 'message': conflict}

        old_teacher_oid = existing.get('class_teacher_id')

        result = db[SCHOOL_CLASSES].update_one(
            {'_id': class_oid},
            {'$set': {
                'name': name,
                'subjects': _subjects(form),
                'class_teacher_id': new_teacher_oid,
                'updated_at': datetime.utcnow(),
            }},
        )
        if result.matched_count == 0:
            return {'success': False, 'message': 'Class not found for update.'}

        if old_teacher_oid != new_teacher_oid:
            if old_teacher_oid:
                old_teacher = db[USERS].find_one({'_id': old_teacher_oid, 'role': TEACHER})
                # Only clear the old teacher if they still point at this class
                if old_teacher and old_teacher.get('class_id') == str(class_oid):
                    _set_teacher_primary_class(db, old_teacher_oid, None, school_oid)
            if new_teacher_oid:
                _set_teacher_primary_class(db, new_teacher_oid, class_oid, school_oid)

        revalidate_path(CLASSES_PAGE)

        updated = db[SCHOOL_CLASSES].find_one({'_id': class_oid})
        if not updated:
            return {'success': False, 'message': 'Failed to retrieve class after update.'}
        return {'success': True, 'message': 'Class updated successfully!', 'class': serialize_document(updated)}
    except Exception:
        logger.exception('Update school class error')
        return {'success': False, 'message': 'An unexpected error occurred during class update.'}


def delete_school_class(class_id, school_id):
    """Delete a class, unassigning its students and its class teacher."""
    try:
        class_oid = to_object_id(class_id)
        school_oid = to_object_id(school_id)
        if class_oid is None or school_oid is None:
            return {'success': False, 'message': 'Invalid Class or School ID format.'}

        db = get_db()
        school_class = db[SCHOOL_CLASSES].find_one({'_id': class_oid, 'school_id': school_oid})
        if not school_class:
            return {'success': False, 'message': 'Class not found or does not belong to this school.'}

        db[USERS].update_many(
            {'school_id': school_oid, 'role': STUDENT, 'class_id': str(class_oid)},
            {'$set': {'updated_at': datetime.utcnow()}, '$unset': {'class_id': ''}},
        )

        teacher_oid = school_class.get('class_teacher_id')
        if teacher_oid:
            teacher = db[USERS].find_one({'_id': teacher_oid, 'role': TEACHER})
            if teacher and teacher.get('class_id') == str(class_oid):
                _set_teacher_primary_class(db, teacher_oid, None, school_oid)

        result = db[SCHOOL_CLASSES].delete_one({'_id': class_oid})
        if result.deleted_count == 0:
            return {'success': False, 'message': 'Failed to delete class or class not found.'}

        revalidate_path(CLASSES_PAGE)
        revalidate_path('/dashboard/admin/users')
        revalidate_path('/dashboard/teacher/attendance')

        return {'success': True, 'message': f'Class "{school_class["name"]}" deleted successfully.'}
    except Exception:
        logger.exception('Delete school class error')
        return {'success': False, 'message': 'An unexpected error occurred during class deletion.'}


def get_classes_for_school_as_options(school_id):
    """Select options for a school's classes; empty on bad input or errors."""
    school_oid = to_object_id(school_id)
    if school_oid is None:
        return []
    try:
        classes = get_db()[SCHOOL_CLASSES].find({'school_id': school_oid}, {'_id': 1, 'name': 1}).sort('name', 1)
        return [{'value': str(c['_id']), 'label': c['name']} for c in classes]
    except Exception:
        logger.exception('Error fetching classes for options')
        return []
