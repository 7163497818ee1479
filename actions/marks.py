import logging
from datetime import datetime

from pymongo import UpdateMany
from pymongo.errors import BulkWriteError

from app_models import MARKS, SCHOOL_CLASSES, serialize_document, to_object_id
from database import get_db
from forms import MarksSubmissionForm, form_errors
from page_cache import revalidate_path

logger = logging.getLogger(__name__)


def _revalidate_marks_pages():
    revalidate_path('/dashboard/teacher/marks')
    revalidate_path('/dashboard/admin/reports')


def submit_marks(payload):
    """Save marks for a class and subject, as one unordered bulk write."""
    try:
        form = MarksSubmissionForm(data=payload)
        if not form.validate():
            return {'success': False, 'message': 'Validation failed.', 'error': form_errors(form, separator='; ', with_paths=True)}

        school_oid = to_object_id(form.school_id.data)
        teacher_oid = to_object_id(form.marked_by_teacher_id.data)
        if school_oid is None or teacher_oid is None:
            return {'success': False, 'message': 'Invalid School or Teacher ID format.', 'error': 'Invalid ID.'}

        student_marks = form.student_marks.data
        student_oids = [to_object_id(sm['student_id']) for sm in student_marks]
        if any(oid is None for oid in student_oids):
            return {'success': False, 'message': 'Invalid Student ID format.', 'error': 'Invalid ID.'}

        collection = get_db()[MARKS]
        now = datetime.utcnow()
        operations = []
        for student_oid, sm in zip(student_oids, student_marks):
            key = {
                'student_id': student_oid,
                'class_id': form.class_id.data,
                'subject_id': form.subject_id.data,
                'assessment_name': sm['assessment_name'],
                'academic_year': form.academic_year.data,
                'school_id': school_oid,
            }
            mark = dict(key, **{
                'student_name': sm['student_name'],
                'class_name': form.class_name.data,
                'subject_name': form.subject_name.data,
                'marks_obtained': sm['marks_obtained'],
                'max_marks': sm['max_marks'],
                'marked_by_teacher_id': teacher_oid,
                'updated_at': now,
            })
            # Marks are unique on this key
            operations.append(UpdateMany(key, {'$set': mark, '$setOnInsert': {'created_at': now}}, upsert=True))

        try:
            result = collection.bulk_write(operations, ordered=False)
        except BulkWriteError as e:
            details = e.details
            errors = details.get('writeErrors') or []
            saved = details.get('nUpserted', 0) + details.get('nModified', 0)
            failed = [student_marks[error['index']]['student_name'] for error in errors]
            logger.warning('Marks submission saved %d of %d entries', saved, len(operations))
            if saved:
                _revalidate_marks_pages()
            return {
                'success': False,
                'message': f"Saved marks for {saved} students. Failed for: {', '.join(failed)}.",
                'error': errors[0].get('errmsg') if errors else str(e),
                'count': saved,
                'failed': failed,
            }

        processed = result.upserted_count + result.modified_count
        _revalidate_marks_pages()

        return {
            'success': True,
            'message': f'Successfully saved marks for {processed} students.',
            'count': processed,
        }
    except Exception as e:
        logger.exception('Submit marks error')
        return {'success': False, 'message': 'An unexpected error occurred during marks submission.', 'error': str(e)}


def get_marks_for_assessment(school_id, class_id, subject_id, assessment_name, academic_year):
    try:
        school_oid = to_object_id(school_id)
        if school_oid is None:
            return {'success': False, 'message': 'Invalid School ID format.', 'error': 'Invalid School ID.'}

        marks = get_db()[MARKS].find({
            'school_id': school_oid,
            'class_id': class_id,
            'subject_id': subject_id,
            'assessment_name': assessment_name,
            'academic_year': academic_year,
        }).sort('student_name', 1)
        return {'success': True, 'marks': serialize_document(list(marks))}
    except Exception as e:
        logger.exception('Get marks error')
        return {'success': False, 'error': str(e), 'message': 'Failed to fetch marks.'}


def get_subjects_for_teacher(teacher_id, school_id):
    """Subjects of the classes a teacher is class teacher of, as select options.

    Returns an empty list for malformed ids or on a database error.
    """
    teacher_oid = to_object_id(teacher_id)
    school_oid = to_object_id(school_id)
    if teacher_oid is None or school_oid is None:
        return []
    try:
        classes = get_db()[SCHOOL_CLASSES].find(
            {'school_id': school_oid, 'class_teacher_id': teacher_oid},
            {'name': 1, 'subjects': 1},
        )
        options = []
        seen = set()
        for school_class in classes:
            class_id = str(school_class['_id'])
            for subject in school_class.get('subjects') or []:
                name = subject.get('name')
                if not name or (name, class_id) in seen:
                    continue
                seen.add((name, class_id))
                options.append({
                    'value': name,
                    'label': f"{name} (Class: {school_class.get('name')})",
                    'class_id': class_id,
                    'class_name': school_class.get('name'),
                })
        return sorted(options, key=lambda option: option['label'])
    except Exception:
        logger.exception('Error fetching subjects for teacher')
        return []
