import logging
from datetime import datetime, timedelta

from app_models import ATTENDANCES, serialize_document, summarize_attendance, to_object_id
from database import get_db
from forms import AttendanceSubmissionForm, form_errors, to_datetime
from page_cache import revalidate_path

logger = logging.getLogger(__name__)


def _midnight(value):
    return datetime(value.year, value.month, value.day)


def submit_attendance(payload):
    """Replace a class's attendance for one day with the submitted entries."""
    try:
        form = AttendanceSubmissionForm(data=payload)
        if not form.validate():
            return {'success': False, 'message': 'Validation failed', 'error': form_errors(form) or 'Invalid payload!'}

        school_oid = to_object_id(form.school_id.data)
        teacher_oid = to_object_id(form.marked_by_teacher_id.data)
        if school_oid is None or teacher_oid is None:
            return {'success': False, 'message': 'Invalid School or Teacher ID format.', 'error': 'Invalid ID.'}

        class_id = form.class_id.data
        day = _midnight(form.date.data)
        now = datetime.utcnow()
        records = [
            {
                'student_id': entry['student_id'],
                'student_name': entry['student_name'],
                'class_id': class_id,
                'class_name': form.class_name.data,
                'school_id': school_oid,
                'date': day,
                'status': entry['status'],
                'marked_by_teacher_id': teacher_oid,
                'created_at': now,
                'updated_at': now,
            }
            for entry in form.entries.data
        ]

        collection = get_db()[ATTENDANCES]
        collection.delete_many({'class_id': class_id, 'school_id': school_oid, 'date': day})
        result = collection.insert_many(records)
        inserted = len(result.inserted_ids)
        if inserted == 0:
            return {'success': False, 'message': 'Failed to save attendance records.', 'error': 'Database insertion failed.'}

        revalidate_path('/dashboard/teacher/attendance')
        revalidate_path('/dashboard/admin/attendance')

        return {
            'success': True,
            'message': f'Successfully submitted attendance for {inserted} students.',
            'count': inserted,
        }
    except Exception as e:
        logger.exception('Submit attendance error')
        return {'success': False, 'message': 'An unexpected error occurred during attendance submission.', 'error': str(e)}


def get_daily_attendance_for_school(school_id, day):
    """All attendance records of a school for one day, by class then student."""
    try:
        school_oid = to_object_id(school_id)
        if school_oid is None:
            return {'success': False, 'message': 'Invalid School ID format.', 'error': 'Invalid School ID.'}

        try:
            parsed = to_datetime(day)
        except ValueError:
            parsed = None
        if parsed is None:
            return {'success': False, 'message': 'Invalid date.', 'error': 'Invalid date.'}

        start = _midnight(parsed)
        records = get_db()[ATTENDANCES].find({
            'school_id': school_oid,
            'date': {'$gte': start, '$lt': start + timedelta(days=1)},
        }).sort([('class_name', 1), ('student_name', 1)])
        return {'success': True, 'records': serialize_document(list(records))}
    except Exception as e:
        logger.exception('Get daily attendance error')
        return {'success': False, 'error': str(e), 'message': 'Failed to fetch attendance records.'}


def get_student_attendance_records(student_id, school_id):
    """A student's attendance history, newest first, with a status summary."""
    try:
        school_oid = to_object_id(school_id)
        if to_object_id(student_id) is None or school_oid is None:
            return {'success': False, 'message': 'Invalid Student or School ID format.', 'error': 'Invalid ID.'}

        records = list(get_db()[ATTENDANCES].find({
            'student_id': str(student_id),
            'school_id': school_oid,
        }).sort('date', -1))
        return {
            'success': True,
            'records': serialize_document(records),
            'summary': summarize_attendance(records),
        }
    except Exception as e:
        logger.exception('Get student attendance error')
        return {'success': False, 'error': str(e), 'message': 'Failed to fetch attendance records.'}
