import logging
from datetime import datetime

from app_models import REPORT_CARDS, USERS, STUDENT, serialize_document, to_object_id
from database import get_db
from forms import ReportCardForm, form_errors
from page_cache import revalidate_path

logger = logging.getLogger(__name__)

REPORTS_PAGE = '/dashboard/admin/reports'
STUDENT_RESULTS_PAGE = '/dashboard/student/results'

REPORT_FIELDS = (
    'academic_year', 'report_card_template_key', 'student_info', 'formative_assessments',
    'co_curricular_assessments', 'second_language', 'summative_assessments', 'attendance',
    'final_overall_grade', 'term',
)


def save_report_card(data):
    """Insert a report card, or update the one already saved for the same student, year, template and term."""
    try:
        form = ReportCardForm(data=data)
        if not form.validate():
            return {'success': False, 'message': 'Validation failed', 'error': form_errors(form, separator='; ')}

        school_oid = to_object_id(form.school_id.data)
        if school_oid is None:
            return {'success': False, 'message': 'Invalid School ID format.', 'error': 'Invalid School ID.'}
        admin_oid = None
        if form.generated_by_admin_id.data:
            admin_oid = to_object_id(form.generated_by_admin_id.data)
            if admin_oid is None:
                return {'success': False, 'message': 'Invalid Admin ID format.', 'error': 'Invalid Admin ID.'}

        report = {name: form[name].data for name in REPORT_FIELDS}
        report['term'] = report['term'] or None
        report['second_language'] = report['second_language'] or None
        report.update({
            'student_id': form.student_id.data,
            'school_id': school_oid,
            'generated_by_admin_id': admin_oid,
        })

        collection = get_db()[REPORT_CARDS]
        existing = collection.find_one({
            'student_id': report['student_id'],
            'school_id': school_oid,
            'academic_year': report['academic_year'],
            'report_card_template_key': report['report_card_template_key'],
            'term': report['term'],
        })

        now = datetime.utcnow()
        report['updated_at'] = now
        if existing:
            result = collection.update_one({'_id': existing['_id']}, {'$set': report})
            if result.matched_count == 0:
                return {'success': False, 'message': 'Failed to update report card. Report not found after initial check.'}
            revalidate_path(REPORTS_PAGE)
            return {
                'success': True,
                'message': 'Report card updated successfully!',
                'report_card_id': str(existing['_id']),
            }

        report['created_at'] = now
        report['is_published'] = False
        result = collection.insert_one(report)
        if not result.inserted_id:
            return {'success': False, 'message': 'Failed to save report card.', 'error': 'Database insertion failed.'}

        revalidate_path(REPORTS_PAGE)
        return {
            'success': True,
            'message': 'Report card saved successfully!',
            'report_card_id': str(result.inserted_id),
        }
    except Exception as e:
        logger.exception('Save report card error')
        return {'success': False, 'message': 'An unexpected error occurred during report card saving.', 'error': str(e)}


def get_student_report_card(student_id, school_id, academic_year, term=None, published_only=False):
    """Latest report card of a student for a year (and term, when given)."""
    try:
        school_oid = to_object_id(school_id)
        if to_object_id(student_id) is None or school_oid is None:
            return {'success': False, 'message': 'Invalid Student or School ID format.', 'error': 'Invalid ID.'}
        if not academic_year:
            return {'success': False, 'message': 'Academic year is required.'}

        query = {'student_id': str(student_id), 'school_id': school_oid, 'academic_year': academic_year}
        if term:
            query['term'] = term
        if published_only:
            query['is_published'] = True

        reports = list(get_db()[REPORT_CARDS].find(query).sort('updated_at', -1).limit(1))
        if not reports:
            message = 'Report card not published yet.' if published_only else 'Report card not found.'
            return {'success': False, 'message': message}
        return {'success': True, 'report_card': serialize_document(reports[0])}
    except Exception as e:
        logger.exception('Get student report card error')
        return {'success': False, 'error': str(e), 'message': 'Failed to fetch report card.'}


def set_report_card_publication_status(report_id, school_id, is_published):
    try:
        report_oid = to_object_id(report_id)
        school_oid = to_object_id(school_id)
        if report_oid is None or school_oid is None:
            return {'success': False, 'message': 'Invalid Report or School ID format.', 'error': 'Invalid ID.'}

        published = bool(is_published)
        changes = {'is_published': published, 'updated_at': datetime.utcnow()}
        changes['published_at'] = changes['updated_at'] if published else None

        result = get_db()[REPORT_CARDS].update_one({'_id': report_oid, 'school_id': school_oid}, {'$set': changes})
        if result.matched_count == 0:
            return {'success': False, 'message': 'Report card not found.', 'error': 'Report not found.'}

        revalidate_path(REPORTS_PAGE)
        revalidate_path(STUDENT_RESULTS_PAGE)
        state = 'published' if published else 'unpublished'
        return {'success': True, 'message': f'Report card {state} successfully!', 'is_published': published}
    except Exception as e:
        logger.exception('Set report card publication status error')
        return {'success': False, 'message': 'An unexpected error occurred while updating publication status.', 'error': str(e)}


def get_report_publication_overview(school_id, class_id, academic_year):
    """Each student of a class with the state of their report card for the year."""
    try:
        school_oid = to_object_id(school_id)
        if school_oid is None or to_object_id(class_id) is None:
            return {'success': False, 'message': 'Invalid School or Class ID format.', 'error': 'Invalid ID.'}
        if not academic_year:
            return {'success': False, 'message': 'Academic year is required.'}

        db = get_db()
        students = list(db[USERS].find(
            {'school_id': school_oid, 'class_id': str(class_id), 'role': STUDENT},
            {'name': 1, 'admission_id': 1},
        ).sort('name', 1))

        student_ids = [str(s['_id']) for s in students]
        reports = {}
        if student_ids:
            cursor = db[REPORT_CARDS].find({
                'school_id': school_oid,
                'academic_year': academic_year,
                'student_id': {'$in': student_ids},
            }).sort('updated_at', 1)
            # Later saves overwrite earlier ones
            for report in cursor:
                reports[report['student_id']] = report

        overview = []
        for student in students:
            sid = str(student['_id'])
            report = reports.get(sid)
            overview.append({
                'report_id': str(report['_id']) if report else None,
                'student_id': sid,
                'student_name': student.get('name'),
                'admission_id': student.get('admission_id'),
                'is_published': bool(report and report.get('is_published')),
                'has_report': report is not None,
            })
        return {'success': True, 'students': overview}
    except Exception as e:
        logger.exception('Get report publication overview error')
        return {'success': False, 'error': str(e), 'message': 'Failed to fetch report publication overview.'}
