import logging
from datetime import datetime

from app_models import FEE_CONCESSIONS, SCHOOLS, USERS, STUDENT, SUPERADMIN, serialize_document, to_object_id
from database import get_db
from forms import ACADEMIC_YEAR_RE, FeeConcessionForm, form_errors
from page_cache import revalidate_path

logger = logging.getLogger(__name__)

CONCESSION_PAGES = (
    '/dashboard/super-admin/concessions',
    '/dashboard/student/fees',
    '/dashboard/admin/fees',
    '/dashboard/admin/reports',
)


def _revalidate_concession_pages():
    for path in CONCESSION_PAGES:
        revalidate_path(path)


def _names_by_id(db, collection, ids, field):
    ids = list({i for i in ids if i})
    if not ids:
        return {}
    return {doc['_id']: doc.get(field) for doc in db[collection].find({'_id': {'$in': ids}}, {field: 1})}


def apply_fee_concession(payload, superadmin_id):
    """Record a fee concession for a student; only super admins may apply one."""
    try:
        form = FeeConcessionForm(data=payload)
        if not form.validate():
            return {'success': False, 'message': 'Validation failed.', 'error': form_errors(form, separator='; ', with_paths=True)}

        student_oid = to_object_id(form.student_id.data)
        school_oid = to_object_id(form.school_id.data)
        admin_oid = to_object_id(superadmin_id)
        if student_oid is None or school_oid is None or admin_oid is None:
            return {'success': False, 'message': 'Invalid ID format for student, school, or admin.'}

        db = get_db()
        student = db[USERS].find_one({'_id': student_oid, 'school_id': school_oid, 'role': STUDENT})
        if not student:
            return {'success': False, 'message': 'Student not found in the specified school.'}
        school = db[SCHOOLS].find_one({'_id': school_oid})
        if not school:
            return {'success': False, 'message': 'School not found.'}
        superadmin = db[USERS].find_one({'_id': admin_oid, 'role': SUPERADMIN})
        if not superadmin:
            return {'success': False, 'message': 'Super admin not found or invalid ID.'}

        now = datetime.utcnow()
        amount = form.amount.data
        concession = {
            'student_id': student_oid,
            'school_id': school_oid,
            'academic_year': form.academic_year.data,
            'concession_type': form.concession_type.data,
            'amount': amount,
            'reason': form.reason.data,
            'applied_by_super_admin_id': admin_oid,
            'created_at': now,
            'updated_at': now,
        }
        result = db[FEE_CONCESSIONS].insert_one(concession)
        if not result.inserted_id:
            return {'success': False, 'message': 'Failed to apply fee concession.', 'error': 'Database insertion failed.'}

        _revalidate_concession_pages()

        view = serialize_document(concession)
        view.update({
            'student_name': student.get('name'),
            'school_name': school.get('school_name'),
            'applied_by_super_admin_name': superadmin.get('name'),
        })
        display_amount = int(amount) if float(amount).is_integer() else amount
        return {
            'success': True,
            'message': f'Fee concession of amount {display_amount} applied successfully for {student.get("name")}.',
            'concession': view,
        }
    except Exception as e:
        logger.exception('Apply fee concession error')
        return {'success': False, 'message': 'An unexpected error occurred during concession application.', 'error': str(e)}


def get_fee_concessions_for_school(school_id, academic_year=None):
    """Concessions of a school, newest first, with student, school and admin names.

    A malformed academic year is ignored rather than rejected.
    """
    try:
        school_oid = to_object_id(school_id)
        if school_oid is None:
            return {'success': False, 'message': 'Invalid School ID format.'}

        query = {'school_id': school_oid}
        if academic_year and ACADEMIC_YEAR_RE.match(academic_year):
            query['academic_year'] = academic_year

        db = get_db()
        concessions = list(db[FEE_CONCESSIONS].find(query).sort('created_at', -1))

        student_names = _names_by_id(db, USERS, [c.get('student_id') for c in concessions], 'name')
        admin_names = _names_by_id(db, USERS, [c.get('applied_by_super_admin_id') for c in concessions], 'name')
        school_names = _names_by_id(db, SCHOOLS, [school_oid], 'school_name')

        for concession in concessions:
            concession['student_name'] = student_names.get(concession.get('student_id')) or 'N/A'
            concession['school_name'] = school_names.get(concession.get('school_id')) or 'N/A'
            concession['applied_by_super_admin_name'] = admin_names.get(concession.get('applied_by_super_admin_id')) or 'N/A'

        return {'success': True, 'concessions': serialize_document(concessions)}
    except Exception as e:
        logger.exception('Get fee concessions for school error')
        return {'success': False, 'error': str(e), 'message': 'Failed to fetch fee concessions.'}


def get_fee_concessions_for_student(student_id, school_id, academic_year):
    try:
        student_oid = to_object_id(student_id)
        school_oid = to_object_id(school_id)
        if student_oid is None or school_oid is None:
            return {'success': False, 'message': 'Invalid Student or School ID format.'}
        if not academic_year or not ACADEMIC_YEAR_RE.match(academic_year):
            return {'success': False, 'message': 'Valid Academic Year is required.'}

        concessions = get_db()[FEE_CONCESSIONS].find({
            'student_id': student_oid,
            'school_id': school_oid,
            'academic_year': academic_year,
        }).sort('created_at', -1)
        return {'success': True, 'concessions': serialize_document(list(concessions))}
    except Exception as e:
        logger.exception('Get fee concessions for student error')
        return {'success': False, 'error': str(e), 'message': 'Failed to fetch student fee concessions.'}


def revoke_fee_concession(concession_id):
    try:
        concession_oid = to_object_id(concession_id)
        if concession_oid is None:
            return {'success': False, 'message': 'Invalid Concession ID format.'}

        result = get_db()[FEE_CONCESSIONS].delete_one({'_id': concession_oid})
        if result.deleted_count == 0:
            return {'success': False, 'message': 'Concession not found or already revoked.', 'error': 'Concession not found.'}

        _revalidate_concession_pages()
        return {'success': True, 'message': 'Fee concession revoked successfully!'}
    except Exception as e:
        logger.exception('Revoke fee concession error')
        return {'success': False, 'message': 'An unexpected error occurred during concession revocation.', 'error': str(e)}
