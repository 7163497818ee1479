import logging
from datetime import datetime

from app_models import (
    FEE_PAYMENTS,
    FEE_CONCESSIONS,
    SCHOOLS,
    SCHOOL_CLASSES,
    USERS,
    STUDENT,
    calculate_fee_status,
    serialize_document,
    to_object_id,
)
from database import get_db
from forms import ACADEMIC_YEAR_RE, FeePaymentForm, form_errors
from page_cache import revalidate_path

logger = logging.getLogger(__name__)

PAYMENT_ORDER = [('payment_date', -1), ('created_at', -1)]


def record_fee_payment(payload):
    try:
        form = FeePaymentForm(data=payload)
        if not form.validate():
            return {'success': False, 'message': 'Validation failed', 'error': form_errors(form) or 'Invalid payload!'}

        school_oid = to_object_id(form.school_id.data)
        admin_oid = to_object_id(form.recorded_by_admin_id.data)
        student_oid = to_object_id(form.student_id.data)
        if school_oid is None or admin_oid is None or student_oid is None:
            return {'success': False, 'message': 'Invalid ID format for school, admin, or student.'}

        now = datetime.utcnow()
        payment = {
            'student_id': student_oid,
            'student_name': form.student_name.data,
            'school_id': school_oid,
            # Stores the class name shown on receipts
            'class_id': form.class_id.data,
            'amount_paid': form.amount_paid.data,
            'payment_date': form.payment_date.data,
            'recorded_by_admin_id': admin_oid,
            'payment_method': form.payment_method.data or None,
            'notes': form.notes.data or None,
            'created_at': now,
            'updated_at': now,
        }
        result = get_db()[FEE_PAYMENTS].insert_one(payment)
        if not result.inserted_id:
            return {'success': False, 'message': 'Failed to record fee payment.', 'error': 'Database insertion failed.'}

        revalidate_path('/dashboard/admin/fees')
        revalidate_path('/dashboard/student/fees')

        return {
            'success': True,
            'message': 'Fee payment recorded successfully!',
            'payment': serialize_document(payment),
        }
    except Exception as e:
        logger.exception('Record fee payment error')
        return {'success': False, 'message': 'An unexpected error occurred during payment recording.', 'error': str(e)}


def get_fee_payments_by_school(school_id):
    try:
        school_oid = to_object_id(school_id)
        if school_oid is None:
            return {'success': False, 'message': 'Invalid School ID format.', 'error': 'Invalid School ID.'}

        payments = get_db()[FEE_PAYMENTS].find({'school_id': school_oid}).sort(PAYMENT_ORDER)
        return {'success': True, 'payments': serialize_document(list(payments))}
    except Exception as e:
        logger.exception('Get fee payments by school error')
        return {'success': False, 'error': str(e), 'message': 'Failed to fetch fee payments.'}


def get_fee_payments_by_student(student_id, school_id):
    try:
        student_oid = to_object_id(student_id)
        school_oid = to_object_id(school_id)
        if student_oid is None or school_oid is None:
            return {'success': False, 'message': 'Invalid School or Student ID format.', 'error': 'Invalid ID.'}

        payments = get_db()[FEE_PAYMENTS].find({'student_id': student_oid, 'school_id': school_oid}).sort(PAYMENT_ORDER)
        return {'success': True, 'payments': serialize_document(list(payments))}
    except Exception as e:
        logger.exception('Get fee payments by student error')
        return {'success': False, 'error': str(e), 'message': 'Failed to fetch student fee payments.'}


def get_payment_by_id(payment_id):
    try:
        payment_oid = to_object_id(payment_id)
        if payment_oid is None:
            return {'success': False, 'message': 'Invalid Payment ID format.', 'error': 'Invalid Payment ID.'}

        payment = get_db()[FEE_PAYMENTS].find_one({'_id': payment_oid})
        if not payment:
            return {'success': False, 'message': 'Payment not found.'}
        return {'success': True, 'payment': serialize_document(payment)}
    except Exception as e:
        logger.exception('Get payment by id error')
        return {'success': False, 'error': str(e), 'message': 'Failed to fetch payment details.'}


def get_student_fee_status(student_id, school_id, academic_year=None):
    """Fee total, concessions, payments and balance for a student.

    Concessions are counted for the given academic year only; when no year is
    given, every concession of the student counts.
    """
    try:
        student_oid = to_object_id(student_id)
        school_oid = to_object_id(school_id)
        if student_oid is None or school_oid is None:
            return {'success': False, 'message': 'Invalid Student or School ID format.'}
        if academic_year and not ACADEMIC_YEAR_RE.match(academic_year):
            return {'success': False, 'message': 'Invalid academic year format.'}

        db = get_db()
        student = db[USERS].find_one({'_id': student_oid, 'school_id': school_oid, 'role': STUDENT})
        if not student:
            return {'success': False, 'message': 'Student not found in the specified school.'}
        school = db[SCHOOLS].find_one({'_id': school_oid})
        if not school:
            return {'success': False, 'message': 'School not found.'}

        school_class = None
        class_oid = to_object_id(student.get('class_id'))
        if class_oid is not None:
            school_class = db[SCHOOL_CLASSES].find_one({'_id': class_oid, 'school_id': school_oid})

        payments = list(db[FEE_PAYMENTS].find({'student_id': student_oid, 'school_id': school_oid}).sort(PAYMENT_ORDER))
        concession_query = {'student_id': student_oid, 'school_id': school_oid}
        if academic_year:
            concession_query['academic_year'] = academic_year
        concessions = list(db[FEE_CONCESSIONS].find(concession_query).sort('created_at', -1))

        status = calculate_fee_status(student, school_class, school, payments, concessions)
        status['academic_year'] = academic_year
        status['payments'] = serialize_document(payments)
        status['concessions'] = serialize_document(concessions)
        return {'success': True, 'fee_status': status}
    except Exception as e:
        logger.exception('Get student fee status error')
        return {'success': False, 'error': str(e), 'message': 'Failed to calculate fee status.'}
