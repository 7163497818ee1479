from datetime import datetime

from bson import ObjectId

from actions import concessions, fees
from app_models import FEE_CONCESSIONS, FEE_PAYMENTS


def payment(seed, **overrides):
    values = {
        'student_id': seed.student_id,
        'student_name': 'Riya Sharma',
        'school_id': seed.school_id,
        'class_id': 'Class 5',
        'amount_paid': '5000',
        'payment_date': '2025-06-10',
        'recorded_by_admin_id': seed.admin_id,
        'payment_method': 'Cash',
    }
    values.update(overrides)
    return values


def concession(seed, **overrides):
    values = {
        'student_id': seed.student_id,
        'school_id': seed.school_id,
        'academic_year': '2025-2026',
        'concession_type': 'Scholarship',
        'amount': 1000,
        'reason': 'Merit scholarship for topping the class',
    }
    values.update(overrides)
    return values


def test_record_fee_payment(seed, db, revalidated):
    result = fees.record_fee_payment(payment(seed))

    assert result['success'] is True
    assert result['message'] == 'Fee payment recorded successfully!'
    assert result['payment']['amount_paid'] == 5000.0
    assert result['payment']['notes'] is None
    stored = db[FEE_PAYMENTS].find_one()
    assert stored['student_id'] == ObjectId(seed.student_id)
    assert stored['class_id'] == 'Class 5'
    assert stored['payment_date'].year == 2025
    assert revalidated == ['/dashboard/admin/fees', '/dashboard/student/fees']


def test_record_fee_payment_validation(seed):
    result = fees.record_fee_payment(payment(seed, amount_paid=0, payment_date=None))

    assert result['success'] is False
    assert 'Payment amount must be positive.' in result['error']
    assert 'Payment date is required.' in result['error']

    not_a_number = fees.record_fee_payment(payment(seed, amount_paid='five thousand'))
    assert not_a_number['error'] == 'Not a valid number.'

    bad_ids = fees.record_fee_payment(payment(seed, student_id='riya'))
    assert bad_ids == {'success': False, 'message': 'Invalid ID format for school, admin, or student.'}


def test_payments_listed_newest_first(seed):
    fees.record_fee_payment(payment(seed, amount_paid=1000, payment_date='2025-04-01'))
    fees.record_fee_payment(payment(seed, amount_paid=2000, payment_date='2025-08-01'))
    fees.record_fee_payment(payment(
        seed, student_id=seed.other_student_id, student_name='Arjun Rao', amount_paid=3000, payment_date='2025-06-01',
    ))

    by_school = fees.get_fee_payments_by_school(seed.school_id)
    assert [p['amount_paid'] for p in by_school['payments']] == [2000.0, 3000.0, 1000.0]

    by_student = fees.get_fee_payments_by_student(seed.student_id, seed.school_id)
    assert [p['amount_paid'] for p in by_student['payments']] == [2000.0, 1000.0]


def test_get_payment_by_id(seed):
    created = fees.record_fee_payment(payment(seed))
    found = fees.get_payment_by_id(created['payment']['_id'])

    assert found['payment']['student_name'] == 'Riya Sharma'
    assert fees.get_payment_by_id(str(ObjectId())) == {'success': False, 'message': 'Payment not found.'}


def test_student_fee_status(seed, db):
    fees.record_fee_payment(payment(seed))
    concessions.apply_fee_concession(concession(seed), seed.superadmin_id)
    concessions.apply_fee_concession(concession(seed, academic_year='2024-2025', amount=500), seed.superadmin_id)

    result = fees.get_student_fee_status(seed.student_id, seed.school_id, '2025-2026')

    assert result['success'] is True
    status = result['fee_status']
    assert status['class_name'] == 'Class 5'
    assert status['tuition_fee'] == 12000.0
    assert status['bus_fee'] == 3000.0
    assert status['total_fee'] == 15000.0
    assert status['total_concessions'] == 1000.0
    assert status['net_fee'] == 14000.0
    assert status['total_paid'] == 5000.0
    assert status['total_due'] == 9000.0
    assert status['paid_percentage'] == 36
    assert status['academic_year'] == '2025-2026'
    assert len(status['payments']) == 1
    assert len(status['concessions']) == 1

    every_year = fees.get_student_fee_status(seed.student_id, seed.school_id)
    assert every_year['fee_status']['total_concessions'] == 1500.0


def test_fee_status_without_bus_route(seed):
    status = fees.get_student_fee_status(seed.other_student_id, seed.school_id)['fee_status']
    assert status['bus_fee'] == 0.0
    assert status['total_fee'] == 12000.0
    assert status['paid_percentage'] == 0


def test_fee_status_errors(seed):
    assert fees.get_student_fee_status(seed.student_id, seed.school_id, '2025')['message'] == 'Invalid academic year format.'
    assert fees.get_student_fee_status(seed.teacher_id, seed.school_id)['message'] == 'Student not found in the specified school.'
    assert fees.get_student_fee_status(seed.student_id, str(ObjectId()))['message'] == 'Student not found in the specified school.'


def test_apply_fee_concession(seed, db, revalidated):
    result = concessions.apply_fee_concession(concession(seed), seed.superadmin_id)

    assert result['success'] is True
    assert result['message'] == 'Fee concession of amount 1000 applied successfully for Riya Sharma.'
    assert result['concession']['school_name'] == 'Green Valley School'
    assert result['concession']['applied_by_super_admin_name'] == 'Sam Super'
    stored = db[FEE_CONCESSIONS].find_one()
    assert stored['applied_by_super_admin_id'] == ObjectId(seed.superadmin_id)
    assert revalidated == [
        '/dashboard/super-admin/concessions',
        '/dashboard/student/fees',
        '/dashboard/admin/fees',
        '/dashboard/admin/reports',
    ]


def test_apply_fee_concession_fractional_amount(seed):
    result = concessions.apply_fee_concession(concession(seed, amount='750.5'), seed.superadmin_id)
    assert result['message'] == 'Fee concession of amount 750.5 applied successfully for Riya Sharma.'


def test_apply_fee_concession_rejections(seed):
    invalid = concessions.apply_fee_concession(
        concession(seed, concession_type='Bribe', amount=-10, reason='meh'), seed.superadmin_id,
    )
    assert invalid['message'] == 'Validation failed.'
    assert 'concession_type: Concession type is required.' in invalid['error']
    assert 'amount: Concession amount must be a positive number.' in invalid['error']
    assert 'reason: Reason must be at least 5 characters long.' in invalid['error']

    not_superadmin = concessions.apply_fee_concession(concession(seed), seed.admin_id)
    assert not_superadmin == {'success': False, 'message': 'Super admin not found or invalid ID.'}

    not_student = concessions.apply_fee_concession(concession(seed, student_id=seed.teacher_id), seed.superadmin_id)
    assert not_student == {'success': False, 'message': 'Student not found in the specified school.'}


def test_school_concessions_filtered_by_year(seed, db):
    concessions.apply_fee_concession(concession(seed), seed.superadmin_id)
    concessions.apply_fee_concession(concession(seed, academic_year='2024-2025'), seed.superadmin_id)
    db[FEE_CONCESSIONS].insert_one({
        'student_id': ObjectId(), 'school_id': ObjectId(seed.school_id), 'academic_year': '2025-2026', 'amount': 10,
        'created_at': datetime.utcnow(),
    })

    this_year = concessions.get_fee_concessions_for_school(seed.school_id, '2025-2026')
    assert len(this_year['concessions']) == 2
    assert {c['student_name'] for c in this_year['concessions']} == {'Riya Sharma', 'N/A'}

    malformed_year = concessions.get_fee_concessions_for_school(seed.school_id, 'current')
    assert len(malformed_year['concessions']) == 3


def test_student_concessions_and_revoke(seed, revalidated):
    created = concessions.apply_fee_concession(concession(seed), seed.superadmin_id)

    listed = concessions.get_fee_concessions_for_student(seed.student_id, seed.school_id, '2025-2026')
    assert [c['amount'] for c in listed['concessions']] == [1000.0]
    assert concessions.get_fee_concessions_for_student(seed.student_id, seed.school_id, '')['message'] == 'Valid Academic Year is required.'

    concession_id = created['concession']['_id']
    assert concessions.revoke_fee_concession(concession_id) == {'success': True, 'message': 'Fee concession revoked successfully!'}
    assert concessions.revoke_fee_concession(concession_id)['message'] == 'Concession not found or already revoked.'
