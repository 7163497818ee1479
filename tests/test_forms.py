from datetime import datetime

from forms import (
    ClassFeeForm,
    MasterAdminForm,
    FeePaymentForm,
    MarksSubmissionForm,
    PromoteStudentsForm,
    QuestionPaperForm,
    SchoolForm,
    form_errors,
    to_datetime,
)

PAYMENT = {
    'student_id': '665f1c2b9a1e4b0012345678',
    'student_name': 'Riya Sharma',
    'school_id': '665f1c2b9a1e4b0012345679',
    'class_id': 'Class 5',
    'amount_paid': '2500',
    'payment_date': '2024-06-10',
    'recorded_by_admin_id': '665f1c2b9a1e4b001234567a',
}


def test_number_field_coerces_numeric_strings():
    form = FeePaymentForm(data=PAYMENT)
    assert form.validate(), form.errors
    assert form.amount_paid.data == 2500.0
    assert form.payment_date.data == datetime(2024, 6, 10)


def test_number_field_rejects_text_and_non_positive_amounts():
    form = FeePaymentForm(data=dict(PAYMENT, amount_paid='lots'))
    assert not form.validate()
    assert form.amount_paid.errors == ['Not a valid number.']

    form = FeePaymentForm(data=dict(PAYMENT, amount_paid=0))
    assert not form.validate()
    assert form.amount_paid.errors == ['Payment amount must be positive.']


def test_supplied_treats_zero_as_a_value():
    form = ClassFeeForm(data={'class_name': 'Class 1', 'tuition_fee': 0})
    assert form.validate(), form.errors

    form = ClassFeeForm(data={'class_name': 'Class 1'})
    assert not form.validate()
    assert form.tuition_fee.errors == ['Tuition fee is required.']


def test_to_datetime_normalises_to_naive_utc():
    assert to_datetime('2024-06-10T18:30:00Z') == datetime(2024, 6, 10, 18, 30)
    assert to_datetime('2024-06-10T05:30:00+05:30') == datetime(2024, 6, 10, 0, 0)
    assert to_datetime(None) is None


def test_invalid_date_is_reported_as_field_error():
    form = FeePaymentForm(data=dict(PAYMENT, payment_date='10/06/2024'))
    assert not form.validate()
    assert form.payment_date.errors == ['Not a valid date value.']


def test_question_paper_year_bounds():
    base = {
        'school_id': 'a', 'class_id': 'b', 'subject_name': 'Science',
        'exam_name': 'Final Exam', 'pdf_url': 'https://files.example.com/paper.pdf',
    }
    form = QuestionPaperForm(data=dict(base, year=datetime.utcnow().year + 5))
    assert not form.validate()
    assert 'Year cannot be too far in the future.' in form.year.errors

    form = QuestionPaperForm(data=dict(base, year=1999))
    assert not form.validate()
    assert form.year.errors == ['Year must be 2000 or later.']

    form = QuestionPaperForm(data=dict(base, year='2023'))
    assert form.validate(), form.errors
    assert form.year.data == 2023


def test_nested_errors_are_flattened_with_paths():
    payload = {
        'class_id': 'c1',
        'class_name': 'Class 5',
        'subject_id': 'Mathematics',
        'subject_name': 'Mathematics',
        'academic_year': '2024-2025',
        'marked_by_teacher_id': 't1',
        'school_id': 's1',
        'student_marks': [
            {'student_id': 'x', 'student_name': 'Riya', 'assessment_name': 'FA1', 'marks_obtained': 25, 'max_marks': 20},
        ],
    }
    form = MarksSubmissionForm(data=payload)
    assert not form.validate()
    assert form_errors(form, separator='; ', with_paths=True) == \
        'student_marks.0.marks_obtained: Marks obtained cannot exceed max marks.'


def test_school_form_requires_class_fees():
    form = SchoolForm(data={'school_name': 'Hill Top School', 'class_fees': []})
    assert not form.validate()
    assert form_errors(form) == 'At least one class fee configuration is required.'


def test_non_list_payload_for_list_field_fails_validation():
    form = PromoteStudentsForm(data={
        'school_id': 's1', 'to_class_id': 'c1', 'student_ids': 'abc', 'academic_year': '2024-2025',
    })
    assert not form.validate()
    assert 'At least one student must be selected.' in form_errors(form)


def test_password_length_is_counted_in_bytes():
    values = {'name': 'Morgan Master', 'email': 'master@campusflow.test', 'school_id': '665f1c2b9a1e4b0012345679'}

    assert MasterAdminForm(data=dict(values, password='a' * 72)).validate()
    assert MasterAdminForm(data=dict(values, password='')).validate()

    form = MasterAdminForm(data=dict(values, password='ü' * 37))
    assert not form.validate()
    assert form.password.errors == ['Password must be at most 72 bytes.']
