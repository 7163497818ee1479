"""
Validation forms for CampusFlow actions.

Forms are fed plain dicts (``SomeForm(data=payload)``) so JSON API calls and
server-side callers share the same rules. The custom fields below coerce the
loosely typed values a JSON body carries into the types the actions store.
"""
import math
import re
from datetime import datetime, date, timezone

from wtforms import Form, Field, BooleanField, FieldList, FormField
from wtforms.validators import (
    AnyOf,
    DataRequired,
    Length,
    NumberRange,
    Regexp,
    StopValidation,
    URL,
    ValidationError,
)

from app_models import (
    ATTENDANCE_STATUSES,
    BCRYPT_MAX_PASSWORD_BYTES,
    CONCESSION_TYPES,
    REPORT_CARD_TEMPLATES,
    SCHOOL_USER_ROLES,
    SECOND_LANGUAGES,
)

ACADEMIC_YEAR_RE = re.compile(r'^\d{4}-\d{4}$')
EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
AADHAR_RE = re.compile(r'^\d{12}$')


# Fields

class TextField(Field):
    """String value; numbers are accepted and turned into text."""

    def process_data(self, value):
        self.data = None
        if value is None:
            return
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            raise ValueError(self.gettext('Not a valid string value.'))
        self.data = value if isinstance(value, str) else str(value)

    def _value(self):
        return self.data if self.data is not None else ''


class NumberField(Field):
    """Numeric value supplied as a number or a numeric string."""

    integer = False

    def process_data(self, value):
        self.data = None
        if value is None or (isinstance(value, str) and not value.strip()):
            return
        if isinstance(value, bool):
            raise ValueError(self.gettext('Not a valid number.'))
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValueError(self.gettext('Not a valid number.'))
        if math.isnan(number) or math.isinf(number):
            raise ValueError(self.gettext('Not a valid number.'))
        if self.integer:
            if not number.is_integer():
                raise ValueError(self.gettext('Not a valid integer value.'))
            self.data = int(number)
        else:
            self.data = number


class IntField(NumberField):
    integer = True


def to_datetime(value):
    """Convert a date, datetime or ISO string into a naive UTC datetime."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError('Not a valid date value.')
    else:
        raise ValueError('Not a valid date value.')

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class DateValueField(Field):
    """Date or datetime, stored as a naive UTC datetime."""

    def process_data(self, value):
        self.data = None
        self.data = to_datetime(value)


class JSONField(Field):
    """Free-form JSON value passed through unchanged."""


class EntryList(FieldList):
    """FieldList that tolerates a non-list payload instead of failing to build."""

    def process(self, formdata, data=None, extra_filters=None):
        if data is not None and not isinstance(data, (list, tuple)):
            data = []
        super().process(formdata, data=data or [], extra_filters=extra_filters)


def strip(value):
    return value.strip() if isinstance(value, str) else value


# Validators

class Supplied:
    """Stops the chain when no value was given. Unlike DataRequired, zero is a value."""

    field_flags = {'required': True}

    def __init__(self, message=None):
        self.message = message

    def __call__(self, form, field):
        if field.data is None or (isinstance(field.data, str) and not field.data.strip()):
            if field.errors:
                # The value was present but could not be converted
                raise StopValidation()
            raise StopValidation(self.message or field.gettext('This field is required.'))


class IfPresent:
    """Skips the remaining validators when the value is missing or blank."""

    field_flags = {'optional': True}

    def __call__(self, form, field):
        if field.data is None or (isinstance(field.data, str) and not field.data.strip()):
            raise StopValidation()


class Positive:
    def __init__(self, message=None):
        self.message = message

    def __call__(self, form, field):
        if field.data is None or field.data <= 0:
            raise ValidationError(self.message or field.gettext('Number must be positive.'))


class IsList:
    def __init__(self, message=None):
        self.message = message

    def __call__(self, form, field):
        if not isinstance(field.data, list):
            raise ValidationError(self.message or field.gettext('Expected a list.'))


class MaxBytes:
    """Limits the UTF-8 encoded size of a text value."""

    def __init__(self, max, message=None):
        self.max = max
        self.message = message

    def __call__(self, form, field):
        if isinstance(field.data, str) and len(field.data.encode('utf-8')) > self.max:
            raise ValidationError(self.message or field.gettext('Field is too long.'))


PASSWORD_MAX_BYTES = MaxBytes(
    BCRYPT_MAX_PASSWORD_BYTES,
    message=f'Password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes.',
)


# Auth and profile

class LoginForm(Form):
    identifier = TextField('Email or Admission Number', validators=[DataRequired('Email or Admission Number is required.')])
    password = TextField('Password', validators=[DataRequired('Password is required.')])


class ProfileForm(Form):
    name = TextField('Name', filters=[strip], validators=[Length(min=2, message='Name must be at least 2 characters.')])
    phone = TextField('Phone', filters=[strip])
    avatar_url = TextField('Avatar URL', filters=[strip], validators=[IfPresent(), URL(message='Invalid URL format for avatar.')])


# Learning resources

class CourseMaterialForm(Form):
    school_id = TextField('School', validators=[DataRequired('School ID is required.')])
    class_id = TextField('Class', validators=[DataRequired('Class ID is required.')])
    subject_name = TextField('Subject', filters=[strip], validators=[DataRequired('Subject name is required.')])
    title = TextField('Title', filters=[strip], validators=[Length(min=3, message='Title must be at least 3 characters.')])
    pdf_url = TextField('PDF URL', filters=[strip], validators=[URL(message='Please enter a valid URL.')])


class QuestionPaperForm(Form):
    school_id = TextField('School', validators=[DataRequired('School ID is required.')])
    class_id = TextField('Class', validators=[DataRequired('Class ID is required.')])
    subject_name = TextField('Subject', filters=[strip], validators=[DataRequired('Subject name is required.')])
    exam_name = TextField('Exam', filters=[strip], validators=[Length(min=3, message='Exam name must be at least 3 characters.')])
    year = IntField('Year', validators=[Supplied('Year is required.'), NumberRange(min=2000, message='Year must be 2000 or later.')])
    pdf_url = TextField('PDF URL', filters=[strip], validators=[URL(message='Please enter a valid URL.')])

    def validate_year(self, field):
        if field.data is not None and field.data > datetime.utcnow().year + 1:
            raise ValidationError('Year cannot be too far in the future.')


# Student lifecycle

class PromoteStudentsForm(Form):
    school_id = TextField('School', validators=[DataRequired('School ID is required.')])
    to_class_id = TextField('Target class', validators=[DataRequired('Target class is required.')])
    student_ids = EntryList(
        TextField('Student', validators=[DataRequired('Student ID is required.')]),
        validators=[Length(min=1, message='At least one student must be selected.')],
    )
    academic_year = TextField('Academic year', filters=[strip], validators=[Regexp(ACADEMIC_YEAR_RE, message='Invalid academic year format.')])


class DiscontinueStudentsForm(Form):
    school_id = TextField('School', validators=[DataRequired('School ID is required.')])
    student_ids = EntryList(
        TextField('Student', validators=[DataRequired('Student ID is required.')]),
        validators=[Length(min=1, message='At least one student must be selected.')],
    )


# School setup

class ClassFeeForm(Form):
    class_name = TextField('Class name', filters=[strip], validators=[DataRequired('Class name is required.')])
    tuition_fee = NumberField('Tuition fee', validators=[Supplied('Tuition fee is required.'), NumberRange(min=0, message='Tuition fee cannot be negative.')])
    bus_fee = NumberField('Bus fee', validators=[IfPresent(), NumberRange(min=0, message='Bus fee cannot be negative.')])
    canteen_fee = NumberField('Canteen fee', validators=[IfPresent(), NumberRange(min=0, message='Canteen fee cannot be negative.')])


class SchoolForm(Form):
    school_name = TextField('School name', filters=[strip], validators=[Length(min=3, message='School name must be at least 3 characters.')])
    class_fees = EntryList(
        FormField(ClassFeeForm),
        validators=[Length(min=1, message='At least one class fee configuration is required.')],
    )
    school_logo_url = TextField('Logo URL', filters=[strip], validators=[IfPresent(), URL(message='Invalid URL format for school logo.')])
    report_card_template = TextField('Report card template', validators=[IfPresent(), AnyOf(REPORT_CARD_TEMPLATES, message='Unknown report card template.')])


class AcademicYearForm(Form):
    year = TextField('Year', filters=[strip], validators=[Regexp(ACADEMIC_YEAR_RE, message='Year must be in YYYY-YYYY format.')])
    is_default = BooleanField('Default')


class SubjectForm(Form):
    name = TextField('Name', filters=[strip], validators=[DataRequired('Subject name is required.')])


class ClassSubjectForm(Form):
    name = TextField('Subject', filters=[strip], validators=[DataRequired('Subject name cannot be empty.')])


class SchoolClassForm(Form):
    name = TextField('Class name', filters=[strip], validators=[
        DataRequired('Class name is required.'),
        Length(max=100, message='Class name too long.'),
    ])
    class_teacher_id = TextField('Class teacher', filters=[strip])
    subjects = EntryList(FormField(ClassSubjectForm), validators=[
        Length(min=1, message='At least one subject is required.'),
        Length(max=20, message='Maximum 20 subjects allowed.'),
    ])


# Users

class AdminUserForm(Form):
    name = TextField('Name', filters=[strip], validators=[Length(min=2, message='Name must be at least 2 characters.')])
    email = TextField('Email', filters=[strip], validators=[Regexp(EMAIL_RE, message='Invalid email address.')])
    password = TextField('Password', validators=[Length(min=6, message='Password must be at least 6 characters.'), PASSWORD_MAX_BYTES])
    school_id = TextField('School', validators=[DataRequired('School selection is required.')])


class MasterAdminForm(AdminUserForm):
    password = TextField('Password', validators=[IfPresent(), Length(min=6, message='Password must be at least 6 characters.'), PASSWORD_MAX_BYTES])
    school_id = TextField('School', validators=[DataRequired('School assignment is required.')])


class AddressForm(Form):
    house_no = TextField('House no.', filters=[strip])
    street = TextField('Street', filters=[strip])
    village = TextField('Village', filters=[strip])
    mandal = TextField('Mandal', filters=[strip])
    district = TextField('District', filters=[strip])
    state = TextField('State', filters=[strip])


class TeacherForm(Form):
    name = TextField('Name', filters=[strip], validators=[Length(min=2, message='Name must be at least 2 characters.')])
    email = TextField('Email', filters=[strip], validators=[Regexp(EMAIL_RE, message='Invalid email address.')])
    password = TextField('Password', validators=[Length(min=6, message='Password must be at least 6 characters.'), PASSWORD_MAX_BYTES])
    role = TextField('Role', validators=[AnyOf(SCHOOL_USER_ROLES, message='Role is required.')])
    phone = TextField('Phone', filters=[strip])
    date_of_joining = TextField('Date of joining', filters=[strip])
    subjects_taught = EntryList(TextField('Subject', filters=[strip]))


class StudentForm(Form):
    # System fields
    admission_id = TextField('Admission ID', filters=[strip], validators=[DataRequired('Admission ID is required.')])
    email = TextField('Email', filters=[strip], validators=[Regexp(EMAIL_RE, message='A valid email is required.')])
    password = TextField('Password', validators=[Length(min=6, message='Password must be at least 6 characters.'), PASSWORD_MAX_BYTES])
    role = TextField('Role', validators=[AnyOf(SCHOOL_USER_ROLES, message='Role is required.')])

    # Admission details
    name = TextField('Full name', filters=[strip], validators=[Length(min=2, message='Full Name is required.')])
    dob = TextField('Date of birth', filters=[strip], validators=[DataRequired('Date of Birth is required.')])
    blood_group = TextField('Blood group', filters=[strip])
    nationality = TextField('Nationality', filters=[strip])
    religion = TextField('Religion', filters=[strip])
    caste = TextField('Caste', filters=[strip])
    subcaste = TextField('Subcaste', filters=[strip])
    aadhar_no = TextField('Aadhar', filters=[strip], validators=[IfPresent(), Regexp(AADHAR_RE, message='Aadhar must be 12 digits.')])
    identification_marks = TextField('Identification marks', filters=[strip])

    # Address
    present_address = FormField(AddressForm)
    is_permanent_same_as_present = BooleanField('Permanent address same as present')
    permanent_address = FormField(AddressForm)

    # Parents
    father_name = TextField("Father's name", filters=[strip], validators=[Length(min=2, message="Father's/Guardian's Name is required.")])
    mother_name = TextField("Mother's name", filters=[strip], validators=[Length(min=2, message="Mother's Name is required.")])
    father_mobile = TextField("Father's mobile", filters=[strip])
    mother_mobile = TextField("Mother's mobile", filters=[strip])
    father_aadhar = TextField("Father's Aadhar", filters=[strip])
    mother_aadhar = TextField("Mother's Aadhar", filters=[strip])
    father_qualification = TextField("Father's qualification", filters=[strip])
    mother_qualification = TextField("Mother's qualification", filters=[strip])
    father_occupation = TextField("Father's occupation", filters=[strip])
    mother_occupation = TextField("Mother's occupation", filters=[strip])
    ration_card_number = TextField('Ration card', filters=[strip])

    # Academic and other
    class_id = TextField('Class', filters=[strip], validators=[DataRequired('Class assignment is required.')])
    previous_school = TextField('Previous school', filters=[strip])
    is_tc_attached = BooleanField('TC attached')
    child_id_number = TextField('Child ID', filters=[strip])
    mother_tongue = TextField('Mother tongue', filters=[strip])
    date_of_joining = TextField('Date of joining', filters=[strip])
    section = TextField('Section', filters=[strip])
    roll_no = TextField('Roll no.', filters=[strip])
    exam_no = TextField('Exam no.', filters=[strip])
    date_of_leaving = TextField('Date of leaving', filters=[strip])
    enable_bus_transport = BooleanField('Bus transport')
    bus_route_location = TextField('Bus route', filters=[strip])
    bus_class_category = TextField('Bus category', filters=[strip])


class UpdateTeacherForm(TeacherForm):
    password = TextField('Password', validators=[IfPresent(), Length(min=6, message='New password must be at least 6 characters.'), PASSWORD_MAX_BYTES])


class UpdateStudentForm(StudentForm):
    password = TextField('Password', validators=[IfPresent(), Length(min=6, message='New password must be at least 6 characters.'), PASSWORD_MAX_BYTES])


# Fees

class FeePaymentForm(Form):
    student_id = TextField('Student', validators=[DataRequired('Student ID is required.')])
    student_name = TextField('Student name', filters=[strip], validators=[DataRequired('Student name is required.')])
    school_id = TextField('School', validators=[DataRequired('School ID is required.')])
    class_id = TextField('Class', filters=[strip], validators=[DataRequired('Class ID (name) is required.')])
    amount_paid = NumberField('Amount', validators=[Supplied('Payment amount is required.'), Positive('Payment amount must be positive.')])
    payment_date = DateValueField('Payment date', validators=[Supplied('Payment date is required.')])
    recorded_by_admin_id = TextField('Recorded by', validators=[DataRequired('Admin ID is required.')])
    payment_method = TextField('Payment method', filters=[strip])
    notes = TextField('Notes', filters=[strip])


class FeeConcessionForm(Form):
    student_id = TextField('Student', validators=[DataRequired('Student ID is required.')])
    school_id = TextField('School', validators=[DataRequired('School ID is required.')])
    academic_year = TextField('Academic year', filters=[strip], validators=[
        Length(min=4, message='Academic Year (e.g., 2023-2024) is required.'),
        Regexp(ACADEMIC_YEAR_RE, message='Invalid academic year format.'),
    ])
    concession_type = TextField('Concession type', validators=[AnyOf(CONCESSION_TYPES, message='Concession type is required.')])
    amount = NumberField('Amount', validators=[
        Supplied('Concession amount must be a positive number.'),
        Positive('Concession amount must be a positive number.'),
    ])
    reason = TextField('Reason', filters=[strip], validators=[
        Length(min=5, message='Reason must be at least 5 characters long.'),
        Length(max=500, message='Reason too long.'),
    ])


# Attendance and marks

class AttendanceEntryForm(Form):
    student_id = TextField('Student', validators=[DataRequired('Student ID is required.')])
    student_name = TextField('Student name', filters=[strip], validators=[DataRequired('Student name is required.')])
    status = TextField('Status', validators=[AnyOf(ATTENDANCE_STATUSES, message='Status must be present, absent or late.')])


class AttendanceSubmissionForm(Form):
    class_id = TextField('Class', validators=[DataRequired('Class ID is required.')])
    class_name = TextField('Class name', filters=[strip], validators=[DataRequired('Class name is required.')])
    school_id = TextField('School', validators=[DataRequired('School ID is required.')])
    date = DateValueField('Date', validators=[Supplied('Attendance date is required.')])
    entries = EntryList(FormField(AttendanceEntryForm), validators=[
        Length(min=1, message='At least one student entry is required.'),
    ])
    marked_by_teacher_id = TextField('Teacher', validators=[DataRequired('Teacher ID is required.')])


class StudentMarkForm(Form):
    student_id = TextField('Student', validators=[DataRequired('Student ID is required.')])
    student_name = TextField('Student name', filters=[strip], validators=[DataRequired('Student name is required.')])
    assessment_name = TextField('Assessment', filters=[strip], validators=[
        DataRequired('Internal assessment name (e.g., FA1-Tool1 or SA1-Paper1) is required.'),
    ])
    marks_obtained = NumberField('Marks', validators=[Supplied('Marks are required.'), NumberRange(min=0, message='Marks cannot be negative.')])
    max_marks = NumberField('Max marks', validators=[Supplied('Max marks are required.'), NumberRange(min=1, message='Max marks must be at least 1.')])

    def validate_marks_obtained(self, field):
        if field.data is not None and self.max_marks.data is not None and field.data > self.max_marks.data:
            raise ValidationError('Marks obtained cannot exceed max marks.')


class MarksSubmissionForm(Form):
    class_id = TextField('Class', validators=[DataRequired('Class ID is required.')])
    class_name = TextField('Class name', filters=[strip], validators=[DataRequired('Class name is required.')])
    subject_id = TextField('Subject', filters=[strip], validators=[DataRequired('Subject ID/Name is required.')])
    subject_name = TextField('Subject name', filters=[strip], validators=[DataRequired('Subject name is required.')])
    academic_year = TextField('Academic year', filters=[strip], validators=[
        Length(min=4, message='Academic year is required (e.g., 2023-2024).'),
    ])
    marked_by_teacher_id = TextField('Teacher', validators=[DataRequired('Teacher ID is required.')])
    school_id = TextField('School', validators=[DataRequired('School ID is required.')])
    student_marks = EntryList(FormField(StudentMarkForm), validators=[
        Length(min=1, message="At least one student's marks must be submitted."),
    ])


# Report cards

class ReportCardForm(Form):
    student_id = TextField('Student', validators=[DataRequired('Student ID is required.')])
    school_id = TextField('School', validators=[DataRequired('School ID is required.')])
    academic_year = TextField('Academic year', filters=[strip], validators=[Length(min=4, message='Academic year is required.')])
    report_card_template_key = TextField('Template', validators=[DataRequired('Report card template key is required.')])
    student_info = JSONField('Student info')
    formative_assessments = JSONField('Formative assessments', validators=[IsList('Formative assessments must be a list.')])
    co_curricular_assessments = JSONField('Co-curricular assessments', validators=[IsList('Co-curricular assessments must be a list.')])
    second_language = TextField('Second language', validators=[IfPresent(), AnyOf(SECOND_LANGUAGES, message='Second language must be Hindi or Telugu.')])
    summative_assessments = JSONField('Summative assessments', validators=[IsList('Summative assessments must be a list.')])
    attendance = JSONField('Attendance', validators=[IsList('Attendance must be a list.')])
    final_overall_grade = TextField('Final grade')
    generated_by_admin_id = TextField('Generated by')
    term = TextField('Term', filters=[strip])


def _collect_errors(errors, path, messages):
    if isinstance(errors, dict):
        for name, value in errors.items():
            child = path if name is None else path + [str(name)]
            _collect_errors(value, child, messages)
    elif isinstance(errors, (list, tuple)):
        for index, value in enumerate(errors):
            if isinstance(value, (dict, list, tuple)):
                _collect_errors(value, path + [str(index)], messages)
            elif value:
                messages.append((path, value))


def form_errors(form, separator=' ', with_paths=False):
    """Flatten the (possibly nested) errors of a validated form into one message."""
    messages = []
    _collect_errors(form.errors, [], messages)
    if with_paths:
        return separator.join(f"{'.'.join(path)}: {message}" for path, message in messages)
    return separator.join(message for _, message in messages)
