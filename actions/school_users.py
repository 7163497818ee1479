import logging
from datetime import datetime

from actions.classes import CLASSES_PAGE
from app_models import (
    USERS,
    SCHOOL_CLASSES,
    STUDENT,
    TEACHER,
    STATUS_ACTIVE,
    SCHOOL_USER_ROLES,
    hash_password,
    serialize_document,
    to_object_id,
)
from database import get_db
from forms import StudentForm, TeacherForm, UpdateStudentForm, UpdateTeacherForm, form_errors
from page_cache import revalidate_path

logger = logging.getLogger(__name__)

USERS_PAGE = '/dashboard/admin/users'

# Fields copied straight from the form onto the user document
STUDENT_FIELDS = (
    'admission_id', 'dob', 'blood_group', 'nationality', 'religion', 'caste', 'subcaste',
    'aadhar_no', 'identification_marks', 'father_name', 'mother_name', 'father_mobile',
    'mother_mobile', 'father_aadhar', 'mother_aadhar', 'father_qualification',
    'mother_qualification', 'father_occupation', 'mother_occupation', 'ration_card_number',
    'previous_school', 'child_id_number', 'mother_tongue', 'date_of_joining', 'section',
    'roll_no', 'exam_no', 'date_of_leaving', 'is_tc_attached',
)
TEACHER_FIELDS = ('phone', 'date_of_joining')


def _form_for(values, update=False):
    role = (values or {}).get('role')
    if role == TEACHER:
        return UpdateTeacherForm(data=values) if update else TeacherForm(data=values)
    return UpdateStudentForm(data=values) if update else StudentForm(data=values)


def _address(data):
    address = {key: value for key, value in (data or {}).items() if value}
    return address or None


def _profile_fields(form):
    """Document fields for a validated teacher or student form, password excluded."""
    fields = {
        'name': form.name.data,
        'email': form.email.data,
        'role': form.role.data,
    }
    if form.role.data == TEACHER:
        for name in TEACHER_FIELDS:
            fields[name] = form[name].data or None
        fields['subjects_taught'] = [s for s in form.subjects_taught.data if s]
        return fields

    for name in STUDENT_FIELDS:
        value = form[name].data
        fields[name] = value if isinstance(value, bool) else (value or None)

    present = _address(form.present_address.data)
    fields['present_address'] = present
    if form.is_permanent_same_as_present.data:
        fields['permanent_address'] = present
    else:
        fields['permanent_address'] = _address(form.permanent_address.data)

    if form.enable_bus_transport.data:
        fields['bus_route_location'] = form.bus_route_location.data or None
        fields['bus_class_category'] = form.bus_class_category.data or None
    else:
        fields['bus_route_location'] = None
        fields['bus_class_category'] = None
    return fields


def _check_student_class(db, school_oid, class_id):
    class_oid = to_object_id(class_id)
    if class_oid is None:
        return 'Invalid Class ID.'
    if not db[SCHOOL_CLASSES].find_one({'_id': class_oid, 'school_id': school_oid}):
        return 'Selected class not found in this school.'
    return None


def create_school_user(values, school_id):
    """Create a teacher or a student inside one school."""
    try:
        form = _form_for(values)
        if not form.validate():
            return {'success': False, 'message': 'Validation failed', 'error': form_errors(form) or 'Invalid fields!'}

        school_oid = to_object_id(school_id)
        if school_oid is None:
            return {'success': False, 'message': 'Invalid School ID provided for user creation.', 'error': 'Invalid School ID.'}

        db = get_db()
        if db[USERS].find_one({'email': form.email.data}):
            return {'success': False, 'message': 'User with this email already exists.', 'error': 'Email already in use.'}

        role = form.role.data
        user = _profile_fields(form)
        if role == STUDENT:
            class_error = _check_student_class(db, school_oid, form.class_id.data)
            if class_error:
                return {'success': False, 'message': class_error}
            if db[USERS].find_one({'admission_id': form.admission_id.data, 'role': STUDENT}):
                return {'success': False, 'message': 'A student with this admission ID already exists.'}
            user['class_id'] = form.class_id.data
            user['status'] = STATUS_ACTIVE

        now = datetime.utcnow()
        user.update({
            'password': hash_password(form.password.data),
            'school_id': school_oid,
            'created_at': now,
            'updated_at': now,
        })
        result = db[USERS].insert_one(user)
        if not result.inserted_id:
            return {'success': False, 'message': 'Failed to create user.', 'error': 'Database insertion failed.'}

        revalidate_path(USERS_PAGE)
        return {
            'success': True,
            'message': f'{role.capitalize()} created successfully!',
            'user': serialize_document(user),
        }
    except Exception as e:
        logger.exception('Create school user error')
        return {'success': False, 'message': 'An unexpected error occurred during user creation.', 'error': str(e)}


def update_school_user(user_id, school_id, values):
    """Update a teacher or student of a school; the password only changes when supplied."""
    try:
        user_oid = to_object_id(user_id)
        school_oid = to_object_id(school_id)
        if user_oid is None or school_oid is None:
            return {'success': False, 'message': 'Invalid User or School ID format.', 'error': 'Invalid ID.'}

        form = _form_for(values, update=True)
        if not form.validate():
            return {'success': False, 'message': 'Validation failed', 'error': form_errors(form) or 'Invalid fields!'}

        db = get_db()
        existing = db[USERS].find_one({'_id': user_oid, 'school_id': school_oid, 'role': {'$in': list(SCHOOL_USER_ROLES)}})
        if not existing:
            return {'success': False, 'message': 'User not found in this school.', 'error': 'User not found.'}
        if existing['role'] != form.role.data:
            return {'success': False, 'message': 'Changing the role of an existing user is not allowed.'}

        other = db[USERS].find_one({'email': form.email.data, '_id': {'$ne': user_oid}})
        if other:
            return {'success': False, 'message': 'This email is already in use by another account.', 'error': 'Email already in use.'}

        changes = _profile_fields(form)
        if form.role.data == STUDENT:
            class_error = _check_student_class(db, school_oid, form.class_id.data)
            if class_error:
                return {'success': False, 'message': class_error}
            changes['class_id'] = form.class_id.data
        if form.password.data:
            changes['password'] = hash_password(form.password.data)
        changes['updated_at'] = datetime.utcnow()

        db[USERS].update_one({'_id': user_oid}, {'$set': changes})
        revalidate_path(USERS_PAGE)
        if form.role.data == TEACHER:
            revalidate_path(CLASSES_PAGE)

        return {
            'success': True,
            'message': f'{form.role.data.capitalize()} updated successfully!',
            'user': serialize_document(db[USERS].find_one({'_id': user_oid})),
        }
    except Exception as e:
        logger.exception('Update school user error')
        return {'success': False, 'message': 'An unexpected error occurred during user update.', 'error': str(e)}


def get_school_users(school_id):
    """Teachers and students of a school, newest first, without passwords."""
    try:
        school_oid = to_object_id(school_id)
        if school_oid is None:
            return {'success': False, 'message': 'Invalid School ID format for fetching users.', 'error': 'Invalid School ID.'}

        users = get_db()[USERS].find(
            {'school_id': school_oid, 'role': {'$in': list(SCHOOL_USER_ROLES)}},
            {'password': 0},
        ).sort('created_at', -1)
        return {'success': True, 'users': serialize_document(list(users))}
    except Exception as e:
        logger.exception('Get school users error')
        return {'success': False, 'error': str(e), 'message': 'Failed to fetch school users.'}
