import logging
import os
from functools import wraps

from dotenv import load_dotenv
from flask import Flask, request, redirect, session, jsonify
from flask_wtf.csrf import CSRFProtect, CSRFError, generate_csrf

from config import get_config
from security import init_security
from health import health_bp
from app_models import (
    SUPERADMIN,
    MASTERADMIN,
    ADMIN,
    TEACHER,
    STUDENT,
    SCHOOLS,
    SCHOOL_CLASSES,
    COURSE_MATERIALS,
    QUESTION_PAPERS,
    DASHBOARD_PATHS,
    to_object_id,
)
from database import get_db
from data_isolation_helpers import (
    CROSS_SCHOOL_ROLES,
    get_current_school_id,
    get_current_user_id,
    get_current_role,
    ensure_school_access,
    resolve_school_id,
    scope_payload,
)
from page_cache import cached_page
from actions import (
    academic_years,
    admin_users,
    attendance,
    auth,
    classes,
    concessions,
    courses,
    fees,
    marks,
    master_admins,
    profile,
    promote_students,
    question_papers,
    reports,
    school_users,
    schools,
    subjects,
)

# Load environment variables from .env file
load_dotenv()

app = Flask(__name__)
app_config = get_config()
app.config.from_object(app_config)
app_config.init_app(app)

# Keep API responses in insertion order
app.json.sort_keys = False

logging.basicConfig(
    level=app.config.get('LOG_LEVEL', 'INFO'),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logger = logging.getLogger(__name__)

# Initialize security features
init_security(app)

csrf = CSRFProtect(app)
app.register_blueprint(health_bp)

SCHOOL_STAFF = (SUPERADMIN, MASTERADMIN, ADMIN)


@app.context_processor
def inject_csrf_token():
    return dict(csrf_token=generate_csrf)


# Multi-tenant access validator
def validate_tenant_access():
    """Validate current user's tenant access"""
    if get_current_role() in CROSS_SCHOOL_ROLES:
        return True

    school_oid = to_object_id(get_current_school_id())
    if school_oid is None:
        return False
    return get_db()[SCHOOLS].count_documents({'_id': school_oid}, limit=1) > 0


def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'logged_in' not in session:
            return jsonify({'success': False, 'error': 'Authentication required.'}), 401

        if not validate_tenant_access():
            session.clear()
            return jsonify({'success': False, 'error': 'Access denied. Your school account is no longer available.'}), 401

        return f(*args, **kwargs)
    return decorated_function


def role_required(*roles):
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if get_current_role() not in roles:
                return jsonify({'success': False, 'error': 'You do not have permission to perform this action.'}), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def json_payload():
    """Request body as a dict; form posts are accepted too."""
    if request.is_json:
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            return None
        return payload
    return request.form.to_dict()


def bad_payload():
    return jsonify({'success': False, 'error': 'Request body must be a JSON object.'}), 400


def forbidden_school():
    return jsonify({'success': False, 'error': 'Access denied for this school.'}), 403


def record_school_allowed(collection, record_id):
    """Check a record belongs to a school the user may act on. Unknown records pass through."""
    record_oid = to_object_id(record_id)
    if record_oid is None:
        return True
    record = get_db()[collection].find_one({'_id': record_oid}, {'school_id': 1})
    if not record:
        return True
    return ensure_school_access(record.get('school_id'))


def own_class_id():
    return session.get('class_id')


# Session

@app.route('/login', methods=['POST'])
def login():
    payload = json_payload()
    if payload is None:
        return bad_payload()

    result = auth.login_user(payload)
    if not result['success']:
        return jsonify(result), 401

    user = result['user']
    session.clear()
    session['logged_in'] = True
    session['user_id'] = user['_id']
    session['user_role'] = user['role']
    session['school_id'] = user['school_id']
    session['class_id'] = user['class_id']
    session['name'] = user['name']
    session['email'] = user['email']

    result['redirect'] = DASHBOARD_PATHS.get(user['role'], '/')
    return jsonify(result)


@app.route('/logout', methods=['POST'])
def logout():
    session.clear()
    return jsonify({'success': True, 'message': 'You have been logged out successfully!'})


@app.route('/csrf_token')
def csrf_token():
    return jsonify({'csrf_token': generate_csrf()})


@app.route('/api/session')
@login_required
def current_session():
    return jsonify({
        'success': True,
        'user': {
            '_id': get_current_user_id(),
            'name': session.get('name'),
            'email': session.get('email'),
            'role': get_current_role(),
            'school_id': get_current_school_id(),
            'class_id': own_class_id(),
        },
    })


@app.route('/dashboard')
@login_required
def dashboard():
    return redirect(DASHBOARD_PATHS.get(get_current_role(), '/'))


@app.route('/api/profile', methods=['PUT'])
@login_required
def update_profile():
    payload = json_payload()
    if payload is None:
        return bad_payload()

    result = profile.update_user_profile(get_current_user_id(), payload)
    if result['success']:
        session['name'] = result['user'].get('name')
    return jsonify(result)


# Schools

@app.route('/api/schools', methods=['GET'])
@login_required
@role_required(SUPERADMIN, MASTERADMIN)
@cached_page('/dashboard/super-admin/schools')
def list_schools():
    return schools.get_schools()


@app.route('/api/schools', methods=['POST'])
@login_required
@role_required(SUPERADMIN)
def create_school():
    payload = json_payload()
    if payload is None:
        return bad_payload()
    return jsonify(schools.create_school(payload))


@app.route('/api/schools/<school_id>')
@login_required
def get_school(school_id):
    if not ensure_school_access(school_id):
        return forbidden_school()
    return jsonify(schools.get_school_by_id(school_id))


# Academic years

@app.route('/api/academic-years', methods=['GET'])
@login_required
@cached_page('/dashboard/super-admin/academic-years')
def list_academic_years():
    return academic_years.get_academic_years()


@app.route('/api/academic-years/default')
@login_required
def default_academic_year():
    return jsonify({'success': True, 'year': academic_years.get_default_academic_year()})


@app.route('/api/academic-years', methods=['POST'])
@login_required
@role_required(SUPERADMIN)
def create_academic_year():
    payload = json_payload()
    if payload is None:
        return bad_payload()
    return jsonify(academic_years.create_academic_year(payload))


@app.route('/api/academic-years/<year_id>', methods=['PUT'])
@login_required
@role_required(SUPERADMIN)
def update_academic_year(year_id):
    payload = json_payload()
    if payload is None:
        return bad_payload()
    return jsonify(academic_years.update_academic_year(year_id, payload))


@app.route('/api/academic-years/<year_id>', methods=['DELETE'])
@login_required
@role_required(SUPERADMIN)
def delete_academic_year(year_id):
    return jsonify(academic_years.delete_academic_year(year_id))


@app.route('/api/academic-years/<year_id>/default', methods=['POST'])
@login_required
@role_required(SUPERADMIN)
def set_default_academic_year(year_id):
    return jsonify(academic_years.set_default_academic_year(year_id))


# Subjects

@app.route('/api/subjects', methods=['GET'])
@login_required
@cached_page('/dashboard/master-admin/subjects')
def list_subjects():
    return subjects.get_subjects()


@app.route('/api/subjects', methods=['POST'])
@login_required
@role_required(SUPERADMIN, MASTERADMIN)
def create_subject():
    payload = json_payload()
    if payload is None:
        return bad_payload()
    return jsonify(subjects.create_subject(payload))


@app.route('/api/subjects/<subject_id>', methods=['PUT'])
@login_required
@role_required(SUPERADMIN, MASTERADMIN)
def update_subject(subject_id):
    payload = json_payload()
    if payload is None:
        return bad_payload()
    return jsonify(subjects.update_subject(subject_id, payload))


@app.route('/api/subjects/<subject_id>', methods=['DELETE'])
@login_required
@role_required(SUPERADMIN, MASTERADMIN)
def delete_subject(subject_id):
    return jsonify(subjects.delete_subject(subject_id))


# Classes

@app.route('/api/classes', methods=['GET'])
@login_required
@role_required(*SCHOOL_STAFF, TEACHER)
@cached_page('/dashboard/admin/classes', query_args=('school_id',))
def list_classes():
    return classes.get_school_classes(resolve_school_id(request.args.get('school_id')))


@app.route('/api/classes/options')
@login_required
@role_required(*SCHOOL_STAFF, TEACHER)
def class_options():
    school_id = resolve_school_id(request.args.get('school_id'))
    return jsonify({'success': True, 'options': classes.get_classes_for_school_as_options(school_id)})


@app.route('/api/classes', methods=['POST'])
@login_required
@role_required(SUPERADMIN, ADMIN)
def create_class():
    payload = json_payload()
    if payload is None:
        return bad_payload()
    school_id = resolve_school_id(payload.get('school_id'))
    return jsonify(classes.create_school_class(school_id, payload))


@app.route('/api/classes/<class_id>', methods=['PUT'])
@login_required
@role_required(SUPERADMIN, ADMIN)
def update_class(class_id):
    payload = json_payload()
    if payload is None:
        return bad_payload()
    school_id = resolve_school_id(payload.get('school_id'))
    return jsonify(classes.update_school_class(class_id, school_id, payload))


@app.route('/api/classes/<class_id>', methods=['DELETE'])
@login_required
@role_required(SUPERADMIN, ADMIN)
def delete_class(class_id):
    school_id = resolve_school_id(request.args.get('school_id'))
    return jsonify(classes.delete_school_class(class_id, school_id))


# Administrators

@app.route('/api/admins', methods=['GET'])
@login_required
@role_required(SUPERADMIN, MASTERADMIN)
def list_school_admins():
    return jsonify(admin_users.get_school_admins())


@app.route('/api/admins', methods=['POST'])
@login_required
@role_required(SUPERADMIN, MASTERADMIN)
def create_school_admin():
    payload = json_payload()
    if payload is None:
        return bad_payload()
    master_admin_id = get_current_user_id() if get_current_role() == MASTERADMIN else None
    return jsonify(admin_users.create_school_admin(payload, master_admin_id=master_admin_id))


@app.route('/api/master-admins', methods=['GET'])
@login_required
@role_required(SUPERADMIN)
@cached_page('/dashboard/super-admin/master-admins')
def list_master_admins():
    return master_admins.get_master_admins()


@app.route('/api/master-admins/count')
@login_required
@role_required(SUPERADMIN)
def count_master_admins():
    return jsonify(master_admins.get_master_admins_count())


@app.route('/api/master-admins', methods=['POST'])
@login_required
@role_required(SUPERADMIN)
def create_master_admin():
    payload = json_payload()
    if payload is None:
        return bad_payload()
    return jsonify(master_admins.create_master_admin(payload))


@app.route('/api/master-admins/<user_id>', methods=['PUT'])
@login_required
@role_required(SUPERADMIN)
def update_master_admin(user_id):
    payload = json_payload()
    if payload is None:
        return bad_payload()
    return jsonify(master_admins.update_master_admin(user_id, payload))


@app.route('/api/master-admins/<user_id>', methods=['DELETE'])
@login_required
@role_required(SUPERADMIN)
def delete_master_admin(user_id):
    return jsonify(master_admins.delete_master_admin(user_id))


# School users

@app.route('/api/users', methods=['GET'])
@login_required
@role_required(SUPERADMIN, ADMIN)
def list_school_users():
    return jsonify(school_users.get_school_users(resolve_school_id(request.args.get('school_id'))))


@app.route('/api/users', methods=['POST'])
@login_required
@role_required(SUPERADMIN, ADMIN)
def create_school_user():
    payload = json_payload()
    if payload is None:
        return bad_payload()
    school_id = resolve_school_id(payload.get('school_id'))
    return jsonify(school_users.create_school_user(payload, school_id))


@app.route('/api/users/<user_id>', methods=['PUT'])
@login_required
@role_required(SUPERADMIN, ADMIN)
def update_school_user(user_id):
    payload = json_payload()
    if payload is None:
        return bad_payload()
    school_id = resolve_school_id(payload.get('school_id'))
    return jsonify(school_users.update_school_user(user_id, school_id, payload))


@app.route('/api/students/promote', methods=['POST'])
@login_required
@role_required(SUPERADMIN, ADMIN)
def promote():
    payload = json_payload()
    if payload is None:
        return bad_payload()
    return jsonify(promote_students.promote_students(scope_payload(payload)))


@app.route('/api/students/discontinue', methods=['POST'])
@login_required
@role_required(SUPERADMIN, ADMIN)
def discontinue():
    payload = json_payload()
    if payload is None:
        return bad_payload()
    return jsonify(promote_students.discontinue_students(scope_payload(payload)))


# Course materials and question papers

@app.route('/api/classes/<class_id>/materials')
@login_required
@cached_page('/dashboard/student/courses')
def list_course_materials(class_id):
    if get_current_role() == STUDENT and class_id != own_class_id():
        return jsonify({'success': False, 'error': 'Students can only view materials of their own class.'}), 403
    if not record_school_allowed(SCHOOL_CLASSES, class_id):
        return forbidden_school()
    return courses.get_course_materials_for_class(class_id)


@app.route('/api/materials', methods=['POST'])
@login_required
@role_required(*SCHOOL_STAFF)
def create_course_material():
    payload = json_payload()
    if payload is None:
        return bad_payload()
    return jsonify(courses.create_course_material(scope_payload(payload)))


@app.route('/api/materials/<material_id>', methods=['DELETE'])
@login_required
@role_required(*SCHOOL_STAFF)
def delete_course_material(material_id):
    if not record_school_allowed(COURSE_MATERIALS, material_id):
        return forbidden_school()
    return jsonify(courses.delete_course_material(material_id))


@app.route('/api/classes/<class_id>/question-papers')
@login_required
@role_required(*SCHOOL_STAFF, TEACHER)
@cached_page('/dashboard/admin/question-papers')
def list_question_papers(class_id):
    if not record_school_allowed(SCHOOL_CLASSES, class_id):
        return forbidden_school()
    return question_papers.get_question_papers_for_class(class_id)


@app.route('/api/student/question-papers')
@login_required
@role_required(STUDENT)
@cached_page('/dashboard/student/question-papers')
def list_student_question_papers():
    return question_papers.get_question_papers_for_student(own_class_id())


@app.route('/api/question-papers', methods=['POST'])
@login_required
@role_required(*SCHOOL_STAFF)
def create_question_paper():
    payload = json_payload()
    if payload is None:
        return bad_payload()
    return jsonify(question_papers.create_question_paper(scope_payload(payload)))


@app.route('/api/question-papers/<paper_id>', methods=['DELETE'])
@login_required
@role_required(*SCHOOL_STAFF)
def delete_question_paper(paper_id):
    if not record_school_allowed(QUESTION_PAPERS, paper_id):
        return forbidden_school()
    return jsonify(question_papers.delete_question_paper(paper_id))


# Fees

@app.route('/api/fees/payments', methods=['GET'])
@login_required
@role_required(SUPERADMIN, ADMIN)
@cached_page('/dashboard/admin/fees', query_args=('school_id',))
def list_fee_payments():
    return fees.get_fee_payments_by_school(resolve_school_id(request.args.get('school_id')))


@app.route('/api/fees/payments', methods=['POST'])
@login_required
@role_required(ADMIN)
def record_fee_payment():
    payload = json_payload()
    if payload is None:
        return bad_payload()
    payload = scope_payload(payload)
    payload['recorded_by_admin_id'] = get_current_user_id()
    return jsonify(fees.record_fee_payment(payload))


@app.route('/api/fees/payments/<payment_id>')
@login_required
def get_fee_payment(payment_id):
    result = fees.get_payment_by_id(payment_id)
    if result['success']:
        payment = result['payment']
        if not ensure_school_access(payment['school_id']):
            return forbidden_school()
        if get_current_role() == STUDENT and payment['student_id'] != get_current_user_id():
            return forbidden_school()
    return jsonify(result)


@app.route('/api/students/<student_id>/payments')
@login_required
@role_required(SUPERADMIN, ADMIN)
def list_student_payments(student_id):
    school_id = resolve_school_id(request.args.get('school_id'))
    return jsonify(fees.get_fee_payments_by_student(student_id, school_id))


@app.route('/api/students/<student_id>/fee-status')
@login_required
@role_required(SUPERADMIN, ADMIN)
def student_fee_status(student_id):
    school_id = resolve_school_id(request.args.get('school_id'))
    return jsonify(fees.get_student_fee_status(student_id, school_id, request.args.get('academic_year')))


@app.route('/api/student/fees')
@login_required
@role_required(STUDENT)
def own_fee_status():
    academic_year = request.args.get('academic_year') or academic_years.get_default_academic_year()
    return jsonify(fees.get_student_fee_status(get_current_user_id(), get_current_school_id(), academic_year))


# Concessions

@app.route('/api/concessions', methods=['GET'])
@login_required
@role_required(SUPERADMIN, ADMIN)
@cached_page('/dashboard/super-admin/concessions', query_args=('school_id', 'academic_year'))
def list_concessions():
    school_id = resolve_school_id(request.args.get('school_id'))
    return concessions.get_fee_concessions_for_school(school_id, request.args.get('academic_year'))


@app.route('/api/concessions', methods=['POST'])
@login_required
@role_required(SUPERADMIN)
def apply_concession():
    payload = json_payload()
    if payload is None:
        return bad_payload()
    return jsonify(concessions.apply_fee_concession(payload, get_current_user_id()))


@app.route('/api/concessions/<concession_id>', methods=['DELETE'])
@login_required
@role_required(SUPERADMIN)
def revoke_concession(concession_id):
    return jsonify(concessions.revoke_fee_concession(concession_id))


@app.route('/api/students/<student_id>/concessions')
@login_required
@role_required(SUPERADMIN, ADMIN, STUDENT)
def student_concessions(student_id):
    if get_current_role() == STUDENT and student_id != get_current_user_id():
        return forbidden_school()
    school_id = resolve_school_id(request.args.get('school_id'))
    return jsonify(concessions.get_fee_concessions_for_student(student_id, school_id, request.args.get('academic_year')))


# Attendance

@app.route('/api/attendance', methods=['POST'])
@login_required
@role_required(TEACHER, ADMIN)
def submit_attendance():
    payload = json_payload()
    if payload is None:
        return bad_payload()
    payload = scope_payload(payload)
    payload['marked_by_teacher_id'] = get_current_user_id()
    return jsonify(attendance.submit_attendance(payload))


@app.route('/api/attendance/daily')
@login_required
@role_required(SUPERADMIN, ADMIN)
def daily_attendance():
    school_id = resolve_school_id(request.args.get('school_id'))
    return jsonify(attendance.get_daily_attendance_for_school(school_id, request.args.get('date')))


@app.route('/api/student/attendance')
@login_required
@role_required(STUDENT)
def own_attendance():
    return jsonify(attendance.get_student_attendance_records(get_current_user_id(), get_current_school_id()))


# Marks

@app.route('/api/marks', methods=['POST'])
@login_required
@role_required(TEACHER)
def submit_marks():
    payload = json_payload()
    if payload is None:
        return bad_payload()
    payload = scope_payload(payload)
    payload['marked_by_teacher_id'] = get_current_user_id()
    return jsonify(marks.submit_marks(payload))


@app.route('/api/marks')
@login_required
@role_required(TEACHER, ADMIN, SUPERADMIN)
def list_marks():
    args = request.args
    school_id = resolve_school_id(args.get('school_id'))
    return jsonify(marks.get_marks_for_assessment(
        school_id,
        args.get('class_id'),
        args.get('subject_id'),
        args.get('assessment_name'),
        args.get('academic_year'),
    ))


@app.route('/api/teacher/subjects')
@login_required
@role_required(TEACHER)
def teacher_subjects():
    return jsonify({'success': True, 'subjects': marks.get_subjects_for_teacher(get_current_user_id(), get_current_school_id())})


# Report cards

@app.route('/api/report-cards', methods=['POST'])
@login_required
@role_required(SUPERADMIN, ADMIN)
def save_report_card():
    payload = json_payload()
    if payload is None:
        return bad_payload()
    payload = scope_payload(payload)
    payload['generated_by_admin_id'] = get_current_user_id()
    return jsonify(reports.save_report_card(payload))


@app.route('/api/report-cards/<report_id>/publication', methods=['POST'])
@login_required
@role_required(SUPERADMIN, ADMIN)
def publish_report_card(report_id):
    payload = json_payload()
    if payload is None:
        return bad_payload()
    school_id = resolve_school_id(payload.get('school_id'))
    return jsonify(reports.set_report_card_publication_status(report_id, school_id, payload.get('is_published')))


@app.route('/api/report-cards/overview')
@login_required
@role_required(SUPERADMIN, ADMIN)
def report_overview():
    args = request.args
    school_id = resolve_school_id(args.get('school_id'))
    return jsonify(reports.get_report_publication_overview(school_id, args.get('class_id'), args.get('academic_year')))


@app.route('/api/students/<student_id>/report-card')
@login_required
@role_required(SUPERADMIN, ADMIN, STUDENT)
def student_report_card(student_id):
    role = get_current_role()
    if role == STUDENT and student_id != get_current_user_id():
        return forbidden_school()
    args = request.args
    school_id = resolve_school_id(args.get('school_id'))
    academic_year = args.get('academic_year') or academic_years.get_default_academic_year()
    return jsonify(reports.get_student_report_card(
        student_id,
        school_id,
        academic_year,
        term=args.get('term'),
        published_only=role == STUDENT,
    ))


# Error handlers

@app.errorhandler(CSRFError)
def handle_csrf_error(e):
    return jsonify({'success': False, 'error': e.description}), 400


@app.errorhandler(400)
def bad_request(e):
    return jsonify({'success': False, 'error': 'Bad request.'}), 400


@app.errorhandler(404)
def not_found(e):
    return jsonify({'success': False, 'error': 'Not found.'}), 404


@app.errorhandler(405)
def method_not_allowed(e):
    return jsonify({'success': False, 'error': 'Method not allowed.'}), 405


@app.errorhandler(500)
def internal_error(e):
    logger.error('Unhandled server error: %s', e)
    return jsonify({'success': False, 'error': 'An internal error occurred.'}), 500


if __name__ == '__main__':
    # This block is for local development only.
    # In production, a WSGI server like Gunicorn is used.
    port = int(os.environ.get('PORT', 5001))
    print("\n" + "="*50)
    print("Starting local development server...")
    print(f"Access the system at: http://127.0.0.1:{port}")
    print("="*50 + "\n")
    app.run(host='127.0.0.1', port=port, debug=os.environ.get('FLASK_ENV') == 'development')
