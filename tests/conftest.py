import os
from datetime import datetime
from types import SimpleNamespace

import mongomock
import pytest

os.environ['APP_CONFIG'] = 'testing'
os.environ.setdefault('MONGODB_URI', 'mongodb://localhost:27017')

import database
import page_cache
from actions import (
    academic_years,
    admin_users,
    attendance,
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
from app_models import (
    USERS,
    SCHOOLS,
    SCHOOL_CLASSES,
    SUPERADMIN,
    MASTERADMIN,
    ADMIN,
    TEACHER,
    STUDENT,
    STATUS_ACTIVE,
    hash_password,
)

PASSWORD = 'password123'


@pytest.fixture(autouse=True)
def mongo(monkeypatch):
    """Every test gets a fresh in-memory MongoDB shared by all connections."""
    client = mongomock.MongoClient()
    monkeypatch.setenv('MONGODB_URI', 'mongodb://localhost:27017')
    monkeypatch.setattr(database, 'MongoClient', lambda *args, **kwargs: client)
    database.reset_connection()
    yield client
    database.reset_connection()


@pytest.fixture
def db():
    return database.get_db()


@pytest.fixture(scope='session')
def password_hash():
    return hash_password(PASSWORD)


@pytest.fixture
def seed(db, password_hash):
    """A school with one class, its class teacher, an admin and two students."""
    now = datetime.utcnow()
    school_id = db[SCHOOLS].insert_one({
        'school_name': 'Green Valley School',
        'class_fees': [
            {'class_name': 'Class 5', 'tuition_fee': 12000.0, 'bus_fee': 3000.0, 'canteen_fee': 0},
            {'class_name': 'Class 6', 'tuition_fee': 14000.0, 'bus_fee': 3500.0, 'canteen_fee': 0},
        ],
        'report_card_template': 'cbse_state',
        'created_at': now,
        'updated_at': now,
    }).inserted_id

    def add_user(**fields):
        fields.setdefault('password', password_hash)
        fields.setdefault('created_at', now)
        fields.setdefault('updated_at', now)
        return db[USERS].insert_one(fields).inserted_id

    superadmin_id = add_user(name='Sam Super', email='super@campusflow.test', role=SUPERADMIN)
    master_admin_id = add_user(name='Morgan Master', email='master@campusflow.test', role=MASTERADMIN, school_id=school_id)
    admin_id = add_user(name='Alex Admin', email='admin@greenvalley.test', role=ADMIN, school_id=school_id)
    teacher_id = add_user(name='Taylor Teacher', email='teacher@greenvalley.test', role=TEACHER, school_id=school_id)

    class_id = db[SCHOOL_CLASSES].insert_one({
        'school_id': school_id,
        'name': 'Class 5',
        'class_teacher_id': teacher_id,
        'subjects': [{'name': 'Mathematics'}, {'name': 'Science'}],
        'created_at': now,
        'updated_at': now,
    }).inserted_id
    next_class_id = db[SCHOOL_CLASSES].insert_one({
        'school_id': school_id,
        'name': 'Class 6',
        'class_teacher_id': None,
        'subjects': [{'name': 'Mathematics'}],
        'created_at': now,
        'updated_at': now,
    }).inserted_id
    db[USERS].update_one({'_id': teacher_id}, {'$set': {'class_id': str(class_id)}})

    student_id = add_user(
        name='Riya Sharma', email='riya@greenvalley.test', role=STUDENT, school_id=school_id,
        class_id=str(class_id), admission_id='ADM001', status=STATUS_ACTIVE, bus_route_location='Route 7',
    )
    other_student_id = add_user(
        name='Arjun Rao', email='arjun@greenvalley.test', role=STUDENT, school_id=school_id,
        class_id=str(class_id), admission_id='ADM002', status=STATUS_ACTIVE,
    )

    return SimpleNamespace(
        school_id=str(school_id),
        class_id=str(class_id),
        next_class_id=str(next_class_id),
        superadmin_id=str(superadmin_id),
        master_admin_id=str(master_admin_id),
        admin_id=str(admin_id),
        teacher_id=str(teacher_id),
        student_id=str(student_id),
        other_student_id=str(other_student_id),
    )


@pytest.fixture
def revalidated(monkeypatch):
    """Collect the dashboard paths revalidated by actions."""
    paths = []
    original = page_cache.revalidate_path

    def record(path):
        paths.append(path)
        original(path)

    for module in (
        academic_years, admin_users, attendance, classes, concessions, courses, fees, marks,
        master_admins, profile, promote_students, question_papers, reports, school_users,
        schools, subjects,
    ):
        monkeypatch.setattr(module, 'revalidate_path', record)
    return paths


@pytest.fixture
def app():
    from app import app as flask_app
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login_as(client):
    """Put a user into the test client's session without going through /login."""
    def _login(user_id, role, school_id=None, class_id=None, name='Test User'):
        with client.session_transaction() as sess:
            sess['logged_in'] = True
            sess['user_id'] = user_id
            sess['user_role'] = role
            sess['school_id'] = school_id
            sess['class_id'] = class_id
            sess['name'] = name
        return client
    return _login
