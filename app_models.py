from datetime import datetime, date

import bcrypt
import hmac
from bson import ObjectId

# Roles
SUPERADMIN = 'superadmin'
MASTERADMIN = 'masteradmin'
ADMIN = 'admin'
TEACHER = 'teacher'
STUDENT = 'student'
USER_ROLES = (SUPERADMIN, MASTERADMIN, ADMIN, TEACHER, STUDENT)
SCHOOL_USER_ROLES = (TEACHER, STUDENT)

# Student status
STATUS_ACTIVE = 'active'
STATUS_DISCONTINUED = 'discontinued'

# Collections
USERS = 'users'
SCHOOLS = 'schools'
SCHOOL_CLASSES = 'school_classes'
SUBJECTS = 'subjects'
ACADEMIC_YEARS = 'academic_years'
COURSE_MATERIALS = 'course_materials'
QUESTION_PAPERS = 'question_papers'
FEE_PAYMENTS = 'fee_payments'
FEE_CONCESSIONS = 'fee_concessions'
ATTENDANCES = 'attendances'
MARKS = 'marks'
REPORT_CARDS = 'report_cards'
PAGE_CACHE = 'page_cache'

CONCESSION_TYPES = (
    'Sibling Discount',
    'Scholarship',
    'Staff Ward',
    'Early Bird Discount',
    'Financial Aid',
    'Special Talent',
    'Other',
)

ATTENDANCE_STATUSES = ('present', 'absent', 'late')
ATTENDED_STATUSES = ('present', 'late')

REPORT_CARD_TEMPLATES = ('none', 'cbse_state')
SECOND_LANGUAGES = ('Hindi', 'Telugu')

# Sentinel the class forms send when the class teacher should be removed
NONE_TEACHER_OPTION = '__NONE_TEACHER_OPTION__'

BCRYPT_ROUNDS = 10
# bcrypt only accepts passwords up to this many bytes
BCRYPT_MAX_PASSWORD_BYTES = 72

# Landing page for each role after login
DASHBOARD_PATHS = {
    SUPERADMIN: '/dashboard/super-admin',
    MASTERADMIN: '/dashboard/master-admin',
    ADMIN: '/dashboard/admin',
    TEACHER: '/dashboard/teacher',
    STUDENT: '/dashboard/student',
}

# Fields never sent back to clients
PRIVATE_FIELDS = ('password',)


def to_object_id(value):
    """Return an ObjectId for a valid id string (or ObjectId), otherwise None."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def isoformat(value):
    """Render a naive UTC datetime the way the JSON API exposes timestamps."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.isoformat()
        return value.isoformat(timespec='milliseconds') + 'Z'
    if isinstance(value, date):
        return value.isoformat()
    return value


def serialize_document(obj):
    """Recursively convert ObjectIds and datetimes for JSON serialization, dropping private fields."""
    if isinstance(obj, ObjectId):
        return str(obj)
    elif isinstance(obj, dict):
        return {key: serialize_document(value) for key, value in obj.items() if key not in PRIVATE_FIELDS}
    elif isinstance(obj, (list, tuple)):
        return [serialize_document(item) for item in obj]
    elif isinstance(obj, (datetime, date)):
        return isoformat(obj)
    else:
        return obj


def hash_password(password):
    """Hash a password with bcrypt and return it as text for storage."""
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=BCRYPT_ROUNDS))
    return hashed.decode('utf-8')


def check_password(password, stored):
    """Check a password against a bcrypt hash, accepting legacy plaintext values."""
    if not stored:
        return False
    try:
        if bcrypt.checkpw(password.encode('utf-8'), stored.encode('utf-8')):
            return True
    except ValueError:
        # Not a bcrypt hash (e.g. a seeded plaintext password)
        pass
    return hmac.compare_digest(password.encode('utf-8'), stored.encode('utf-8'))


def class_fee_for(school, class_name):
    """Find the fee configuration for a class name in a school document."""
    if not school or not class_name:
        return None
    for fee in school.get('class_fees') or []:
        if fee.get('class_name') == class_name:
            return fee
    return None


def calculate_fee_status(student, school_class, school, payments, concessions):
    """Total fee, concessions, paid and due amounts for one student."""
    class_name = school_class.get('name') if school_class else None
    fee_config = class_fee_for(school, class_name)

    tuition_fee = float(fee_config.get('tuition_fee') or 0) if fee_config else 0.0
    bus_fee = 0.0
    if fee_config and student.get('bus_route_location'):
        bus_fee = float(fee_config.get('bus_fee') or 0)

    total_fee = tuition_fee + bus_fee
    total_concessions = sum(float(c.get('amount') or 0) for c in concessions)
    total_paid = sum(float(p.get('amount_paid') or 0) for p in payments)
    net_fee = total_fee - total_concessions
    total_due = net_fee - total_paid

    paid_percentage = 0
    if net_fee > 0:
        paid_percentage = round(total_paid / net_fee * 100)

    return {
        'student_id': str(student['_id']),
        'student_name': student.get('name'),
        'class_name': class_name,
        'tuition_fee': tuition_fee,
        'bus_fee': bus_fee,
        'total_fee': total_fee,
        'total_concessions': total_concessions,
        'net_fee': net_fee,
        'total_paid': total_paid,
        'total_due': total_due,
        'paid_percentage': paid_percentage,
    }


def summarize_attendance(records):
    """Count statuses across attendance records; present and late both count as attended."""
    summary = {'total_days': len(records), 'present': 0, 'absent': 0, 'late': 0}
    for record in records:
        status = record.get('status')
        if status in summary:
            summary[status] += 1

    attended = summary['present'] + summary['late']
    summary['attended'] = attended
    summary['percentage'] = round(attended / len(records) * 100) if records else 0
    return summary
