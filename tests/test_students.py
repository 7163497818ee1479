from bson import ObjectId

from actions.profile import update_user_profile
from actions.promote_students import discontinue_students, promote_students
from app_models import USERS, STATUS_DISCONTINUED


def test_promote_students(seed, db, revalidated):
    result = promote_students({
        'school_id': seed.school_id,
        'to_class_id': seed.next_class_id,
        'student_ids': [seed.student_id, seed.other_student_id],
        'academic_year': '2025-2026',
    })

    assert result['success'] is True
    assert result['updated_count'] == 2
    assert result['message'] == '2 student(s) promoted successfully to the new class and academic year.'
    student = db[USERS].find_one({'_id': ObjectId(seed.student_id)})
    assert student['class_id'] == seed.next_class_id
    assert student['academic_year'] == '2025-2026'
    assert '/dashboard/admin/students' in revalidated


def test_promote_students_validation(seed):
    result = promote_students({
        'school_id': seed.school_id,
        'to_class_id': seed.next_class_id,
        'student_ids': [],
        'academic_year': '2025',
    })

    assert result['success'] is False
    assert result['message'] == 'Validation failed.'
    assert 'At least one student must be selected.' in result['error']
    assert 'Invalid academic year format.' in result['error']


def test_promote_students_bad_ids(seed):
    result = promote_students({
        'school_id': seed.school_id,
        'to_class_id': seed.next_class_id,
        'student_ids': [seed.student_id, 'nope'],
        'academic_year': '2025-2026',
    })
    assert result == {'success': False, 'message': 'Invalid ID format provided.'}


def test_promote_students_of_another_school(seed):
    result = promote_students({
        'school_id': str(ObjectId()),
        'to_class_id': seed.next_class_id,
        'student_ids': [seed.student_id],
        'academic_year': '2025-2026',
    })
    assert result == {'success': False, 'message': 'No matching students found to promote.'}


def test_discontinue_students(seed, db):
    result = discontinue_students({'school_id': seed.school_id, 'student_ids': [seed.other_student_id]})

    assert result['success'] is True
    assert result['updated_count'] == 1
    assert result['message'] == '1 student(s) marked as discontinued.'
    assert db[USERS].find_one({'_id': ObjectId(seed.other_student_id)})['status'] == STATUS_DISCONTINUED
    assert db[USERS].find_one({'_id': ObjectId(seed.student_id)})['status'] == 'active'


def test_discontinue_ignores_non_students(seed):
    result = discontinue_students({'school_id': seed.school_id, 'student_ids': [seed.teacher_id]})
    assert result == {'success': False, 'message': 'No matching students found to discontinue.'}


def test_update_profile(seed, db, revalidated):
    result = update_user_profile(seed.teacher_id, {
        'name': '  Taylor Brooks ',
        'phone': '9876543210',
        'avatar_url': 'https://cdn.example.com/avatars/taylor.png',
    })

    assert result['success'] is True
    assert result['message'] == 'Profile updated successfully!'
    assert result['user']['name'] == 'Taylor Brooks'
    assert result['user']['phone'] == '9876543210'
    assert result['user']['avatar_url'] == 'https://cdn.example.com/avatars/taylor.png'
    assert '/dashboard/profile' in revalidated
    assert '/dashboard/admin/classes' in revalidated


def test_update_profile_clears_avatar(seed, db):
    update_user_profile(seed.teacher_id, {'name': 'Taylor', 'avatar_url': 'https://cdn.example.com/a.png'})
    result = update_user_profile(seed.teacher_id, {'name': 'Taylor', 'avatar_url': ''})

    assert result['success'] is True
    assert result['user']['avatar_url'] is None
    assert 'avatar_url' not in db[USERS].find_one({'_id': ObjectId(seed.teacher_id)})


def test_update_profile_validation(seed):
    result = update_user_profile(seed.teacher_id, {'name': 'T', 'avatar_url': 'not-a-url'})
    assert result['success'] is False
    assert result['error'] == 'Name must be at least 2 characters.; Invalid URL format for avatar.'


def test_update_profile_unknown_user():
    assert update_user_profile(str(ObjectId()), {'name': 'Someone'})['message'] == 'User not found.'
    assert update_user_profile('bad-id', {'name': 'Someone'})['message'] == 'Invalid User ID format.'


def test_update_profile_keeps_omitted_fields(seed, db):
    update_user_profile(seed.teacher_id, {
        'name': 'Taylor', 'phone': '123', 'avatar_url': 'https://cdn.example.com/a.png',
    })

    result = update_user_profile(seed.teacher_id, {'name': 'Taylor Brooks'})

    assert result['success'] is True
    assert result['user']['phone'] == '123'
    assert result['user']['avatar_url'] == 'https://cdn.example.com/a.png'
    stored = db[USERS].find_one({'_id': ObjectId(seed.teacher_id)})
    assert stored['name'] == 'Taylor Brooks'
    assert stored['phone'] == '123'


def test_student_profile_leaves_class_pages_alone(seed, revalidated):
    update_user_profile(seed.student_id, {'name': 'Riya S'})
    assert '/dashboard/admin/classes' not in revalidated
