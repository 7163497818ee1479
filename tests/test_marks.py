from bson import ObjectId

from actions import marks
from app_models import MARKS, SCHOOL_CLASSES


def submission(seed, student_marks=None, **overrides):
    if student_marks is None:
        student_marks = [
            {'student_id': seed.student_id, 'student_name': 'Riya Sharma', 'assessment_name': 'FA1-Tool1',
             'marks_obtained': 18, 'max_marks': 20},
            {'student_id': seed.other_student_id, 'student_name': 'Arjun Rao', 'assessment_name': 'FA1-Tool1',
             'marks_obtained': '12.5', 'max_marks': '20'},
        ]
    values = {
        'class_id': seed.class_id,
        'class_name': 'Class 5',
        'subject_id': 'Mathematics',
        'subject_name': 'Mathematics',
        'academic_year': '2025-2026',
        'marked_by_teacher_id': seed.teacher_id,
        'school_id': seed.school_id,
        'student_marks': student_marks,
    }
    values.update(overrides)
    return values


def test_submit_marks(seed, db, revalidated):
    result = marks.submit_marks(submission(seed))

    assert result == {'success': True, 'message': 'Successfully saved marks for 2 students.', 'count': 2}
    stored = db[MARKS].find_one({'student_id': ObjectId(seed.other_student_id)})
    assert stored['marks_obtained'] == 12.5
    assert stored['max_marks'] == 20.0
    assert stored['class_id'] == seed.class_id
    assert stored['marked_by_teacher_id'] == ObjectId(seed.teacher_id)
    assert 'created_at' in stored
    assert revalidated == ['/dashboard/teacher/marks', '/dashboard/admin/reports']


def test_resubmitting_marks_updates_in_place(seed, db):
    marks.submit_marks(submission(seed))
    result = marks.submit_marks(submission(seed, student_marks=[
        {'student_id': seed.student_id, 'student_name': 'Riya Sharma', 'assessment_name': 'FA1-Tool1',
         'marks_obtained': 20, 'max_marks': 20},
    ]))

    assert result['count'] == 1
    assert db[MARKS].count_documents({}) == 2
    assert db[MARKS].find_one({'student_id': ObjectId(seed.student_id)})['marks_obtained'] == 20.0


def test_different_assessments_are_kept_apart(seed, db):
    marks.submit_marks(submission(seed))
    marks.submit_marks(submission(seed, student_marks=[
        {'student_id': seed.student_id, 'student_name': 'Riya Sharma', 'assessment_name': 'SA1-Paper1',
         'marks_obtained': 70, 'max_marks': 80},
    ]))
    assert db[MARKS].count_documents({'student_id': ObjectId(seed.student_id)}) == 2


def test_submit_marks_validation(seed):
    result = marks.submit_marks(submission(seed, student_marks=[
        {'student_id': seed.student_id, 'student_name': 'Riya Sharma', 'assessment_name': 'FA1-Tool1',
         'marks_obtained': 25, 'max_marks': 20},
        {'student_id': seed.other_student_id, 'student_name': 'Arjun Rao', 'assessment_name': '',
         'marks_obtained': -1, 'max_marks': 20},
    ]))

    assert result['success'] is False
    assert result['message'] == 'Validation failed.'
    assert 'student_marks.0.marks_obtained: Marks obtained cannot exceed max marks.' in result['error']
    assert 'student_marks.1.marks_obtained: Marks cannot be negative.' in result['error']
    assert 'student_marks.1.assessment_name: ' in result['error']

    bad_student = marks.submit_marks(submission(seed, student_marks=[
        {'student_id': 'riya', 'student_name': 'Riya Sharma', 'assessment_name': 'FA1', 'marks_obtained': 5, 'max_marks': 10},
    ]))
    assert bad_student['message'] == 'Invalid Student ID format.'


def test_get_marks_for_assessment(seed):
    marks.submit_marks(submission(seed))

    result = marks.get_marks_for_assessment(seed.school_id, seed.class_id, 'Mathematics', 'FA1-Tool1', '2025-2026')

    assert result['success'] is True
    assert [(m['student_name'], m['marks_obtained']) for m in result['marks']] == [('Arjun Rao', 12.5), ('Riya Sharma', 18.0)]
    assert marks.get_marks_for_assessment(seed.school_id, seed.class_id, 'Mathematics', 'FA2', '2025-2026')['marks'] == []


def test_subjects_for_teacher(seed, db):
    db[SCHOOL_CLASSES].update_one(
        {'_id': ObjectId(seed.next_class_id)},
        {'$set': {'class_teacher_id': ObjectId(seed.teacher_id)}},
    )

    options = marks.get_subjects_for_teacher(seed.teacher_id, seed.school_id)

    assert [o['label'] for o in options] == [
        'Mathematics (Class: Class 5)',
        'Mathematics (Class: Class 6)',
        'Science (Class: Class 5)',
    ]
    assert options[0] == {
        'value': 'Mathematics',
        'label': 'Mathematics (Class: Class 5)',
        'class_id': seed.class_id,
        'class_name': 'Class 5',
    }
    assert marks.get_subjects_for_teacher(seed.admin_id, seed.school_id) == []
    assert marks.get_subjects_for_teacher('nope', seed.school_id) == []


def test_failed_entries_are_reported_and_the_rest_saved(seed, db, revalidated):
    db[MARKS].create_index([('student_id', 1), ('assessment_name', 1)], unique=True)
    db[MARKS].insert_one({
        'student_id': ObjectId(seed.other_student_id), 'assessment_name': 'FA1-Tool1',
        'subject_id': 'Science', 'school_id': ObjectId(seed.school_id),
    })

    result = marks.submit_marks(submission(seed))

    assert result['success'] is False
    assert result['message'] == 'Saved marks for 1 students. Failed for: Arjun Rao.'
    assert result['count'] == 1
    assert result['failed'] == ['Arjun Rao']
    assert 'duplicate key' in result['error'].lower()
    assert db[MARKS].find_one({'student_id': ObjectId(seed.student_id)})['marks_obtained'] == 18.0
    assert db[MARKS].find_one({'student_id': ObjectId(seed.other_student_id)})['subject_id'] == 'Science'
    assert revalidated == ['/dashboard/teacher/marks', '/dashboard/admin/reports']
