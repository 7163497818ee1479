import logging
from datetime import datetime

from app_models import QUESTION_PAPERS, serialize_document, to_object_id
from database import get_db
from forms import QuestionPaperForm, form_errors
from page_cache import revalidate_path

logger = logging.getLogger(__name__)

QUESTION_PAPER_PAGES = ('/dashboard/admin/question-papers', '/dashboard/student/question-papers')


def create_question_paper(values):
    try:
        form = QuestionPaperForm(data=values)
        if not form.validate():
            return {'success': False, 'message': 'Validation failed', 'error': form_errors(form) or 'Invalid fields!'}

        school_id = to_object_id(form.school_id.data)
        class_id = to_object_id(form.class_id.data)
        if school_id is None or class_id is None:
            return {'success': False, 'message': 'Invalid School or Class ID.'}

        paper = {
            'school_id': school_id,
            'class_id': class_id,
            'subject_name': form.subject_name.data,
            'exam_name': form.exam_name.data,
            'year': form.year.data,
            'pdf_url': form.pdf_url.data,
            'created_at': datetime.utcnow(),
        }
        result = get_db()[QUESTION_PAPERS].insert_one(paper)
        if not result.inserted_id:
            return {'success': False, 'message': 'Failed to create question paper record.'}

        for path in QUESTION_PAPER_PAGES:
            revalidate_path(path)

        return {
            'success': True,
            'message': 'Question paper added successfully!',
            'paper': serialize_document(paper),
        }
    except Exception:
        logger.exception('Create question paper error')
        return {'success': False, 'message': 'An unexpected error occurred.'}


def get_question_papers_for_class(class_id):
    try:
        class_oid = to_object_id(class_id)
        if class_oid is None:
            return {'success': False, 'message': 'Invalid Class ID.'}

        cursor = get_db()[QUESTION_PAPERS].find({'class_id': class_oid}).sort([('year', -1), ('subject_name', 1)])
        return {'success': True, 'papers': serialize_document(list(cursor))}
    except Exception:
        logger.exception('Get question papers error')
        return {'success': False, 'message': 'Failed to fetch question papers.'}


def get_question_papers_for_student(class_id):
    """Students see the papers of their own class."""
    return get_question_papers_for_class(class_id)


def delete_question_paper(paper_id):
    try:
        paper_oid = to_object_id(paper_id)
        if paper_oid is None:
            return {'success': False, 'message': 'Invalid Paper ID.'}

        result = get_db()[QUESTION_PAPERS].delete_one({'_id': paper_oid})
        if result.deleted_count == 0:
            return {'success': False, 'message': 'Paper not found or already deleted.'}

        for path in QUESTION_PAPER_PAGES:
            revalidate_path(path)
        return {'success': True, 'message': 'Question paper deleted successfully!'}
    except Exception:
        logger.exception('Delete question paper error')
        return {'success': False, 'message': 'An unexpected error occurred.'}
