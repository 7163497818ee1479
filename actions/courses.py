import logging
from datetime import datetime

from app_models import COURSE_MATERIALS, serialize_document, to_object_id
from database import get_db
from forms import CourseMaterialForm, form_errors
from page_cache import revalidate_path

logger = logging.getLogger(__name__)

COURSE_PAGES = ('/dashboard/master-admin/courses', '/dashboard/student/courses')


def create_course_material(values):
    try:
        form = CourseMaterialForm(data=values)
        if not form.validate():
            return {'success': False, 'message': 'Validation failed', 'error': form_errors(form) or 'Invalid fields!'}

        school_id = to_object_id(form.school_id.data)
        class_id = to_object_id(form.class_id.data)
        if school_id is None or class_id is None:
            return {'success': False, 'message': 'Invalid School or Class ID.'}

        material = {
            'school_id': school_id,
            'class_id': class_id,
            'subject_name': form.subject_name.data,
            'title': form.title.data,
            'pdf_url': form.pdf_url.data,
            'created_at': datetime.utcnow(),
        }
        result = get_db()[COURSE_MATERIALS].insert_one(material)
        if not result.inserted_id:
            return {'success': False, 'message': 'Failed to create course material.'}

        for path in COURSE_PAGES:
            revalidate_path(path)

        return {
            'success': True,
            'message': 'Course material added successfully!',
            'material': serialize_document(material),
        }
    except Exception:
        logger.exception('Create course material error')
        return {'success': False, 'message': 'An unexpected error occurred.'}


def get_course_materials_for_class(class_id):
    try:
        class_oid = to_object_id(class_id)
        if class_oid is None:
            return {'success': False, 'message': 'Invalid Class ID.'}

        cursor = get_db()[COURSE_MATERIALS].find({'class_id': class_oid}).sort([('subject_name', 1), ('title', 1)])
        return {'success': True, 'materials': serialize_document(list(cursor))}
    except Exception:
        logger.exception('Get course materials error')
        return {'success': False, 'message': 'Failed to fetch course materials.'}


def delete_course_material(material_id):
    try:
        material_oid = to_object_id(material_id)
        if material_oid is None:
            return {'success': False, 'message': 'Invalid Material ID.'}

        result = get_db()[COURSE_MATERIALS].delete_one({'_id': material_oid})
        if result.deleted_count == 0:
            return {'success': False, 'message': 'Material not found or already deleted.'}

        for path in COURSE_PAGES:
            revalidate_path(path)
        return {'success': True, 'message': 'Course material deleted successfully!'}
    except Exception:
        logger.exception('Delete course material error')
        return {'success': False, 'message': 'An unexpected error occurred.'}
