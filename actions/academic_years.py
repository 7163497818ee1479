import logging
from datetime import datetime

from app_models import ACADEMIC_YEARS, serialize_document, to_object_id
from database import get_db
from forms import AcademicYearForm
from page_cache import revalidate_path

logger = logging.getLogger(__name__)

ACADEMIC_YEARS_PAGE = '/dashboard/super-admin/academic-years'


def create_academic_year(values):
    try:
        form = AcademicYearForm(data=values)
        if not form.validate():
            return {'success': False, 'message': 'Validation failed', 'error': 'Invalid year format.'}

        year = form.year.data
        collection = get_db()[ACADEMIC_YEARS]
        if collection.find_one({'year': year}):
            return {'success': False, 'message': f'Academic year "{year}" already exists.'}

        if form.is_default.data:
            collection.update_many({}, {'$set': {'is_default': False}})

        academic_year = {
            'year': year,
            'is_default': bool(form.is_default.data),
            'created_at': datetime.utcnow(),
        }
        result = collection.insert_one(academic_year)
        if not result.inserted_id:
            return {'success': False, 'message': 'Failed to create academic year.'}

        revalidate_path(ACADEMIC_YEARS_PAGE)
        return {
            'success': True,
            'message': 'Academic year created successfully!',
            'academic_year': serialize_document(academic_year),
        }
    except Exception:
        logger.exception('Create academic year error')
        return {'success': False, 'message': 'An unexpected error occurred.'}


def get_academic_years():
    try:
        years = get_db()[ACADEMIC_YEARS].find({}).sort('year', -1)
        return {'success': True, 'academic_years': serialize_document(list(years))}
    except Exception:
        logger.exception('Get academic years error')
        return {'success': False, 'message': 'Failed to fetch academic years.'}


def update_academic_year(year_id, values):
    try:
        year_oid = to_object_id(year_id)
        if year_oid is None:
            return {'success': False, 'message': 'Invalid ID.'}

        form = AcademicYearForm(data=values)
        if not form.validate():
            return {'success': False, 'message': 'Validation failed'}

        year = form.year.data
        collection = get_db()[ACADEMIC_YEARS]
        if collection.find_one({'year': year, '_id': {'$ne': year_oid}}):
            return {'success': False, 'message': f'Academic year "{year}" already exists.'}

        if form.is_default.data:
            collection.update_many({'_id': {'$ne': year_oid}}, {'$set': {'is_default': False}})

        result = collection.update_one(
            {'_id': year_oid},
            {'$set': {'year': year, 'is_default': bool(form.is_default.data), 'updated_at': datetime.utcnow()}},
        )
        if result.matched_count == 0:
            return {'success': False, 'message': 'Academic year not found.'}

        revalidate_path(ACADEMIC_YEARS_PAGE)
        return {
            'success': True,
            'message': 'Academic year updated successfully!',
            'academic_year': serialize_document(collection.find_one({'_id': year_oid})),
        }
    except Exception:
        logger.exception('Update academic year error')
        return {'success': False, 'message': 'An unexpected error occurred.'}


def delete_academic_year(year_id):
    try:
        year_oid = to_object_id(year_id)
        if year_oid is None:
            return {'success': False, 'message': 'Invalid ID.'}

        result = get_db()[ACADEMIC_YEARS].delete_one({'_id': year_oid})
        if result.deleted_count == 0:
            return {'success': False, 'message': 'Academic year not found or already deleted.'}

        revalidate_path(ACADEMIC_YEARS_PAGE)
        return {'success': True, 'message': 'Academic year deleted successfully!'}
    except Exception:
        logger.exception('Delete academic year error')
        return {'success': False, 'message': 'An unexpected error occurred.'}


def set_default_academic_year(year_id):
    try:
        year_oid = to_object_id(year_id)
        if year_oid is None:
            return {'success': False, 'message': 'Invalid ID.'}

        collection = get_db()[ACADEMIC_YEARS]
        if not collection.find_one({'_id': year_oid}):
            return {'success': False, 'message': 'Academic year not found.'}

        collection.update_many({}, {'$set': {'is_default': False}})
        collection.update_one({'_id': year_oid}, {'$set': {'is_default': True}})

        revalidate_path(ACADEMIC_YEARS_PAGE)
        return {'success': True, 'message': 'Default academic year updated.'}
    except Exception:
        logger.exception('Set default academic year error')
        return {'success': False, 'message': 'An unexpected error occurred.'}


def get_default_academic_year():
    """The year flagged as default, or the newest one when none is flagged."""
    collection = get_db()[ACADEMIC_YEARS]
    year = collection.find_one({'is_default': True})
    if year is None:
        year = collection.find_one({}, sort=[('year', -1)])
    return year['year'] if year else None
