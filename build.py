#!/usr/bin/env python3
"""
Build script for deployment.
This script creates the MongoDB indexes and seeds the first super admin.
"""

import os
from datetime import datetime

from pymongo import ASCENDING, DESCENDING

from app_models import (
    USERS,
    SCHOOL_CLASSES,
    SUBJECTS,
    ACADEMIC_YEARS,
    COURSE_MATERIALS,
    QUESTION_PAPERS,
    FEE_PAYMENTS,
    FEE_CONCESSIONS,
    ATTENDANCES,
    MARKS,
    REPORT_CARDS,
    PAGE_CACHE,
    SUPERADMIN,
    hash_password,
)
from database import get_db

INDEXES = {
    USERS: [
        ([('email', ASCENDING)], {'unique': True}),
        ([('school_id', ASCENDING), ('role', ASCENDING)], {}),
        ([('admission_id', ASCENDING)], {'sparse': True}),
    ],
    SCHOOL_CLASSES: [
        ([('school_id', ASCENDING), ('name', ASCENDING)], {'unique': True}),
    ],
    SUBJECTS: [
        ([('name', ASCENDING)], {}),
    ],
    ACADEMIC_YEARS: [
        ([('year', ASCENDING)], {'unique': True}),
    ],
    COURSE_MATERIALS: [
        ([('class_id', ASCENDING), ('subject_name', ASCENDING)], {}),
    ],
    QUESTION_PAPERS: [
        ([('class_id', ASCENDING), ('year', DESCENDING)], {}),
    ],
    FEE_PAYMENTS: [
        ([('school_id', ASCENDING), ('payment_date', DESCENDING)], {}),
        ([('student_id', ASCENDING)], {}),
    ],
    FEE_CONCESSIONS: [
        ([('school_id', ASCENDING), ('academic_year', ASCENDING)], {}),
        ([('student_id', ASCENDING)], {}),
    ],
    ATTENDANCES: [
        ([('school_id', ASCENDING), ('date', ASCENDING)], {}),
        ([('class_id', ASCENDING), ('date', ASCENDING)], {}),
        ([('student_id', ASCENDING)], {}),
    ],
    MARKS: [
        ([
            ('student_id', ASCENDING),
            ('class_id', ASCENDING),
            ('subject_id', ASCENDING),
            ('assessment_name', ASCENDING),
            ('academic_year', ASCENDING),
            ('school_id', ASCENDING),
        ], {'unique': True}),
    ],
    REPORT_CARDS: [
        ([('school_id', ASCENDING), ('academic_year', ASCENDING), ('student_id', ASCENDING)], {}),
    ],
    PAGE_CACHE: [
        ([('path', ASCENDING), ('key', ASCENDING)], {'unique': True}),
        ([('expires_at', ASCENDING)], {'expireAfterSeconds': 0}),
    ],
}


def ensure_indexes(db):
    for collection, indexes in INDEXES.items():
        for keys, options in indexes:
            db[collection].create_index(keys, **options)


def create_default_superadmin(db):
    """Create the first super admin from the environment if no super admin exists."""
    if db[USERS].count_documents({'role': SUPERADMIN}, limit=1):
        print("Super admin already exists, skipping seed.")
        return None

    email = os.environ.get('DEFAULT_SUPERADMIN_EMAIL')
    password = os.environ.get('DEFAULT_SUPERADMIN_PASSWORD')
    if not email or not password:
        print("DEFAULT_SUPERADMIN_EMAIL / DEFAULT_SUPERADMIN_PASSWORD not set, skipping seed.")
        return None

    now = datetime.utcnow()
    result = db[USERS].insert_one({
        'name': 'Super Admin',
        'email': email,
        'password': hash_password(password),
        'role': SUPERADMIN,
        'created_at': now,
        'updated_at': now,
    })
    print(f"Created super admin {email}")
    return result.inserted_id


def initialize_database():
    """Initialize database for production deployment."""
    db = get_db()

    print("Creating indexes...")
    ensure_indexes(db)

    print("Creating default super admin...")
    create_default_superadmin(db)

    print("Database initialization completed successfully!")


if __name__ == "__main__":
    initialize_database()
