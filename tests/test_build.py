import pytest
from pymongo.errors import DuplicateKeyError

import build
from app_models import USERS, MARKS, PAGE_CACHE, check_password


def test_create_default_superadmin(db, monkeypatch):
    monkeypatch.setenv('DEFAULT_SUPERADMIN_EMAIL', 'root@campusflow.test')
    monkeypatch.setenv('DEFAULT_SUPERADMIN_PASSWORD', 'bootstrap-pass')

    assert build.create_default_superadmin(db) is not None
    stored = db[USERS].find_one({'email': 'root@campusflow.test'})
    assert stored['role'] == 'superadmin'
    assert check_password('bootstrap-pass', stored['password'])

    assert build.create_default_superadmin(db) is None
    assert db[USERS].count_documents({'role': 'superadmin'}) == 1


def test_superadmin_seed_needs_credentials(db, monkeypatch):
    monkeypatch.delenv('DEFAULT_SUPERADMIN_EMAIL', raising=False)
    monkeypatch.delenv('DEFAULT_SUPERADMIN_PASSWORD', raising=False)

    assert build.create_default_superadmin(db) is None
    assert db[USERS].count_documents({}) == 0


def test_indexes_enforce_unique_emails_and_marks(db):
    build.ensure_indexes(db)

    db[USERS].insert_one({'email': 'a@campusflow.test'})
    with pytest.raises(DuplicateKeyError):
        db[USERS].insert_one({'email': 'a@campusflow.test'})

    key = {
        'student_id': 's1', 'class_id': 'c1', 'subject_id': 'Mathematics',
        'assessment_name': 'FA1', 'academic_year': '2025-2026', 'school_id': 'x',
    }
    db[MARKS].insert_one(dict(key))
    with pytest.raises(DuplicateKeyError):
        db[MARKS].insert_one(dict(key))


def test_page_cache_entries_expire_through_ttl_index(db):
    build.ensure_indexes(db)

    indexes = db[PAGE_CACHE].index_information()
    ttl = [spec for spec in indexes.values() if 'expireAfterSeconds' in spec]
    assert len(ttl) == 1
    assert ttl[0]['key'] == [('expires_at', 1)]
    assert ttl[0]['expireAfterSeconds'] == 0
