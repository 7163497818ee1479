import logging

import pytest
from pymongo.errors import ConnectionFailure

import database


class FakeClient:
    """Minimal MongoClient stand-in that can be told to stop answering pings."""

    def __init__(self, *args, **kwargs):
        self.kwargs = kwargs
        self.fail = False
        self.closed = False
        self.pings = 0
        self.admin = self

    def command(self, name):
        self.pings += 1
        if self.fail:
            raise ConnectionFailure('server went away')
        return {'ok': 1.0}

    def __getitem__(self, name):
        return 'db:' + name

    def close(self):
        self.closed = True


@pytest.fixture
def fake_clients(monkeypatch):
    created = []

    def factory(*args, **kwargs):
        client = FakeClient(*args, **kwargs)
        created.append(client)
        return client

    monkeypatch.setattr(database, 'MongoClient', factory)
    database.reset_connection()
    return created


def test_missing_uri_raises_configuration_error(monkeypatch):
    monkeypatch.delenv('MONGODB_URI', raising=False)
    database.reset_connection()
    with pytest.raises(database.DatabaseConfigurationError):
        database.connect_to_database()


def test_connection_is_cached(fake_clients, monkeypatch):
    monkeypatch.setenv('MONGODB_DB_NAME', 'school_test')

    client, db = database.connect_to_database()
    again, same_db = database.connect_to_database()

    assert client is again
    assert db == same_db == 'db:school_test'
    assert len(fake_clients) == 1
    # One ping on connect, one on reuse
    assert client.pings == 2
    assert client.kwargs['server_api'] is not None


def test_stale_connection_is_replaced(fake_clients, caplog):
    first, _ = database.connect_to_database()
    first.fail = True

    with caplog.at_level(logging.WARNING, logger='database'):
        second, _ = database.connect_to_database()

    assert second is not first
    assert first.closed
    assert len(fake_clients) == 2
    assert 'Reconnecting' in caplog.text


def test_failed_initial_ping_propagates(monkeypatch):
    def factory(*args, **kwargs):
        client = FakeClient()
        client.fail = True
        return client

    monkeypatch.setattr(database, 'MongoClient', factory)
    database.reset_connection()
    with pytest.raises(ConnectionFailure):
        database.connect_to_database()


def test_ping_reports_health(fake_clients, monkeypatch):
    assert database.ping() is True

    monkeypatch.delenv('MONGODB_URI', raising=False)
    database.reset_connection()
    assert database.ping() is False


def test_get_db_returns_database_handle(mongo):
    db = database.get_db()
    db.things.insert_one({'name': 'x'})
    assert mongo[db.name].things.count_documents({}) == 1
