import mongomock
import pytest

import database


@pytest.fixture
def db(monkeypatch):
    mock_db = mongomock.MongoClient().attendance_test
    monkeypatch.setattr(database, "db", mock_db)
    return mock_db
