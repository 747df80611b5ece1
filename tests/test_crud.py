import datetime as dt

import pytest
from bson import ObjectId
from pydantic import ValidationError
from pymongo.results import UpdateResult

import crud
import database


@pytest.fixture
def class_id(db):
    return crud.create_class({"name": "CS", "subject": "OS", "teacher": "t1", "student": ["s1", "s2"]})


@pytest.fixture
def session_id(class_id):
    return crud.start_session(class_id, started_by="t1")


def record_for(session, student_id):
    return [r for r in session["records"] if r["studentId"] == student_id]


class TestClasses:
    def test_create_with_empty_roster_and_timestamps(self, db):
        _id = crud.create_class({"name": "CS", "subject": "OS", "teacher": "t1"})
        doc = crud.get_class(_id)
        assert doc["student"] == []
        assert doc["teacher"] == "t1"
        assert isinstance(doc["createdAt"], dt.datetime)
        assert isinstance(doc["updatedAt"], dt.datetime)

    def test_explicit_empty_roster_round_trips(self, db):
        _id = crud.create_class({"name": "CS", "subject": "OS", "teacher": "t1", "student": []})
        assert crud.get_class(_id)["student"] == []

    def test_missing_teacher_rejected(self, db):
        with pytest.raises(ValidationError):
            crud.create_class({"name": "CS", "subject": "OS"})
        assert db[crud.CLASS].count_documents({}) == 0

    def test_add_students_keeps_roster_unique(self, class_id):
        doc = crud.add_students(class_id, ["s2", "s3"])
        assert doc["student"] == ["s1", "s2", "s3"]
        assert doc["updatedAt"] >= doc["createdAt"]

    def test_add_students_unknown_class(self, db):
        with pytest.raises(crud.NotFound):
            crud.add_students(str(ObjectId()), ["s1"])

    def test_get_class_bad_id(self, db):
        with pytest.raises(crud.NotFound):
            crud.get_class("not-an-id")

    def test_serialize(self, class_id):
        assert crud.serialize(crud.get_class(class_id))["_id"] == class_id


class TestSessions:
    def test_start_seeds_roster_as_absent(self, class_id, session_id):
        session = crud.get_session(session_id)
        assert session["classId"] == class_id
        assert session["startedBy"] == "t1"
        assert session["isActive"] is True
        assert [(r["studentId"], r["status"], r["markedAt"]) for r in session["records"]] == [
            ("s1", "absent", None),
            ("s2", "absent", None),
        ]

    def test_start_unknown_class(self, db):
        with pytest.raises(crud.NotFound):
            crud.start_session(str(ObjectId()))

    def test_list_sessions(self, class_id, session_id):
        crud.start_session(class_id)
        assert len(crud.list_sessions(class_id)) == 2
        assert crud.list_sessions("other") == []

    def test_mark_sets_status_and_marked_at(self, session_id):
        session = crud.mark_attendance(session_id, {"studentId": "s1", "status": "present"})
        [record] = record_for(session, "s1")
        assert record["status"] == "present"
        assert isinstance(record["markedAt"], dt.datetime)
        [untouched] = record_for(session, "s2")
        assert untouched["markedAt"] is None

    def test_last_mark_wins(self, session_id):
        crud.mark_attendance(session_id, {"studentId": "s1", "status": "present"})
        session = crud.mark_attendance(session_id, {"studentId": "s1", "status": "absent"})
        [record] = record_for(session, "s1")
        assert record["status"] == "absent"
        assert record["markedAt"] is not None

    def test_mark_unrostered_student_appends_once(self, session_id):
        crud.mark_attendance(session_id, {"studentId": "s9", "status": "present"})
        session = crud.mark_attendance(session_id, {"studentId": "s9", "status": "present"})
        assert len(record_for(session, "s9")) == 1
        assert len(session["records"]) == 3

    def test_mark_invalid_input(self, session_id):
        with pytest.raises(crud.InvalidInput) as exc:
            crud.mark_attendance(session_id, {"studentId": "", "status": "late"})
        assert set(exc.value.errors) == {"studentId", "status"}

    def test_mark_unknown_session(self, db):
        with pytest.raises(crud.NotFound):
            crud.mark_attendance(str(ObjectId()), {"studentId": "s1", "status": "present"})

    def test_close_blocks_marking(self, session_id):
        session = crud.close_session(session_id)
        assert session["isActive"] is False
        with pytest.raises(crud.SessionClosed):
            crud.mark_attendance(session_id, {"studentId": "s1", "status": "present"})
        assert crud.close_session(session_id)["isActive"] is False

    def test_mark_session_without_active_flag(self, db):
        _id = database.create_document(crud.ATTENDANCE, {"classId": "c1", "records": []})
        session = crud.mark_attendance(_id, {"studentId": "s1", "status": "present"})
        assert [(r["studentId"], r["status"]) for r in session["records"]] == [("s1", "present")]

    def test_mark_session_stored_closed(self, db):
        _id = database.create_document(crud.ATTENDANCE, {"classId": "c1", "records": [], "isActive": False})
        with pytest.raises(crud.SessionClosed):
            crud.mark_attendance(_id, {"studentId": "s1", "status": "present"})

    def test_mark_gives_up_after_bounded_attempts(self, session_id, monkeypatch):
        calls = []

        def no_match(*args, **kwargs):
            calls.append(args)
            return UpdateResult({"n": 0, "nModified": 0}, acknowledged=True)

        monkeypatch.setattr(crud, "update_document", no_match)
        with pytest.raises(crud.CrudError):
            crud.mark_attendance(session_id, {"studentId": "s1", "status": "present"})
        assert len(calls) == 2 * crud.MARK_ATTEMPTS

    def test_close_unknown_session(self, db):
        with pytest.raises(crud.NotFound):
            crud.close_session(str(ObjectId()))


def test_database_unavailable(monkeypatch):
    monkeypatch.setattr(database, "db", None)
    with pytest.raises(database.DatabaseUnavailable):
        crud.create_class({"name": "CS", "subject": "OS", "teacher": "t1"})
