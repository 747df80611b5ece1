import logging
from datetime import datetime
from typing import Iterable, List, Optional, Union

from bson import ObjectId

import database
from database import create_document, get_documents, update_document
from schemas import Attendance as AttendanceSchema, AttendanceRecord, Class as ClassSchema, utcnow
from validators import validate_mark_attendance

logger = logging.getLogger(__name__)

CLASS = "class"
ATTENDANCE = "attendance"
MARK_ATTEMPTS = 2


class CrudError(Exception):
    pass


class NotFound(CrudError):
    pass


class SessionClosed(CrudError):
    pass


class InvalidInput(CrudError):
    def __init__(self, errors):
        super().__init__("; ".join(f"{k}: {', '.join(v)}" for k, v in errors.items()))
        self.errors = errors


# Utility: convert Mongo docs

def serialize(doc):
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["_id"] = str(d["_id"])
    return d


def _object_id(value, what: str) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not ObjectId.is_valid(value):
        raise NotFound(f"{what} not found")
    return ObjectId(value)


# Classes

def create_class(data: Union[ClassSchema, dict]) -> str:
    # raises pydantic.ValidationError on a missing/invalid field
    payload = data if isinstance(data, ClassSchema) else ClassSchema.model_validate(data)
    _id = create_document(CLASS, payload)
    logger.info("Class %s created by teacher %s", _id, payload.teacher)
    return _id


def get_class(class_id) -> dict:
    doc = database.get_db()[CLASS].find_one({"_id": _object_id(class_id, "Class")})
    if doc is None:
        raise NotFound("Class not found")
    return doc


def add_students(class_id, student_ids: Iterable[str]) -> dict:
    ids = [str(s) for s in student_ids]
    res = update_document(
        CLASS,
        {"_id": _object_id(class_id, "Class")},
        {"$addToSet": {"student": {"$each": ids}}},
    )
    if res.matched_count == 0:
        raise NotFound("Class not found")
    return get_class(class_id)


# Attendance sessions

def start_session(class_id, started_by: Optional[str] = None, session_date: Optional[datetime] = None) -> str:
    klass = get_class(class_id)
    session = AttendanceSchema(
        classId=str(klass["_id"]),
        sessionDate=session_date or utcnow(),
        records=[AttendanceRecord(studentId=s) for s in klass.get("student", [])],
        startedBy=started_by,
    )
    _id = create_document(ATTENDANCE, session)
    logger.info("Attendance session %s started for class %s", _id, session.classId)
    return _id


def get_session(attendance_id) -> dict:
    doc = database.get_db()[ATTENDANCE].find_one({"_id": _object_id(attendance_id, "Attendance")})
    if doc is None:
        raise NotFound("Attendance not found")
    return doc


def list_sessions(class_id) -> List[dict]:
    return get_documents(ATTENDANCE, {"classId": str(class_id)})


def mark_attendance(attendance_id, data) -> dict:
    """Set one student's status in an open session.

    The student's existing record is updated in place; a student without a
    record gets one appended. A repeated mark overwrites the earlier one.
    """
    result = validate_mark_attendance(data)
    if not result.ok:
        logger.warning("Rejected mark on %s: %s", attendance_id, result.errors)
        raise InvalidInput(result.errors)
    mark = result.value
    oid = _object_id(attendance_id, "Attendance")
    marked_at = utcnow()
    record = AttendanceRecord(studentId=mark.studentId, status=mark.status, markedAt=marked_at)

    # a session without isActive counts as open, matching the schema default
    for _ in range(MARK_ATTEMPTS):
        res = update_document(
            ATTENDANCE,
            {"_id": oid, "isActive": {"$ne": False}, "records.studentId": mark.studentId},
            {"$set": {"records.$.status": mark.status, "records.$.markedAt": marked_at}},
        )
        if res.matched_count:
            return get_session(oid)
        res = update_document(
            ATTENDANCE,
            {"_id": oid, "isActive": {"$ne": False}, "records.studentId": {"$ne": mark.studentId}},
            {"$push": {"records": record.model_dump()}},
        )
        if res.matched_count:
            return get_session(oid)
        if _is_closed(get_session(oid)):
            logger.warning("Mark on closed session %s refused", attendance_id)
            raise SessionClosed("Attendance session is closed")
        # record appeared between the two updates; go round once more
    raise CrudError(f"Could not mark {mark.studentId} on attendance {attendance_id}")


def _is_closed(session: dict) -> bool:
    return session.get("isActive", True) is False


def close_session(attendance_id) -> dict:
    oid = _object_id(attendance_id, "Attendance")
    res = update_document(ATTENDANCE, {"_id": oid}, {"$set": {"isActive": False}})
    if res.matched_count == 0:
        raise NotFound("Attendance not found")
    logger.info("Attendance session %s closed", attendance_id)
    return get_session(oid)
