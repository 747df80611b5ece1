"""
Database Schemas

MongoDB collection schemas for the attendance backend, as Pydantic models.
Each Pydantic model represents a collection in your database.
Class name -> collection name (lowercased)

App entities:
- Class
- Attendance (with embedded AttendanceRecord entries)

Users live in a collection maintained elsewhere; here they only appear as
references.
"""
from pydantic import BaseModel, BeforeValidator, Field, StringConstraints
from typing import Annotated, List, Literal, NewType, Optional
from bson import ObjectId
import datetime as dt


def _ref_to_str(value):
    if isinstance(value, ObjectId):
        return str(value)
    return value


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


UserId = NewType("UserId", str)
ClassId = NewType("ClassId", str)

# References are opaque ids; an ObjectId is stored as its hex string
UserRef = Annotated[UserId, BeforeValidator(_ref_to_str), StringConstraints(min_length=1)]
ClassRef = Annotated[ClassId, BeforeValidator(_ref_to_str), StringConstraints(min_length=1)]

AttendanceStatus = Literal["present", "absent"]

NonEmptyStr = Annotated[str, StringConstraints(min_length=1)]


class Timestamped(BaseModel):
    createdAt: Optional[dt.datetime] = Field(None, description="Set on insert")
    updatedAt: Optional[dt.datetime] = Field(None, description="Set on every write")


class Class(Timestamped):
    name: NonEmptyStr = Field(..., description="Class name")
    subject: NonEmptyStr = Field(..., description="Subject taught")
    teacher: UserRef = Field(..., description="Reference to the owning teacher's user _id")
    student: List[UserRef] = Field(default_factory=list, description="Rostered student user ids")


class AttendanceRecord(BaseModel):
    studentId: UserRef = Field(..., description="Reference to student user _id")
    status: AttendanceStatus = Field("absent", description="present | absent")
    markedAt: Optional[dt.datetime] = Field(None, description="When the status was last marked")


class Attendance(Timestamped):
    classId: ClassRef = Field(..., description="Reference to class _id as string")
    sessionDate: dt.datetime = Field(default_factory=utcnow, description="Session date, defaults to now")
    # studentId is not unique here; crud.mark_attendance keeps one record per student
    records: List[AttendanceRecord] = Field(default_factory=list)
    startedBy: Optional[UserRef] = Field(None, description="User who opened the session")
    isActive: bool = Field(True, description="Whether the session is open for marking")
