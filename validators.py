"""
Request validators

Input models for the four request shapes the API accepts. Every ``validate_*``
function takes whatever the request handler received and returns a
ValidationResult: either the normalized model, or a mapping of field name to
the messages of every rule that failed. They never raise on bad input.
"""
from dataclasses import dataclass, field
from typing import Annotated, Any, Dict, Generic, List, Literal, Optional, Type, TypeVar

from email_validator import EmailNotValidError, validate_email
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_core import PydanticCustomError

from schemas import AttendanceStatus

ROOT_FIELD = "__root__"

Role = Literal["teacher", "student"]
ROLES = ("teacher", "student")

M = TypeVar("M", bound=BaseModel)


def min_length(size: int, message: str) -> AfterValidator:
    def check(value: str) -> str:
        if len(value) < size:
            raise PydanticCustomError("string_too_short", message)
        return value
    return AfterValidator(check)


def _check_email(value: str) -> str:
    try:
        # syntax only: no DNS lookups, and the reserved .test TLD is allowed
        validate_email(value, check_deliverability=False, test_environment=True)
    except EmailNotValidError:
        raise PydanticCustomError("invalid_email", "Invalid email format")
    return value


Email = Annotated[str, AfterValidator(_check_email)]


class _Input(BaseModel):
    # unknown keys are dropped; bytes and numbers are not coerced to str
    model_config = ConfigDict(extra="ignore", strict=True)


class SignupInput(_Input):
    name: Annotated[str, min_length(2, "Name must be at least 2 characters")]
    email: Email
    password: Annotated[str, min_length(6, "Password must be at least 6 characters")]
    role: Role = Field(None, validate_default=True)

    @field_validator("role", mode="before")
    @classmethod
    def _role_defined(cls, value):
        if not isinstance(value, str) or value not in ROLES:
            raise PydanticCustomError("role", "Role must be defined")
        return value


class LoginInput(_Input):
    email: Email
    password: Annotated[str, min_length(1, "Password is required")]


class ClassInput(_Input):
    """students is None when the request leaves it out."""

    name: Annotated[str, min_length(3, "Class name must be at least 3 characters")]
    subject: Annotated[str, min_length(2, "Subject must be at least 2 characters")]
    students: Optional[List[str]] = None


class MarkAttendanceInput(_Input):
    studentId: Annotated[str, min_length(1, "Student ID is required")]
    status: AttendanceStatus


@dataclass
class ValidationResult(Generic[M]):
    value: Optional[M] = None
    errors: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def messages(self) -> List[str]:
        return [msg for msgs in self.errors.values() for msg in msgs]


def _field_errors(exc: ValidationError) -> Dict[str, List[str]]:
    errors: Dict[str, List[str]] = {}
    for err in exc.errors():
        key = ".".join(str(part) for part in err["loc"]) or ROOT_FIELD
        msg = "Required" if err["type"] == "missing" else err["msg"]
        errors.setdefault(key, []).append(msg)
    return errors


def validate(model: Type[M], data: Any) -> ValidationResult[M]:
    """Validate ``data`` against one of the input models above."""
    try:
        return ValidationResult(value=model.model_validate(data))
    except ValidationError as exc:
        return ValidationResult(errors=_field_errors(exc))


def validate_signup(data: Any) -> ValidationResult[SignupInput]:
    return validate(SignupInput, data)


def validate_login(data: Any) -> ValidationResult[LoginInput]:
    return validate(LoginInput, data)


def validate_class(data: Any) -> ValidationResult[ClassInput]:
    return validate(ClassInput, data)


def validate_mark_attendance(data: Any) -> ValidationResult[MarkAttendanceInput]:
    return validate(MarkAttendanceInput, data)
