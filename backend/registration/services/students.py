"""
Student Service - persistence rules for registered students.

Implements:
1. Identity normalization (digits-only phones, lower-cased emails)
2. Uniqueness checks across phone, alternate phone and email
3. Avatar payload decoding (data URI -> bytes + MIME) and re-encoding
4. Registration timestamp conversion (ISO 8601 -> naive UTC, seconds)
5. Serialization of Student rows for API responses

The database unique constraints remain the final authority; the checks
here exist to report WHICH value collided.
"""

import re
import base64
import binascii
from datetime import datetime, timezone
from typing import Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from registration.errors import ConflictError, NotFoundError
from registration.models.student import Student, VARIANT_CONTACT
from registration.validators import digits_only
from registration.logging_config import get_logger, log_with_context

logger = get_logger("students")
db_logger = get_logger("db")

SQL_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
DATA_URI_PATTERN = re.compile(r"^data:(image/[\w.+-]+);base64,(.*)$", re.DOTALL)

DUPLICATE_PHONE_MESSAGE = "A student with this phone number already exists"
DUPLICATE_EMAIL_MESSAGE = "A student with this email already exists"
DUPLICATE_ID_MESSAGE = "Student with this ID already exists"


def normalize_email(email: str) -> Optional[str]:
    if not email:
        return None
    return email.strip().lower() or None


def normalize_phone(phone: str) -> Optional[str]:
    """
    Normalize a phone number by extracting only digits.

    Examples:
        "430-203-2033"   → "4302032033"
        "(430) 203 2033" → "4302032033"
    """
    return digits_only(phone) or None


def to_sql_datetime(value: Optional[str]) -> datetime:
    """
    Convert an ISO 8601 timestamp to a naive UTC datetime at second precision.

    Missing or unparseable values fall back to the current time.
    """
    now = datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0)
    if not value:
        return now
    ts_str = value.strip()
    try:
        if ts_str.endswith("Z"):
            ts_str = ts_str[:-1] + "+00:00"
        dt = datetime.fromisoformat(ts_str)
    except (ValueError, TypeError) as e:
        log_with_context(logger, "WARNING", "Failed to parse registration date: {}".format(value),
                         extra_data={"error": str(e)})
        return now
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0)


def decode_avatar(payload: Optional[str]) -> Tuple[Optional[bytes], Optional[str], Optional[str]]:
    """
    Split an avatar payload into (bytes, mime, url).

    A ``data:image/<type>;base64,`` URI yields decoded bytes and its MIME
    type. Anything else is kept verbatim as a URL. Corrupt base64 is
    logged and dropped.
    """
    if not payload:
        return None, None, None

    match = DATA_URI_PATTERN.match(payload)
    if not match:
        return None, None, payload

    mime, encoded = match.groups()
    try:
        return base64.b64decode(encoded, validate=True), mime, None
    except (binascii.Error, ValueError) as e:
        log_with_context(logger, "WARNING", "Discarding undecodable avatar payload",
                         extra_data={"error": str(e), "mime": mime})
        return None, None, None


def encode_avatar(student: Student) -> Optional[str]:
    if student.avatar_data:
        mime = student.avatar_mime or "image/svg+xml"
        return "data:{};base64,{}".format(mime, base64.b64encode(student.avatar_data).decode("ascii"))
    return student.avatar_url or None


def serialize_student(student: Student) -> dict:
    """Serialize a Student ORM object to a dict for API response."""
    result = {
        "id": str(student.id),
        "variant": student.variant,
        "phone_number": student.phone_number,
        "avatar_data": encode_avatar(student),
        "registration_date": student.registration_date.strftime(SQL_DATETIME_FORMAT)
        if student.registration_date else None,
    }
    if student.variant == VARIANT_CONTACT:
        result.update({
            "full_name": student.full_name,
            "company": student.company,
            "alternate_phone": student.alternate_phone,
            "email": student.email,
        })
    else:
        result.update({
            "first_name": student.first_name,
            "middle_name": student.middle_name,
            "last_name": student.last_name,
            "date_of_birth": student.date_of_birth.isoformat() if student.date_of_birth else None,
            "desired_course": student.desired_course,
        })
    return result


def check_unique(db: Session, phone: str, alternate_phone: Optional[str], email: Optional[str]):
    """
    Raise ConflictError when any phone or the email is already registered.

    A new phone collides with another record's phone_number OR
    alternate_phone, in both directions.
    """
    phones = [p for p in (phone, alternate_phone) if p]
    if alternate_phone and alternate_phone == phone:
        raise ConflictError("Alternate phone must differ from the phone number")

    clash = db.query(Student.id).filter(
        or_(Student.phone_number.in_(phones), Student.alternate_phone.in_(phones))
    ).first()
    if clash:
        log_with_context(logger, "INFO", "Rejected duplicate phone number",
                         context={"existing_student_id": str(clash.id), "phone_number": phone})
        raise ConflictError(DUPLICATE_PHONE_MESSAGE)

    if email:
        clash = db.query(Student.id).filter(Student.email == email).first()
        if clash:
            log_with_context(logger, "INFO", "Rejected duplicate email",
                             context={"existing_student_id": str(clash.id), "email": email})
            raise ConflictError(DUPLICATE_EMAIL_MESSAGE)


def create_student(db: Session, fields: dict, avatar_payload: Optional[str],
                   registration_date: Optional[str]) -> Student:
    """
    Insert a student after normalizing and checking uniqueness.

    ``fields`` holds snake_case column values for one variant.
    """
    fields = dict(fields)
    fields["phone_number"] = normalize_phone(fields.get("phone_number"))
    fields["alternate_phone"] = normalize_phone(fields.get("alternate_phone"))
    fields["email"] = normalize_email(fields.get("email"))

    check_unique(db, fields["phone_number"], fields["alternate_phone"], fields["email"])

    avatar_data, avatar_mime, avatar_url = decode_avatar(avatar_payload)
    student = Student(
        **fields,
        avatar_data=avatar_data,
        avatar_mime=avatar_mime,
        avatar_url=avatar_url,
        registration_date=to_sql_datetime(registration_date),
    )
    db.add(student)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        log_with_context(db_logger, "WARNING", "Insert rejected by unique constraint",
                         extra_data={"error": str(e.orig)})
        raise ConflictError(DUPLICATE_ID_MESSAGE)
    db.refresh(student)

    log_with_context(logger, "INFO", "Registered student: {}".format(student.display_name),
                     context={"student_id": str(student.id), "variant": student.variant},
                     extra_data={"has_avatar": bool(avatar_data or avatar_url)})
    return student


def newest_first(query):
    return query.order_by(Student.registration_date.desc(), Student.created_at.desc(), Student.id.asc())


def list_students(db: Session) -> list:
    return newest_first(db.query(Student)).all()


def count_students(db: Session) -> int:
    return db.query(Student).count()


def escape_like(term: str) -> str:
    """Make LIKE wildcards in user input match literally (escape character: backslash)."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def search_students(db: Session, term: str) -> list:
    """Case-insensitive substring match over name, company and email fields."""
    pattern = "%{}%".format(escape_like(term))
    columns = [Student.first_name, Student.middle_name, Student.last_name,
               Student.full_name, Student.company, Student.email]
    query = db.query(Student).filter(or_(*[column.ilike(pattern, escape="\\") for column in columns]))
    return newest_first(query).all()


def get_student(db: Session, student_id: str) -> Student:
    student = db.query(Student).filter(Student.id == student_id).first()
    if not student:
        raise NotFoundError()
    return student


def delete_student(db: Session, student_id: str):
    deleted = db.query(Student).filter(Student.id == student_id).delete()
    if not deleted:
        raise NotFoundError()
    db.commit()
    log_with_context(logger, "INFO", "Deleted student", context={"student_id": student_id})
