"""
Students API routes - CRUD resource over the students table.

Provides endpoints for:
- Listing students (newest registration first)
- Counting students
- Substring search over name/company/email fields
- Viewing a single student
- Registering a student (either record variant)
- Deleting a student
"""

import time
from typing import Annotated, Literal, Optional, Union

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from sqlalchemy.orm import Session

from registration.database import get_db
from registration.errors import ValidationError
from registration.models.student import VARIANT_COURSE, VARIANT_CONTACT
from registration.services import students as student_service
from registration.validators import (
    is_valid_phone_number, is_valid_email, is_valid_date_of_birth,
    parse_calendar_date
)
from registration.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")

RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


# ── Pydantic schemas ─────────────────────────────────────────

class StudentCreateBase(BaseModel):
    """Fields shared by both record variants (camelCase on the wire)."""
    model_config = ConfigDict(populate_by_name=True)

    phone_number: RequiredText = Field(..., alias="phoneNumber")
    avatar_data: Optional[str] = Field(None, alias="avatarData",
                                       description="data:image/<type>;base64,... URI or a plain URL")
    registration_date: Optional[str] = Field(None, alias="registrationDate",
                                             description="ISO 8601 timestamp; defaults to now")


class CourseStudentCreate(StudentCreateBase):
    """Course registration record."""
    variant: Literal["course"]
    first_name: RequiredText = Field(..., alias="firstName")
    middle_name: Optional[str] = Field(None, alias="middleName")
    last_name: RequiredText = Field(..., alias="lastName")
    date_of_birth: RequiredText = Field(..., alias="dateOfBirth")
    desired_course: RequiredText = Field(..., alias="desiredCourse")

    def columns(self) -> dict:
        return {
            "variant": VARIANT_COURSE,
            "first_name": self.first_name,
            "middle_name": (self.middle_name or "").strip() or None,
            "last_name": self.last_name,
            "date_of_birth": parse_calendar_date(self.date_of_birth),
            "desired_course": self.desired_course,
            "phone_number": self.phone_number,
        }


class ContactStudentCreate(StudentCreateBase):
    """Contact directory record."""
    variant: Literal["contact"]
    full_name: RequiredText = Field(..., alias="fullName")
    company: RequiredText
    alternate_phone: Optional[str] = Field(None, alias="alternatePhone")
    email: RequiredText

    def columns(self) -> dict:
        return {
            "variant": VARIANT_CONTACT,
            "full_name": self.full_name,
            "company": self.company,
            "alternate_phone": (self.alternate_phone or "").strip() or None,
            "email": self.email,
            "phone_number": self.phone_number,
        }


StudentCreate = Annotated[
    Union[CourseStudentCreate, ContactStudentCreate],
    Field(discriminator="variant")
]


def enforce_field_rules(payload) -> None:
    """Re-check the field rules the form already applies client-side."""
    errors = {}
    if not is_valid_phone_number(payload.phone_number):
        errors["phoneNumber"] = "Invalid phone number"
    if isinstance(payload, ContactStudentCreate):
        if payload.alternate_phone and payload.alternate_phone.strip() \
                and not is_valid_phone_number(payload.alternate_phone):
            errors["alternatePhone"] = "Invalid alternate phone number"
        if not is_valid_email(payload.email):
            errors["email"] = "Invalid email address"
    else:
        if not is_valid_date_of_birth(payload.date_of_birth):
            errors["dateOfBirth"] = "Student must be between 10 and 100 years old"
    if errors:
        raise ValidationError("Invalid field values: {}".format(", ".join(sorted(errors))), fields=errors)


# ── Endpoints ────────────────────────────────────────────────
# Fixed paths (/count, /search) are registered before /{student_id}.

@router.get("/students")
def list_students(db: Session = Depends(get_db)):
    """List all students, most recent registration first."""
    start_time = time.time()
    students = student_service.list_students(db)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO", "Listed {} students".format(len(students)),
                     extra_data={"duration_ms": round(duration_ms, 2)})
    return {
        "success": True,
        "count": len(students),
        "data": [student_service.serialize_student(s) for s in students]
    }


@router.get("/students/count")
def count_students(db: Session = Depends(get_db)):
    return {"success": True, "count": student_service.count_students(db)}


@router.get("/students/search/{term}")
def search_students(term: str, db: Session = Depends(get_db)):
    """Case-insensitive substring search over name, company and email."""
    students = student_service.search_students(db, term)
    log_with_context(logger, "INFO", "Search '{}' matched {} students".format(term[:50], len(students)))
    return {
        "success": True,
        "count": len(students),
        "data": [student_service.serialize_student(s) for s in students]
    }


@router.get("/students/{student_id}")
def get_student(student_id: str, db: Session = Depends(get_db)):
    student = student_service.get_student(db, student_id)
    return {"success": True, "data": student_service.serialize_student(student)}


@router.post("/students", status_code=201)
def create_student(payload: StudentCreate, db: Session = Depends(get_db)):
    """
    Register a student.

    Pipeline:
    1. Schema check (required fields) → 400
    2. Field rules (phone, email, date of birth) → 400
    3. Uniqueness of phone / alternate phone / email → 409
    4. Avatar decoding and insert
    """
    start_time = time.time()
    enforce_field_rules(payload)

    student = student_service.create_student(
        db,
        payload.columns(),
        avatar_payload=payload.avatar_data,
        registration_date=payload.registration_date,
    )

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO", "Student registered",
                     context={"student_id": str(student.id), "variant": student.variant},
                     extra_data={"duration_ms": round(duration_ms, 2)})
    return JSONResponse(status_code=201, content={
        "success": True,
        "message": "Student registered successfully",
        "data": student_service.serialize_student(student)
    })


@router.delete("/students/{student_id}")
def delete_student(student_id: str, db: Session = Depends(get_db)):
    student_service.delete_student(db, student_id)
    return {"success": True, "message": "Student deleted successfully"}
