"""
Student model - one registered student.

Two record variants share the table, discriminated by ``variant``:
- course:  first/middle/last name, date of birth, desired course
- contact: full name, company, alternate phone, email

Phone numbers are stored digits-only and emails lower-cased so the
uniqueness constraints compare normalized values.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, Date, String, LargeBinary, Index
from registration.database import Base

VARIANT_COURSE = "course"
VARIANT_CONTACT = "contact"
VARIANTS = (VARIANT_COURSE, VARIANT_CONTACT)


class Student(Base):
    """SQLAlchemy model for the students table."""
    __tablename__ = "students"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique student identifier (server assigned)")
    variant = Column(String(16), nullable=False, default=VARIANT_COURSE,
                     doc="Record shape: course | contact")

    # Course registration fields
    first_name = Column(Text, nullable=True)
    middle_name = Column(Text, nullable=True)
    last_name = Column(Text, nullable=True)
    date_of_birth = Column(Date, nullable=True)
    desired_course = Column(Text, nullable=True)

    # Contact directory fields
    full_name = Column(Text, nullable=True)
    company = Column(Text, nullable=True)
    alternate_phone = Column(String(10), nullable=True)
    email = Column(Text, nullable=True, unique=True)

    phone_number = Column(String(10), nullable=False, unique=True,
                          doc="Digits-only phone number")

    avatar_data = Column(LargeBinary, nullable=True,
                         doc="Decoded avatar image bytes")
    avatar_mime = Column(Text, nullable=True,
                         doc="MIME type of avatar_data, e.g. image/svg+xml")
    avatar_url = Column(Text, nullable=True,
                        doc="Avatar reference kept verbatim when no embedded data was sent")

    registration_date = Column(DateTime, nullable=False,
                               default=lambda: datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0),
                               doc="Naive UTC timestamp, second precision")
    created_at = Column(DateTime, nullable=False,
                        default=lambda: datetime.now(timezone.utc).replace(tzinfo=None),
                        doc="Naive UTC insertion time, full precision; breaks ties within one registration second")

    __table_args__ = (
        Index("ix_students_registration_date", "registration_date"),
        Index("ix_students_registration_order", "registration_date", "created_at"),
        Index("ix_students_alternate_phone", "alternate_phone"),
    )

    @property
    def display_name(self) -> str:
        if self.variant == VARIANT_CONTACT:
            return self.full_name or ""
        return " ".join(p for p in (self.first_name, self.middle_name, self.last_name) if p)

    def __repr__(self):
        return f"<Student(id={self.id}, variant='{self.variant}', name='{self.display_name}')>"
