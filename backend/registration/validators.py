"""
Field validators for student registration.

Pure functions shared by the form controller (client) and the students
API (server). None of them raise for invalid input: they return a bool,
a string, or an ImageCheck.

Phone rules:
1. Exactly 10 digits once every non-digit character is removed
2. Not a known placeholder or patterned number (see INVALID_PHONE_PATTERNS)
3. No "000" / "111" prefix
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Optional

MIN_AGE = 10
MAX_AGE = 100
MAX_IMAGE_BYTES = 5 * 1024 * 1024

INVALID_PHONE_PATTERNS = [
    re.compile(r"^(\d)\1{9}$"),            # All digits the same
    re.compile(r"^1234567890$"),           # Ascending
    re.compile(r"^0987654321$"),           # Descending
    re.compile(r"^0123456789$"),           # Ascending from 0
    re.compile(r"^(\d{2})\1{4}$"),         # Repeating pair
    re.compile(r"^(\d)\1{6,}"),            # 7+ leading repeats of one digit
    re.compile(r"^(\d)(\d)(?:\1\2){4}$"),  # Alternating two digits
    re.compile(r"^9999999999$"),           # Common placeholder
    re.compile(r"^1231231234$"),           # Repeating blocks
]
INVALID_PHONE_PREFIXES = ("000", "111")
PLACEHOLDER_PHONES = {"1111111111", "2222222222"}

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass
class ImageCheck:
    valid: bool
    error: Optional[str] = None


def digits_only(value) -> str:
    """Strip every non-digit character ("(430) 203-2033" -> "4302032033")."""
    if not value:
        return ""
    return re.sub(r"\D", "", str(value))


def is_valid_phone_number(phone_number) -> bool:
    clean_phone = digits_only(phone_number)

    if not re.fullmatch(r"\d{10}", clean_phone):
        return False

    for pattern in INVALID_PHONE_PATTERNS:
        if pattern.search(clean_phone):
            return False

    if clean_phone.startswith(INVALID_PHONE_PREFIXES) or clean_phone in PLACEHOLDER_PHONES:
        return False

    return True


def is_valid_email(email) -> bool:
    if not isinstance(email, str):
        return False
    return bool(EMAIL_PATTERN.match(email))


def calculate_age(birth_date: date, today: Optional[date] = None) -> int:
    """Full years between birth_date and today, minus one if the birthday is still ahead."""
    today = today or date.today()
    age = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


def parse_calendar_date(value) -> Optional[date]:
    """Parse YYYY-MM-DD as a plain calendar date, no timezone involved."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


def years_before(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return day.replace(year=day.year - years, day=28)


def is_valid_date_of_birth(date_of_birth, today: Optional[date] = None) -> bool:
    """
    Check a date of birth against the registration age rules.

    The date must not be in the future, must not be more than 100 years
    back, and must give an age of at least 10.
    """
    birth_date = parse_calendar_date(date_of_birth)
    if birth_date is None:
        return False

    today = today or date.today()
    min_date = years_before(today, MAX_AGE)

    if birth_date > today or birth_date < min_date:
        return False

    return calculate_age(birth_date, today) >= MIN_AGE


def capitalize_proper_name(name) -> str:
    """
    Uppercase the first character and lowercase the rest.

    Examples: john -> John, DOE -> Doe, mCdONALD -> Mcdonald
    """
    if not name or not isinstance(name, str):
        return ""

    trimmed_name = name.strip().lower()
    if not trimmed_name:
        return ""

    return trimmed_name[0].upper() + trimmed_name[1:]


def is_valid_image_file(file) -> ImageCheck:
    """Accept image/* MIME types up to 5 MiB.

    ``file`` is anything with ``content_type`` and ``size`` attributes.
    """
    content_type = getattr(file, "content_type", None) or ""
    if not content_type.startswith("image/"):
        return ImageCheck(False, "Please upload a valid image file (JPG, PNG, etc.)")

    if getattr(file, "size", 0) > MAX_IMAGE_BYTES:
        return ImageCheck(False, "Image file is too large. Please upload an image smaller than 5MB.")

    return ImageCheck(True)
