"""
Registration Form - field validation, avatar gate and submission.

A FormSchema enumerates every field of one record variant: its label, wire
key, whether it is required, the live transform applied while typing, and
the rule producing its error message. RegistrationForm runs those rules and
drives the submission:

    EDITING -> VALIDATING -> INVALID (errors + shake)
                          -> SUBMITTING -> SUCCESS (form disabled, then reset)
                                        -> FAILURE (message, values kept)
"""

import asyncio
import enum
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from registration.client.context import AppContext
from registration.client.repository import create_student_data
from registration.errors import RegistrationError, ConflictError, ValidationError, NotFoundError
from registration.models.student import VARIANT_COURSE, VARIANT_CONTACT
from registration.validators import (
    calculate_age, capitalize_proper_name, digits_only, is_valid_date_of_birth,
    is_valid_email, is_valid_phone_number, parse_calendar_date, MIN_AGE
)
from registration.logging_config import get_logger, log_with_context

logger = get_logger("form")

AVATAR_REQUIRED_MESSAGE = ("Please upload a valid photo with a clear human face. "
                           "Ensure the image shows only one person.")
GENERIC_FAILURE_MESSAGE = "Failed to register student. Please try again."
SUCCESS_MESSAGE = "Student registered successfully"

Rule = Callable[[str], Optional[str]]


def phone_rule(label: str, example: str) -> Rule:
    def check(value: str) -> Optional[str]:
        if is_valid_phone_number(value):
            return None
        digits = digits_only(value)
        if len(digits) != 10:
            return ("{} must be exactly 10 digits. You entered {} digits. "
                    "Format: 1234567890".format(label, len(digits)))
        return ("Invalid {} pattern. Please enter a valid 10-digit phone number "
                "(e.g., {})".format(label.lower(), example))
    return check


def email_rule(value: str) -> Optional[str]:
    if is_valid_email(value):
        return None
    if "@" not in value:
        return "Email must contain @ symbol. Format: username@domain.com"
    if "." not in value:
        return "Email must contain a domain extension. Format: username@domain.com"
    if value.index("@") > value.rindex("."):
        return "Domain must come after @ symbol. Format: username@domain.com"
    return ("Invalid email format. Please use format: username@domain.com "
            "(e.g., aron.smith@gmail.com)")


def date_of_birth_rule(value: str) -> Optional[str]:
    if is_valid_date_of_birth(value):
        return None
    birth_date = parse_calendar_date(value)
    if birth_date is not None and calculate_age(birth_date) < MIN_AGE:
        return "Student must be at least {} years old".format(MIN_AGE)
    return "Please enter a valid date of birth"


def limit_phone_digits(value: str) -> str:
    digits = digits_only(value)
    return digits[:10] if len(digits) > 10 else value


@dataclass(frozen=True)
class FieldSpec:
    name: str
    label: str
    wire_key: str
    required: bool = True
    rule: Optional[Rule] = None
    transform: Optional[Callable[[str], str]] = None

    @property
    def required_message(self) -> str:
        return "{} is required and cannot be empty".format(self.label)


@dataclass(frozen=True)
class FormSchema:
    variant: str
    fields: Tuple[FieldSpec, ...]

    def field(self, name: str) -> FieldSpec:
        for spec in self.fields:
            if spec.name == name:
                return spec
        raise KeyError(name)


COURSE_FORM = FormSchema(VARIANT_COURSE, (
    FieldSpec("first_name", "First Name", "firstName", transform=capitalize_proper_name),
    FieldSpec("middle_name", "Middle Name", "middleName", required=False, transform=capitalize_proper_name),
    FieldSpec("last_name", "Last Name", "lastName", transform=capitalize_proper_name),
    FieldSpec("date_of_birth", "Date of Birth", "dateOfBirth", rule=date_of_birth_rule),
    FieldSpec("phone_number", "Phone number", "phoneNumber",
              rule=phone_rule("Phone number", "4302032033"), transform=limit_phone_digits),
    FieldSpec("desired_course", "Desired Course", "desiredCourse"),
))

CONTACT_FORM = FormSchema(VARIANT_CONTACT, (
    FieldSpec("full_name", "Full Name", "fullName"),
    FieldSpec("company", "Company", "company"),
    FieldSpec("phone_number", "Phone number", "phoneNumber",
              rule=phone_rule("Phone number", "4302032033"), transform=limit_phone_digits),
    FieldSpec("alternate_phone", "Alternate phone", "alternatePhone", required=False,
              rule=phone_rule("Alternate phone", "4102012011"), transform=limit_phone_digits),
    FieldSpec("email", "Email", "email", rule=email_rule),
))


class FormState(enum.Enum):
    EDITING = "editing"
    VALIDATING = "validating"
    INVALID = "invalid"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    FAILURE = "failure"


class RegistrationForm:
    def __init__(self, context: AppContext, schema: FormSchema = COURSE_FORM):
        self.context = context
        self.schema = schema
        self.values: Dict[str, str] = {spec.name: "" for spec in schema.fields}
        self.errors: Dict[str, str] = {}
        self.state = FormState.EDITING
        self.message: Optional[str] = None
        self.disabled = False
        self.shake_count = 0
        self.student_count = 0
        self.last_record: Optional[dict] = None
        self._success_timer: Optional[asyncio.TimerHandle] = None

    # ── Field events ─────────────────────────────────────────

    def set_value(self, name: str, value: str):
        """Input event: transform, store and validate one field."""
        if self.disabled:
            return
        spec = self.schema.field(name)
        value = value or ""
        if spec.transform and value:
            value = spec.transform(value)
        self.values[name] = value
        if self.state in (FormState.INVALID, FormState.FAILURE):
            self.state = FormState.EDITING
        self.validate_field(name)

    def validate_field(self, name: str) -> Optional[str]:
        """Live check of a non-empty field; empty fields are only flagged on submit."""
        spec = self.schema.field(name)
        value = self.values[name].strip()
        error = spec.rule(value) if value and spec.rule else None
        if error:
            self.errors[name] = error
        else:
            self.errors.pop(name, None)
        return error

    # ── Validation ───────────────────────────────────────────

    def validate(self) -> bool:
        """
        Check the whole form.

        The avatar gate comes first and short-circuits. After that every
        required-field and field-rule error is collected.
        """
        self.state = FormState.VALIDATING
        self.errors = {}

        avatar_ok, _ = self.context.avatar_handler.validation_state()
        if not avatar_ok:
            self.errors["avatar"] = AVATAR_REQUIRED_MESSAGE
            return self._invalid()

        for spec in self.schema.fields:
            value = self.values[spec.name].strip()
            if not value:
                if spec.required:
                    self.errors[spec.name] = spec.required_message
                continue
            if spec.rule:
                error = spec.rule(value)
                if error:
                    self.errors[spec.name] = error

        if self.errors:
            return self._invalid()
        return True

    def _invalid(self) -> bool:
        self.state = FormState.INVALID
        self.shake_count += 1
        log_with_context(logger, "INFO", "Form validation failed",
                         context={"variant": self.schema.variant},
                         extra_data={"fields": sorted(self.errors)})
        return False

    # ── Submission ───────────────────────────────────────────

    def form_data(self) -> dict:
        return {spec.wire_key: self.values[spec.name].strip() for spec in self.schema.fields}

    async def submit(self) -> bool:
        if self.disabled or self.state is FormState.SUBMITTING:
            return False
        if not self.validate():
            return False

        _, avatar_data = self.context.avatar_handler.validation_state()
        student_data = create_student_data(self.schema.variant, self.form_data(), avatar_data)

        self.state = FormState.SUBMITTING
        self.disabled = True
        try:
            record = await self.context.repository.create(student_data)
        except (ConflictError, ValidationError, NotFoundError) as e:
            return self._failed(e.message)
        except RegistrationError as e:
            log_with_context(logger, "ERROR", "Registration error", extra_data={"error": e.message})
            return self._failed(GENERIC_FAILURE_MESSAGE)
        except BaseException:
            # Unlock the form, then let the error (or cancellation) propagate
            self._failed(GENERIC_FAILURE_MESSAGE)
            raise

        self.state = FormState.SUCCESS
        self.message = SUCCESS_MESSAGE
        self.last_record = record
        self._hold_success_display()
        self.reset()
        await self.refresh_count()
        return True

    def _failed(self, message: str) -> bool:
        self.state = FormState.FAILURE
        self.message = message
        self.disabled = False
        return False

    def _hold_success_display(self):
        seconds = self.context.settings.success_display_seconds
        if seconds <= 0:
            self._end_success_display()
            return
        self._success_timer = asyncio.get_running_loop().call_later(seconds, self._end_success_display)

    def _end_success_display(self):
        self._success_timer = None
        self.disabled = False
        if self.state is FormState.SUCCESS:
            self.state = FormState.EDITING
            self.message = None

    def reset(self):
        self.values = {spec.name: "" for spec in self.schema.fields}
        self.errors = {}
        self.context.avatar_handler.reset()

    async def refresh_count(self) -> int:
        self.student_count = await self.context.repository.count()
        return self.student_count
