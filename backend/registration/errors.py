"""
Error taxonomy for the registration platform.

Server side, the FastAPI app renders any RegistrationError as
``{"success": false, "error": message}`` with ``status_code``.
Client side, the student repository raises these from HTTP responses and
the form controller surfaces their messages to the user.

Usage:
    from registration.errors import ConflictError

    if existing:
        raise ConflictError("A student with this phone number already exists")
"""

from typing import Any, Dict, Optional


class RegistrationError(Exception):
    """Base exception for all registration errors"""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.message,
            "code": self.code,
        }


class ValidationError(RegistrationError):
    """Input failed a field rule or is missing required fields"""

    status_code = 400

    def __init__(self, message: str = "Missing required fields",
                 fields: Optional[Dict[str, str]] = None):
        super().__init__(message, code="VALIDATION_ERROR", details={"fields": fields or {}})
        self.fields = fields or {}


class ConflictError(RegistrationError):
    """Duplicate id, phone number or email"""

    status_code = 409

    def __init__(self, message: str = "Student with this ID already exists"):
        super().__init__(message, code="CONFLICT")


class NotFoundError(RegistrationError):
    """Requested student does not exist"""

    status_code = 404

    def __init__(self, message: str = "Student not found"):
        super().__init__(message, code="NOT_FOUND")


class ClassifierUnavailable(RegistrationError):
    """The remote face classifier could not be reached or answered garbage.

    Always recovered locally through the heuristic classifier.
    """

    status_code = 503

    def __init__(self, message: str = "Face classifier unavailable"):
        super().__init__(message, code="CLASSIFIER_UNAVAILABLE")


class NetworkError(RegistrationError):
    """The request never got a response"""

    status_code = 503

    def __init__(self, message: str = "Could not reach the registration server"):
        super().__init__(message, code="NETWORK_ERROR")


class ServerError(RegistrationError):
    """Unexpected server-side failure"""

    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message, code="SERVER_ERROR")
