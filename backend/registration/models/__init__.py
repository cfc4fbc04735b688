from registration.models.student import Student

__all__ = ["Student"]
