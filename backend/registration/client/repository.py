"""
Student Repository - CRUD client for the students API.

Writes propagate failures as RegistrationError subclasses carrying the
server's message. Reads degrade to a local cache of the records seen so
far (stale reads accepted).
"""

from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import quote

import httpx

from registration.errors import (
    RegistrationError, ValidationError, ConflictError, NotFoundError,
    NetworkError, ServerError
)
from registration.logging_config import get_logger, log_with_context

logger = get_logger("repository")

SEARCH_FIELDS = ("first_name", "middle_name", "last_name", "full_name", "company", "email")


def error_for_status(status_code: int, message: Optional[str]) -> RegistrationError:
    if status_code == 400:
        return ValidationError(message or "Missing required fields")
    if status_code == 404:
        return NotFoundError(message or "Student not found")
    if status_code == 409:
        return ConflictError(message or "Student already exists")
    return ServerError(message or "Request failed with status {}".format(status_code))


def create_student_data(variant: str, form_data: dict, avatar_data: Optional[str]) -> dict:
    """Wire payload for POST /students. The server assigns the id."""
    return {
        "variant": variant,
        **form_data,
        "avatarData": avatar_data,
        "registrationDate": datetime.now(timezone.utc).isoformat(),
    }


def response_field(body: dict, key: str, kind: type):
    """Pull ``key`` out of a 2xx body, or raise ServerError when the server sent something else."""
    value = body.get(key)
    if not isinstance(value, kind):
        raise ServerError("Unexpected response from the registration server")
    return value


class StudentRepository:
    def __init__(self, client: httpx.AsyncClient, api_url: str):
        self.client = client
        self.api_url = api_url.rstrip("/") + "/students"
        self.students: List[dict] = []

    async def _request(self, method: str, path: str = "", **kwargs) -> dict:
        try:
            response = await self.client.request(method, self.api_url + path, **kwargs)
        except httpx.HTTPError as e:
            raise NetworkError() from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_success:
            return body if isinstance(body, dict) else {}

        message = body.get("error") if isinstance(body, dict) else None
        raise error_for_status(response.status_code, message)

    async def create(self, student_data: dict) -> dict:
        try:
            result = await self._request("POST", json=student_data)
            record = response_field(result, "data", dict)
        except RegistrationError as e:
            log_with_context(logger, "ERROR", "Error adding student: {}".format(e.message),
                             extra_data={"code": e.code})
            raise

        self.students.append(record)
        log_with_context(logger, "INFO", "Student registered in database",
                         context={"student_id": record.get("id")})
        return record

    async def list_all(self) -> List[dict]:
        try:
            result = await self._request("GET")
        except RegistrationError as e:
            log_with_context(logger, "WARNING", "Error fetching students, using cache",
                             extra_data={"error": e.message, "cached": len(self.students)})
            return list(self.students)

        self.students = result.get("data") or []
        return list(self.students)

    async def count(self) -> int:
        try:
            result = await self._request("GET", "/count")
            total = response_field(result, "count", int)
        except RegistrationError as e:
            log_with_context(logger, "WARNING", "Error fetching count, using cache",
                             extra_data={"error": e.message})
            return len(self.students)
        return total

    async def search_by_text(self, term: str) -> List[dict]:
        try:
            result = await self._request("GET", "/search/" + quote(term, safe=""))
        except RegistrationError as e:
            log_with_context(logger, "WARNING", "Error searching students, filtering cache",
                             extra_data={"error": e.message})
            needle = term.lower()
            return [
                s for s in self.students
                if any(needle in (s.get(f) or "").lower() for f in SEARCH_FIELDS)
            ]
        return result.get("data") or []

    async def get(self, student_id: str) -> dict:
        result = await self._request("GET", "/" + quote(student_id, safe=""))
        return response_field(result, "data", dict)

    async def delete_by_id(self, student_id: str):
        await self._request("DELETE", "/" + quote(student_id, safe=""))
        self.students = [s for s in self.students if s.get("id") != student_id]
        log_with_context(logger, "INFO", "Student deleted", context={"student_id": student_id})
