"""
Student Registration Platform - FastAPI Application Entry Point.

This is the main application module that:
1. Initializes the FastAPI app with CORS middleware
2. Sets up structured JSON logging
3. Implements request ID middleware (X-Request-ID header)
4. Renders every error as {"success": false, "error": ...}
5. Registers the students API and the health check

The application follows a modular architecture:
- routes/: API endpoint handlers
- models/: SQLAlchemy ORM models
- services/: Persistence rules (normalization, uniqueness, avatars)
- client/: Registration form logic (validators, avatar pipeline, API client)
- logging_config.py: Structured logging configuration
- database.py: Database connection management
"""

import time
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from registration.logging_config import (
    setup_logging, get_logger, log_with_context,
    request_id_var, generate_request_id
)
from registration.errors import RegistrationError, ServerError
from registration.routes import students
from registration.database import DATABASE_URL, create_tables

# Import all models so they are registered with Base.metadata
from registration.models.student import Student  # noqa: F401

# ──────────────────────────────────────────────────────────────
# Initialize structured logging BEFORE anything else
# ──────────────────────────────────────────────────────────────
setup_logging()
logger = get_logger("http")

if DATABASE_URL.startswith("sqlite"):
    logger.info("Using SQLite, creating tables directly")
    create_tables()

app = FastAPI(
    title="Student Registration API",
    description=(
        "Registers students with validated contact details and a generated "
        "avatar, and serves the registered records over a small CRUD API."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# ──────────────────────────────────────────────────────────────
# CORS Middleware
#
# The registration form is served from a different origin than the API.
# ──────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"]
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """
    Generate a request ID for every HTTP request.

    The ID is stored in a context variable (picked up by every log entry),
    returned in the X-Request-ID response header, and logged together with
    the request latency.
    """
    req_id = generate_request_id()
    request_id_var.set(req_id)

    start_time = time.time()

    log_with_context(logger, "INFO",
        f"Request started: {request.method} {request.url.path}",
        context={"request_id": req_id},
        extra_data={
            "ip": request.client.host if request.client else "unknown",
            "user_agent": request.headers.get("user-agent", ""),
        })

    response = await call_next(request)

    duration_ms = (time.time() - start_time) * 1000
    response.headers["X-Request-ID"] = req_id

    log_with_context(logger, "INFO",
        f"Request completed: {request.method} {request.url.path} → {response.status_code}",
        context={"request_id": req_id},
        extra_data={
            "duration_ms": round(duration_ms, 2),
            "status_code": response.status_code
        })

    return response


# ──────────────────────────────────────────────────────────────
# Error rendering
# ──────────────────────────────────────────────────────────────
@app.exception_handler(RegistrationError)
async def registration_error_handler(request: Request, exc: RegistrationError):
    log_with_context(logger, "WARNING" if exc.status_code < 500 else "ERROR",
        f"{exc.code}: {exc.message}",
        extra_data={"status_code": exc.status_code, "path": request.url.path})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code,
                        content={"success": False, "error": exc.detail})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = [".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()]
    log_with_context(logger, "WARNING", "Rejected request body",
        extra_data={"fields": fields, "path": request.url.path})
    return JSONResponse(status_code=400, content={
        "success": False,
        "error": "Missing required fields",
        "fields": fields
    })


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    log_with_context(logger, "ERROR",
        f"Unhandled error: {request.method} {request.url.path}",
        extra_data={"error": str(exc), "error_type": type(exc).__name__},
        exc_info=exc)
    return JSONResponse(status_code=500, content=ServerError().to_dict())


app.include_router(students.router, tags=["Students"])


@app.get("/health", tags=["Health"])
def health_check():
    """Liveness probe."""
    return {"status": "healthy", "service": "student-registration-backend", "version": "1.0.0"}


@app.get("/", tags=["Root"])
def root():
    """Root endpoint with API information."""
    return {
        "service": "Student Registration API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "students_list": "GET /students",
            "students_count": "GET /students/count",
            "students_search": "GET /students/search/{term}",
            "student_detail": "GET /students/{id}",
            "register": "POST /students",
            "delete": "DELETE /students/{id}"
        }
    }
