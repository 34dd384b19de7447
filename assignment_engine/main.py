"""FastAPI entrypoint for the assignment submission & auto-grading engine."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from assignment_engine.config import get_settings
from assignment_engine.database import create_db_and_tables
from assignment_engine.errors import SubmissionError
from assignment_engine.routers import assignments as assignments_router_module
from assignment_engine.routers import proctoring as proctoring_router_module
from assignment_engine.routers import submissions as submissions_router_module

settings = get_settings()

# Configure logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Assignment Submission & Auto-Grading Engine")


def _error_body(code: str, message: str) -> dict:
    return {"error": {"code": code, "message": message}}


@app.exception_handler(SubmissionError)
async def submission_error_handler(request: Request, exc: SubmissionError):
    """Map domain failures to stable error codes.

    Server-side failures only show a generic message; the underlying code and
    message are logged for operators.
    """
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed with {exc.code}: {exc.message}")
        message = exc.public_message
    else:
        logger.info(f"{request.method} {request.url.path} rejected with {exc.code}: {exc.message}")
        message = exc.message
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, message))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle malformed request bodies with the same error envelope."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={**_error_body("INVALID_REQUEST", "The request body is invalid."), "detail": jsonable_encoder(exc.errors())},
    )


# Routers
app.include_router(assignments_router_module.router, tags=["assignments"])
app.include_router(submissions_router_module.router, tags=["submissions"])
app.include_router(proctoring_router_module.router, tags=["proctoring"])


@app.get("/health")
def health_check():
    return {"status": "healthy"}


@app.on_event("startup")
def on_startup():
    """Initialize database schema."""
    create_db_and_tables()
    logger.info("Assignment engine started")
