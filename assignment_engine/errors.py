"""Failure taxonomy shared by both submission channels.

Every error carries a stable ``code`` and the HTTP status the authoritative
channel answers with, so the fallback channel and the HTTP client can map
failures back to the same exception type.
"""

from typing import Optional

ALREADY_SUBMITTED_MESSAGE = "You have already submitted this assignment. New answers are not accepted."
GENERIC_FAILURE_MESSAGE = "Something went wrong while saving your answers. Please try again."


class SubmissionError(Exception):
    code = "SUBMISSION_FAILED"
    status_code = 500
    public_message = GENERIC_FAILURE_MESSAGE

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class DuplicateSubmission(SubmissionError):
    """A submission already exists for this (assignment, learner) pair."""

    code = "ALREADY_SUBMITTED"
    status_code = 409
    public_message = ALREADY_SUBMITTED_MESSAGE


class ValidationFailure(SubmissionError):
    """Malformed assignment or question data."""

    code = "VALIDATION_FAILED"
    status_code = 422
    public_message = "The assignment data is invalid."


class DocumentImportError(ValidationFailure):
    code = "IMPORT_FAILED"


class TransientStoreFailure(SubmissionError):
    """The store was unavailable; nothing was committed, retry the whole operation."""

    code = "STORE_UNAVAILABLE"
    status_code = 503


class AuthenticationFailure(SubmissionError):
    code = "UNAUTHENTICATED"
    status_code = 401
    public_message = "A valid identity token is required."


class PermissionDenied(SubmissionError):
    code = "FORBIDDEN"
    status_code = 403
    public_message = "You are not allowed to perform this action."


class NotFound(SubmissionError):
    code = "NOT_FOUND"
    status_code = 404
    public_message = "Not found."


class ChannelUnavailable(SubmissionError):
    """The authoritative channel could not be reached (client side only)."""

    code = "CHANNEL_UNAVAILABLE"
    status_code = 503


ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        SubmissionError,
        DuplicateSubmission,
        ValidationFailure,
        DocumentImportError,
        TransientStoreFailure,
        AuthenticationFailure,
        PermissionDenied,
        NotFound,
        ChannelUnavailable,
    )
}


def error_from_code(code: Optional[str], message: Optional[str] = None) -> SubmissionError:
    """Rebuild a domain error from the ``code`` found in an error response."""
    cls = ERRORS_BY_CODE.get(code or "", SubmissionError)
    return cls(message)
