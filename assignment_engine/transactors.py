"""
Client-side access to the submission engine.

Two adapters implement `SubmissionTransactor` with the same pre- and
postconditions:

* `AuthoritativeTransactor` calls the HTTP API, which verifies the identity
  token and writes with the server's privileges.
* `DirectTransactor` runs the same service functions against the ledgers
  itself, acting only as the caller's own identity.

`FallbackTransactor` tries the first and switches to the second only when the
authoritative channel cannot be reached. Every other failure, in particular
`DuplicateSubmission`, is final.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import httpx
from sqlmodel import Session

from assignment_engine.config import Settings, get_settings
from assignment_engine.errors import (
    ChannelUnavailable,
    PermissionDenied,
    SubmissionError,
    error_from_code,
)
from assignment_engine.identity import Identity
from assignment_engine.services.submission_service import (
    SubmitOutcome,
    apply_review,
    create_submission,
    summarize,
)

logger = logging.getLogger(__name__)


class SubmissionTransactor(ABC):
    """One way of running the submit and review operations."""

    name = "transactor"

    @abstractmethod
    def submit(self, assignment_id: int, raw_answers: Any, forced: bool = False) -> SubmitOutcome:
        """Create the caller's submission; raises `DuplicateSubmission` on a second attempt."""

    @abstractmethod
    def review(self, submission_id: int, decision: str, points: Optional[float] = None) -> dict:
        """Apply a reviewer decision and return the submission summary."""


class AuthoritativeTransactor(SubmissionTransactor):
    name = "authoritative"

    def __init__(self, http: httpx.Client, token: str):
        self.http = http
        self.token = token

    @classmethod
    def from_settings(cls, token: str, settings: Optional[Settings] = None) -> "AuthoritativeTransactor":
        """Client for the configured engine URL, with the configured request timeout."""
        settings = settings or get_settings()
        http = httpx.Client(base_url=settings.api_base_url, timeout=settings.api_timeout_seconds)
        return cls(http, token)

    def submit(self, assignment_id: int, raw_answers: Any, forced: bool = False) -> SubmitOutcome:
        data = self._post(
            f"/assignments/{assignment_id}/submit",
            {"answers": raw_answers, "forced": forced},
        )
        return SubmitOutcome(
            submission_id=data["submission_id"],
            status=data["status"],
            auto_score=data.get("auto_score"),
            auto_approved=bool(data.get("auto_approved")),
            just_awarded=bool(data.get("just_awarded")),
            awarded_points=int(data.get("awarded_points") or 0),
        )

    def review(self, submission_id: int, decision: str, points: Optional[float] = None) -> dict:
        return self._post(
            f"/submissions/{submission_id}/review",
            {"decision": decision, "points": points},
        )

    def report_violation(self, assignment_id: int, kind: str, violation_count: int, severity: str) -> None:
        """Best-effort audit trail; a lost report must not disturb the quiz."""
        try:
            self._post(
                f"/assignments/{assignment_id}/violations",
                {"kind": kind, "violation_count": violation_count, "severity": severity},
            )
        except SubmissionError as e:
            logger.warning(f"Could not report {kind} violation on assignment {assignment_id}: {e}")

    def _post(self, path: str, body: dict) -> dict:
        try:
            response = self.http.post(
                path,
                json=body,
                headers={"Authorization": f"Bearer {self.token}"},
            )
        except httpx.TransportError as e:
            raise ChannelUnavailable(f"Authoritative channel unreachable: {e}") from e

        if response.is_success:
            return response.json()
        if response.status_code >= 500:
            raise ChannelUnavailable(f"Authoritative channel answered {response.status_code}")

        try:
            error = response.json().get("error") or {}
        except ValueError:
            error = {}
        raise error_from_code(error.get("code"), error.get("message"))


class DirectTransactor(SubmissionTransactor):
    """Runs the ledger transactions directly with the caller's own identity."""

    name = "direct"

    def __init__(self, session_factory: Callable[[], Session], identity: Identity):
        self.session_factory = session_factory
        self.identity = identity

    def submit(self, assignment_id: int, raw_answers: Any, forced: bool = False) -> SubmitOutcome:
        with self.session_factory() as session:
            return create_submission(
                session,
                assignment_id=assignment_id,
                learner_id=self.identity.uid,
                raw_answers=raw_answers,
                forced=forced,
            )

    def review(self, submission_id: int, decision: str, points: Optional[float] = None) -> dict:
        if not self.identity.is_reviewer:
            raise PermissionDenied()
        with self.session_factory() as session:
            submission = apply_review(
                session,
                submission_id=submission_id,
                decision=decision,
                points=points,
                reviewer_id=self.identity.uid,
            )
            return summarize(submission)


class FallbackTransactor(SubmissionTransactor):
    name = "fallback"

    def __init__(self, primary: SubmissionTransactor, fallback: SubmissionTransactor):
        self.primary = primary
        self.fallback = fallback

    def submit(self, assignment_id: int, raw_answers: Any, forced: bool = False) -> SubmitOutcome:
        try:
            return self.primary.submit(assignment_id, raw_answers, forced=forced)
        except ChannelUnavailable as e:
            logger.warning(f"Submitting assignment {assignment_id} through {self.fallback.name} channel: {e}")
            return self.fallback.submit(assignment_id, raw_answers, forced=forced)

    def review(self, submission_id: int, decision: str, points: Optional[float] = None) -> dict:
        try:
            return self.primary.review(submission_id, decision, points)
        except ChannelUnavailable as e:
            logger.warning(f"Reviewing submission {submission_id} through {self.fallback.name} channel: {e}")
            return self.fallback.review(submission_id, decision, points)
