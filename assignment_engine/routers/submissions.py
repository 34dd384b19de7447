"""Authoritative submission channel and reviewer decisions.

Errors raised by the service layer are turned into JSON responses by the
exception handler registered in `assignment_engine.main`.
"""

import logging
from typing import Any, Literal, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session

from assignment_engine.database import get_session
from assignment_engine.deps import get_identity, require_reviewer
from assignment_engine.errors import NotFound
from assignment_engine.identity import Identity
from assignment_engine.services.submission_service import (
    apply_review,
    create_submission,
    find_submission,
    get_score,
    summarize,
)

logger = logging.getLogger(__name__)

router = APIRouter()


class SubmitPayload(BaseModel):
    answers: Any = None
    forced: bool = False


class ReviewPayload(BaseModel):
    decision: Literal["approved", "rejected", "needs_correction"]
    points: Optional[float] = Field(None, allow_inf_nan=False)


@router.post("/assignments/{assignment_id}/submit")
def api_submit(
    assignment_id: int,
    payload: SubmitPayload = Body(...),
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    outcome = create_submission(
        session,
        assignment_id=assignment_id,
        learner_id=identity.uid,
        raw_answers=payload.answers,
        forced=payload.forced,
    )
    return outcome.to_dict()


@router.get("/assignments/{assignment_id}/submissions/me")
def api_my_submission(
    assignment_id: int,
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    submission = find_submission(session, assignment_id, identity.uid)
    if not submission:
        raise NotFound("You have not submitted this assignment yet")
    return {**summarize(submission), "answers": submission.answers}


@router.post("/submissions/{submission_id}/review")
def api_review(
    submission_id: int,
    payload: ReviewPayload = Body(...),
    reviewer: Identity = Depends(require_reviewer),
    session: Session = Depends(get_session),
):
    submission = apply_review(
        session,
        submission_id=submission_id,
        decision=payload.decision,
        points=payload.points,
        reviewer_id=reviewer.uid,
    )
    return summarize(submission)


@router.get("/scores/me")
def api_my_score(
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    score = get_score(session, identity.uid)
    return {
        "learner_id": score.learner_id,
        "total_score": score.total_score,
        "seasonal_score": score.seasonal_score,
    }
