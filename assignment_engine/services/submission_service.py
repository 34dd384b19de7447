"""Submission ledger and score ledger operations.

Both submission channels end up here: the HTTP endpoint runs these functions
on the server's session, and the direct channel runs them on a session opened
with the learner's own identity. Each public function is one transaction: it
either commits every ledger write it made or none of them.
"""

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any, List, Optional

from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlmodel import Session, select

from assignment_engine.errors import (
    DuplicateSubmission,
    NotFound,
    TransientStoreFailure,
    ValidationFailure,
)
from assignment_engine.models import (
    REVIEW_DECISIONS,
    Assignment,
    AssignmentKind,
    LearnerScore,
    Submission,
    SubmissionStatus,
    utcnow,
)
from assignment_engine.questions import answers_to_json, questions_from_json
from assignment_engine.services.evaluator import NOT_GRADED, Evaluation, awarded_points, evaluate
from assignment_engine.services.normalizer import normalize_answers, normalize_task_answer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparedSubmission:
    answers: List[dict]
    evaluation: Evaluation
    awarded: int

    @property
    def status(self) -> SubmissionStatus:
        return SubmissionStatus.APPROVED if self.evaluation.auto_approve else SubmissionStatus.SUBMITTED


@dataclass(frozen=True)
class SubmitOutcome:
    submission_id: int
    status: str
    auto_score: Optional[float]
    auto_approved: bool
    just_awarded: bool
    awarded_points: int

    def to_dict(self) -> dict:
        return {"ok": True, **asdict(self)}


def get_assignment(session: Session, assignment_id: int) -> Assignment:
    assignment = session.get(Assignment, assignment_id)
    if not assignment:
        raise NotFound(f"Assignment {assignment_id} not found")
    return assignment


def prepare_submission(assignment: Assignment, raw_answers: Any) -> PreparedSubmission:
    """Normalize and grade answers against the assignment snapshot. No I/O."""
    if assignment.kind != AssignmentKind.QUIZ.value:
        entries = normalize_task_answer(raw_answers)
        return PreparedSubmission(answers_to_json(entries), NOT_GRADED, 0)

    questions = questions_from_json(assignment.questions)
    entries = normalize_answers(questions, raw_answers)
    evaluation = evaluate(questions, entries, assignment.auto_grading)
    awarded = awarded_points(evaluation, assignment.total_points) if evaluation.auto_approve else 0
    return PreparedSubmission(answers_to_json(entries), evaluation, awarded)


UPSERT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}


def add_to_score(session: Session, learner_id: str, points: int) -> None:
    """Atomically add ``points`` to the learner's counters.

    Expressed as ``total_score = total_score + :points`` so awards for
    different assignments compose without reading the current value. The
    first award for a learner is an ``INSERT ... ON CONFLICT DO UPDATE``, so
    two first awards landing together both count instead of one failing on
    the primary key. Does not commit.
    """
    now = utcnow()
    insert = UPSERT_INSERTS.get(session.get_bind().dialect.name)
    if insert is not None:
        table = LearnerScore.__table__
        statement = insert(table).values(
            learner_id=learner_id,
            total_score=points,
            seasonal_score=points,
            updated_at=now,
        )
        session.exec(
            statement.on_conflict_do_update(
                index_elements=[table.c.learner_id],
                set_={
                    "total_score": table.c.total_score + statement.excluded.total_score,
                    "seasonal_score": table.c.seasonal_score + statement.excluded.seasonal_score,
                    "updated_at": statement.excluded.updated_at,
                },
            )
        )
        return

    # Stores without an upsert statement
    result = session.exec(
        update(LearnerScore)
        .where(LearnerScore.learner_id == learner_id)
        .values(
            total_score=LearnerScore.total_score + points,
            seasonal_score=LearnerScore.seasonal_score + points,
            updated_at=now,
        )
    )
    if result.rowcount == 0:
        session.add(
            LearnerScore(
                learner_id=learner_id,
                total_score=points,
                seasonal_score=points,
                updated_at=now,
            )
        )
        session.flush()


def create_submission(
    session: Session,
    assignment_id: int,
    learner_id: str,
    raw_answers: Any,
    forced: bool = False,
) -> SubmitOutcome:
    """Record a learner's one and only submission for an assignment.

    Raises:
        NotFound: if the assignment does not exist
        ValidationFailure: if the stored questions are malformed
        DuplicateSubmission: if the learner already has a submission
        TransientStoreFailure: if the store failed; nothing was committed
    """
    try:
        assignment = get_assignment(session, assignment_id)
        prepared = prepare_submission(assignment, raw_answers)

        existing = session.exec(
            select(Submission).where(
                Submission.assignment_id == assignment_id,
                Submission.learner_id == learner_id,
            )
        ).first()
        if existing is not None:
            raise DuplicateSubmission()

        now = utcnow()
        submission = Submission(
            assignment_id=assignment_id,
            learner_id=learner_id,
            answers=prepared.answers,
            status=prepared.status.value,
            awarded_points=prepared.awarded,
            auto_score=prepared.evaluation.auto_score,
            forced=forced,
            created_at=now,
            updated_at=now,
        )
        session.add(submission)
        # The unique key on (assignment_id, learner_id) decides races the select above missed
        try:
            session.flush()
        except IntegrityError:
            raise DuplicateSubmission()

        just_awarded = False
        if prepared.evaluation.auto_approve and prepared.awarded > 0:
            add_to_score(session, learner_id, prepared.awarded)
            just_awarded = True

        session.commit()
    except DuplicateSubmission:
        session.rollback()
        logger.info(f"Learner {learner_id} already submitted assignment {assignment_id}")
        raise
    except (NotFound, ValidationFailure):
        session.rollback()
        raise
    except (IntegrityError, OperationalError) as exc:
        # e.g. a locked store, or a score-row race on stores without upsert
        session.rollback()
        logger.error(f"Store failure while submitting assignment {assignment_id}: {exc}")
        raise TransientStoreFailure() from exc

    session.refresh(submission)
    if just_awarded:
        logger.info(
            f"Learner {learner_id} auto-awarded {submission.awarded_points} points "
            f"on assignment {assignment_id}"
        )
    return SubmitOutcome(
        submission_id=submission.id,
        status=submission.status,
        auto_score=submission.auto_score,
        auto_approved=submission.status == SubmissionStatus.APPROVED.value,
        just_awarded=just_awarded,
        awarded_points=submission.awarded_points,
    )


def clamp_review_points(points: Optional[float], total_points: int) -> int:
    """Reviewer points default to the assignment maximum and stay within ``[0, max]``.

    Raises:
        ValidationFailure: if ``points`` is infinite or NaN
    """
    total_points = max(0, int(total_points))
    if points is not None and not math.isfinite(points):
        raise ValidationFailure("Review points must be a finite number.")
    requested = total_points if points is None else math.floor(points)
    return max(0, min(total_points, requested))


def apply_review(
    session: Session,
    submission_id: int,
    decision: str,
    points: Optional[float],
    reviewer_id: str,
) -> Submission:
    """Apply a reviewer decision to an existing submission.

    Only the first approval that carries positive points adds to the score
    ledger; the claim is a conditional update on ``awarded_points == 0`` so
    two concurrent approvals cannot both win. Re-approvals and switches
    between statuses keep the recorded award and never touch the ledger.
    """
    try:
        decision_status = SubmissionStatus(decision)
    except ValueError:
        raise ValidationFailure(f"Unknown review decision: {decision!r}")
    if decision_status not in REVIEW_DECISIONS:
        raise ValidationFailure(f"'{decision}' is not a review decision")

    try:
        submission = session.get(Submission, submission_id)
        if not submission:
            raise NotFound(f"Submission {submission_id} not found")
        assignment = get_assignment(session, submission.assignment_id)
        requested = clamp_review_points(points, assignment.total_points)

        now = utcnow()
        changes = dict(
            status=decision_status.value,
            reviewed_by=reviewer_id,
            reviewed_at=now,
            updated_at=now,
        )
        awarded_now = 0
        if decision_status is SubmissionStatus.APPROVED and requested > 0:
            claim = session.exec(
                update(Submission)
                .where(Submission.id == submission_id, Submission.awarded_points == 0)
                .values(awarded_points=requested, **changes)
                .execution_options(synchronize_session=False)
            )
            if claim.rowcount == 1:
                add_to_score(session, submission.learner_id, requested)
                awarded_now = requested
        if not awarded_now:
            session.exec(
                update(Submission)
                .where(Submission.id == submission_id)
                .values(**changes)
                .execution_options(synchronize_session=False)
            )
        session.commit()
    except (NotFound, ValidationFailure):
        session.rollback()
        raise
    except (IntegrityError, OperationalError) as exc:
        session.rollback()
        logger.error(f"Store failure while reviewing submission {submission_id}: {exc}")
        raise TransientStoreFailure() from exc

    session.refresh(submission)
    if awarded_now:
        logger.info(
            f"Reviewer {reviewer_id} awarded {awarded_now} points to learner "
            f"{submission.learner_id} on submission {submission_id}"
        )
    return submission


def find_submission(session: Session, assignment_id: int, learner_id: str) -> Optional[Submission]:
    return session.exec(
        select(Submission).where(
            Submission.assignment_id == assignment_id,
            Submission.learner_id == learner_id,
        )
    ).first()


def get_score(session: Session, learner_id: str) -> LearnerScore:
    score = session.get(LearnerScore, learner_id)
    return score or LearnerScore(learner_id=learner_id)


def summarize(submission: Submission) -> dict:
    return {
        "submission_id": submission.id,
        "assignment_id": submission.assignment_id,
        "learner_id": submission.learner_id,
        "status": submission.status,
        "awarded_points": submission.awarded_points,
        "auto_score": submission.auto_score,
        "forced": submission.forced,
        "reviewed_by": submission.reviewed_by,
        "reviewed_at": submission.reviewed_at.isoformat() if submission.reviewed_at else None,
        "created_at": submission.created_at.isoformat() if submission.created_at else None,
        "updated_at": submission.updated_at.isoformat() if submission.updated_at else None,
    }
