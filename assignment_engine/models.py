"""SQLModel models for the submission & auto-grading engine."""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel


class AssignmentKind(str, Enum):
    TASK = "task"
    QUIZ = "quiz"


class SubmissionStatus(str, Enum):
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_CORRECTION = "needs_correction"


REVIEW_DECISIONS = (
    SubmissionStatus.APPROVED,
    SubmissionStatus.REJECTED,
    SubmissionStatus.NEEDS_CORRECTION,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Assignment(SQLModel, table=True):
    """A task or quiz. Owned by the authoring side, read-only to grading."""

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: str = Field(default="")
    kind: str = Field(default=AssignmentKind.TASK.value)  # task | quiz
    # Snapshot of Question.to_dict() entries; grading always reads this copy
    questions: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    total_points: int = Field(default=10, ge=0)
    auto_grading: bool = Field(default=False)
    due_at: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Submission(SQLModel, table=True):
    """The submission ledger: one row per (assignment, learner), written once."""

    __table_args__ = (
        UniqueConstraint("assignment_id", "learner_id", name="uq_submission_assignment_learner"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    assignment_id: int = Field(foreign_key="assignment.id", index=True)
    learner_id: str = Field(index=True)
    answers: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    status: str = Field(default=SubmissionStatus.SUBMITTED.value)
    awarded_points: int = Field(default=0, ge=0)
    auto_score: Optional[float] = None
    forced: bool = Field(default=False)  # created by the proctoring monitor
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class LearnerScore(SQLModel, table=True):
    """The score ledger. Only ever changed through relative increments."""

    learner_id: str = Field(primary_key=True)
    total_score: int = Field(default=0, ge=0)
    seasonal_score: int = Field(default=0, ge=0)
    updated_at: datetime = Field(default_factory=utcnow)


# ===================== PROCTORING =====================


class ProctoringEvent(SQLModel, table=True):
    """Violations reported by the proctoring monitor while a quiz is open."""

    id: Optional[int] = Field(default=None, primary_key=True)
    assignment_id: int = Field(foreign_key="assignment.id", index=True)
    learner_id: str = Field(index=True)
    kind: str  # e.g. "tab_switch", "window_blur", "forbidden_input"
    violation_count: int = Field(default=0)
    severity: str = Field(default="low")  # low, medium, high
    event_metadata: Optional[str] = None  # JSON string
    occurred_at: datetime = Field(default_factory=utcnow)
