from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from sqlmodel import Session

from assignment_engine.errors import ValidationFailure
from assignment_engine.models import Assignment, AssignmentKind
from assignment_engine.questions import Question, QuestionKind, validate_quiz
from assignment_engine.utils import sanitize_plain_text, sanitize_question_text


def build_question(
    prompt: str,
    kind: str,
    options: Optional[Iterable[str]] = None,
    correct_option_indices: Optional[Iterable[int]] = None,
) -> Question:
    """Sanitize authoring input into a `Question`.

    Raises:
        ValidationFailure: if the question breaks its invariant after sanitization
    """
    try:
        question_kind = QuestionKind(kind)
    except ValueError:
        raise ValidationFailure(f"Unknown question kind: {kind!r}")

    sanitized_prompt = sanitize_question_text(prompt or "")
    if question_kind is QuestionKind.FREE_TEXT:
        return Question(prompt=sanitized_prompt, kind=question_kind)

    return Question(
        prompt=sanitized_prompt,
        kind=question_kind,
        options=tuple(sanitize_plain_text(o) for o in (options or [])),
        correct_option_indices=frozenset(correct_option_indices or []),
    )


def create_assignment(
    session: Session,
    title: str,
    kind: str,
    total_points: int = 10,
    auto_grading: bool = False,
    questions: Sequence[Question] = (),
    description: str = "",
    due_at: Optional[datetime] = None,
    created_by: Optional[str] = None,
) -> Assignment:
    title = sanitize_plain_text(title or "")
    if not title:
        raise ValidationFailure("Assignment title cannot be empty")
    try:
        assignment_kind = AssignmentKind(kind)
    except ValueError:
        raise ValidationFailure(f"Unknown assignment kind: {kind!r}")
    if total_points < 0:
        raise ValidationFailure("total_points cannot be negative")

    stored_questions: List[dict] = []
    if assignment_kind is AssignmentKind.QUIZ:
        validate_quiz(questions, auto_grading)
        stored_questions = [q.to_dict() for q in questions]
    else:
        # Tasks are always reviewed by a human
        auto_grading = False

    assignment = Assignment(
        title=title,
        description=sanitize_plain_text(description or ""),
        kind=assignment_kind.value,
        questions=stored_questions,
        total_points=int(total_points),
        auto_grading=bool(auto_grading),
        due_at=due_at,
        created_by=created_by,
    )
    session.add(assignment)
    session.commit()
    session.refresh(assignment)
    return assignment
