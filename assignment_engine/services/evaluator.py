"""Auto-grading of normalized quiz answers."""

import math
from dataclasses import dataclass
from fractions import Fraction
from typing import Optional, Sequence

from assignment_engine.questions import AnswerEntry, McqAnswer, Question


@dataclass(frozen=True)
class Evaluation:
    auto_score: Optional[float]
    auto_approve: bool
    correct: int
    gradable: int


NOT_GRADED = Evaluation(auto_score=None, auto_approve=False, correct=0, gradable=0)


def evaluate(
    questions: Sequence[Question],
    answers: Sequence[AnswerEntry],
    auto_grading_enabled: bool,
) -> Evaluation:
    """Score MCQ answers; all-or-nothing per question.

    Auto-approval needs every question to be MCQ: a single free-text question
    sends the whole submission to a human reviewer.
    """
    if not auto_grading_enabled or not questions:
        return NOT_GRADED

    correct = 0
    gradable = 0
    all_mcq = True
    for idx, question in enumerate(questions):
        if not question.is_mcq:
            all_mcq = False
            continue
        gradable += 1
        entry = answers[idx] if idx < len(answers) else None
        if isinstance(entry, McqAnswer) and _is_exact_match(entry, question):
            correct += 1

    auto_score = correct / gradable if gradable > 0 else None
    return Evaluation(
        auto_score=auto_score,
        auto_approve=all_mcq and gradable > 0,
        correct=correct,
        gradable=gradable,
    )


def awarded_points(evaluation: Evaluation, total_points: int) -> int:
    """Points for an auto-approved submission, rounded half up.

    ``round(correct * total_points / gradable)`` computed on exact fractions,
    clamped to ``[0, total_points]``.
    """
    total_points = max(0, int(total_points))
    if not evaluation.auto_approve or evaluation.gradable <= 0:
        return 0
    exact = Fraction(evaluation.correct * total_points, evaluation.gradable)
    rounded = math.floor(exact + Fraction(1, 2))
    return min(total_points, max(0, rounded))


def _is_exact_match(entry: McqAnswer, question: Question) -> bool:
    chosen = sorted(set(entry.chosen_indices))
    expected = question.sorted_correct_indices
    return len(chosen) > 0 and chosen == expected
