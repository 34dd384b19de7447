"""Question model and the tagged answer entries graded against it."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, FrozenSet, List, Sequence, Tuple, Union

from assignment_engine.errors import ValidationFailure


class QuestionKind(str, Enum):
    MCQ = "mcq"
    FREE_TEXT = "text"


@dataclass(frozen=True)
class Question:
    """A gradable unit of a quiz.

    MCQ questions carry their options and a non-empty set of correct option
    indices; free-text questions carry neither and always need a human.
    """

    prompt: str
    kind: QuestionKind
    options: Tuple[str, ...] = ()
    correct_option_indices: FrozenSet[int] = field(default_factory=frozenset)

    def __post_init__(self):
        if not self.prompt or not self.prompt.strip():
            raise ValidationFailure("Every question needs prompt text.")
        if self.kind is QuestionKind.FREE_TEXT:
            if self.options or self.correct_option_indices:
                raise ValidationFailure("Free-text questions cannot have options or correct answers.")
            return
        if not self.correct_option_indices:
            raise ValidationFailure(f"Question '{self.prompt}' has no correct option marked.")
        for idx in self.correct_option_indices:
            if idx < 0 or idx >= len(self.options):
                raise ValidationFailure(
                    f"Correct option {idx} is out of range for question '{self.prompt}'."
                )

    @property
    def is_mcq(self) -> bool:
        return self.kind is QuestionKind.MCQ

    @property
    def sorted_correct_indices(self) -> List[int]:
        return sorted(self.correct_option_indices)

    def to_dict(self) -> dict:
        data = {"prompt": self.prompt, "kind": self.kind.value}
        if self.is_mcq:
            data["options"] = list(self.options)
            data["correct_option_indices"] = self.sorted_correct_indices
        return data

    def to_public_dict(self) -> dict:
        """Question as shown to learners (no answer key)."""
        data = self.to_dict()
        data.pop("correct_option_indices", None)
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "Question":
        """Rebuild a question from its stored snapshot.

        Raises:
            ValidationFailure: if the snapshot is malformed.
        """
        if not isinstance(data, dict):
            raise ValidationFailure("Stored question is not an object.")
        try:
            kind = QuestionKind(data.get("kind"))
        except ValueError:
            raise ValidationFailure(f"Unknown question kind: {data.get('kind')!r}")
        prompt = data.get("prompt")
        if not isinstance(prompt, str):
            raise ValidationFailure("Question prompt must be a string.")
        if kind is QuestionKind.FREE_TEXT:
            return cls(prompt=prompt, kind=kind)

        options = data.get("options") or []
        correct = data.get("correct_option_indices") or []
        if not isinstance(options, list) or not all(isinstance(o, str) for o in options):
            raise ValidationFailure(f"Options of question '{prompt}' must be a list of strings.")
        if not isinstance(correct, list) or not all(_is_plain_int(i) for i in correct):
            raise ValidationFailure(f"Correct options of question '{prompt}' must be integers.")
        return cls(
            prompt=prompt,
            kind=kind,
            options=tuple(options),
            correct_option_indices=frozenset(correct),
        )


@dataclass(frozen=True)
class McqAnswer:
    chosen_indices: Tuple[int, ...] = ()

    kind = QuestionKind.MCQ

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "choices": list(self.chosen_indices)}


@dataclass(frozen=True)
class TextAnswer:
    value: str = ""

    kind = QuestionKind.FREE_TEXT

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "value": self.value}


AnswerEntry = Union[McqAnswer, TextAnswer]


def answers_to_json(answers: Sequence[AnswerEntry]) -> List[dict]:
    return [entry.to_dict() for entry in answers]


def questions_from_json(data: Any) -> List[Question]:
    if data is None:
        return []
    if not isinstance(data, list):
        raise ValidationFailure("Stored questions must be a list.")
    return [Question.from_dict(item) for item in data]


def validate_quiz(questions: Sequence[Question], auto_grading: bool) -> None:
    """Authoring rules for a quiz, on top of each question's own invariant.

    Raises:
        ValidationFailure: with a message naming the first problem found.
    """
    if not questions:
        raise ValidationFailure("A quiz needs at least one question.")

    has_mcq = False
    for number, question in enumerate(questions, start=1):
        if not question.is_mcq:
            continue
        has_mcq = True
        if len(question.options) < 2:
            raise ValidationFailure(f"Question {number} needs at least 2 options.")
        if any(not option.strip() for option in question.options):
            raise ValidationFailure(f"Question {number} has an empty option.")

    if auto_grading and not has_mcq:
        raise ValidationFailure("Auto grading needs at least one multiple-choice question.")


def _is_plain_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)
