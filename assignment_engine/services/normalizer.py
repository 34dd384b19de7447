"""Turn loosely-typed client answers into canonical answer entries.

This is the only place raw answer payloads are inspected. It never raises:
anything it cannot interpret becomes an empty answer, which grading treats as
incorrect. Both submission channels call it, including the fallback channel
that runs on the learner's side.
"""

from typing import Any, List, Optional, Sequence

from assignment_engine.questions import AnswerEntry, McqAnswer, Question, TextAnswer


def normalize_answers(questions: Sequence[Question], raw_answers: Any) -> List[AnswerEntry]:
    """Return one entry per question, aligned with ``questions``.

    ``raw_answers`` may be a list (positional), a mapping keyed by the
    question index (``"0"`` or ``0``), or anything else (treated as absent).
    """
    return [
        _normalize_entry(question, _raw_entry(raw_answers, idx))
        for idx, question in enumerate(questions)
    ]


def normalize_task_answer(raw_answer: Any) -> List[AnswerEntry]:
    """Tasks have no questions; their single answer is free text."""
    return [TextAnswer(_coerce_text(raw_answer, keys=("text", "value")))]


def normalize_indices(values: Any) -> List[int]:
    """Deduplicate, drop non-integer or negative values, sort ascending."""
    if not isinstance(values, (list, tuple, set, frozenset)):
        return []
    indices = {idx for idx in (_to_index(v) for v in values) if idx is not None}
    return sorted(indices)


def _raw_entry(raw_answers: Any, idx: int) -> Any:
    if isinstance(raw_answers, (list, tuple)):
        return raw_answers[idx] if idx < len(raw_answers) else None
    if isinstance(raw_answers, dict):
        if str(idx) in raw_answers:
            return raw_answers[str(idx)]
        return raw_answers.get(idx)
    return None


def _normalize_entry(question: Question, raw: Any) -> AnswerEntry:
    if question.is_mcq:
        if isinstance(raw, dict):
            source = raw.get("choices")
        elif isinstance(raw, (list, tuple)):
            source = raw
        elif _is_number(raw):
            source = [raw]
        else:
            source = None
        return McqAnswer(tuple(normalize_indices(source)))
    return TextAnswer(_coerce_text(raw, keys=("value", "text")))


def _coerce_text(raw: Any, keys: Sequence[str]) -> str:
    if isinstance(raw, dict):
        for key in keys:
            if key in raw:
                raw = raw[key]
                break
        else:
            return ""
    if isinstance(raw, str):
        return raw
    if _is_number(raw):
        return str(raw)
    return ""


def _to_index(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        idx = value
    elif isinstance(value, float):
        if not value.is_integer():
            return None
        idx = int(value)
    elif isinstance(value, str):
        try:
            idx = int(value.strip())
        except ValueError:
            return None
    else:
        return None
    return idx if idx >= 0 else None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
