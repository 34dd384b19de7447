"""Answer normalization: loosely-typed client payloads into canonical entries."""

from assignment_engine.questions import McqAnswer, Question, QuestionKind, TextAnswer
from assignment_engine.services.normalizer import (
    normalize_answers,
    normalize_indices,
    normalize_task_answer,
)

MCQ = Question(prompt="Pick", kind=QuestionKind.MCQ, options=("a", "b", "c"), correct_option_indices=frozenset({1}))
TEXT = Question(prompt="Explain", kind=QuestionKind.FREE_TEXT)


def test_list_payload_is_positional():
    result = normalize_answers([MCQ, TEXT], [{"kind": "mcq", "choices": [2, 0, 2]}, {"kind": "text", "value": "because"}])

    assert result == [McqAnswer((0, 2)), TextAnswer("because")]


def test_mapping_payload_keyed_by_string_or_int_index():
    by_str = normalize_answers([MCQ, TEXT], {"0": {"choices": [1]}, "1": {"value": "x"}})
    by_int = normalize_answers([MCQ, TEXT], {0: {"choices": [1]}, 1: {"value": "x"}})

    assert by_str == by_int == [McqAnswer((1,)), TextAnswer("x")]


def test_missing_entries_become_empty_answers():
    assert normalize_answers([MCQ, TEXT], []) == [McqAnswer(()), TextAnswer("")]
    assert normalize_answers([MCQ, TEXT], None) == [McqAnswer(()), TextAnswer("")]
    assert normalize_answers([MCQ, TEXT], "garbage") == [McqAnswer(()), TextAnswer("")]


def test_bare_index_and_bare_list_are_accepted_for_mcq():
    assert normalize_answers([MCQ], [1]) == [McqAnswer((1,))]
    assert normalize_answers([MCQ], [[2, 1]]) == [McqAnswer((1, 2))]


def test_indices_drop_negatives_bools_and_non_integers():
    assert normalize_indices([3, -1, True, 1.5, 2.0, "1", "x", None, 3]) == [1, 2, 3]


def test_indices_of_non_list_are_empty():
    assert normalize_indices("1,2") == []
    assert normalize_indices(None) == []


def test_numbers_in_text_answers_are_stringified():
    assert normalize_answers([TEXT], [42]) == [TextAnswer("42")]
    assert normalize_answers([TEXT], [{"value": ["nested"]}]) == [TextAnswer("")]


def test_task_answer_is_single_text_entry():
    assert normalize_task_answer({"text": "my essay"}) == [TextAnswer("my essay")]
    assert normalize_task_answer("plain") == [TextAnswer("plain")]
    assert normalize_task_answer(None) == [TextAnswer("")]


def test_normalization_never_raises_on_odd_shapes():
    odd_payloads = [{"0": object()}, [{"choices": "0"}], [set()], 3.14, {"kind": "mcq"}]
    for payload in odd_payloads:
        result = normalize_answers([MCQ, TEXT], payload)
        assert len(result) == 2
