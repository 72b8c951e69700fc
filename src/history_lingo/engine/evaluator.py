"""Correctness rules for each question variant.

Evaluation is pure. Adding a question type means adding its model and one
entry in ``_EVALUATORS``.
"""

from collections.abc import Callable, Sequence
from typing import Any

from history_lingo.models.question import (
    FillBlankQuestion,
    MultipleChoiceQuestion,
    StoryBlank,
    StoryCompletionQuestion,
    TimelineOrderQuestion,
    TrueFalseQuestion,
    WhoSaidItQuestion,
)


def normalize_answer(text: str) -> str:
    return text.strip().lower()


def _is_index(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _matches_text(submitted: Any, answer: str, acceptable: Sequence[str]) -> bool:
    if not isinstance(submitted, str):
        return False
    normalized = normalize_answer(submitted)
    return any(normalized == normalize_answer(candidate) for candidate in [answer, *acceptable])


def timeline_reference_order(question: TimelineOrderQuestion) -> list[int]:
    """Original event indices sorted by year; ties keep authored order."""
    return sorted(range(len(question.events)), key=lambda i: question.events[i].year)


def evaluate_blanks(question: StoryCompletionQuestion, answers: Any) -> list[bool]:
    """Judge every blank on its own; missing answers count as wrong."""
    submitted = answers if isinstance(answers, list) else []
    return [
        _blank_correct(blank, submitted[i] if i < len(submitted) else None)
        for i, blank in enumerate(question.blanks)
    ]


def _blank_correct(blank: StoryBlank, submitted: Any) -> bool:
    return _matches_text(submitted, blank.answer, blank.acceptable_answers)


def _evaluate_choice(question: MultipleChoiceQuestion | WhoSaidItQuestion, answer: Any) -> bool:
    return _is_index(answer) and answer == question.correct_index


def _evaluate_true_false(question: TrueFalseQuestion, answer: Any) -> bool:
    return isinstance(answer, bool) and answer == question.correct


def _evaluate_fill_blank(question: FillBlankQuestion, answer: Any) -> bool:
    return _matches_text(answer, question.answer, question.acceptable_answers)


def _evaluate_timeline(question: TimelineOrderQuestion, answer: Any) -> bool:
    if not isinstance(answer, list) or not all(_is_index(i) for i in answer):
        return False
    return answer == timeline_reference_order(question)


def _evaluate_story(question: StoryCompletionQuestion, answer: Any) -> bool:
    return all(evaluate_blanks(question, answer))


_EVALUATORS: dict[type, Callable[[Any, Any], bool]] = {
    MultipleChoiceQuestion: _evaluate_choice,
    TrueFalseQuestion: _evaluate_true_false,
    FillBlankQuestion: _evaluate_fill_blank,
    TimelineOrderQuestion: _evaluate_timeline,
    WhoSaidItQuestion: _evaluate_choice,
    StoryCompletionQuestion: _evaluate_story,
}


def evaluate(question: Any, answer: Any) -> bool:
    """Return whether ``answer`` is correct for ``question``.

    An answer of the wrong shape is simply incorrect. A value that is not one
    of the known question models raises ``TypeError``.
    """
    evaluator = _EVALUATORS.get(type(question))
    if evaluator is None:
        raise TypeError(f"Unsupported question type: {type(question).__name__}")
    return evaluator(question, answer)
