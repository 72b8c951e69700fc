"""Lesson session state and the messages it produces."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class SessionState(StrEnum):
    """Lesson session lifecycle states."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    ANSWERED = "answered"  # answer recorded, explanation pending
    COMPLETE = "complete"


class AnswerEvent(BaseModel):
    """Emitted by a submitted answer; the caller applies the side effects.

    ``xp_awarded`` is credited immediately on a correct answer and
    ``deduct_heart`` asks the caller to take one heart through the ledger.
    """

    question_index: int
    correct: bool
    xp_awarded: int = 0
    deduct_heart: bool = False
    blank_results: list[bool] | None = None
    explanation: str = ""


class SessionSnapshot(BaseModel):
    """Read-only view of a session for rendering."""

    state: SessionState
    lesson_id: str | None = None
    topic_id: str | None = None
    current_question_index: int = 0
    total_questions: int = 0
    answers: list[Any] = Field(default_factory=list)
    is_correct: bool | None = None
    show_explanation: bool = False
    correct_count: int = 0
    lesson_complete: bool = False
    progress: float = 0.0
    fun_fact: str | None = None
