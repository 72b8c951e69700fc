"""Lesson content and lesson outcome models."""

from datetime import datetime
from enum import StrEnum

from pydantic import Field

from history_lingo.models.base import DocumentModel
from history_lingo.models.question import Question

DAILY_CHALLENGE_ORDER = -1


class Difficulty(StrEnum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class AgeCategory(StrEnum):
    CHILD = "child"
    TEEN = "teen"
    ADULT = "adult"


class Lesson(DocumentModel):
    """An immutable, validated set of questions for one topic.

    ``order`` is the lesson's position within its topic; daily challenge
    lessons use ``DAILY_CHALLENGE_ORDER`` and never take part in sequencing.
    """

    id: str
    title: str
    description: str
    difficulty: Difficulty
    age_group: AgeCategory
    order: int
    xp_reward: int = Field(ge=0)
    estimated_minutes: int = Field(ge=0)
    questions: list[Question] = Field(min_length=8, max_length=12)
    fun_facts: list[str] = Field(min_length=3, max_length=8)
    generated_by: str | None = None
    generated_at: datetime | None = None
    reviewed: bool = False

    @property
    def is_daily_challenge(self) -> bool:
        return self.order == DAILY_CHALLENGE_ORDER


class LessonResult(DocumentModel):
    """Outcome of one completed lesson session, submitted to the ledger once."""

    lesson_id: str
    topic_id: str
    score: int = Field(ge=0, le=100)
    total_questions: int = Field(gt=0)
    correct_answers: int = Field(ge=0)
    xp_earned: int = Field(ge=0)
    perfect_lesson: bool
    time_spent_seconds: int = Field(ge=0)
