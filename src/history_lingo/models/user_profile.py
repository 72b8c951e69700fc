"""User profile model for tracking progression across sessions."""

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import Field

from history_lingo.models.base import DocumentModel
from history_lingo.models.lesson import AgeCategory

MAX_HEARTS = 5


class AgeGroup(StrEnum):
    UNDER_13 = "under13"
    TEEN = "13-17"
    YOUNG_ADULT = "18-25"
    ADULT = "26-40"
    SENIOR = "40+"

    @property
    def category(self) -> AgeCategory:
        """Content age category used when requesting lessons."""
        if self is AgeGroup.UNDER_13:
            return AgeCategory.CHILD
        if self is AgeGroup.TEEN:
            return AgeCategory.TEEN
        return AgeCategory.ADULT


class SkillLevel(StrEnum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class UserPreferences(DocumentModel):
    selected_topics: list[str] = Field(default_factory=list)
    interests: list[str] = Field(default_factory=list)


class UserProfile(DocumentModel):
    """Authoritative per-user state stored at ``users/{uid}``.

    Only the progression ledger writes this document.
    """

    display_name: str = ""
    email: str = ""
    avatar_url: str = ""
    age: AgeGroup = AgeGroup.ADULT
    skill_level: SkillLevel = SkillLevel.BEGINNER
    preferences: UserPreferences = Field(default_factory=UserPreferences)
    xp: int = Field(default=0, ge=0)
    level: int = Field(default=0, ge=0)
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    last_active_date: str = ""  # "2026-02-12"
    streak_freezes: int = Field(default=0, ge=0)
    hearts_remaining: int = Field(default=MAX_HEARTS, ge=0, le=MAX_HEARTS)
    hearts_regen_at: datetime | None = None
    lessons_completed: int = Field(default=0, ge=0)
    perfect_lessons: int = Field(default=0, ge=0)
    daily_xp: int = Field(default=0, ge=0)
    weekly_xp: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class TopicProgress(DocumentModel):
    """Per-topic progress stored at ``users/{uid}/progress/{topicId}``."""

    topic_id: str
    completed_lessons: int = 0
    unlocked_lessons: int = 0
    best_score: int = 0
    total_xp_earned: int = 0
    last_played: datetime | None = None
