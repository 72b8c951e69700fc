"""Achievement catalog entries and persisted grant records."""

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import Field

from history_lingo.models.base import DocumentModel


class AchievementCategory(StrEnum):
    LEARNING = "learning"
    STREAK = "streak"
    MASTERY = "mastery"
    LEVEL = "level"
    XP = "xp"


class AchievementCondition(DocumentModel):
    field: str  # camelCase UserProfile field, e.g. "lessonsCompleted"
    threshold: int


class AchievementDefinition(DocumentModel):
    id: str
    name: str
    description: str
    icon: str
    category: AchievementCategory
    xp_reward: int = Field(ge=0)
    condition: AchievementCondition

    def is_met(self, stats: dict) -> bool:
        value = stats.get(self.condition.field)
        if isinstance(value, bool) or not isinstance(value, int | float):
            return False
        return value >= self.condition.threshold


class UserAchievement(DocumentModel):
    """Grant record; its existence means the achievement was awarded."""

    achievement_id: str
    unlocked_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    xp_rewarded: int = 0
