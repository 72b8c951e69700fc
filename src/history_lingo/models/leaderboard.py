"""Leaderboard snapshots and daily challenge records."""

from datetime import datetime
from enum import StrEnum

from pydantic import Field

from history_lingo.models.base import DocumentModel


class LeaderboardPeriod(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    ALLTIME = "alltime"

    @property
    def xp_field(self) -> str:
        """UserProfile field the period ranks by."""
        return {
            LeaderboardPeriod.DAILY: "dailyXp",
            LeaderboardPeriod.WEEKLY: "weeklyXp",
            LeaderboardPeriod.ALLTIME: "xp",
        }[self]


class LeaderboardEntry(DocumentModel):
    uid: str
    display_name: str = "Unknown"
    avatar_url: str = ""
    xp: int = 0
    level: int = 0


class LeaderboardSnapshot(DocumentModel):
    """Materialized top-N view, fully replaced on every computation."""

    updated_at: datetime
    rankings: list[LeaderboardEntry] = Field(default_factory=list)


class DailyChallenge(DocumentModel):
    date: str
    topic_id: str
    topic_name: str
    lesson_id: str
    title: str
    description: str
    xp_bonus: int
    created_at: datetime | None = None


class DailyChallengeCompletion(DocumentModel):
    date: str
    lesson_id: str
    xp_earned: int
    completed_at: datetime
