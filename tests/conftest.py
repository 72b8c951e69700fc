"""Shared fixtures: in-memory store, fixed clock, ledger and sample lessons."""

from datetime import UTC, datetime, timedelta

import pytest

from history_lingo.gamification.achievements import AchievementEvaluator
from history_lingo.gamification.ledger import ProgressionLedger
from history_lingo.models.achievement import (
    AchievementCategory,
    AchievementCondition,
    AchievementDefinition,
)
from history_lingo.models.leaderboard import DailyChallenge
from history_lingo.models.lesson import AgeCategory, Difficulty, Lesson
from history_lingo.models.question import MultipleChoiceQuestion
from history_lingo.models.user_profile import UserProfile
from history_lingo.storage import paths
from history_lingo.storage.memory import MemoryDocumentStore

NOW = datetime(2026, 2, 12, 15, 30, tzinfo=UTC)


class FrozenClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_question(n: int) -> MultipleChoiceQuestion:
    return MultipleChoiceQuestion(
        prompt=f"Question {n}?",
        options=["right", "wrong a", "wrong b", "wrong c"],
        correct_index=0,
        explanation=f"Explanation {n}",
    )


def make_lesson(
    lesson_id: str = "lesson-1", questions: int = 8, order: int = 0, **overrides
) -> Lesson:
    data = {
        "id": lesson_id,
        "title": "The Pharaohs",
        "description": "Rulers of the Nile",
        "difficulty": Difficulty.BEGINNER,
        "age_group": AgeCategory.ADULT,
        "order": order,
        "xp_reward": questions * 10,
        "estimated_minutes": 4,
        "questions": [make_question(i) for i in range(questions)],
        "fun_facts": ["Fact A", "Fact B", "Fact C"],
    }
    data.update(overrides)
    return Lesson(**data)


def make_achievement(
    achievement_id: str, field: str, threshold: int, xp_reward: int = 25
) -> AchievementDefinition:
    return AchievementDefinition(
        id=achievement_id,
        name=achievement_id.replace("_", " ").title(),
        description=f"{field} >= {threshold}",
        icon="*",
        category=AchievementCategory.LEARNING,
        xp_reward=xp_reward,
        condition=AchievementCondition(field=field, threshold=threshold),
    )


def make_daily_challenge(lesson_id: str, date: str = "2026-02-12") -> DailyChallenge:
    return DailyChallenge(
        date=date,
        topic_id="viking-age",
        topic_name="Viking Age",
        lesson_id=lesson_id,
        title="Raiders",
        description="Longships",
        xp_bonus=50,
    )


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def catalog():
    return [
        make_achievement("first_lesson", "lessonsCompleted", 1, xp_reward=25),
        make_achievement("perfect_1", "perfectLessons", 1, xp_reward=25),
        make_achievement("lessons_10", "lessonsCompleted", 10, xp_reward=50),
    ]


@pytest.fixture
def evaluator(store, catalog, clock):
    return AchievementEvaluator(store, catalog, clock)


@pytest.fixture
def ledger(store, evaluator, clock):
    return ProgressionLedger(store, evaluator, clock)


@pytest.fixture
def seed_user(store):
    """Write a profile document; keyword arguments override profile fields."""

    async def _seed(uid: str = "u1", **fields) -> UserProfile:
        fields.setdefault("display_name", uid.upper())
        profile = UserProfile(created_at=NOW, **fields)
        await store.set(paths.user_path(uid), profile.to_document())
        return profile

    return _seed
