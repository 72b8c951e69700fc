"""XP rewards, level curve, hearts and streak economics."""

import math
from enum import StrEnum

from history_lingo.models.lesson import Difficulty

# XP rewards for various actions
CORRECT_ANSWER_XP = 10
PERFECT_LESSON_BONUS = 50
DAILY_STREAK_BONUS_PER_DAY = 5
DAILY_STREAK_BONUS_CAP = 50
FIRST_LESSON_OF_DAY_XP = 20
COMPLETE_TOPIC_XP = 500
DAILY_CHALLENGE_BONUS = 50

MAX_HEARTS = 5
HEART_REGEN_MINUTES = 30

STREAK_FREEZE_COST = 200

DAILY_GOALS: tuple[int, ...] = (30, 50, 100)
DEFAULT_DAILY_GOAL = 50

DIFFICULTY_XP_MULTIPLIER: dict[Difficulty, float] = {
    Difficulty.BEGINNER: 1.0,
    Difficulty.INTERMEDIATE: 1.5,
    Difficulty.ADVANCED: 2.0,
}


class LevelTitle(StrEnum):
    NOVICE = "Novice"
    SCHOLAR = "Scholar"
    HISTORIAN = "Historian"
    PROFESSOR = "Professor"
    GRANDMASTER = "Grandmaster"


# Inclusive upper level bound for each title
_LEVEL_TITLES: list[tuple[int, LevelTitle]] = [
    (5, LevelTitle.NOVICE),
    (15, LevelTitle.SCHOLAR),
    (30, LevelTitle.HISTORIAN),
    (50, LevelTitle.PROFESSOR),
]


def calculate_level(xp: int) -> int:
    """level = floor(sqrt(xp / 100))."""
    if xp <= 0:
        return 0
    # isqrt keeps the result exact for large totals
    return math.isqrt(xp // 100)


def xp_for_level(level: int) -> int:
    """Total XP at which ``level`` is reached."""
    return level * level * 100


def level_title(level: int) -> LevelTitle:
    for upper, title in _LEVEL_TITLES:
        if level <= upper:
            return title
    return LevelTitle.GRANDMASTER


def level_progress(xp: int) -> float:
    """Fraction (0-1) of the way from the current level to the next."""
    level = calculate_level(xp)
    start = xp_for_level(level)
    span = xp_for_level(level + 1) - start
    return (xp - start) / span


def calculate_streak_bonus(streak_days: int) -> int:
    return min(streak_days * DAILY_STREAK_BONUS_PER_DAY, DAILY_STREAK_BONUS_CAP)


def lesson_xp(correct_answers: int, perfect: bool) -> int:
    return correct_answers * CORRECT_ANSWER_XP + (PERFECT_LESSON_BONUS if perfect else 0)


def lesson_xp_reward(question_count: int, difficulty: Difficulty) -> int:
    """Advertised XP reward for a generated lesson."""
    return round(question_count * CORRECT_ANSWER_XP * DIFFICULTY_XP_MULTIPLIER[difficulty])


def estimated_minutes(question_count: int) -> int:
    """About thirty seconds per question."""
    return math.ceil(question_count * 0.5)


def daily_goal_progress(daily_xp: int, goal: int = DEFAULT_DAILY_GOAL) -> float:
    if goal <= 0:
        return 1.0
    return min(daily_xp / goal, 1.0)
