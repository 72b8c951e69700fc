"""Tests for the progression ledger."""

from datetime import timedelta

import pytest

from history_lingo.errors import UserNotFoundError
from history_lingo.gamification.achievements import AchievementEvaluator
from history_lingo.gamification.ledger import ProgressionLedger
from history_lingo.models.lesson import LessonResult
from history_lingo.storage import paths

from conftest import NOW, make_achievement, make_daily_challenge


def lesson_result(xp: int = 60, score: int = 75, perfect: bool = False, topic: str = "ancient-egypt"):
    return LessonResult(
        lesson_id="lesson-1",
        topic_id=topic,
        score=score,
        total_questions=8,
        correct_answers=6,
        xp_earned=xp,
        perfect_lesson=perfect,
        time_spent_seconds=120,
    )


class TestProfiles:
    async def test_create_profile_defaults(self, ledger):
        profile = await ledger.create_profile("new")
        assert profile.hearts_remaining == 5
        assert profile.xp == 0
        assert profile.created_at == NOW
        assert (await ledger.get_profile("new")).hearts_remaining == 5

    async def test_create_profile_keeps_existing(self, ledger, seed_user):
        await seed_user("u1", xp=500)
        profile = await ledger.create_profile("u1")
        assert profile.xp == 500

    async def test_missing_user(self, ledger):
        with pytest.raises(UserNotFoundError):
            await ledger.get_profile("ghost")
        with pytest.raises(UserNotFoundError):
            await ledger.deduct_heart("ghost")


class TestApplyLessonResult:
    async def test_increments_counters(self, ledger, seed_user, store):
        await seed_user("u1", xp=40, daily_xp=5, weekly_xp=5)
        outcome = await ledger.apply_lesson_result("u1", lesson_result(xp=60))

        profile = await ledger.get_profile("u1")
        # 60 lesson XP plus 25 for the first_lesson achievement
        assert profile.xp == 125
        assert profile.daily_xp == 90
        assert profile.weekly_xp == 90
        assert profile.lessons_completed == 1
        assert profile.perfect_lessons == 0
        assert profile.last_active_date == "2026-02-12"
        assert profile.level == 1
        assert outcome.xp_earned == 60
        assert outcome.leveled_up is True
        assert [a.id for a in outcome.achievements] == ["first_lesson"]

    async def test_progress_upsert_keeps_best_score(self, ledger, seed_user):
        await seed_user("u1")
        await ledger.apply_lesson_result("u1", lesson_result(score=90))
        await ledger.apply_lesson_result("u1", lesson_result(score=50, xp=40))

        progress = await ledger.get_topic_progress("u1", "ancient-egypt")
        assert progress.completed_lessons == 2
        assert progress.unlocked_lessons == 2
        assert progress.best_score == 90
        assert progress.total_xp_earned == 100
        assert progress.last_played == NOW

    async def test_perfect_lesson_counted(self, ledger, seed_user):
        await seed_user("u1")
        outcome = await ledger.apply_lesson_result(
            "u1", lesson_result(xp=130, score=100, perfect=True)
        )
        profile = await ledger.get_profile("u1")
        assert profile.perfect_lessons == 1
        assert {a.id for a in outcome.achievements} == {"first_lesson", "perfect_1"}
        assert profile.xp == 130 + 25 + 25

    async def test_no_level_up_within_level(self, ledger, seed_user):
        await seed_user("u1", xp=100, level=1, lessons_completed=5)
        outcome = await ledger.apply_lesson_result("u1", lesson_result(xp=60))
        assert outcome.leveled_up is False
        assert outcome.previous_level == outcome.new_level == 1

    async def test_without_achievement_evaluator(self, store, clock, seed_user):
        ledger = ProgressionLedger(store, clock=clock)
        await seed_user("u1")
        outcome = await ledger.apply_lesson_result("u1", lesson_result(xp=60))
        assert outcome.achievements == []
        assert (await ledger.get_profile("u1")).xp == 60

    async def test_achievement_reward_unlocks_further_achievements(self, store, clock, seed_user):
        evaluator = AchievementEvaluator(
            store,
            [
                make_achievement("first_lesson", "lessonsCompleted", 1, xp_reward=100),
                make_achievement("xp_100", "xp", 100, xp_reward=10),
                make_achievement("level_1", "level", 1, xp_reward=0),
            ],
            clock,
        )
        ledger = ProgressionLedger(store, evaluator, clock)
        await seed_user("u1")

        outcome = await ledger.apply_lesson_result("u1", lesson_result(xp=10))

        assert [a.id for a in outcome.achievements] == ["first_lesson", "xp_100", "level_1"]
        profile = await ledger.get_profile("u1")
        assert profile.xp == 120
        assert profile.level == outcome.new_level == 1

    async def test_list_topic_progress(self, ledger, seed_user):
        await seed_user("u1")
        await ledger.apply_lesson_result("u1", lesson_result(topic="ancient-egypt"))
        await ledger.apply_lesson_result("u1", lesson_result(topic="viking-age"))
        topics = {p.topic_id for p in await ledger.list_topic_progress("u1")}
        assert topics == {"ancient-egypt", "viking-age"}


class TestHearts:
    async def test_deduct_to_zero_sets_regen(self, ledger, seed_user):
        await seed_user("u1", hearts_remaining=1)
        assert await ledger.deduct_heart("u1") == 0
        profile = await ledger.get_profile("u1")
        assert profile.hearts_remaining == 0
        assert profile.hearts_regen_at == NOW + timedelta(minutes=30)

    async def test_deduct_at_zero_keeps_timer(self, ledger, seed_user, clock):
        regen_at = NOW + timedelta(minutes=10)
        await seed_user("u1", hearts_remaining=0, hearts_regen_at=regen_at)
        clock.advance(minutes=5)
        assert await ledger.deduct_heart("u1") == 0
        profile = await ledger.get_profile("u1")
        assert profile.hearts_remaining == 0
        assert profile.hearts_regen_at == regen_at

    async def test_deduct_above_one_leaves_timer_unset(self, ledger, seed_user):
        await seed_user("u1")
        assert await ledger.deduct_heart("u1") == 4
        assert (await ledger.get_profile("u1")).hearts_regen_at is None

    async def test_regen_before_time(self, ledger, seed_user):
        await seed_user("u1", hearts_remaining=0, hearts_regen_at=NOW + timedelta(minutes=1))
        assert await ledger.check_heart_regen("u1") == 0

    async def test_regen_after_time(self, ledger, seed_user, clock):
        await seed_user("u1", hearts_remaining=0, hearts_regen_at=NOW + timedelta(minutes=30))
        clock.advance(minutes=30)
        assert await ledger.check_heart_regen("u1") == 5
        profile = await ledger.get_profile("u1")
        assert profile.hearts_remaining == 5
        assert profile.hearts_regen_at is None


class TestStreak:
    async def test_same_day_is_noop(self, ledger, seed_user):
        await seed_user("u1", current_streak=4, longest_streak=4, last_active_date="2026-02-12")
        update = await ledger.check_and_update_streak("u1")
        assert update.current_streak == 4
        assert update.is_new_day is False
        assert (await ledger.get_profile("u1")).current_streak == 4

    async def test_continuation(self, ledger, seed_user):
        await seed_user("u1", current_streak=4, longest_streak=4, last_active_date="2026-02-11")
        update = await ledger.check_and_update_streak("u1")
        profile = await ledger.get_profile("u1")
        assert update.current_streak == 5
        assert profile.current_streak == 5
        assert profile.longest_streak == 5
        assert profile.last_active_date == "2026-02-12"

    async def test_continuation_keeps_higher_longest(self, ledger, seed_user):
        await seed_user("u1", current_streak=2, longest_streak=9, last_active_date="2026-02-11")
        await ledger.check_and_update_streak("u1")
        assert (await ledger.get_profile("u1")).longest_streak == 9

    async def test_gap_without_freeze_breaks(self, ledger, seed_user):
        await seed_user("u1", current_streak=6, longest_streak=6, last_active_date="2026-02-09")
        update = await ledger.check_and_update_streak("u1")
        profile = await ledger.get_profile("u1")
        assert update.streak_broken is True
        assert update.freeze_used is False
        assert profile.current_streak == 1
        assert profile.longest_streak == 6

    async def test_gap_with_freeze_preserves(self, ledger, seed_user):
        await seed_user(
            "u1",
            current_streak=6,
            longest_streak=6,
            streak_freezes=1,
            last_active_date="2026-02-09",
        )
        update = await ledger.check_and_update_streak("u1")
        profile = await ledger.get_profile("u1")
        assert update.streak_broken is False
        assert update.freeze_used is True
        assert profile.current_streak == 6
        assert profile.streak_freezes == 0
        assert profile.last_active_date == "2026-02-12"

    async def test_brand_new_user(self, ledger, seed_user):
        await seed_user("u1")
        update = await ledger.check_and_update_streak("u1")
        assert update.current_streak == 1
        assert update.first_activity is True
        profile = await ledger.get_profile("u1")
        assert profile.current_streak <= profile.longest_streak


class TestStreakFreeze:
    async def test_purchase(self, ledger, seed_user):
        await seed_user("u1", xp=450, level=2)
        assert await ledger.purchase_streak_freeze("u1") is True
        profile = await ledger.get_profile("u1")
        assert profile.xp == 250
        assert profile.level == 1
        assert profile.streak_freezes == 1

    async def test_insufficient_xp(self, ledger, seed_user, store):
        await seed_user("u1", xp=199, level=1)
        before = await store.get(paths.user_path("u1"))
        assert await ledger.purchase_streak_freeze("u1") is False
        assert await store.get(paths.user_path("u1")) == before


class TestDailyChallenge:
    async def test_complete_once_per_day(self, ledger, seed_user, store):
        await seed_user("u1")
        await store.set(
            paths.daily_challenge_path("2026-02-12"), make_daily_challenge("lesson-x").to_document()
        )
        assert await ledger.has_completed_daily_challenge("u1") is False
        assert await ledger.complete_daily_challenge("u1", "lesson-x", 200) is True
        assert await ledger.complete_daily_challenge("u1", "lesson-x", 200) is False

        profile = await ledger.get_profile("u1")
        assert profile.xp == 50
        assert profile.daily_xp == 50
        assert await ledger.has_completed_daily_challenge("u1") is True

    async def test_no_challenge_today(self, ledger, seed_user, store):
        await seed_user("u1")
        # yesterday's challenge does not count today
        await store.set(
            paths.daily_challenge_path("2026-02-11"), make_daily_challenge("old", "2026-02-11").to_document()
        )
        assert await ledger.complete_daily_challenge("u1", "old", 200) is False
        assert (await ledger.get_profile("u1")).xp == 0
        assert await ledger.has_completed_daily_challenge("u1") is False

    async def test_other_lesson_rejected(self, ledger, seed_user, store):
        await seed_user("u1")
        await store.set(
            paths.daily_challenge_path("2026-02-12"), make_daily_challenge("lesson-x").to_document()
        )
        assert await ledger.complete_daily_challenge("u1", "lesson-y", 200) is False
        assert (await ledger.get_profile("u1")).xp == 0
        assert await ledger.complete_daily_challenge("u1", "lesson-x", 200) is True

    async def test_fetch_daily_challenge(self, ledger, store):
        assert await ledger.fetch_daily_challenge() is None
        challenge = make_daily_challenge("abc")
        await store.set(paths.daily_challenge_path("2026-02-12"), challenge.to_document())
        fetched = await ledger.fetch_daily_challenge()
        assert fetched.lesson_id == "abc"


async def test_reset_progress(ledger, seed_user, store):
    await seed_user("u1", xp=900, level=3, current_streak=3, longest_streak=5, hearts_remaining=2)
    await ledger.apply_lesson_result("u1", lesson_result())
    assert await ledger.fetch_user_achievements("u1")

    await ledger.reset_progress("u1")

    profile = await ledger.get_profile("u1")
    assert profile.xp == 0
    assert profile.level == 0
    assert profile.current_streak == 0
    assert profile.hearts_remaining == 5
    assert profile.display_name == "U1"
    assert await ledger.list_topic_progress("u1") == []
    assert await ledger.fetch_user_achievements("u1") == []
