"""Progression ledger: the only writer of persisted user progression state.

Every mutating operation is a single atomic commit. Counters change through
``Increment`` so concurrent sessions of the same user never lose updates;
level is the one derived field and is re-synced after XP changes.
"""

from datetime import timedelta

import structlog
from pydantic import BaseModel, Field

from history_lingo.clock import Clock, date_string, utcnow
from history_lingo.errors import UserNotFoundError
from history_lingo.gamification import rules
from history_lingo.gamification.achievements import AchievementEvaluator
from history_lingo.models.achievement import AchievementDefinition, UserAchievement
from history_lingo.models.leaderboard import DailyChallenge, DailyChallengeCompletion
from history_lingo.models.lesson import LessonResult
from history_lingo.models.user_profile import TopicProgress, UserProfile
from history_lingo.storage import paths
from history_lingo.storage.document_store import (
    MAX_BATCH_WRITES,
    DocumentStore,
    Increment,
    Transaction,
)

logger = structlog.get_logger()


class LessonOutcome(BaseModel):
    """What applying a lesson result changed."""

    xp_earned: int
    new_level: int
    previous_level: int
    leveled_up: bool = False
    achievements: list[AchievementDefinition] = Field(default_factory=list)


class StreakUpdate(BaseModel):
    current_streak: int
    is_new_day: bool = False
    streak_broken: bool = False
    freeze_used: bool = False
    first_activity: bool = False  # no earlier activity on record


class ProgressionLedger:
    """Transactional operations on ``users/{uid}`` and its subcollections.

    Args:
        store: Document store.
        achievements: Evaluator run after lesson results are applied.
        clock: Time source; dates are UTC calendar days.
    """

    def __init__(
        self,
        store: DocumentStore,
        achievements: AchievementEvaluator | None = None,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.achievements = achievements
        self._clock = clock

    def today(self) -> str:
        return date_string(self._clock())

    @staticmethod
    def _require_user(tx: Transaction, uid: str) -> UserProfile:
        data = tx.get(paths.user_path(uid))
        if data is None:
            raise UserNotFoundError(uid)
        return UserProfile.from_document(data)

    # Reads

    async def get_profile(self, uid: str) -> UserProfile:
        data = await self.store.get(paths.user_path(uid))
        if data is None:
            raise UserNotFoundError(uid)
        return UserProfile.from_document(data)

    async def get_topic_progress(self, uid: str, topic_id: str) -> TopicProgress | None:
        data = await self.store.get(paths.progress_path(uid, topic_id))
        return TopicProgress.from_document(data) if data is not None else None

    async def list_topic_progress(self, uid: str) -> list[TopicProgress]:
        docs = await self.store.list_documents(paths.progress_collection(uid))
        return [TopicProgress.from_document(d.data) for d in docs]

    async def fetch_user_achievements(self, uid: str) -> list[UserAchievement]:
        docs = await self.store.list_documents(paths.achievements_collection(uid))
        return [UserAchievement.from_document(d.data) for d in docs]

    async def fetch_daily_challenge(self, date: str | None = None) -> DailyChallenge | None:
        data = await self.store.get(paths.daily_challenge_path(date or self.today()))
        return DailyChallenge.from_document(data) if data is not None else None

    async def has_completed_daily_challenge(self, uid: str, date: str | None = None) -> bool:
        return await self.store.exists(paths.challenge_completion_path(uid, date or self.today()))

    # Profile lifecycle

    async def create_profile(self, uid: str, profile: UserProfile | None = None) -> UserProfile:
        """Create ``users/{uid}`` if absent; an existing profile is returned unchanged."""
        profile = profile or UserProfile()

        async def create(tx: Transaction) -> UserProfile:
            existing = tx.get(paths.user_path(uid))
            if existing is not None:
                return UserProfile.from_document(existing)
            created = profile.model_copy(update={"created_at": self._clock()})
            tx.set(paths.user_path(uid), created.to_document())
            return created

        result = await self.store.run_transaction(create)
        logger.info("profile_ready", uid=uid)
        return result

    async def reset_progress(self, uid: str) -> None:
        """Admin reset: zero progression, refill hearts, drop progress and achievements."""
        await self.get_profile(uid)
        docs = [
            *await self.store.list_documents(paths.progress_collection(uid)),
            *await self.store.list_documents(paths.achievements_collection(uid)),
        ]
        batch = self.store.batch()
        batch.update(
            paths.user_path(uid),
            {
                "xp": 0,
                "level": 0,
                "currentStreak": 0,
                "longestStreak": 0,
                "streakFreezes": 0,
                "heartsRemaining": rules.MAX_HEARTS,
                "heartsRegenAt": None,
                "lessonsCompleted": 0,
                "perfectLessons": 0,
                "dailyXp": 0,
                "weeklyXp": 0,
            },
        )
        for doc in docs:
            if len(batch) == MAX_BATCH_WRITES:
                await batch.commit()
                batch = self.store.batch()
            batch.delete(doc.path)
        await batch.commit()
        logger.warning("progress_reset", uid=uid, deleted_documents=len(docs))

    # Lesson results and level

    async def _sync_level(self, uid: str) -> tuple[int, int]:
        """Recompute level from stored XP and persist it if it changed.

        Returns:
            (stored level before the sync, level after)
        """
        profile = await self.get_profile(uid)
        new_level = rules.calculate_level(profile.xp)
        if new_level != profile.level:
            await self.store.update(paths.user_path(uid), {"level": new_level})
            logger.info("level_changed", uid=uid, old_level=profile.level, new_level=new_level)
        return profile.level, new_level

    async def apply_lesson_result(self, uid: str, result: LessonResult) -> LessonOutcome:
        """Credit a completed lesson to the user and their topic progress."""
        now = self._clock()
        today = date_string(now)

        async def apply(tx: Transaction) -> None:
            self._require_user(tx, uid)
            user_updates = {
                "xp": Increment(result.xp_earned),
                "dailyXp": Increment(result.xp_earned),
                "weeklyXp": Increment(result.xp_earned),
                "lessonsCompleted": Increment(1),
                "lastActiveDate": today,
            }
            if result.perfect_lesson:
                user_updates["perfectLessons"] = Increment(1)
            tx.update(paths.user_path(uid), user_updates)

            progress_ref = paths.progress_path(uid, result.topic_id)
            existing = tx.get(progress_ref) or {}
            tx.set(
                progress_ref,
                {
                    "topicId": result.topic_id,
                    "completedLessons": Increment(1),
                    "unlockedLessons": Increment(1),
                    "bestScore": max(existing.get("bestScore", 0), result.score),
                    "totalXpEarned": Increment(result.xp_earned),
                    "lastPlayed": now,
                },
                merge=True,
            )

        await self.store.run_transaction(apply)
        logger.info(
            "lesson_result_applied",
            uid=uid,
            lesson_id=result.lesson_id,
            topic_id=result.topic_id,
            xp_earned=result.xp_earned,
            score=result.score,
        )

        previous_level, new_level = await self._sync_level(uid)

        unlocked: list[AchievementDefinition] = []
        if self.achievements is not None:
            # achievement rewards can cross further XP and level thresholds
            while True:
                profile = await self.get_profile(uid)
                newly = await self.achievements.check_achievements(uid, profile.to_document())
                if not newly:
                    break
                unlocked.extend(newly)
                _, new_level = await self._sync_level(uid)

        return LessonOutcome(
            xp_earned=result.xp_earned,
            new_level=new_level,
            previous_level=previous_level,
            leveled_up=new_level > previous_level,
            achievements=unlocked,
        )

    # Hearts

    async def deduct_heart(self, uid: str) -> int:
        """Take one heart, never below zero.

        Reaching zero starts the regeneration timer; deducting at zero leaves
        an already running timer alone.

        Returns:
            Hearts remaining.
        """
        now = self._clock()

        async def deduct(tx: Transaction) -> int:
            profile = self._require_user(tx, uid)
            if profile.hearts_remaining <= 0:
                return 0
            remaining = profile.hearts_remaining - 1
            updates: dict = {"heartsRemaining": Increment(-1)}
            if remaining == 0:
                updates["heartsRegenAt"] = now + timedelta(minutes=rules.HEART_REGEN_MINUTES)
            tx.update(paths.user_path(uid), updates)
            return remaining

        remaining = await self.store.run_transaction(deduct)
        logger.debug("heart_deducted", uid=uid, hearts_remaining=remaining)
        return remaining

    async def check_heart_regen(self, uid: str) -> int:
        """Refill hearts once the regeneration time has passed.

        Returns:
            Hearts remaining after the check.
        """
        now = self._clock()

        async def regen(tx: Transaction) -> int:
            profile = self._require_user(tx, uid)
            if profile.hearts_remaining >= rules.MAX_HEARTS:
                return profile.hearts_remaining
            if profile.hearts_regen_at is not None and profile.hearts_regen_at <= now:
                tx.update(
                    paths.user_path(uid),
                    {"heartsRemaining": rules.MAX_HEARTS, "heartsRegenAt": None},
                )
                logger.info("hearts_regenerated", uid=uid)
                return rules.MAX_HEARTS
            return profile.hearts_remaining

        return await self.store.run_transaction(regen)

    # Streaks

    async def check_and_update_streak(self, uid: str) -> StreakUpdate:
        """Credit today's activity to the streak.

        Exactly one of: already credited today, continued from yesterday,
        preserved by consuming a freeze, or reset to 1 (broken).
        """
        now = self._clock()
        today = date_string(now)
        yesterday = date_string(now, -1)

        async def update(tx: Transaction) -> StreakUpdate:
            profile = self._require_user(tx, uid)
            user_ref = paths.user_path(uid)
            last_active = profile.last_active_date

            if last_active == today:
                return StreakUpdate(current_streak=profile.current_streak)

            if last_active == yesterday:
                new_streak = profile.current_streak + 1
                tx.update(
                    user_ref,
                    {
                        "currentStreak": Increment(1),
                        "longestStreak": max(new_streak, profile.longest_streak),
                        "lastActiveDate": today,
                    },
                )
                return StreakUpdate(current_streak=new_streak, is_new_day=True)

            if profile.streak_freezes > 0:
                tx.update(user_ref, {"streakFreezes": Increment(-1), "lastActiveDate": today})
                return StreakUpdate(
                    current_streak=profile.current_streak, is_new_day=True, freeze_used=True
                )

            tx.update(
                user_ref,
                {
                    "currentStreak": 1,
                    "longestStreak": max(1, profile.longest_streak),
                    "lastActiveDate": today,
                },
            )
            return StreakUpdate(
                current_streak=1,
                is_new_day=True,
                streak_broken=True,
                first_activity=not last_active,
            )

        result = await self.store.run_transaction(update)
        if result.is_new_day:
            logger.info(
                "streak_updated",
                uid=uid,
                current_streak=result.current_streak,
                streak_broken=result.streak_broken,
                freeze_used=result.freeze_used,
            )
        return result

    async def purchase_streak_freeze(self, uid: str) -> bool:
        """Spend ``STREAK_FREEZE_COST`` XP on one streak freeze.

        Returns:
            False, with nothing written, when the user has too little XP.
        """

        async def purchase(tx: Transaction) -> bool:
            profile = self._require_user(tx, uid)
            if profile.xp < rules.STREAK_FREEZE_COST:
                return False
            tx.update(
                paths.user_path(uid),
                {
                    "xp": Increment(-rules.STREAK_FREEZE_COST),
                    "streakFreezes": Increment(1),
                    "level": rules.calculate_level(profile.xp - rules.STREAK_FREEZE_COST),
                },
            )
            return True

        purchased = await self.store.run_transaction(purchase)
        logger.info("streak_freeze_purchase", uid=uid, purchased=purchased)
        return purchased

    # Daily challenge

    async def complete_daily_challenge(self, uid: str, lesson_id: str, xp_earned: int) -> bool:
        """Record today's challenge completion and award the bonus, once per day.

        Returns:
            False, writing nothing, if ``lesson_id`` is not today's challenge
            or today's completion was already recorded.
        """
        now = self._clock()
        today = date_string(now)
        bonus = rules.DAILY_CHALLENGE_BONUS

        async def complete(tx: Transaction) -> bool:
            self._require_user(tx, uid)
            challenge = tx.get(paths.daily_challenge_path(today))
            if challenge is None or challenge.get("lessonId") != lesson_id:
                logger.warning(
                    "daily_challenge_mismatch",
                    uid=uid,
                    lesson_id=lesson_id,
                    challenge_lesson_id=challenge.get("lessonId") if challenge else None,
                )
                return False
            completion_ref = paths.challenge_completion_path(uid, today)
            if tx.get(completion_ref) is not None:
                return False
            completion = DailyChallengeCompletion(
                date=today, lesson_id=lesson_id, xp_earned=xp_earned + bonus, completed_at=now
            )
            tx.set(completion_ref, completion.to_document())
            tx.update(
                paths.user_path(uid),
                {
                    "xp": Increment(bonus),
                    "dailyXp": Increment(bonus),
                    "weeklyXp": Increment(bonus),
                },
            )
            return True

        completed = await self.store.run_transaction(complete)
        if completed:
            logger.info("daily_challenge_completed", uid=uid, lesson_id=lesson_id, bonus=bonus)
            await self._sync_level(uid)
        return completed
