"""Population-wide maintenance jobs.

Every sweep selects only the documents that currently qualify and commits in
bounded chunks, so re-running a job, or resuming one that died mid-sweep,
never applies a change twice.
"""

import random
from enum import StrEnum

import structlog
from pydantic import BaseModel

from history_lingo.clock import Clock, date_string, utcnow
from history_lingo.content.catalog import TopicCatalog
from history_lingo.content.provider import ContentProvider
from history_lingo.errors import JobError
from history_lingo.gamification import rules
from history_lingo.models.leaderboard import (
    DailyChallenge,
    LeaderboardEntry,
    LeaderboardPeriod,
    LeaderboardSnapshot,
)
from history_lingo.models.lesson import DAILY_CHALLENGE_ORDER, AgeCategory, Difficulty
from history_lingo.storage import paths
from history_lingo.storage.chunked import commit_in_chunks
from history_lingo.storage.document_store import (
    MAX_BATCH_WRITES,
    Document,
    DocumentStore,
    Increment,
    Transaction,
)

logger = structlog.get_logger()

DAILY_CHALLENGE_TITLE_PREFIX = "Daily Challenge: "


class JobName(StrEnum):
    STREAK_SWEEP = "streak_sweep"
    DAILY_XP_RESET = "daily_xp_reset"
    WEEKLY_XP_RESET = "weekly_xp_reset"
    LEADERBOARD = "leaderboard"
    DAILY_CHALLENGE = "daily_challenge"


class JobReport(BaseModel):
    job: JobName
    processed: int = 0
    chunks: int = 0
    skipped: bool = False
    detail: str = ""


class MaintenanceJobs:
    """Scheduled sweeps over ``users`` plus leaderboard and daily challenge upkeep.

    Args:
        store: Document store.
        provider: Content provider used for the daily challenge lesson.
        catalog: Topics the daily challenge is drawn from.
        clock: Time source; all dates are UTC.
        chunk_size: Writes per atomic commit in sweeps.
        leaderboard_size: Entries kept per leaderboard period.
        rng: Random source for the daily challenge pick.
    """

    def __init__(
        self,
        store: DocumentStore,
        provider: ContentProvider | None = None,
        catalog: TopicCatalog | None = None,
        clock: Clock = utcnow,
        chunk_size: int = MAX_BATCH_WRITES - 1,
        leaderboard_size: int = 100,
        rng: random.Random | None = None,
    ):
        self.store = store
        self.provider = provider
        self.catalog = catalog
        self._clock = clock
        self.chunk_size = chunk_size
        self.leaderboard_size = leaderboard_size
        self._rng = rng or random.Random()

    async def run(self, job: JobName | str) -> JobReport:
        """Run one job by name."""
        handlers = {
            JobName.STREAK_SWEEP: self.reset_broken_streaks,
            JobName.DAILY_XP_RESET: self.reset_daily_xp,
            JobName.WEEKLY_XP_RESET: self.reset_weekly_xp,
            JobName.LEADERBOARD: self.compute_leaderboards,
            JobName.DAILY_CHALLENGE: self.generate_daily_challenge,
        }
        return await handlers[JobName(job)]()

    async def reset_broken_streaks(self) -> JobReport:
        """Break streaks of users inactive both yesterday and today.

        A user holding a freeze spends one instead; the missed day is then
        counted as covered, so the user no longer qualifies for this sweep.
        """
        yesterday = date_string(self._clock(), -1)
        docs = await self.store.query(
            paths.USERS,
            where=[("currentStreak", ">", 0), ("lastActiveDate", "<", yesterday)],
        )

        frozen = 0

        def update(doc: Document) -> dict | None:
            nonlocal frozen
            # current data; the user may have checked in since the query
            data = doc.data
            if data.get("currentStreak", 0) <= 0 or data.get("lastActiveDate", "") >= yesterday:
                return None
            if data.get("streakFreezes", 0) > 0:
                frozen += 1
                return {"streakFreezes": Increment(-1), "lastActiveDate": yesterday}
            return {"currentStreak": 0}

        processed, chunks = await commit_in_chunks(self.store, docs, update, self.chunk_size)
        logger.info(
            "broken_streaks_processed",
            processed=processed,
            freezes_used=frozen,
            streaks_reset=processed - frozen,
            chunks=chunks,
        )
        return JobReport(
            job=JobName.STREAK_SWEEP,
            processed=processed,
            chunks=chunks,
            detail=f"{frozen} freezes used",
        )

    async def _reset_field(self, job: JobName, field: str) -> JobReport:
        docs = await self.store.query(paths.USERS, where=[(field, ">", 0)])

        def update(doc: Document) -> dict | None:
            return {field: 0} if doc.data.get(field, 0) > 0 else None

        processed, chunks = await commit_in_chunks(self.store, docs, update, self.chunk_size)
        logger.info("xp_field_reset", field=field, processed=processed, chunks=chunks)
        return JobReport(job=job, processed=processed, chunks=chunks)

    async def reset_daily_xp(self) -> JobReport:
        return await self._reset_field(JobName.DAILY_XP_RESET, "dailyXp")

    async def reset_weekly_xp(self) -> JobReport:
        return await self._reset_field(JobName.WEEKLY_XP_RESET, "weeklyXp")

    async def compute_leaderboards(self) -> JobReport:
        """Replace each period's snapshot with its current top entries."""
        now = self._clock()
        total = 0
        for period in LeaderboardPeriod:
            field = period.xp_field
            docs = await self.store.query(
                paths.USERS, order_by=field, descending=True, limit=self.leaderboard_size
            )
            rankings = [
                LeaderboardEntry(
                    uid=doc.id,
                    display_name=doc.data.get("displayName") or "Unknown",
                    avatar_url=doc.data.get("avatarUrl") or "",
                    xp=doc.data.get(field, 0),
                    level=doc.data.get("level", 0),
                )
                for doc in docs
            ]
            snapshot = LeaderboardSnapshot(updated_at=now, rankings=rankings)
            await self.store.set(paths.leaderboard_path(period.value), snapshot.to_document())
            logger.info("leaderboard_updated", period=period.value, entries=len(rankings))
            total += len(rankings)
        return JobReport(job=JobName.LEADERBOARD, processed=total, chunks=len(LeaderboardPeriod))

    async def read_leaderboard(self, period: LeaderboardPeriod | str) -> LeaderboardSnapshot | None:
        data = await self.store.get(paths.leaderboard_path(LeaderboardPeriod(period).value))
        return LeaderboardSnapshot.from_document(data) if data is not None else None

    async def generate_daily_challenge(self) -> JobReport:
        """Create today's challenge unless one already exists.

        Generation failures propagate; the challenge record is written only
        after its lesson exists.
        """
        now = self._clock()
        today = date_string(now)
        challenge_ref = paths.daily_challenge_path(today)

        if await self.store.exists(challenge_ref):
            logger.info("daily_challenge_exists", date=today)
            return JobReport(job=JobName.DAILY_CHALLENGE, skipped=True, detail=today)

        if self.provider is None or self.catalog is None:
            raise JobError(JobName.DAILY_CHALLENGE, "content provider and topic catalog required")
        topics = self.catalog.all_topics()
        if not topics:
            raise JobError(JobName.DAILY_CHALLENGE, "topic catalog is empty")

        topic = self._rng.choice(topics)
        subcategory = self._rng.choice(topic.subcategories) if topic.subcategories else topic.name

        try:
            lesson = await self.provider.generate_lesson(
                topic.id,
                subcategory,
                Difficulty.ADVANCED,
                AgeCategory.ADULT,
                order=DAILY_CHALLENGE_ORDER,
                topic_name=topic.name,
                title_prefix=DAILY_CHALLENGE_TITLE_PREFIX,
            )
        except Exception:
            logger.exception("daily_challenge_generation_failed", date=today, topic_id=topic.id)
            raise

        challenge = DailyChallenge(
            date=today,
            topic_id=topic.id,
            topic_name=topic.name,
            lesson_id=lesson.id,
            title=lesson.title.removeprefix(DAILY_CHALLENGE_TITLE_PREFIX),
            description=lesson.description,
            xp_bonus=rules.DAILY_CHALLENGE_BONUS,
            created_at=now,
        )

        async def create(tx: Transaction) -> bool:
            # Another run may have finished while this one was generating
            if tx.get(challenge_ref) is not None:
                return False
            tx.set(challenge_ref, challenge.to_document())
            return True

        if not await self.store.run_transaction(create):
            logger.warning("daily_challenge_created_concurrently", date=today, lesson_id=lesson.id)
            return JobReport(job=JobName.DAILY_CHALLENGE, skipped=True, detail=today)

        logger.info(
            "daily_challenge_generated",
            date=today,
            topic_id=topic.id,
            lesson_id=lesson.id,
            title=challenge.title,
        )
        return JobReport(job=JobName.DAILY_CHALLENGE, processed=1, detail=today)
