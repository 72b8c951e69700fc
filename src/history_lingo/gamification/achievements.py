"""Achievement granting: each achievement at most once, atomically with its XP."""

import structlog

from history_lingo.clock import Clock, utcnow
from history_lingo.models.achievement import AchievementDefinition, UserAchievement
from history_lingo.storage import paths
from history_lingo.storage.document_store import DocumentStore, Increment, Transaction

logger = structlog.get_logger()


class AchievementEvaluator:
    """Checks user stats against the achievement catalog.

    Args:
        store: Document store holding the grant records.
        catalog: Achievement definitions, in grant order.
        clock: Time source for ``unlockedAt``.
    """

    def __init__(
        self,
        store: DocumentStore,
        catalog: list[AchievementDefinition],
        clock: Clock = utcnow,
    ):
        self.store = store
        self.catalog = list(catalog)
        self._clock = clock

    async def fetch_user_achievements(self, uid: str) -> list[UserAchievement]:
        docs = await self.store.list_documents(paths.achievements_collection(uid))
        return [UserAchievement.from_document(d.data) for d in docs]

    async def check_achievements(self, uid: str, stats: dict) -> list[AchievementDefinition]:
        """Grant every achievement whose threshold ``stats`` now meets.

        ``stats`` is keyed by camelCase profile field. Grant records and the
        summed XP reward are written in one transaction; already granted ids
        are read from the store, so repeated calls never grant twice.

        Returns:
            Newly unlocked definitions in catalog order.
        """

        async def grant(tx: Transaction) -> list[AchievementDefinition]:
            unlocked = [
                achievement
                for achievement in self.catalog
                if achievement.is_met(stats)
                and tx.get(paths.achievement_path(uid, achievement.id)) is None
            ]
            if not unlocked:
                return []

            now = self._clock()
            total_reward = 0
            for achievement in unlocked:
                record = UserAchievement(
                    achievement_id=achievement.id,
                    unlocked_at=now,
                    xp_rewarded=achievement.xp_reward,
                )
                tx.set(paths.achievement_path(uid, achievement.id), record.to_document())
                total_reward += achievement.xp_reward

            if total_reward > 0:
                tx.update(
                    paths.user_path(uid),
                    {
                        "xp": Increment(total_reward),
                        "dailyXp": Increment(total_reward),
                        "weeklyXp": Increment(total_reward),
                    },
                )
            return unlocked

        unlocked = await self.store.run_transaction(grant)
        if unlocked:
            logger.info(
                "achievements_unlocked",
                uid=uid,
                achievements=[a.id for a in unlocked],
                xp_reward=sum(a.xp_reward for a in unlocked),
            )
        return unlocked
