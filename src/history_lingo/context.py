"""Wires the store, ledger, content and jobs together for one process."""

from dataclasses import dataclass

import structlog

from history_lingo.clock import Clock, utcnow
from history_lingo.config import Settings, load_achievements
from history_lingo.content.catalog import TopicCatalog
from history_lingo.content.provider import LessonGenerator, StoredContentProvider
from history_lingo.gamification.achievements import AchievementEvaluator
from history_lingo.gamification.ledger import ProgressionLedger
from history_lingo.jobs.maintenance import MaintenanceJobs
from history_lingo.storage.document_store import DocumentStore
from history_lingo.storage.json_file import JsonFileDocumentStore
from history_lingo.storage.memory import MemoryDocumentStore

logger = structlog.get_logger()


def create_store(settings: Settings) -> DocumentStore:
    if settings.storage_backend == "memory":
        return MemoryDocumentStore()
    return JsonFileDocumentStore(settings.database_path)


@dataclass
class AppContext:
    settings: Settings
    store: DocumentStore
    catalog: TopicCatalog
    achievements: AchievementEvaluator
    ledger: ProgressionLedger
    provider: StoredContentProvider
    jobs: MaintenanceJobs
    clock: Clock = utcnow

    @classmethod
    def build(
        cls,
        settings: Settings,
        store: DocumentStore | None = None,
        generator: LessonGenerator | None = None,
        clock: Clock = utcnow,
    ) -> "AppContext":
        store = store or create_store(settings)
        catalog = TopicCatalog.load()
        achievements = AchievementEvaluator(store, load_achievements(), clock)
        provider = StoredContentProvider(store, generator, clock)
        ctx = cls(
            settings=settings,
            store=store,
            catalog=catalog,
            achievements=achievements,
            ledger=ProgressionLedger(store, achievements, clock),
            provider=provider,
            jobs=MaintenanceJobs(
                store,
                provider,
                catalog,
                clock,
                chunk_size=settings.write_batch_size,
                leaderboard_size=settings.leaderboard_size,
            ),
            clock=clock,
        )
        logger.info(
            "app_context_ready",
            storage_backend=settings.storage_backend,
            topics=len(catalog.all_topics()),
            achievements=len(achievements.catalog),
            generator=generator is not None,
        )
        return ctx
