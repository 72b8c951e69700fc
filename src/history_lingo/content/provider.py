"""Lesson content: stored lessons and delegated generation of new ones."""

from collections.abc import Awaitable, Callable
from typing import Protocol

import structlog
from pydantic import Field, ValidationError

from history_lingo.clock import Clock, utcnow
from history_lingo.errors import ContentProviderError, LessonNotFoundError, StorageError
from history_lingo.gamification import rules
from history_lingo.models.base import DocumentModel
from history_lingo.models.lesson import AgeCategory, Difficulty, Lesson
from history_lingo.models.question import Question
from history_lingo.storage import paths
from history_lingo.storage.document_store import DocumentStore

logger = structlog.get_logger()


class GenerationRequest(DocumentModel):
    topic_id: str
    topic_name: str
    subcategory: str
    difficulty: Difficulty
    age_group: AgeCategory
    order: int


class LessonDraft(DocumentModel):
    """Lesson body as returned by a generator, before bookkeeping fields are added."""

    title: str
    description: str
    questions: list[Question] = Field(min_length=8, max_length=12)
    fun_facts: list[str] = Field(min_length=3, max_length=8)
    generated_by: str | None = None


LessonGenerator = Callable[[GenerationRequest], Awaitable[LessonDraft | dict]]


class ContentProvider(Protocol):
    async def get_lesson(self, topic_id: str, lesson_id: str) -> Lesson: ...

    async def list_lessons(self, topic_id: str) -> list[Lesson]: ...

    async def generate_lesson(
        self,
        topic_id: str,
        subcategory: str,
        difficulty: Difficulty,
        age_group: AgeCategory,
        order: int,
        *,
        topic_name: str | None = None,
        title_prefix: str = "",
    ) -> Lesson: ...


class StoredContentProvider:
    """Serves lessons from ``topics/{topicId}/lessons`` and stores generated ones.

    Args:
        store: Document store holding lessons.
        generator: Async callable producing a ``LessonDraft``; without one,
            generation fails with ``ContentProviderError``.
        clock: Time source for ``generatedAt``.
    """

    def __init__(
        self,
        store: DocumentStore,
        generator: LessonGenerator | None = None,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.generator = generator
        self._clock = clock

    async def get_lesson(self, topic_id: str, lesson_id: str) -> Lesson:
        try:
            data = await self.store.get(paths.lesson_path(topic_id, lesson_id))
        except StorageError as e:
            raise ContentProviderError(f"Could not read lesson {topic_id}/{lesson_id}") from e
        if data is None:
            raise LessonNotFoundError(topic_id, lesson_id)
        return self._parse(data, lesson_id)

    async def list_lessons(self, topic_id: str) -> list[Lesson]:
        """Lessons of a topic in play order; daily challenge lessons are excluded."""
        try:
            docs = await self.store.query(
                paths.lessons_collection(topic_id),
                where=[("order", ">=", 0)],
                order_by="order",
            )
        except StorageError as e:
            raise ContentProviderError(f"Could not list lessons for {topic_id}") from e
        return [self._parse(doc.data, doc.id) for doc in docs]

    async def _find_by_order(self, topic_id: str, order: int) -> Lesson | None:
        docs = await self.store.query(
            paths.lessons_collection(topic_id), where=[("order", "==", order)], limit=1
        )
        return self._parse(docs[0].data, docs[0].id) if docs else None

    async def generate_lesson(
        self,
        topic_id: str,
        subcategory: str,
        difficulty: Difficulty,
        age_group: AgeCategory,
        order: int,
        *,
        topic_name: str | None = None,
        title_prefix: str = "",
    ) -> Lesson:
        """Return the lesson at ``order``, generating and storing it if missing.

        Regular lessons are unique per order, so asking twice returns the
        stored lesson. Daily challenge lessons (negative order) are always
        generated fresh; the daily challenge job guards them per date.
        """
        if order >= 0:
            existing = await self._find_by_order(topic_id, order)
            if existing is not None:
                logger.debug("lesson_already_generated", topic_id=topic_id, order=order)
                return existing

        if self.generator is None:
            raise ContentProviderError("No lesson generator configured")

        request = GenerationRequest(
            topic_id=topic_id,
            topic_name=topic_name or topic_id,
            subcategory=subcategory,
            difficulty=difficulty,
            age_group=age_group,
            order=order,
        )
        try:
            raw = await self.generator(request)
            draft = raw if isinstance(raw, LessonDraft) else LessonDraft.model_validate(raw)
        except ValidationError as e:
            logger.error("generated_lesson_invalid", topic_id=topic_id, error=str(e))
            raise ContentProviderError("Generated lesson has an invalid format") from e
        except ContentProviderError:
            raise
        except Exception as e:
            logger.error("lesson_generation_failed", topic_id=topic_id, error=str(e))
            raise ContentProviderError(f"Failed to generate lesson: {e}") from e

        question_count = len(draft.questions)
        body = {
            "title": f"{title_prefix}{draft.title}",
            "description": draft.description,
            "difficulty": difficulty,
            "ageGroup": age_group,
            "order": order,
            "xpReward": rules.lesson_xp_reward(question_count, difficulty),
            "estimatedMinutes": rules.estimated_minutes(question_count),
            "questions": [q.to_document() for q in draft.questions],
            "funFacts": draft.fun_facts,
            "generatedBy": draft.generated_by,
            "generatedAt": self._clock(),
            "reviewed": False,
        }
        lesson_id = await self.store.add(paths.lessons_collection(topic_id), body)
        logger.info(
            "lesson_generated",
            topic_id=topic_id,
            lesson_id=lesson_id,
            order=order,
            questions=question_count,
        )
        return await self.get_lesson(topic_id, lesson_id)

    @staticmethod
    def _parse(data: dict, lesson_id: str) -> Lesson:
        try:
            return Lesson.model_validate({**data, "id": lesson_id})
        except ValidationError as e:
            raise ContentProviderError(f"Stored lesson {lesson_id} is malformed") from e
