"""Tests for stored and generated lesson content."""

from unittest.mock import AsyncMock

import pytest

from history_lingo.content.catalog import TopicCatalog
from history_lingo.content.provider import LessonDraft, StoredContentProvider
from history_lingo.errors import ContentProviderError, LessonNotFoundError
from history_lingo.models.lesson import AgeCategory, Difficulty
from history_lingo.storage import paths

from conftest import NOW, make_lesson, make_question


def draft(title="The Pharaohs", questions=10):
    return LessonDraft(
        title=title,
        description="Rulers of the Nile",
        questions=[make_question(i) for i in range(questions)],
        fun_facts=["a", "b", "c"],
        generated_by="test-model",
    )


async def store_lesson(store, topic_id, lesson):
    data = lesson.to_document()
    data.pop("id")
    await store.set(paths.lesson_path(topic_id, lesson.id), data)


class TestStoredLessons:
    async def test_get_lesson(self, store):
        await store_lesson(store, "ancient-egypt", make_lesson("l1"))
        lesson = await StoredContentProvider(store).get_lesson("ancient-egypt", "l1")
        assert lesson.id == "l1"
        assert len(lesson.questions) == 8

    async def test_missing_lesson(self, store):
        with pytest.raises(LessonNotFoundError):
            await StoredContentProvider(store).get_lesson("ancient-egypt", "nope")

    async def test_malformed_lesson_is_content_error(self, store):
        await store.set(paths.lesson_path("ancient-egypt", "bad"), {"title": "x"})
        with pytest.raises(ContentProviderError):
            await StoredContentProvider(store).get_lesson("ancient-egypt", "bad")

    async def test_list_in_order_without_daily_challenges(self, store):
        await store_lesson(store, "ancient-egypt", make_lesson("second", order=1))
        await store_lesson(store, "ancient-egypt", make_lesson("first", order=0))
        await store_lesson(store, "ancient-egypt", make_lesson("daily", order=-1))
        lessons = await StoredContentProvider(store).list_lessons("ancient-egypt")
        assert [lesson.id for lesson in lessons] == ["first", "second"]


class TestGeneration:
    async def test_generates_and_stores(self, store, clock):
        generator = AsyncMock(return_value=draft())
        provider = StoredContentProvider(store, generator, clock)

        lesson = await provider.generate_lesson(
            "ancient-egypt", "Daily Life", Difficulty.INTERMEDIATE, AgeCategory.TEEN, 0
        )

        assert lesson.xp_reward == 150
        assert lesson.estimated_minutes == 5
        assert lesson.generated_at == NOW
        assert lesson.reviewed is False
        request = generator.await_args.args[0]
        assert request.subcategory == "Daily Life"
        assert request.age_group is AgeCategory.TEEN

    async def test_idempotent_by_order(self, store, clock):
        generator = AsyncMock(return_value=draft())
        provider = StoredContentProvider(store, generator, clock)
        first = await provider.generate_lesson(
            "ancient-egypt", "Daily Life", Difficulty.BEGINNER, AgeCategory.ADULT, 2
        )
        second = await provider.generate_lesson(
            "ancient-egypt", "Art & Architecture", Difficulty.BEGINNER, AgeCategory.ADULT, 2
        )
        assert first.id == second.id
        generator.assert_awaited_once()

    async def test_invalid_generated_content(self, store):
        generator = AsyncMock(return_value={"title": "too short", "questions": []})
        provider = StoredContentProvider(store, generator)
        with pytest.raises(ContentProviderError):
            await provider.generate_lesson(
                "ancient-egypt", "Daily Life", Difficulty.BEGINNER, AgeCategory.ADULT, 0
            )
        assert await store.list_documents(paths.lessons_collection("ancient-egypt")) == []

    async def test_no_generator(self, store):
        with pytest.raises(ContentProviderError):
            await StoredContentProvider(store).generate_lesson(
                "ancient-egypt", "Daily Life", Difficulty.BEGINNER, AgeCategory.ADULT, 0
            )


class TestCatalog:
    def test_loads_configured_topics(self):
        catalog = TopicCatalog.load()
        assert len(catalog.categories) == 6
        assert catalog.get_topic("viking-age").name == "Viking Age"
        assert catalog.get_category_for_topic("zulu-empire").id == "african-history"
        assert "Daily Life" in catalog.get_topic("ancient-rome").subcategories

    def test_unknown_topic(self):
        catalog = TopicCatalog.from_dict({"categories": []})
        assert catalog.get_topic("atlantis") is None
        assert catalog.get_category_for_topic("atlantis") is None
        assert catalog.all_topics() == []
