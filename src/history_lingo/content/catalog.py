"""History topic catalog: categories of topics lessons are generated for."""

from pydantic import BaseModel, Field

from history_lingo.config import load_topic_catalog


class HistoryTopic(BaseModel):
    id: str
    name: str
    emoji: str = ""
    subcategories: list[str] = Field(default_factory=list)


class HistoryCategory(BaseModel):
    id: str
    name: str
    emoji: str = ""
    description: str = ""
    topics: list[HistoryTopic] = Field(default_factory=list)


class TopicCatalog:
    """Lookup helpers over the configured categories.

    Topics that list no subcategories of their own inherit the catalog-wide
    default list.
    """

    def __init__(self, categories: list[HistoryCategory], default_subcategories: list[str] | None = None):
        self.categories = categories
        defaults = list(default_subcategories or [])
        for category in self.categories:
            for topic in category.topics:
                if not topic.subcategories:
                    topic.subcategories = list(defaults)

    @classmethod
    def from_dict(cls, data: dict) -> "TopicCatalog":
        return cls(
            [HistoryCategory.model_validate(c) for c in data.get("categories", [])],
            data.get("subcategories", []),
        )

    @classmethod
    def load(cls) -> "TopicCatalog":
        return cls.from_dict(load_topic_catalog())

    def all_topics(self) -> list[HistoryTopic]:
        return [topic for category in self.categories for topic in category.topics]

    def get_topic(self, topic_id: str) -> HistoryTopic | None:
        return next((t for t in self.all_topics() if t.id == topic_id), None)

    def get_category_for_topic(self, topic_id: str) -> HistoryCategory | None:
        return next(
            (c for c in self.categories if any(t.id == topic_id for t in c.topics)),
            None,
        )
