"""Question variants authored by the lesson content provider."""

import re
from typing import Annotated, Literal

from pydantic import Field, field_validator, model_validator

from history_lingo.models.base import DocumentModel

BLANK_PLACEHOLDER = "___"
STORY_MARKER = re.compile(r"\[(\d+)\]")


class QuestionBase(DocumentModel):
    @property
    def explanation_text(self) -> str:
        """Text revealed after the question is answered."""
        return getattr(self, "explanation", "")


class MultipleChoiceQuestion(QuestionBase):
    type: Literal["multiple_choice"] = "multiple_choice"
    prompt: str
    options: list[str] = Field(min_length=4, max_length=4)
    correct_index: int = Field(ge=0, le=3)
    explanation: str
    image_url: str | None = None


class TrueFalseQuestion(QuestionBase):
    type: Literal["true_false"] = "true_false"
    statement: str
    correct: bool
    explanation: str


class FillBlankQuestion(QuestionBase):
    type: Literal["fill_blank"] = "fill_blank"
    template: str
    answer: str = Field(min_length=1)
    acceptable_answers: list[str] = Field(default_factory=list)
    explanation: str

    @field_validator("template")
    @classmethod
    def _single_placeholder(cls, value: str) -> str:
        if value.count(BLANK_PLACEHOLDER) != 1:
            raise ValueError(f"template must contain exactly one '{BLANK_PLACEHOLDER}' placeholder")
        return value


class TimelineEvent(DocumentModel):
    text: str
    year: int


class TimelineOrderQuestion(QuestionBase):
    type: Literal["timeline_order"] = "timeline_order"
    prompt: str
    events: list[TimelineEvent] = Field(min_length=3, max_length=6)
    explanation: str


class WhoSaidItQuestion(QuestionBase):
    type: Literal["who_said_it"] = "who_said_it"
    quote: str
    options: list[str] = Field(min_length=4, max_length=4)
    correct_index: int = Field(ge=0, le=3)
    context: str

    @property
    def explanation_text(self) -> str:
        return self.context


class StoryBlank(DocumentModel):
    answer: str = Field(min_length=1)
    acceptable_answers: list[str] = Field(default_factory=list)


class StoryCompletionQuestion(QuestionBase):
    type: Literal["story_completion"] = "story_completion"
    narrative: str
    blanks: list[StoryBlank] = Field(min_length=1)
    explanation: str

    @model_validator(mode="after")
    def _markers_match_blanks(self) -> "StoryCompletionQuestion":
        markers = {int(n) for n in STORY_MARKER.findall(self.narrative)}
        expected = set(range(1, len(self.blanks) + 1))
        if markers != expected:
            raise ValueError(
                f"narrative markers {sorted(markers)} do not match {len(self.blanks)} blanks"
            )
        return self


Question = Annotated[
    MultipleChoiceQuestion
    | TrueFalseQuestion
    | FillBlankQuestion
    | TimelineOrderQuestion
    | WhoSaidItQuestion
    | StoryCompletionQuestion,
    Field(discriminator="type"),
]

# Submitted answer shapes: option index, boolean, free text, ordered event
# indices (timeline) or one string per blank (story).
AnswerValue = bool | int | str | list[int] | list[str]
