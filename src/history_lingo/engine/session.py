"""State machine for a single lesson attempt."""

from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog

from history_lingo.clock import Clock, utcnow
from history_lingo.engine.evaluator import evaluate, evaluate_blanks
from history_lingo.errors import InvalidTransitionError
from history_lingo.gamification import rules
from history_lingo.models.lesson import Lesson, LessonResult
from history_lingo.models.question import AnswerValue, Question, StoryCompletionQuestion
from history_lingo.models.session import AnswerEvent, SessionSnapshot, SessionState

if TYPE_CHECKING:
    from history_lingo.gamification.ledger import LessonOutcome, ProgressionLedger

logger = structlog.get_logger()


class LessonSession:
    """Drives one attempt at one lesson.

    NOT_STARTED -> IN_PROGRESS -> ANSWERED -> IN_PROGRESS ... -> COMPLETE.
    COMPLETE is terminal: answers are no longer accepted and ``finish`` hands
    the result to the ledger exactly once. The session is never persisted;
    abandoning it discards all progress.

    Args:
        ledger: Ledger receiving the lesson result on ``finish``.
        uid: User playing the lesson.
        clock: Time source for start time and time spent.
    """

    def __init__(self, ledger: "ProgressionLedger", uid: str, clock: Clock = utcnow):
        self.ledger = ledger
        self.uid = uid
        self._clock = clock
        self.outcome: "LessonOutcome | None" = None
        self._clear()

    def _clear(self) -> None:
        self.state = SessionState.NOT_STARTED
        self.lesson: Lesson | None = None
        self.topic_id: str | None = None
        self.current_question_index = 0
        self.answers: list[AnswerValue | None] = []
        self.is_correct: bool | None = None
        self.show_explanation = False
        self.correct_count = 0
        self.start_time: datetime | None = None
        self._result: LessonResult | None = None
        self._submitted = False
        self.outcome = None

    @property
    def lesson_complete(self) -> bool:
        return self.state is SessionState.COMPLETE

    @property
    def total_questions(self) -> int:
        return len(self.lesson.questions) if self.lesson else 0

    @property
    def current_question(self) -> Question | None:
        if self.lesson is None:
            return None
        return self.lesson.questions[self.current_question_index]

    @property
    def current_fun_fact(self) -> str | None:
        """Fun fact shown alongside the explanation of the current question."""
        if self.lesson is None or not self.show_explanation:
            return None
        facts = self.lesson.fun_facts
        return facts[self.current_question_index % len(facts)]

    @property
    def progress(self) -> float:
        if not self.total_questions:
            return 0.0
        return (self.current_question_index + 1) / self.total_questions

    def start(self, lesson: Lesson, topic_id: str) -> None:
        """Begin (or restart) the session at the first question."""
        self._clear()
        self.lesson = lesson
        self.topic_id = topic_id
        self.answers = [None] * len(lesson.questions)
        self.start_time = self._clock()
        self.state = SessionState.IN_PROGRESS
        logger.info("lesson_started", uid=self.uid, lesson_id=lesson.id, topic_id=topic_id)

    def reset(self) -> None:
        """Discard the session without writing anything."""
        if self.lesson is not None and not self._submitted:
            logger.info(
                "lesson_abandoned",
                uid=self.uid,
                lesson_id=self.lesson.id,
                question_index=self.current_question_index,
            )
        self._clear()

    def _reject(self, operation: str) -> InvalidTransitionError:
        logger.warning("invalid_session_transition", operation=operation, state=self.state.value)
        return InvalidTransitionError(operation, self.state.value)

    def submit_answer(self, value: AnswerValue) -> AnswerEvent:
        """Record and judge the answer to the current question.

        Raises:
            InvalidTransitionError: the current question was already answered
                or the session is not in progress.
        """
        if self.state is not SessionState.IN_PROGRESS:
            raise self._reject("submit_answer")

        question = self.current_question
        correct = evaluate(question, value)
        index = self.current_question_index

        self.answers[index] = value
        self.is_correct = correct
        if correct:
            self.correct_count += 1
        self.show_explanation = True
        self.state = SessionState.ANSWERED

        blank_results = None
        if isinstance(question, StoryCompletionQuestion):
            blank_results = evaluate_blanks(question, value)

        logger.debug("answer_submitted", uid=self.uid, question_index=index, correct=correct)
        return AnswerEvent(
            question_index=index,
            correct=correct,
            xp_awarded=rules.CORRECT_ANSWER_XP if correct else 0,
            deduct_heart=not correct,
            blank_results=blank_results,
            explanation=question.explanation_text,
        )

    def advance(self) -> SessionState:
        """Move past an answered question; after the last one the session completes."""
        if self.state is not SessionState.ANSWERED:
            raise self._reject("advance")

        if self.current_question_index + 1 < self.total_questions:
            self.current_question_index += 1
            self.state = SessionState.IN_PROGRESS
        else:
            self.state = SessionState.COMPLETE
            logger.info(
                "lesson_completed",
                uid=self.uid,
                lesson_id=self.lesson.id,
                correct=self.correct_count,
                total=self.total_questions,
            )
        self.is_correct = None
        self.show_explanation = False
        return self.state

    def build_result(self) -> LessonResult:
        total = self.total_questions
        perfect = self.correct_count == total
        elapsed = (self._clock() - self.start_time).total_seconds()
        return LessonResult(
            lesson_id=self.lesson.id,
            topic_id=self.topic_id,
            score=round(100 * self.correct_count / total),
            total_questions=total,
            correct_answers=self.correct_count,
            xp_earned=rules.lesson_xp(self.correct_count, perfect),
            perfect_lesson=perfect,
            time_spent_seconds=max(0, round(elapsed)),
        )

    async def finish(self) -> LessonResult:
        """Submit the lesson result to the ledger and return it.

        The result is computed once. Calling again after a successful
        submission returns it without touching the ledger; calling again
        after a failed submission retries the same result.
        """
        if self.state is not SessionState.COMPLETE:
            raise self._reject("finish")

        if self._result is None:
            self._result = self.build_result()
        if self._submitted:
            logger.info("lesson_result_already_submitted", uid=self.uid, lesson_id=self._result.lesson_id)
            return self._result

        self.outcome = await self.ledger.apply_lesson_result(self.uid, self._result)
        self._submitted = True
        return self._result

    @property
    def submitted(self) -> bool:
        return self._submitted

    def snapshot(self) -> SessionSnapshot:
        answers: list[Any] = list(self.answers)
        return SessionSnapshot(
            state=self.state,
            lesson_id=self.lesson.id if self.lesson else None,
            topic_id=self.topic_id,
            current_question_index=self.current_question_index,
            total_questions=self.total_questions,
            answers=answers,
            is_correct=self.is_correct,
            show_explanation=self.show_explanation,
            correct_count=self.correct_count,
            lesson_complete=self.lesson_complete,
            progress=self.progress,
            fun_fact=self.current_fun_fact,
        )
