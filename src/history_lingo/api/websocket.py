"""Browser WebSocket handler: one lesson controller per connection."""

from typing import Any

import structlog
from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from history_lingo.context import AppContext
from history_lingo.engine.session import LessonSession
from history_lingo.errors import (
    ContentProviderError,
    HistoryLingoError,
    InvalidTransitionError,
    UserNotFoundError,
)
from history_lingo.gamification.state import GameState
from history_lingo.models.question import Question

logger = structlog.get_logger()

# Fields that would give away the answer before it is submitted
_SOLUTION_FIELDS = {"correctIndex", "correct", "answer", "acceptableAnswers", "explanation", "context"}


def question_view(question: Question) -> dict:
    """Question as shown to the player, without its solution."""
    data = {k: v for k, v in question.to_document().items() if k not in _SOLUTION_FIELDS}
    if "events" in data:
        data["events"] = [{"text": e["text"]} for e in data["events"]]
    if "blanks" in data:
        data["blanks"] = len(data["blanks"])
    return data


class LessonController:
    """Owns the lesson session and game state of one connected user.

    Args:
        ctx: Application context.
        browser_ws: WebSocket connection to the browser.
    """

    def __init__(self, ctx: AppContext, browser_ws: WebSocket):
        self.ctx = ctx
        self.browser_ws = browser_ws
        self.uid: str | None = None
        self.session: LessonSession | None = None
        self.game = GameState()
        self._pending_xp: list[str] = []
        self._state_dirty = False
        self.game.subscribe(self._mark_dirty)

    def _mark_dirty(self, _snapshot) -> None:
        self._state_dirty = True

    async def handle(self, message: dict) -> None:
        """Dispatch one incoming message and push resulting state."""
        msg_type = message.get("type", "")
        handlers = {
            "start_session": self.start_session,
            "start_lesson": self.start_lesson,
            "submit_answer": self.submit_answer,
            "advance": self.advance,
            "finish": self.finish,
            "leave_lesson": self.leave_lesson,
            "next_notification": self.next_notification,
        }
        handler = handlers.get(msg_type)
        if handler is None:
            await self._send_error("unknown_message", f"Unknown message type: {msg_type!r}")
            return
        if msg_type != "start_session" and self.session is None:
            await self._send_error("no_session", "start_session first")
            return

        try:
            await handler(message)
        except InvalidTransitionError as e:
            await self._send_error("invalid_transition", str(e))
        except ContentProviderError as e:
            await self._send_error("content_unavailable", str(e), retryable=True)
        except UserNotFoundError as e:
            await self._send_error("user_not_found", str(e))
        except ValidationError as e:
            await self._send_error("invalid_message", str(e))

        if self._state_dirty:
            self._state_dirty = False
            await self._send_to_browser(
                {"type": "game_state", "state": self.game.snapshot().model_dump(mode="json")}
            )

    async def start_session(self, message: dict) -> None:
        uid = message.get("uid")
        if not uid:
            await self._send_error("invalid_message", "uid is required")
            return
        ledger = self.ctx.ledger
        await ledger.get_profile(uid)
        self.uid = uid
        self.session = LessonSession(ledger, uid, self.ctx.clock)

        await ledger.check_heart_regen(uid)
        streak = await ledger.check_and_update_streak(uid)
        await self._refresh_game_state()
        if streak.streak_broken and not streak.first_activity:
            self.game.trigger_streak_broken()
        logger.info("player_session_started", uid=uid, current_streak=streak.current_streak)
        await self._send_session_state()

    async def start_lesson(self, message: dict) -> None:
        topic_id = message.get("topicId")
        lesson_id = message.get("lessonId")
        if not topic_id or not lesson_id:
            await self._send_error("invalid_message", "topicId and lessonId are required")
            return
        self._discard_pending_xp()
        lesson = await self.ctx.provider.get_lesson(topic_id, lesson_id)
        self.session.start(lesson, topic_id)
        await self._send_session_state()

    async def submit_answer(self, message: dict) -> None:
        if message.get("value") is None:
            await self._send_error("invalid_message", "value is required")
            return
        event = self.session.submit_answer(message["value"])
        if event.correct:
            self._pending_xp.append(self.game.add_optimistic_xp(event.xp_awarded))
            self.game.trigger_xp_animation(event.xp_awarded)
        if event.deduct_heart:
            self.game.set_hearts(await self.ctx.ledger.deduct_heart(self.uid))
        await self._send_to_browser({"type": "answer_result", **event.model_dump()})
        await self._send_session_state()

    async def advance(self, message: dict) -> None:
        self.session.advance()
        await self._send_session_state()

    async def finish(self, message: dict) -> None:
        session = self.session
        already_submitted = session.submitted
        try:
            result = await session.finish()
        except InvalidTransitionError:
            raise
        except HistoryLingoError:
            logger.exception("lesson_result_submit_failed", uid=self.uid)
            self._discard_pending_xp()
            await self._send_error(
                "submit_failed", "Could not save lesson result", retryable=True
            )
            return

        outcome = session.outcome
        if not already_submitted and session.lesson.is_daily_challenge:
            await self.ctx.ledger.complete_daily_challenge(
                self.uid, session.lesson.id, result.xp_earned
            )
        profile = await self.ctx.ledger.get_profile(self.uid)
        for token in self._pending_xp:
            self.game.confirm_xp(token, profile)
        self._pending_xp.clear()
        await self._refresh_game_state()

        if not already_submitted and outcome is not None:
            if outcome.leveled_up:
                self.game.trigger_level_up(outcome.new_level)
            self.game.queue_achievements(outcome.achievements)

        await self._send_to_browser(
            {
                "type": "lesson_result",
                "result": result.to_document(),
                "outcome": outcome.model_dump(mode="json") if outcome else None,
            }
        )

    async def leave_lesson(self, message: dict) -> None:
        self._discard_pending_xp()
        self.session.reset()
        await self._send_session_state()

    async def next_notification(self, message: dict) -> None:
        notification = self.game.next_notification()
        await self._send_to_browser(
            {
                "type": "notification",
                "notification": notification.model_dump(mode="json") if notification else None,
            }
        )

    async def _refresh_game_state(self) -> None:
        ledger = self.ctx.ledger
        self.game.sync_from_profile(
            await ledger.get_profile(self.uid), await ledger.list_topic_progress(self.uid)
        )

    def _discard_pending_xp(self) -> None:
        for token in self._pending_xp:
            self.game.rollback_xp(token)
        self._pending_xp.clear()

    async def _send_session_state(self) -> None:
        snapshot = self.session.snapshot()
        data: dict[str, Any] = {"type": "session_state", **snapshot.model_dump(mode="json")}
        question = self.session.current_question
        data["question"] = question_view(question) if question is not None else None
        await self._send_to_browser(data)

    async def _send_error(self, code: str, message: str, retryable: bool = False) -> None:
        logger.warning("client_error", code=code, message=message, uid=self.uid)
        await self._send_to_browser(
            {"type": "error", "code": code, "message": message, "retryable": retryable}
        )

    async def _send_to_browser(self, data: dict) -> None:
        """Send a message to the browser WebSocket."""
        try:
            await self.browser_ws.send_json(data)
        except Exception:
            logger.warning("browser_send_failed")


async def handle_browser_websocket(websocket: WebSocket, ctx: AppContext) -> None:
    """Handle a browser WebSocket connection."""
    await websocket.accept()
    controller = LessonController(ctx, websocket)

    try:
        while True:
            data = await websocket.receive_json()
            await controller.handle(data)

    except WebSocketDisconnect:
        logger.info("browser_disconnected", uid=controller.uid)
    except Exception:
        logger.exception("websocket_handler_error")
    finally:
        if controller.session is not None:
            controller.session.reset()
