"""Per-connection read model of the ledger plus queued UI notifications.

One ``GameState`` is created per connected user; nothing here is global.
Listeners receive a fresh snapshot after every change.
"""

from collections import deque
from collections.abc import Callable
from enum import StrEnum
from typing import Any

import structlog
from pydantic import BaseModel, Field

from history_lingo.gamification import rules
from history_lingo.models.achievement import AchievementDefinition
from history_lingo.models.user_profile import MAX_HEARTS, TopicProgress, UserProfile

logger = structlog.get_logger()


class NotificationKind(StrEnum):
    XP_GAINED = "xp_gained"
    LEVEL_UP = "level_up"
    STREAK_BROKEN = "streak_broken"
    ACHIEVEMENT = "achievement"


class Notification(BaseModel):
    kind: NotificationKind
    amount: int | None = None
    level: int | None = None
    achievement: AchievementDefinition | None = None


class GameSnapshot(BaseModel):
    xp: int = 0
    level: int = 0
    level_title: str = rules.LevelTitle.NOVICE.value
    level_progress: float = 0.0
    current_streak: int = 0
    longest_streak: int = 0
    streak_freezes: int = 0
    hearts_remaining: int = MAX_HEARTS
    daily_xp: int = 0
    daily_goal_progress: float = 0.0
    weekly_xp: int = 0
    pending_xp: int = 0
    topic_progress: dict[str, TopicProgress] = Field(default_factory=dict)
    pending_notifications: int = 0


Listener = Callable[[GameSnapshot], Any]


class GameState:
    """Subscribable view of a user's progression.

    XP shown to the user is the authoritative profile value plus any
    optimistic deltas that have not been confirmed yet. A confirmed delta is
    dropped when the authoritative profile is synced; a rolled back delta
    simply disappears.
    """

    def __init__(self, daily_goal: int = rules.DEFAULT_DAILY_GOAL):
        self.daily_goal = daily_goal
        self.profile: UserProfile | None = None
        self.topic_progress: dict[str, TopicProgress] = {}
        self._pending: dict[str, int] = {}
        self._notifications: deque[Notification] = deque()
        self._listeners: list[Listener] = []
        self._next_token = 0

    # Subscription

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; the returned callable unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)

    @property
    def pending_xp(self) -> int:
        return sum(self._pending.values())

    @property
    def xp(self) -> int:
        base = self.profile.xp if self.profile else 0
        return base + self.pending_xp

    def snapshot(self) -> GameSnapshot:
        profile = self.profile or UserProfile()
        xp = self.xp
        daily_xp = profile.daily_xp + self.pending_xp
        level = rules.calculate_level(xp)
        return GameSnapshot(
            xp=xp,
            level=level,
            level_title=rules.level_title(level).value,
            level_progress=rules.level_progress(xp),
            current_streak=profile.current_streak,
            longest_streak=profile.longest_streak,
            streak_freezes=profile.streak_freezes,
            hearts_remaining=profile.hearts_remaining,
            daily_xp=daily_xp,
            daily_goal_progress=rules.daily_goal_progress(daily_xp, self.daily_goal),
            weekly_xp=profile.weekly_xp + self.pending_xp,
            pending_xp=self.pending_xp,
            topic_progress=dict(self.topic_progress),
            pending_notifications=len(self._notifications),
        )

    # Authoritative state

    def sync_from_profile(
        self, profile: UserProfile, topic_progress: list[TopicProgress] | None = None
    ) -> None:
        """Replace local state with the stored profile."""
        self.profile = profile
        if topic_progress is not None:
            self.topic_progress = {p.topic_id: p for p in topic_progress}
        self._notify()

    def set_hearts(self, hearts_remaining: int) -> None:
        if self.profile is None:
            return
        self.profile = self.profile.model_copy(update={"hearts_remaining": hearts_remaining})
        self._notify()

    # Optimistic XP

    def add_optimistic_xp(self, amount: int) -> str:
        """Show ``amount`` XP before the ledger confirms it.

        Returns:
            Token for ``confirm_xp`` or ``rollback_xp``.
        """
        self._next_token += 1
        token = f"xp-{self._next_token}"
        self._pending[token] = amount
        self._notify()
        return token

    def confirm_xp(self, token: str, profile: UserProfile) -> None:
        """Reconcile an optimistic delta with the authoritative profile."""
        self._pending.pop(token, None)
        self.sync_from_profile(profile)

    def rollback_xp(self, token: str) -> None:
        amount = self._pending.pop(token, None)
        if amount is not None:
            logger.info("optimistic_xp_rolled_back", amount=amount)
            self._notify()

    # Notifications

    def trigger_xp_animation(self, amount: int) -> None:
        self._push(Notification(kind=NotificationKind.XP_GAINED, amount=amount))

    def trigger_level_up(self, level: int | None = None) -> None:
        self._push(Notification(kind=NotificationKind.LEVEL_UP, level=level))

    def trigger_streak_broken(self) -> None:
        self._push(Notification(kind=NotificationKind.STREAK_BROKEN))

    def queue_achievements(self, achievements: list[AchievementDefinition]) -> None:
        for achievement in achievements:
            self._notifications.append(
                Notification(kind=NotificationKind.ACHIEVEMENT, achievement=achievement)
            )
        if achievements:
            self._notify()

    def _push(self, notification: Notification) -> None:
        self._notifications.append(notification)
        self._notify()

    def next_notification(self) -> Notification | None:
        """Pop the oldest undelivered notification, if any."""
        if not self._notifications:
            return None
        notification = self._notifications.popleft()
        self._notify()
        return notification
