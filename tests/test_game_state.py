"""Tests for the per-connection game state read model."""

from history_lingo.gamification.state import GameState, NotificationKind
from history_lingo.models.user_profile import TopicProgress, UserProfile

from conftest import make_achievement


def test_subscribe_and_unsubscribe():
    state = GameState()
    seen = []
    unsubscribe = state.subscribe(seen.append)

    state.sync_from_profile(UserProfile(xp=150))
    assert seen[-1].xp == 150
    assert seen[-1].level == 1

    unsubscribe()
    state.sync_from_profile(UserProfile(xp=900))
    assert len(seen) == 1


def test_snapshot_derives_level_and_goal():
    state = GameState(daily_goal=30)
    state.sync_from_profile(
        UserProfile(xp=2600, daily_xp=15, current_streak=3, longest_streak=8),
        [TopicProgress(topic_id="viking-age", completed_lessons=2)],
    )
    snap = state.snapshot()
    assert snap.level == 5
    assert snap.level_title == "Novice"
    assert snap.daily_goal_progress == 0.5
    assert snap.current_streak == 3
    assert snap.topic_progress["viking-age"].completed_lessons == 2


class TestOptimisticXp:
    def test_applied_immediately(self):
        state = GameState()
        state.sync_from_profile(UserProfile(xp=95))
        state.add_optimistic_xp(10)
        snap = state.snapshot()
        assert snap.xp == 105
        assert snap.level == 1
        assert snap.pending_xp == 10

    def test_confirm_reconciles_with_profile(self):
        state = GameState()
        state.sync_from_profile(UserProfile(xp=100))
        token = state.add_optimistic_xp(10)
        state.confirm_xp(token, UserProfile(xp=160))
        assert state.snapshot().xp == 160
        assert state.pending_xp == 0

    def test_rollback(self):
        state = GameState()
        state.sync_from_profile(UserProfile(xp=100))
        keep = state.add_optimistic_xp(10)
        drop = state.add_optimistic_xp(20)
        state.rollback_xp(drop)
        assert state.xp == 110
        state.rollback_xp(drop)
        assert state.xp == 110
        state.rollback_xp(keep)
        assert state.xp == 100


def test_set_hearts():
    state = GameState()
    state.sync_from_profile(UserProfile())
    state.set_hearts(2)
    assert state.snapshot().hearts_remaining == 2


def test_notifications_drain_in_order():
    state = GameState()
    state.trigger_xp_animation(10)
    state.trigger_level_up(3)
    state.trigger_streak_broken()
    state.queue_achievements(
        [make_achievement("first_lesson", "lessonsCompleted", 1), make_achievement("perfect_1", "perfectLessons", 1)]
    )
    assert state.snapshot().pending_notifications == 5

    kinds = []
    while (notification := state.next_notification()) is not None:
        kinds.append(notification.kind)

    assert kinds == [
        NotificationKind.XP_GAINED,
        NotificationKind.LEVEL_UP,
        NotificationKind.STREAK_BROKEN,
        NotificationKind.ACHIEVEMENT,
        NotificationKind.ACHIEVEMENT,
    ]
    assert state.next_notification() is None
