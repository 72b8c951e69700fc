"""Smoke tests for API routes."""

import random
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from history_lingo.config import Settings
from history_lingo.context import AppContext
from history_lingo.main import create_app
from history_lingo.storage.memory import MemoryDocumentStore

from conftest import FrozenClock, make_question


@pytest.fixture
def settings():
    return Settings(storage_backend="memory", scheduler_enabled=False, app_secret=None)


@pytest.fixture
def ctx(settings):
    generator = AsyncMock(
        return_value={
            "title": "Raiders",
            "description": "Longships",
            "questions": [make_question(i).to_document() for i in range(8)],
            "funFacts": ["a", "b", "c"],
        }
    )
    context = AppContext.build(settings, MemoryDocumentStore(), generator, FrozenClock())
    context.jobs._rng = random.Random(1)
    return context


@pytest.fixture
def client(settings, ctx):
    app = create_app(settings, ctx)
    with TestClient(app) as c:
        yield c


class TestHealthCheck:
    def test_health_returns_ok(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestProfiles:
    def test_unknown_user_is_404(self, client):
        response = client.get("/api/users/ghost/profile")
        assert response.status_code == 404
        assert response.json()["error"] == "UserNotFoundError"

    def test_create_and_read(self, client):
        response = client.post(
            "/api/users/u1/profile", json={"displayName": "Ada", "age": "18-25"}
        )
        assert response.status_code == 200
        assert response.json()["displayName"] == "Ada"

        data = client.get("/api/users/u1/profile").json()
        assert data["age"] == "18-25"
        assert data["heartsRemaining"] == 5
        assert data["levelTitle"] == "Novice"

    def test_streak_and_hearts(self, client):
        client.post("/api/users/u1/profile", json={})
        streak = client.post("/api/users/u1/streak").json()
        assert streak["current_streak"] == 1
        assert streak["first_activity"] is True
        assert client.post("/api/users/u1/hearts/regen").json() == {"heartsRemaining": 5}

    def test_streak_freeze_without_xp(self, client):
        client.post("/api/users/u1/profile", json={})
        assert client.post("/api/users/u1/streak-freeze").json()["purchased"] is False

    def test_progress_and_achievements_empty(self, client):
        client.post("/api/users/u1/profile", json={})
        assert client.get("/api/users/u1/progress").json() == []
        assert client.get("/api/users/u1/progress/viking-age").status_code == 404
        assert client.get("/api/users/u1/achievements").json() == []


class TestDailyChallenge:
    def test_missing_challenge(self, client):
        assert client.get("/api/daily-challenge").status_code == 404

    def test_complete_without_challenge_rejected(self, client):
        client.post("/api/users/u1/profile", json={})
        response = client.post(
            "/api/users/u1/daily-challenge/complete", json={"lessonId": "l1", "xpEarned": 80}
        )
        assert response.json() == {"completed": False, "xpBonus": 0}
        assert client.get("/api/users/u1/profile").json()["xp"] == 0

    def test_complete_once(self, client):
        client.post("/api/users/u1/profile", json={})
        client.post("/api/jobs/daily_challenge")
        lesson_id = client.get("/api/daily-challenge").json()["lessonId"]

        wrong = client.post(
            "/api/users/u1/daily-challenge/complete", json={"lessonId": "l1", "xpEarned": 80}
        )
        assert wrong.json()["completed"] is False
        response = client.post(
            "/api/users/u1/daily-challenge/complete", json={"lessonId": lesson_id, "xpEarned": 80}
        )
        assert response.json() == {"completed": True, "xpBonus": 50}
        again = client.post(
            "/api/users/u1/daily-challenge/complete", json={"lessonId": lesson_id, "xpEarned": 80}
        )
        assert again.json()["completed"] is False

    def test_read_with_completion_flag(self, client):
        client.post("/api/users/u1/profile", json={})
        client.post("/api/jobs/daily_challenge")
        data = client.get("/api/daily-challenge", params={"uid": "u1"}).json()
        assert data["date"] == "2026-02-12"
        assert data["completed"] is False

        client.post(
            "/api/users/u1/daily-challenge/complete",
            json={"lessonId": data["lessonId"], "xpEarned": 100},
        )
        assert client.get("/api/daily-challenge", params={"uid": "u1"}).json()["completed"] is True


class TestJobsAndLeaderboard:
    def test_leaderboard_empty_before_first_run(self, client):
        assert client.get("/api/leaderboard/weekly").json() == {"updatedAt": None, "rankings": []}

    def test_run_leaderboard_job(self, client):
        client.post("/api/users/u1/profile", json={"displayName": "Ada"})
        report = client.post("/api/jobs/leaderboard").json()
        assert report["job"] == "leaderboard"
        rankings = client.get("/api/leaderboard/alltime").json()["rankings"]
        assert rankings[0]["displayName"] == "Ada"

    def test_unknown_job(self, client):
        assert client.post("/api/jobs/nonsense").status_code == 422

    def test_daily_challenge_job_then_lessons(self, client):
        assert client.post("/api/jobs/daily_challenge").json()["processed"] == 1
        challenge = client.get("/api/daily-challenge").json()
        assert challenge["xpBonus"] == 50
        # daily challenge lessons are not part of the topic's lesson list
        assert client.get(f"/api/topics/{challenge['topicId']}/lessons").json() == []

    def test_unknown_topic(self, client):
        assert client.get("/api/topics/atlantis/lessons").status_code == 404


class TestAuth:
    def test_secret_required(self, ctx):
        settings = Settings(storage_backend="memory", scheduler_enabled=False, app_secret="s3cret")
        with TestClient(create_app(settings, ctx)) as c:
            assert c.get("/api/health").status_code == 200
            assert c.get("/api/users/u1/profile").status_code == 401
            ok = c.get("/api/users/u1/profile", headers={"X-App-Secret": "s3cret"})
            assert ok.status_code == 404
