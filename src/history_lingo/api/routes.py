"""REST API routes for profiles, progression, leaderboards and operator jobs."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import Field

from history_lingo.context import AppContext
from history_lingo.gamification import rules
from history_lingo.jobs.maintenance import JobName
from history_lingo.models.base import DocumentModel
from history_lingo.models.leaderboard import LeaderboardPeriod
from history_lingo.models.user_profile import AgeGroup, SkillLevel, UserPreferences, UserProfile

logger = structlog.get_logger()
router = APIRouter(prefix="/api")


def get_context(request: Request) -> AppContext:
    return request.app.state.context


class ProfileCreate(DocumentModel):
    display_name: str = ""
    email: str = ""
    avatar_url: str = ""
    age: AgeGroup = AgeGroup.ADULT
    skill_level: SkillLevel = SkillLevel.BEGINNER
    preferences: UserPreferences = Field(default_factory=UserPreferences)


class ChallengeCompletion(DocumentModel):
    lesson_id: str
    xp_earned: int = Field(default=0, ge=0)


def _profile_view(profile: UserProfile) -> dict:
    data = profile.to_document()
    data["levelTitle"] = rules.level_title(profile.level).value
    data["levelProgress"] = rules.level_progress(profile.xp)
    data["dailyGoalProgress"] = rules.daily_goal_progress(profile.daily_xp)
    return data


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


@router.get("/users/{uid}/profile")
async def get_profile(uid: str, ctx: AppContext = Depends(get_context)) -> dict:
    return _profile_view(await ctx.ledger.get_profile(uid))


@router.post("/users/{uid}/profile")
async def create_profile(
    uid: str, body: ProfileCreate, ctx: AppContext = Depends(get_context)
) -> dict:
    """Create a profile; an existing one is returned unchanged."""
    profile = UserProfile(**body.model_dump())
    return _profile_view(await ctx.ledger.create_profile(uid, profile))


@router.get("/users/{uid}/progress")
async def list_progress(uid: str, ctx: AppContext = Depends(get_context)) -> list[dict]:
    return [p.to_document() for p in await ctx.ledger.list_topic_progress(uid)]


@router.get("/users/{uid}/progress/{topic_id}")
async def get_progress(uid: str, topic_id: str, ctx: AppContext = Depends(get_context)) -> dict:
    progress = await ctx.ledger.get_topic_progress(uid, topic_id)
    if progress is None:
        raise HTTPException(status_code=404, detail="No progress for topic")
    return progress.to_document()


@router.get("/users/{uid}/achievements")
async def list_achievements(uid: str, ctx: AppContext = Depends(get_context)) -> list[dict]:
    return [a.to_document() for a in await ctx.ledger.fetch_user_achievements(uid)]


@router.post("/users/{uid}/streak")
async def check_streak(uid: str, ctx: AppContext = Depends(get_context)) -> dict:
    update = await ctx.ledger.check_and_update_streak(uid)
    data = update.model_dump()
    data["streak_bonus"] = rules.calculate_streak_bonus(update.current_streak)
    return data


@router.post("/users/{uid}/hearts/regen")
async def regen_hearts(uid: str, ctx: AppContext = Depends(get_context)) -> dict:
    return {"heartsRemaining": await ctx.ledger.check_heart_regen(uid)}


@router.post("/users/{uid}/streak-freeze")
async def purchase_streak_freeze(uid: str, ctx: AppContext = Depends(get_context)) -> dict:
    purchased = await ctx.ledger.purchase_streak_freeze(uid)
    return {"purchased": purchased, "cost": rules.STREAK_FREEZE_COST}


@router.post("/users/{uid}/reset")
async def reset_progress(uid: str, ctx: AppContext = Depends(get_context)) -> dict:
    await ctx.ledger.reset_progress(uid)
    return {"status": "reset"}


@router.get("/daily-challenge")
async def get_daily_challenge(
    uid: str | None = None, ctx: AppContext = Depends(get_context)
) -> dict:
    challenge = await ctx.ledger.fetch_daily_challenge()
    if challenge is None:
        raise HTTPException(status_code=404, detail="No daily challenge today")
    data = challenge.to_document()
    if uid is not None:
        data["completed"] = await ctx.ledger.has_completed_daily_challenge(uid)
    return data


@router.post("/users/{uid}/daily-challenge/complete")
async def complete_daily_challenge(
    uid: str, body: ChallengeCompletion, ctx: AppContext = Depends(get_context)
) -> dict:
    completed = await ctx.ledger.complete_daily_challenge(uid, body.lesson_id, body.xp_earned)
    return {"completed": completed, "xpBonus": rules.DAILY_CHALLENGE_BONUS if completed else 0}


@router.get("/leaderboard/{period}")
async def get_leaderboard(period: LeaderboardPeriod, ctx: AppContext = Depends(get_context)) -> dict:
    snapshot = await ctx.jobs.read_leaderboard(period)
    if snapshot is None:
        return {"updatedAt": None, "rankings": []}
    return snapshot.to_document()


@router.get("/topics")
async def list_topics(ctx: AppContext = Depends(get_context)) -> list[dict]:
    return [c.model_dump() for c in ctx.catalog.categories]


@router.get("/topics/{topic_id}/lessons")
async def list_lessons(topic_id: str, ctx: AppContext = Depends(get_context)) -> list[dict]:
    if ctx.catalog.get_topic(topic_id) is None:
        raise HTTPException(status_code=404, detail="Unknown topic")
    lessons = await ctx.provider.list_lessons(topic_id)
    return [
        {
            "id": lesson.id,
            "title": lesson.title,
            "description": lesson.description,
            "difficulty": lesson.difficulty.value,
            "order": lesson.order,
            "xpReward": lesson.xp_reward,
            "estimatedMinutes": lesson.estimated_minutes,
        }
        for lesson in lessons
    ]


@router.post("/jobs/{job}")
async def run_job(job: JobName, ctx: AppContext = Depends(get_context)) -> dict:
    """Run a maintenance job immediately (operator use)."""
    logger.info("job_triggered_manually", job=str(job))
    report = await ctx.jobs.run(job)
    return report.model_dump(mode="json")
