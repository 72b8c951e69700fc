"""Collection and document paths shared with the mobile client and jobs."""

USERS = "users"
TOPICS = "topics"
LEADERBOARD = "leaderboard"
DAILY_CHALLENGES = "dailyChallenges"


def user_path(uid: str) -> str:
    return f"{USERS}/{uid}"


def progress_collection(uid: str) -> str:
    return f"{USERS}/{uid}/progress"


def progress_path(uid: str, topic_id: str) -> str:
    return f"{progress_collection(uid)}/{topic_id}"


def achievements_collection(uid: str) -> str:
    return f"{USERS}/{uid}/achievements"


def achievement_path(uid: str, achievement_id: str) -> str:
    return f"{achievements_collection(uid)}/{achievement_id}"


def challenge_completion_path(uid: str, date: str) -> str:
    return f"{USERS}/{uid}/dailyChallengeCompletions/{date}"


def lessons_collection(topic_id: str) -> str:
    return f"{TOPICS}/{topic_id}/lessons"


def lesson_path(topic_id: str, lesson_id: str) -> str:
    return f"{lessons_collection(topic_id)}/{lesson_id}"


def leaderboard_path(period: str) -> str:
    return f"{LEADERBOARD}/{period}"


def daily_challenge_path(date: str) -> str:
    return f"{DAILY_CHALLENGES}/{date}"
