"""Exception hierarchy shared by the engine, ledger, storage and jobs."""


class HistoryLingoError(Exception):
    """Base class for all application errors."""


class InvalidTransitionError(HistoryLingoError):
    """A lesson session operation was called in a state that does not allow it."""

    def __init__(self, operation: str, state: str):
        super().__init__(f"Cannot {operation} while session is {state}")
        self.operation = operation
        self.state = state


class ContentProviderError(HistoryLingoError):
    """Lesson content could not be fetched or generated."""


class LessonNotFoundError(ContentProviderError):
    def __init__(self, topic_id: str, lesson_id: str):
        super().__init__(f"Lesson not found: {topic_id}/{lesson_id}")
        self.topic_id = topic_id
        self.lesson_id = lesson_id


class StorageError(HistoryLingoError):
    """A document store operation failed without applying any write."""


class DocumentNotFoundError(StorageError):
    def __init__(self, path: str):
        super().__init__(f"Document not found: {path}")
        self.path = path


class BatchLimitError(StorageError):
    """More writes were queued than a single atomic commit allows."""


class UserNotFoundError(HistoryLingoError):
    def __init__(self, uid: str):
        super().__init__(f"User profile not found: {uid}")
        self.uid = uid


class JobError(HistoryLingoError):
    """A scheduled maintenance job failed."""

    def __init__(self, job: str, message: str):
        super().__init__(f"{job}: {message}")
        self.job = job
