"""Repository for users, lessons and lesson progress."""
import asyncio
import logging
import uuid
import weakref
from datetime import UTC, datetime
from typing import Dict, Iterable, List, Optional, Tuple

from spellfun.models.models import Lesson, LessonProgress, User
from spellfun.monitoring import completions_recorded, lessons_created, users_created
from spellfun.services.structured_store import StructuredStore

logger = logging.getLogger(__name__)

USERS = "users"
LESSONS = "lessons"
LESSON_PROGRESS = "lessonProgress"


def parse_word_list(text: str) -> List[str]:
    """Split comma-separated input into trimmed, non-empty words."""
    return [word.strip() for word in text.split(",") if word.strip()]


def _new_id() -> str:
    return str(uuid.uuid4())


class PersistenceService:
    """Typed access to the structured store for the practice app."""

    def __init__(self, store: StructuredStore):
        """Initialize the service with a structured store."""
        self.store = store
        # Entries vanish once no completion for the pair is running or waiting
        self._progress_locks: "weakref.WeakValueDictionary[Tuple[str, str], asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    async def create_user(self, name: str) -> User:
        """Create and persist a new user."""
        name = name.strip()
        if not name:
            raise ValueError("User name cannot be empty")

        user = User(id=_new_id(), name=name, created_at=datetime.now(UTC))
        await self.store.add(USERS, user.to_record())
        users_created.inc()
        logger.info("User created: %s (%s)", user.name, user.id)
        return user

    async def list_users(self) -> List[User]:
        """Get all users, oldest first."""
        records = await self.store.get_all(USERS)
        return sorted((User.from_record(record) for record in records), key=lambda user: user.created_at)

    async def get_user(self, user_id: str) -> Optional[User]:
        """Get user by ID."""
        record = await self.store.get(USERS, user_id)
        return User.from_record(record) if record else None

    async def create_lesson(self, user_id: str, name: str, words: Iterable[str]) -> Optional[Lesson]:
        """Create a lesson for a user.

        Blank words are dropped. When no words remain nothing is stored and
        None is returned.
        """
        name = name.strip()
        if not name:
            raise ValueError("Lesson name cannot be empty")

        clean_words = tuple(word.strip() for word in words if word and word.strip())
        if not clean_words:
            logger.warning("Lesson %r for user %s has no words, not saved", name, user_id)
            return None

        lesson = Lesson(
            id=_new_id(),
            user_id=user_id,
            name=name,
            words=clean_words,
            created_at=datetime.now(UTC),
        )
        await self.store.add(LESSONS, lesson.to_record())
        lessons_created.inc()
        logger.info("Lesson created: %s with %d words for user %s", lesson.name, len(clean_words), user_id)
        return lesson

    async def list_lessons_for_user(self, user_id: str) -> List[Lesson]:
        """Get a user's lessons, most recently created first."""
        records = await self.store.get_all_by_index(LESSONS, "userId", user_id)
        lessons = [Lesson.from_record(record) for record in records]
        return sorted(lessons, key=lambda lesson: lesson.created_at, reverse=True)

    async def get_lesson(self, lesson_id: str) -> Optional[Lesson]:
        """Get lesson by ID."""
        record = await self.store.get(LESSONS, lesson_id)
        return Lesson.from_record(record) if record else None

    async def get_progress(self, lesson_id: str, user_id: str) -> Optional[LessonProgress]:
        """Get a user's progress on a lesson."""
        records = await self.store.get_all_by_index(LESSON_PROGRESS, "lessonId", lesson_id)
        for record in records:
            if record.get("userId") == user_id:
                return LessonProgress.from_record(record)
        return None

    async def list_progress_for_user(self, user_id: str) -> Dict[str, LessonProgress]:
        """Get all of a user's progress records keyed by lesson ID."""
        records = await self.store.get_all_by_index(LESSON_PROGRESS, "userId", user_id)
        progress = (LessonProgress.from_record(record) for record in records)
        return {item.lesson_id: item for item in progress}

    async def record_completion(self, lesson_id: str, user_id: str, completions: int) -> LessonProgress:
        """Store the completion count for a lesson and refresh its practice time.

        Callers pass the new total; keeping it increasing is their job.
        """
        if completions < 0:
            raise ValueError(f"Completion count cannot be negative, got {completions}")

        async with self._progress_lock(lesson_id, user_id):
            lesson = await self.get_lesson(lesson_id)
            if lesson is None:
                raise ValueError(f"Lesson {lesson_id} not found")
            if lesson.user_id != user_id:
                raise ValueError(f"Lesson {lesson_id} does not belong to user {user_id}")

            now = datetime.now(UTC)
            progress = await self.get_progress(lesson_id, user_id)
            if progress is None:
                progress = LessonProgress(
                    id=_new_id(),
                    lesson_id=lesson_id,
                    user_id=user_id,
                    successful_completions=completions,
                    last_practiced=now,
                )
                logger.info("Progress created for lesson %s, user %s", lesson_id, user_id)
            else:
                progress.successful_completions = completions
                progress.last_practiced = now

            await self.store.put(LESSON_PROGRESS, progress.to_record())

        completions_recorded.inc()
        logger.info(
            "Lesson %s completed by user %s (%d completions)", lesson_id, user_id, completions
        )
        return progress

    async def reset_all(self) -> None:
        """Delete every user, lesson and progress record."""
        logger.warning("Resetting all stored data")
        await self.store.delete_database()

    def _progress_lock(self, lesson_id: str, user_id: str) -> asyncio.Lock:
        key = (lesson_id, user_id)
        lock = self._progress_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._progress_locks[key] = lock
        return lock
