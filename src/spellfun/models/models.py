"""Domain entities stored by the persistence service."""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Tuple

# Number of successful completions that unlocks a lesson's picture puzzle
PUZZLE_UNLOCK_COMPLETIONS = 6


def _timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class User:
    """User model."""

    id: str
    name: str
    created_at: datetime

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "User":
        return cls(
            id=record["id"],
            name=record["name"],
            created_at=_timestamp(record["createdAt"]),
        )


@dataclass(frozen=True)
class Lesson:
    """Lesson model. The word list is fixed when the lesson is created."""

    id: str
    user_id: str
    name: str
    words: Tuple[str, ...]
    created_at: datetime

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "name": self.name,
            "words": list(self.words),
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Lesson":
        return cls(
            id=record["id"],
            user_id=record["userId"],
            name=record["name"],
            words=tuple(record["words"]),
            created_at=_timestamp(record["createdAt"]),
        )


@dataclass
class LessonProgress:
    """Per-user progress on one lesson."""

    id: str
    lesson_id: str
    user_id: str
    successful_completions: int
    last_practiced: datetime

    @property
    def is_puzzle_unlocked(self) -> bool:
        """Whether the lesson has been completed enough times to unlock its puzzle."""
        return self.successful_completions >= PUZZLE_UNLOCK_COMPLETIONS

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "lessonId": self.lesson_id,
            "userId": self.user_id,
            "successfulCompletions": self.successful_completions,
            "lastPracticed": self.last_practiced.isoformat(),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "LessonProgress":
        return cls(
            id=record["id"],
            lesson_id=record["lessonId"],
            user_id=record["userId"],
            successful_completions=int(record["successfulCompletions"]),
            last_practiced=_timestamp(record["lastPracticed"]),
        )
