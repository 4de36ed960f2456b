"""Tests for domain and voice models."""
from datetime import UTC, datetime

import pytest

from spellfun.models.models import Lesson, LessonProgress, User
from spellfun.models.voice_models import DownloadProgress, VoiceMethod

NOW = datetime(2024, 1, 1, 9, 30, 15, 123456, tzinfo=UTC)


def test_user_record_uses_stored_field_names() -> None:
    """Test the stored layout of a user."""
    user = User(id="u1", name="Alex", created_at=NOW)

    record = user.to_record()

    assert record == {"id": "u1", "name": "Alex", "createdAt": NOW.isoformat()}
    assert User.from_record(record) == user


def test_lesson_record_round_trip() -> None:
    """Test lesson conversion keeps word order."""
    lesson = Lesson(id="l1", user_id="u1", name="Animals", words=("cat", "dog", "bird"), created_at=NOW)

    record = lesson.to_record()

    assert record["userId"] == "u1"
    assert record["words"] == ["cat", "dog", "bird"]
    assert Lesson.from_record(record) == lesson


def test_progress_puzzle_threshold() -> None:
    """Test the puzzle unlock threshold."""
    progress = LessonProgress(
        id="p1", lesson_id="l1", user_id="u1", successful_completions=5, last_practiced=NOW
    )
    assert progress.is_puzzle_unlocked is False

    progress.successful_completions = 6
    assert progress.is_puzzle_unlocked is True
    assert progress.to_record()["successfulCompletions"] == 6
    assert progress.to_record()["lessonId"] == "l1"


def test_download_progress_percent() -> None:
    """Test determinate and indeterminate progress."""
    assert DownloadProgress(url="u", loaded=250, total=1000).percent == 25.0
    unknown = DownloadProgress(url="u", loaded=250, total=0)
    assert unknown.is_indeterminate is True
    assert unknown.percent is None


def test_voice_method_values() -> None:
    """Test method values used in settings."""
    assert VoiceMethod("device") is VoiceMethod.DEVICE
    assert VoiceMethod("neural") is VoiceMethod.NEURAL
    with pytest.raises(ValueError):
        VoiceMethod("built-in")


if __name__ == "__main__":
    pytest.main([__file__])
