"""Tests for the application context."""
import sys
from dataclasses import replace
from unittest.mock import MagicMock, patch

import pytest

from spellfun.app import SpellFun, create_voice_coordinator
from spellfun.config import Settings, VoiceSettings
from spellfun.models.voice_models import VoiceMethod
from spellfun.services.structured_store import StructuredStore
from spellfun.services.voice_coordinator import VoiceCoordinator


@pytest.fixture
def app(store: StructuredStore, coordinator: VoiceCoordinator) -> SpellFun:
    """Create an app with test storage and fake voices."""
    return SpellFun(Settings(voice=VoiceSettings(method="device")), store=store, voice=coordinator)


async def test_start_stop(app: SpellFun) -> None:
    """Test starting and stopping the app."""
    await app.start()
    assert app.running is True
    assert app.store.is_open is True
    assert app.voice.method is VoiceMethod.DEVICE

    await app.start()
    assert app.running is True

    await app.stop()
    assert app.running is False
    assert app.store.is_open is False
    assert app.voice.is_ready is True


async def test_app_services_share_store(app: SpellFun) -> None:
    """Test that the persistence service uses the app's store."""
    await app.start()
    try:
        user = await app.persistence.create_user("Alex")
        assert await app.store.get("users", user.id) is not None
    finally:
        await app.stop()


async def test_stop_when_not_running(app: SpellFun) -> None:
    """Test that stop is a no-op before start."""
    await app.stop()
    assert app.running is False


def test_create_voice_coordinator_uses_settings(tmp_path) -> None:
    """Test building real adapters from settings."""
    settings = Settings(voice=VoiceSettings(method="neural", voice_id="en_US-hfc_male-medium", rate=1.2))
    settings.paths = replace(settings.paths, voices_dir=tmp_path)

    with patch("spellfun.app.Pyttsx3SpeechEngine", return_value=MagicMock()) as speech, \
         patch("spellfun.app.PygameAudioPlayer", return_value=MagicMock()) as player:
        coordinator = create_voice_coordinator(settings)

    speech.assert_called_once_with()
    player.assert_called_once_with(poll_interval=settings.voice.playback_poll_interval)
    assert coordinator.method is VoiceMethod.NEURAL
    assert coordinator.default_voice_id == "en_US-hfc_male-medium"
    assert coordinator.device.rate == 1.2
    assert coordinator.neural.engine.cache_dir == tmp_path


async def test_app_starts_without_audio_libraries(store: StructuredStore, tmp_path) -> None:
    """Test that storage and the device method come up when audio output cannot load."""
    settings = Settings(voice=VoiceSettings(method="device"))
    settings.paths = replace(settings.paths, voices_dir=tmp_path)

    with patch.dict(sys.modules, {"pygame": None, "pyttsx3": None}):
        app = SpellFun(settings, store=store)
        await app.start()
        try:
            assert app.running is True
            assert app.voice.method is VoiceMethod.DEVICE
            user = await app.persistence.create_user("Alex")
            assert await app.persistence.get_user(user.id) == user
            await app.voice.drain()
        finally:
            await app.stop()

    assert app.running is False


if __name__ == "__main__":
    pytest.main([__file__])
