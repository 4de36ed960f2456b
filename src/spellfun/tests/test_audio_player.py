"""Tests for the platform audio adapters."""
import sys
from unittest.mock import MagicMock, patch

import pytest

from spellfun.exceptions import SpeechError
from spellfun.services.audio_player import PygameAudioPlayer
from spellfun.services.speech_engine import Pyttsx3SpeechEngine


@pytest.fixture
def pygame_module() -> MagicMock:
    """A stand-in pygame whose sounds finish immediately."""
    module = MagicMock()
    module.mixer.get_init.return_value = False
    channel = module.mixer.Sound.return_value.play.return_value
    channel.get_busy.return_value = False
    module.mixer.Sound.return_value.get_length.return_value = 0.5
    return module


def test_player_does_not_start_mixer_when_created(pygame_module: MagicMock) -> None:
    """Test that creating the player leaves the audio device alone."""
    with patch.dict(sys.modules, {"pygame": pygame_module}):
        player = PygameAudioPlayer()

    pygame_module.mixer.init.assert_not_called()
    assert player.is_playing is False


async def test_player_starts_mixer_on_first_play(pygame_module: MagicMock) -> None:
    """Test that the mixer is initialized once, by the first play."""
    with patch.dict(sys.modules, {"pygame": pygame_module}):
        player = PygameAudioPlayer(poll_interval=0)
        await player.play(b"RIFFcat")
        await player.play(b"RIFFdog")

    pygame_module.mixer.init.assert_called_once_with()
    assert pygame_module.mixer.Sound.call_count == 2
    assert player.is_playing is False


async def test_player_without_pygame_raises_speech_error() -> None:
    """Test that missing audio support is reported on play, not on creation."""
    with patch.dict(sys.modules, {"pygame": None}):
        player = PygameAudioPlayer()
        player.stop()
        with pytest.raises(SpeechError):
            await player.play(b"RIFFcat")


def test_speech_engine_without_pyttsx3() -> None:
    """Test that the platform engine only fails once it is used."""
    with patch.dict(sys.modules, {"pyttsx3": None}):
        engine = Pyttsx3SpeechEngine()
        engine.cancel()
        with pytest.raises(SpeechError):
            engine.get_voices()


if __name__ == "__main__":
    pytest.main([__file__])
