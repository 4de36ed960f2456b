"""Audio playback for synthesized speech buffers."""
import asyncio
import io
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from spellfun.exceptions import SpeechError

logger = logging.getLogger(__name__)


class AudioPlayer(ABC):
    """Plays one audio buffer at a time."""

    @abstractmethod
    async def play(self, audio: bytes) -> None:
        """Play a WAV buffer and return when playback ends or is stopped."""

    @abstractmethod
    def stop(self) -> None:
        """Halt playback and release the current sound. Safe when idle."""

    @property
    @abstractmethod
    def is_playing(self) -> bool:
        """Whether a buffer is currently audible."""


class PygameAudioPlayer(AudioPlayer):
    """Audio player backed by pygame.mixer. The mixer starts on first play."""

    def __init__(self, poll_interval: float = 0.05):
        self.poll_interval = poll_interval
        self._pygame: Optional[Any] = None
        self._sound: Optional[Any] = None
        self._channel: Optional[Any] = None

    def _mixer(self) -> Any:
        if self._pygame is None:
            try:
                import pygame  # local import to avoid hard dependency if unused

                if not pygame.mixer.get_init():
                    pygame.mixer.init()
            except Exception as e:
                logger.error("Audio output unavailable: %s", e)
                raise SpeechError(f"Audio output unavailable: {e}") from e
            self._pygame = pygame
        return self._pygame.mixer

    @property
    def is_playing(self) -> bool:
        return self._channel is not None and bool(self._channel.get_busy())

    async def play(self, audio: bytes) -> None:
        self.stop()
        sound = self._mixer().Sound(file=io.BytesIO(audio))
        channel = sound.play()
        self._sound, self._channel = sound, channel
        logger.debug("Playing %.2fs of audio", sound.get_length())
        try:
            while channel is not None and channel.get_busy():
                await asyncio.sleep(self.poll_interval)
        finally:
            if self._channel is channel:
                self._sound = None
                self._channel = None

    def stop(self) -> None:
        if self._channel is not None:
            self._channel.stop()
        self._sound = None
        self._channel = None
