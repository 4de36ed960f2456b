"""Speech synthesis backends: device-native and downloadable neural voices."""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from spellfun.models.voice_models import ProgressCallback, VoiceMethod
from spellfun.services.audio_player import AudioPlayer
from spellfun.services.neural_engine import InferenceEngine
from spellfun.services.speech_engine import PlatformVoice, SpeechEngine

logger = logging.getLogger(__name__)


class SynthesisBackend(ABC):
    """Base class for all speech synthesis backends."""

    method: VoiceMethod

    @abstractmethod
    async def initialize(self, voice_id: Optional[str] = None, on_progress: Optional[ProgressCallback] = None) -> None:
        """Prepare the backend to speak with the given voice."""
        raise NotImplementedError("Subclasses must implement this method")

    @abstractmethod
    async def speak(self, text: str, voice_id: Optional[str] = None) -> None:
        """Speak text, returning when the audio has finished."""
        raise NotImplementedError("Subclasses must implement this method")

    @abstractmethod
    def stop(self) -> None:
        """Stop any audio in progress. Safe when nothing is playing."""
        raise NotImplementedError("Subclasses must implement this method")

    @abstractmethod
    def is_ready(self) -> bool:
        """Whether a voice has been selected or cached."""
        raise NotImplementedError("Subclasses must implement this method")


def choose_voice(voices: List[PlatformVoice], language: str) -> Optional[PlatformVoice]:
    """Prefer a voice for ``language``, fall back to the first installed one."""
    prefix = language.lower()
    for voice in voices:
        if voice.language.lower().replace("_", "-").startswith(prefix):
            return voice
    return voices[0] if voices else None


class DeviceVoice(SynthesisBackend):
    """Platform speech engine. Needs no download and is always usable."""

    method = VoiceMethod.DEVICE

    def __init__(
        self,
        engine: SpeechEngine,
        language: str = "en",
        rate: float = 0.8,
        retry_delay: float = 0.5,
    ):
        self.engine = engine
        self.language = language
        self.rate = rate
        self.retry_delay = retry_delay
        self.voice: Optional[PlatformVoice] = None
        if self.engine.add_voices_changed_listener(self._on_voices_changed):
            logger.debug("Listening for platform voice catalog updates")

    def _select_voice(self) -> Optional[PlatformVoice]:
        voice = choose_voice(self.engine.get_voices(), self.language)
        if voice is not None:
            self.voice = voice
        return voice

    def _on_voices_changed(self) -> None:
        voice = self._select_voice()
        if voice is not None:
            logger.info("Platform voices available, selected %s (%s)", voice.name, voice.language)

    async def initialize(self, voice_id: Optional[str] = None, on_progress: Optional[ProgressCallback] = None) -> None:
        if self._select_voice() is None:
            # Catalog may still be loading
            await asyncio.sleep(self.retry_delay)
            if self._select_voice() is None:
                logger.warning("No platform voice found, using the engine default")
                return
        logger.debug("Device voice selected: %s (%s)", self.voice.name, self.voice.language)

    async def speak(self, text: str, voice_id: Optional[str] = None) -> None:
        await self.engine.speak(text, self.voice, self.rate)

    def stop(self) -> None:
        self.engine.cancel()

    def is_ready(self) -> bool:
        return self.voice is not None


class NeuralVoice(SynthesisBackend):
    """Neural voice model that is downloaded and cached before first use.

    Concurrent requests for a voice share one download. Every ``stop()``
    bumps a generation counter; an utterance whose generation is stale by
    the time its audio is ready is dropped instead of played.
    """

    method = VoiceMethod.NEURAL

    def __init__(self, engine: InferenceEngine, player: AudioPlayer):
        self.engine = engine
        self.player = player
        self.current_voice_id: Optional[str] = None
        self._downloads: Dict[str, asyncio.Task] = {}
        self._generation = 0

    @property
    def downloading(self) -> bool:
        return bool(self._downloads)

    async def initialize(self, voice_id: Optional[str] = None, on_progress: Optional[ProgressCallback] = None) -> None:
        if not voice_id:
            raise ValueError("A voice id is required for neural speech")
        if voice_id == self.current_voice_id:
            return

        task = self._downloads.get(voice_id)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._download(voice_id, on_progress))
            self._downloads[voice_id] = task
            task.add_done_callback(self._on_download_done)
        else:
            logger.debug("Joining download of voice %s already in progress", voice_id)
        # Callers giving up must not abort the shared download
        await asyncio.shield(task)

    async def _download(self, voice_id: str, on_progress: Optional[ProgressCallback]) -> None:
        try:
            await self.engine.download(voice_id, on_progress)
        finally:
            self._downloads.pop(voice_id, None)
        self.current_voice_id = voice_id
        logger.info("Neural voice %s ready", voice_id)

    @staticmethod
    def _on_download_done(task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Voice download failed: %s", task.exception())

    async def speak(self, text: str, voice_id: Optional[str] = None) -> None:
        generation = self._generation
        voice_id = voice_id or self.current_voice_id
        if not voice_id:
            raise ValueError("A voice id is required for neural speech")
        if voice_id != self.current_voice_id:
            await self.initialize(voice_id)

        audio = await self.engine.predict(text, voice_id)
        if generation != self._generation:
            logger.debug("Dropping stale utterance %r", text)
            return
        await self.player.play(audio)

    def stop(self) -> None:
        self._generation += 1
        self.player.stop()

    def is_ready(self) -> bool:
        return self.current_voice_id is not None
