"""Application context wiring storage and voice services together."""
import logging
from typing import Optional

from spellfun.config import Settings, settings as default_settings
from spellfun.services.audio_player import PygameAudioPlayer
from spellfun.services.neural_engine import PiperEngine
from spellfun.services.persistence_service import PersistenceService
from spellfun.services.speech_engine import Pyttsx3SpeechEngine
from spellfun.services.structured_store import StructuredStore
from spellfun.services.synthesis_backends import DeviceVoice, NeuralVoice
from spellfun.services.voice_coordinator import VoiceCoordinator


def create_store(settings: Settings) -> StructuredStore:
    """Build the structured store from database settings."""
    return StructuredStore(
        settings.database.url,
        echo=settings.database.echo,
        reset_retry_delay=settings.database.reset_retry_delay,
    )


def create_voice_coordinator(settings: Settings) -> VoiceCoordinator:
    """Build a coordinator over the platform speech engine and Piper voices."""
    voice = settings.voice
    device = DeviceVoice(
        Pyttsx3SpeechEngine(),
        language=voice.language,
        rate=voice.rate,
        retry_delay=voice.catalog_retry_delay,
    )
    neural = NeuralVoice(
        PiperEngine(
            settings.paths.voices_dir,
            voice.models_url,
            chunk_size=voice.download_chunk_size,
            timeout=voice.download_timeout,
        ),
        PygameAudioPlayer(poll_interval=voice.playback_poll_interval),
    )
    return VoiceCoordinator(device, neural, method=voice.method, default_voice_id=voice.voice_id)


class SpellFun:
    """Process-wide services, constructed once at startup and passed to consumers."""

    def __init__(
        self,
        settings: Settings = default_settings,
        store: Optional[StructuredStore] = None,
        voice: Optional[VoiceCoordinator] = None,
    ):
        """Initialize the application."""
        self.settings = settings
        self.store = store or create_store(settings)
        self.persistence = PersistenceService(self.store)
        self.voice = voice or create_voice_coordinator(settings)
        self.running = False
        self.logger = logging.getLogger(__name__)

    async def start(self) -> None:
        """Open storage and apply the configured voice method."""
        if self.running:
            return

        await self.store.open()
        self.logger.info("Database initialized")

        self.voice.set_method(self.settings.voice.method)
        self.logger.info("Voice method set to %s", self.voice.method.value)

        self.running = True

    async def stop(self) -> None:
        """Stop audio and release storage."""
        if not self.running:
            return

        try:
            self.voice.stop()
            await self.voice.drain()
            self.logger.info("Voice stopped")
        finally:
            self.store.close()
            self.logger.info("Database closed")
            self.running = False
