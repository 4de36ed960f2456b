"""Platform speech engines used by the device voice backend."""
import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from spellfun.exceptions import SpeechError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlatformVoice:
    """An installed voice reported by the platform catalog."""
    id: str
    name: str
    language: str


class SpeechEngine(ABC):
    """Native speech synthesizer behind speak/cancel."""

    @abstractmethod
    def get_voices(self) -> List[PlatformVoice]:
        """Voices currently installed. May be empty right after startup."""

    @abstractmethod
    async def speak(self, text: str, voice: Optional[PlatformVoice], rate: float) -> None:
        """Speak ``text`` and return at end of utterance."""

    @abstractmethod
    def cancel(self) -> None:
        """Cancel any utterance in progress."""

    def add_voices_changed_listener(self, listener: Callable[[], None]) -> bool:
        """Register for catalog updates. Returns False when unsupported."""
        return False


def _voice_language(voice: Any) -> str:
    """Best-effort language tag for a pyttsx3 voice."""
    for language in getattr(voice, "languages", None) or []:
        if isinstance(language, (bytes, bytearray)):
            # espeak prefixes the tag with a priority byte
            language = bytes(language).decode(errors="ignore")
        language = "".join(ch for ch in str(language) if ch.isprintable()).strip()
        if language:
            return language
    return ""


class Pyttsx3SpeechEngine(SpeechEngine):
    """Offline speech through pyttsx3 (SAPI5, NSSpeechSynthesizer or espeak).

    The driver is started on first use so that constructing the engine
    never touches the platform.
    """

    def __init__(self, driver_name: Optional[str] = None):
        self.driver_name = driver_name
        self._engine: Optional[Any] = None
        self._base_rate = 200
        self._init_lock = threading.Lock()
        self._speak_lock = threading.Lock()

    def _driver(self) -> Any:
        with self._init_lock:
            if self._engine is None:
                try:
                    import pyttsx3  # local import to avoid hard dependency if unused

                    engine = pyttsx3.init(driverName=self.driver_name)
                except Exception as e:
                    logger.error("Platform speech unavailable: %s", e)
                    raise SpeechError(f"Platform speech unavailable: {e}") from e
                self._base_rate = int(engine.getProperty("rate") or 200)
                self._engine = engine
        return self._engine

    def get_voices(self) -> List[PlatformVoice]:
        voices = self._driver().getProperty("voices") or []
        return [
            PlatformVoice(id=voice.id, name=voice.name or voice.id, language=_voice_language(voice))
            for voice in voices
        ]

    async def speak(self, text: str, voice: Optional[PlatformVoice], rate: float) -> None:
        await asyncio.to_thread(self._speak_sync, text, voice, rate)

    def _speak_sync(self, text: str, voice: Optional[PlatformVoice], rate: float) -> None:
        engine = self._driver()
        with self._speak_lock:
            try:
                if voice is not None:
                    engine.setProperty("voice", voice.id)
                engine.setProperty("rate", max(1, int(self._base_rate * rate)))
                engine.say(text)
                engine.runAndWait()
            except Exception as e:
                logger.error("Platform speech failed for %r: %s", text, e)
                raise SpeechError(f"Platform speech failed: {e}") from e

    def cancel(self) -> None:
        if self._engine is not None:
            self._engine.stop()
