"""Test configuration."""
import asyncio
import os
from pathlib import Path
from typing import Generator, List, Optional

import pytest
from faker import Faker

# Set test environment before any imports
os.environ["ENV"] = "test"

# Import after environment setup
from spellfun.models.voice_models import DownloadProgress, ProgressCallback
from spellfun.services.audio_player import AudioPlayer
from spellfun.services.neural_engine import InferenceEngine
from spellfun.services.persistence_service import PersistenceService
from spellfun.services.speech_engine import PlatformVoice, SpeechEngine
from spellfun.services.structured_store import StructuredStore
from spellfun.services.synthesis_backends import DeviceVoice, NeuralVoice
from spellfun.services.voice_coordinator import VoiceCoordinator

VOICE_ID = "en_US-hfc_female-medium"
OTHER_VOICE_ID = "en_US-hfc_male-medium"

ENGLISH = PlatformVoice(id="english", name="English", language="en-US")
GERMAN = PlatformVoice(id="german", name="German", language="de-DE")


class FakeSpeechEngine(SpeechEngine):
    """Platform speech engine that records calls."""

    def __init__(self, voices: Optional[List[PlatformVoice]] = None):
        self.voices = list(voices or [])
        self.events: list = []
        self.listener = None
        self.error: Optional[Exception] = None
        self.hold = False
        self._utterance: Optional[asyncio.Event] = None

    def get_voices(self) -> List[PlatformVoice]:
        return list(self.voices)

    async def speak(self, text: str, voice: Optional[PlatformVoice], rate: float) -> None:
        self.events.append(("speak", text, voice, rate))
        if self.error is not None:
            raise self.error
        if self.hold:
            self._utterance = asyncio.Event()
            await self._utterance.wait()

    def cancel(self) -> None:
        self.events.append(("cancel",))
        if self._utterance is not None:
            self._utterance.set()

    def add_voices_changed_listener(self, listener) -> bool:
        self.listener = listener
        return True


class FakeInferenceEngine(InferenceEngine):
    """Neural engine that simulates a chunked download."""

    def __init__(self, size: int = 1000, chunk: int = 100):
        self.size = size
        self.chunk = chunk
        self.downloads: List[str] = []
        self.predictions: list = []
        self.cached: set = set()
        self.error: Optional[Exception] = None

    async def download(self, voice_id: str, on_progress: Optional[ProgressCallback] = None) -> None:
        self.downloads.append(voice_id)
        if self.error is not None:
            raise self.error
        url = f"https://voices.test/{voice_id}.onnx"
        for loaded in range(self.chunk, self.size + 1, self.chunk):
            if on_progress is not None:
                on_progress(DownloadProgress(url=url, loaded=loaded, total=self.size))
            await asyncio.sleep(0)
        self.cached.add(voice_id)

    async def predict(self, text: str, voice_id: str) -> bytes:
        self.predictions.append((text, voice_id))
        return f"RIFF{text}".encode()

    def is_cached(self, voice_id: str) -> bool:
        return voice_id in self.cached


class FakeAudioPlayer(AudioPlayer):
    """Audio player that records play/stop order."""

    def __init__(self):
        self.events: list = []
        self.hold = False
        self.current: Optional[bytes] = None
        self._done: Optional[asyncio.Event] = None

    @property
    def is_playing(self) -> bool:
        return self.current is not None

    async def play(self, audio: bytes) -> None:
        self.events.append(("play", audio))
        self.current = audio
        if self.hold:
            self._done = asyncio.Event()
            await self._done.wait()
        if self.current == audio:
            self.current = None

    def stop(self) -> None:
        self.events.append(("stop",))
        self.current = None
        if self._done is not None:
            self._done.set()


@pytest.fixture
def fake() -> Faker:
    return Faker()


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'spellfun.db'}"


@pytest.fixture
def store(database_url: str) -> Generator[StructuredStore, None, None]:
    """Create a fresh store for each test."""
    store = StructuredStore(database_url, reset_retry_delay=0)
    try:
        yield store
    finally:
        store.close()


@pytest.fixture
def persistence_service(store: StructuredStore) -> PersistenceService:
    return PersistenceService(store)


@pytest.fixture
def speech_engine() -> FakeSpeechEngine:
    return FakeSpeechEngine([GERMAN, ENGLISH])


@pytest.fixture
def inference_engine() -> FakeInferenceEngine:
    return FakeInferenceEngine()


@pytest.fixture
def audio_player() -> FakeAudioPlayer:
    return FakeAudioPlayer()


@pytest.fixture
def device_voice(speech_engine: FakeSpeechEngine) -> DeviceVoice:
    return DeviceVoice(speech_engine, language="en", rate=0.8, retry_delay=0)


@pytest.fixture
def neural_voice(inference_engine: FakeInferenceEngine, audio_player: FakeAudioPlayer) -> NeuralVoice:
    return NeuralVoice(inference_engine, audio_player)


@pytest.fixture
def coordinator(device_voice: DeviceVoice, neural_voice: NeuralVoice) -> VoiceCoordinator:
    return VoiceCoordinator(device_voice, neural_voice, method="device", default_voice_id=VOICE_ID)
