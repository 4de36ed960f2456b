"""Coordinator that owns backend selection and serializes playback."""
import asyncio
import logging
from typing import Dict, Optional, Set, Union

from spellfun.config import DEFAULT_VOICE_ID
from spellfun.exceptions import VoiceError
from spellfun.models.voice_models import ProgressCallback, VoiceMethod
from spellfun.monitoring import speech_errors, utterances
from spellfun.services.synthesis_backends import DeviceVoice, NeuralVoice, SynthesisBackend

logger = logging.getLogger(__name__)


class VoiceCoordinator:
    """Routes speech to the active backend, one utterance at a time.

    A new ``speak`` always stops the previous utterance instead of queuing.
    ``stop`` halts playback immediately but never aborts a download; a voice
    that finishes downloading afterwards is still cached.
    """

    def __init__(
        self,
        device: DeviceVoice,
        neural: NeuralVoice,
        method: Union[VoiceMethod, str] = VoiceMethod.DEVICE,
        default_voice_id: str = DEFAULT_VOICE_ID,
    ):
        self.device = device
        self.neural = neural
        self.default_voice_id = default_voice_id
        self._backends: Dict[VoiceMethod, SynthesisBackend] = {
            VoiceMethod.DEVICE: device,
            VoiceMethod.NEURAL: neural,
        }
        self._method = VoiceMethod(method)
        self._pending: Set[asyncio.Task] = set()

    @property
    def method(self) -> VoiceMethod:
        return self._method

    @property
    def backend(self) -> SynthesisBackend:
        """The active backend."""
        return self._backends[self._method]

    @property
    def is_ready(self) -> bool:
        return self.backend.is_ready()

    @property
    def downloading(self) -> bool:
        return self.neural.downloading

    @property
    def current_voice_id(self) -> Optional[str]:
        return self.neural.current_voice_id

    def set_method(self, method: Union[VoiceMethod, str]) -> None:
        """Switch the active backend."""
        method = VoiceMethod(method)
        if method is not self._method:
            # Only one backend may be audible
            self.backend.stop()
            logger.info("Voice method changed from %s to %s", self._method.value, method.value)
            self._method = method

        if method is VoiceMethod.DEVICE:
            self._schedule(self.device.initialize())

    async def ensure_ready(self, voice_id: Optional[str] = None, on_progress: Optional[ProgressCallback] = None) -> None:
        """Initialize the active backend; cheap when it is already ready."""
        await self.backend.initialize(voice_id or self.default_voice_id, on_progress)

    async def speak(self, text: str, voice_id: Optional[str] = None) -> None:
        """Speak text, interrupting whatever is currently playing."""
        if not text or not text.strip():
            return

        voice_id = voice_id or self.default_voice_id
        self.stop()

        backend = self.backend
        utterances.labels(method=backend.method.value).inc()
        try:
            await backend.speak(text, voice_id)
        except VoiceError:
            speech_errors.labels(method=backend.method.value).inc()
            raise

    def stop(self) -> None:
        """Stop the active backend's playback."""
        self.backend.stop()

    async def drain(self) -> None:
        """Wait for background voice selection to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _schedule(self, coro) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet; the next ensure_ready selects the voice
            coro.close()
            return
        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Background voice selection failed: %s", error)
