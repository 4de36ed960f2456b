"""Neural voice inference engines: model download, cache and prediction."""
import asyncio
import io
import logging
import tempfile
import wave
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from spellfun.exceptions import VoiceDownloadError
from spellfun.models.voice_models import DownloadProgress, ProgressCallback
from spellfun.monitoring import synthesis_duration, voice_download_bytes, voice_downloads

logger = logging.getLogger(__name__)

MODEL_SUFFIXES = (".onnx", ".onnx.json")


class InferenceEngine(ABC):
    """Download-then-predict contract for a neural text-to-speech model."""

    @abstractmethod
    async def download(self, voice_id: str, on_progress: Optional[ProgressCallback] = None) -> None:
        """Fetch and cache the voice's model assets."""

    @abstractmethod
    async def predict(self, text: str, voice_id: str) -> bytes:
        """Synthesize ``text`` into a WAV buffer."""

    @abstractmethod
    def is_cached(self, voice_id: str) -> bool:
        """Whether the voice's assets are already in the local cache."""


class PiperEngine(InferenceEngine):
    """Piper voices downloaded from a model repository and cached on disk.

    Voice ids follow Piper's ``<lang>_<REGION>-<name>-<quality>`` naming,
    e.g. ``en_US-hfc_female-medium``. Cached files survive restarts, so a
    voice is only downloaded once.
    """

    def __init__(
        self,
        cache_dir: Path,
        base_url: str,
        chunk_size: int = 64 * 1024,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cache_dir = Path(cache_dir)
        self.base_url = base_url.rstrip("/")
        self.chunk_size = chunk_size
        self.timeout = timeout
        self._transport = transport
        self._voices: Dict[str, Any] = {}

    @staticmethod
    def voice_path(voice_id: str) -> str:
        """Repository path of a voice, without file suffix."""
        parts = voice_id.split("-")
        if len(parts) != 3 or not all(parts) or "_" not in parts[0]:
            raise ValueError(f"Invalid Piper voice id: {voice_id}")
        locale, name, quality = parts
        language = locale.split("_")[0]
        return f"{language}/{locale}/{name}/{quality}/{voice_id}"

    def asset_urls(self, voice_id: str) -> List[str]:
        path = self.voice_path(voice_id)
        return [f"{self.base_url}/{path}{suffix}" for suffix in MODEL_SUFFIXES]

    def asset_files(self, voice_id: str) -> List[Path]:
        self.voice_path(voice_id)
        return [self.cache_dir / f"{voice_id}{suffix}" for suffix in MODEL_SUFFIXES]

    def is_cached(self, voice_id: str) -> bool:
        return all(path.exists() for path in self.asset_files(voice_id))

    async def download(self, voice_id: str, on_progress: Optional[ProgressCallback] = None) -> None:
        urls = self.asset_urls(voice_id)
        files = self.asset_files(voice_id)
        if all(path.exists() for path in files):
            logger.info("Voice %s already cached", voice_id)
            return

        logger.info("Downloading voice %s", voice_id)
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            async with httpx.AsyncClient(
                follow_redirects=True,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                for url, target in zip(urls, files):
                    if target.exists():
                        continue
                    await self._fetch(client, url, target, on_progress)
        except (httpx.HTTPError, OSError) as e:
            voice_downloads.labels(status="failed").inc()
            logger.error("Download of voice %s failed: %s", voice_id, e)
            raise VoiceDownloadError(voice_id, str(e)) from e

        voice_downloads.labels(status="completed").inc()
        logger.info("Voice %s downloaded to %s", voice_id, self.cache_dir)

    async def _fetch(
        self,
        client: httpx.AsyncClient,
        url: str,
        target: Path,
        on_progress: Optional[ProgressCallback],
    ) -> None:
        # Unique name per fetch so concurrent downloads never share a file
        out = tempfile.NamedTemporaryFile(dir=self.cache_dir, prefix=f".{target.name}.", suffix=".part", delete=False)
        partial = Path(out.name)
        try:
            with out:
                async with client.stream("GET", url) as response:
                    response.raise_for_status()
                    total = int(response.headers.get("content-length") or 0)
                    loaded = 0
                    async for chunk in response.aiter_bytes(chunk_size=self.chunk_size):
                        out.write(chunk)
                        loaded += len(chunk)
                        voice_download_bytes.inc(len(chunk))
                        if on_progress is not None:
                            on_progress(DownloadProgress(url=url, loaded=loaded, total=total))
            partial.replace(target)
        finally:
            partial.unlink(missing_ok=True)

    async def predict(self, text: str, voice_id: str) -> bytes:
        with synthesis_duration.time():
            return await asyncio.to_thread(self._predict_sync, text, voice_id)

    def _predict_sync(self, text: str, voice_id: str) -> bytes:
        voice = self._load_voice(voice_id)
        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as wav_file:
            voice.synthesize_wav(text, wav_file)
        return buffer.getvalue()

    def _load_voice(self, voice_id: str) -> Any:
        if voice_id not in self._voices:
            if not self.is_cached(voice_id):
                raise FileNotFoundError(f"Voice {voice_id} is not downloaded")
            from piper import PiperVoice  # local import, loads onnxruntime

            model_path, config_path = self.asset_files(voice_id)
            self._voices[voice_id] = PiperVoice.load(str(model_path), config_path=str(config_path))
            logger.info("Loaded voice model %s", voice_id)
        return self._voices[voice_id]
