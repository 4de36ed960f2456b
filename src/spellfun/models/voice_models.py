"""Models for voice synthesis state and events."""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

# Piper voices offered in the settings menu
AVAILABLE_NEURAL_VOICES = (
    "en_US-hfc_female-medium",
    "en_US-hfc_male-medium",
)


class VoiceMethod(Enum):
    """Available speech synthesis backends."""
    DEVICE = "device"  # Platform speech engine, no download
    NEURAL = "neural"  # Downloadable neural voice model


@dataclass(frozen=True)
class DownloadProgress:
    """Bytes received so far for one voice asset."""
    url: str
    loaded: int
    total: int  # 0 when the server did not report a size

    @property
    def is_indeterminate(self) -> bool:
        return self.total <= 0

    @property
    def percent(self) -> Optional[float]:
        """Percentage complete, or None when the total size is unknown."""
        if self.is_indeterminate:
            return None
        return min(100.0, self.loaded * 100.0 / self.total)


ProgressCallback = Callable[[DownloadProgress], None]
