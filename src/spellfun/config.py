"""Configuration settings for SpellFun."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Define base directory
BASE_DIR = Path(__file__).parent.parent.parent

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


# Define data directories from environment variables
DATA_DIR = Path(os.getenv("DATA_DIR", "./data"))
VOICES_DIR = DATA_DIR / "voices"

# Voice settings
VOICE_METHODS = ("device", "neural")
DEFAULT_VOICE_ID = "en_US-hfc_female-medium"
VOICE_MODELS_URL = "https://huggingface.co/rhasspy/piper-voices/resolve/main"


def ensure_directories() -> None:
    """Ensure all required directories exist."""
    directories = [
        DATA_DIR,
        VOICES_DIR,
    ]

    for directory in directories:
        directory.mkdir(parents=True, exist_ok=True)


@dataclass
class PathSettings:
    """Path configuration settings."""
    base_dir: Path = BASE_DIR
    data_dir: Path = DATA_DIR
    voices_dir: Path = VOICES_DIR


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR / 'spellfun.db'}")
    echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"
    reset_retry_delay: float = float(os.getenv("DATABASE_RESET_RETRY_DELAY", "1.0"))


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = os.getenv("LOG_DIR") or None
    rotation: str = os.getenv("LOG_ROTATION", "midnight")
    interval: int = int(os.getenv("LOG_INTERVAL", "1"))
    backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "7"))


@dataclass
class VoiceSettings:
    """Speech synthesis settings."""
    method: str = os.getenv("VOICE_METHOD", "device")
    voice_id: str = os.getenv("VOICE_ID", DEFAULT_VOICE_ID)
    language: str = os.getenv("VOICE_LANGUAGE", "en")
    rate: float = float(os.getenv("VOICE_RATE", "0.8"))  # slightly slower for clarity
    catalog_retry_delay: float = float(os.getenv("VOICE_CATALOG_RETRY_DELAY", "0.5"))
    models_url: str = os.getenv("VOICE_MODELS_URL", VOICE_MODELS_URL)
    download_chunk_size: int = int(os.getenv("VOICE_DOWNLOAD_CHUNK_SIZE", str(64 * 1024)))
    download_timeout: float = float(os.getenv("VOICE_DOWNLOAD_TIMEOUT", "60"))
    playback_poll_interval: float = float(os.getenv("VOICE_PLAYBACK_POLL_INTERVAL", "0.05"))


@dataclass
class MonitoringSettings:
    """Prometheus metrics settings."""
    enabled: bool = os.getenv("METRICS_ENABLED", "false").lower() == "true"
    port: int = int(os.getenv("METRICS_PORT", "9090"))


def get_path_settings() -> PathSettings:
    """Get path settings."""
    return PathSettings()


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_voice_settings() -> VoiceSettings:
    """Get voice settings."""
    return VoiceSettings()


def get_monitoring_settings() -> MonitoringSettings:
    """Get monitoring settings."""
    return MonitoringSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    paths: PathSettings = field(default_factory=get_path_settings)
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    voice: VoiceSettings = field(default_factory=get_voice_settings)
    monitoring: MonitoringSettings = field(default_factory=get_monitoring_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        if self.voice.method not in VOICE_METHODS:
            raise ValueError(f"VOICE_METHOD must be one of {', '.join(VOICE_METHODS)}")

        if not self.voice.voice_id:
            raise ValueError("VOICE_ID is required")

        if self.voice.rate <= 0:
            raise ValueError("VOICE_RATE must be positive")

        if self.voice.download_chunk_size < 1:
            raise ValueError("VOICE_DOWNLOAD_CHUNK_SIZE must be positive")

        if self.voice.catalog_retry_delay < 0 or self.database.reset_retry_delay < 0:
            raise ValueError("Retry delays cannot be negative")

        if self.voice.playback_poll_interval <= 0:
            raise ValueError("VOICE_PLAYBACK_POLL_INTERVAL must be positive")


# Create global settings instance
settings = Settings()
settings.validate()
