"""Monitoring configuration for SpellFun."""
from prometheus_client import Counter, Histogram, start_http_server

# Persistence metrics
users_created = Counter(
    "spellfun_users_created_total",
    "Total number of users created",
)

lessons_created = Counter(
    "spellfun_lessons_created_total",
    "Total number of lessons created",
)

completions_recorded = Counter(
    "spellfun_completions_recorded_total",
    "Total number of lesson completions recorded",
)

# Database metrics
db_operations = Counter(
    "spellfun_db_operations_total",
    "Total number of structured store operations",
    ["operation_type"],
)

db_errors = Counter(
    "spellfun_db_errors_total",
    "Total number of structured store errors",
    ["error_type"],
)

# Voice metrics
utterances = Counter(
    "spellfun_utterances_total",
    "Total number of words spoken",
    ["method"],
)

speech_errors = Counter(
    "spellfun_speech_errors_total",
    "Total number of failed utterances",
    ["method"],
)

voice_downloads = Counter(
    "spellfun_voice_downloads_total",
    "Total number of neural voice downloads",
    ["status"],
)

voice_download_bytes = Counter(
    "spellfun_voice_download_bytes_total",
    "Total number of neural voice bytes downloaded",
)

synthesis_duration = Histogram(
    "spellfun_synthesis_duration_seconds",
    "Duration of neural speech synthesis in seconds",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
