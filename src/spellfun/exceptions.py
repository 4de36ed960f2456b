"""Errors raised by the persistence and voice subsystems."""


class StoreError(Exception):
    """Base class for structured store failures."""


class OpenFailed(StoreError):
    """The database could not be opened or upgraded."""


class TransactionFailed(StoreError):
    """A read or write transaction failed."""


class DuplicateKey(StoreError):
    """An insert used an id that already exists in the collection."""

    def __init__(self, collection: str, record_id: str):
        super().__init__(f"Record {record_id} already exists in {collection}")
        self.collection = collection
        self.record_id = record_id


class ResetBlocked(StoreError):
    """Database deletion stayed blocked after the retry."""


class VoiceError(Exception):
    """Base class for speech synthesis failures."""


class SpeechError(VoiceError):
    """The platform speech engine reported an error."""


class VoiceDownloadError(VoiceError):
    """Neural voice assets could not be downloaded."""

    def __init__(self, voice_id: str, message: str):
        super().__init__(f"Failed to download voice {voice_id}: {message}")
        self.voice_id = voice_id
