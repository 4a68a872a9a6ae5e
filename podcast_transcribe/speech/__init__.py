"""Speech-to-text provider client."""

from podcast_transcribe.speech.client import ProviderJobStatus, SpeechTranscriptionClient

__all__ = [
    "ProviderJobStatus",
    "SpeechTranscriptionClient",
]
