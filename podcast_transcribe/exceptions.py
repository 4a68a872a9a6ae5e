"""Exception hierarchy for the transcription lifecycle.

Every error raised by the store, the audio adapter, the object store, the
speech provider client and the workflow services derives from
TranscriptionError so the request layer can map them in one place.
"""

from typing import Optional


class TranscriptionError(Exception):
    """Base class for all transcription lifecycle errors."""


class ValidationError(TranscriptionError):
    """Raised when a request is missing a usable episode id."""


class EpisodeNotFoundError(TranscriptionError):
    """Raised when an episode does not exist in the store."""

    def __init__(self, episode_id: str):
        super().__init__(f"Episode {episode_id} not found")
        self.episode_id = episode_id


class ConcurrencyConflictError(TranscriptionError):
    """Raised when an upsert loses a compare-and-swap on the record version."""

    def __init__(self, episode_id: str, expected_version: Optional[int]):
        super().__init__(
            f"Episode {episode_id} was modified concurrently "
            f"(expected version {expected_version})"
        )
        self.episode_id = episode_id
        self.expected_version = expected_version


class InvalidTransitionError(TranscriptionError):
    """Raised when the state machine rejects a status change."""

    def __init__(self, source, target):
        super().__init__(f"Invalid transcription status transition: {source} -> {target}")
        self.source = source
        self.target = target


class MissingJobReferenceError(TranscriptionError):
    """Raised when a sync is requested for an episode that was never submitted."""

    def __init__(self, episode_id: str):
        super().__init__(f"Episode {episode_id} has no provider job reference")
        self.episode_id = episode_id


class ExternalServiceError(TranscriptionError):
    """Raised on a non-success response or network failure from a remote service.

    Attributes:
        service: Short name of the remote service (provider, object store, ...).
        status_code: HTTP status code when one was received.
    """

    def __init__(self, service: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status_code = status_code


class AcquisitionError(TranscriptionError):
    """Raised when the remote audio cannot be fetched or is empty."""


class TranscodeError(TranscriptionError):
    """Raised when the downloaded audio has no audio stream or cannot be converted."""


class UnexpectedProviderStatusError(TranscriptionError):
    """An unrecognized provider status string.

    Logged by the synchronizer, never propagated to callers.
    """

    def __init__(self, raw_status: Optional[str]):
        super().__init__(f"Unknown transcription status: {raw_status!r}")
        self.raw_status = raw_status


class MalformedProviderResponseError(TranscriptionError):
    """Raised when a provider payload is missing an expected field."""
