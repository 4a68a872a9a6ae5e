"""Status synchronizer.

Pulls a submitted job's status from the speech provider and folds it into
the episode record. Runs only when a caller asks for the transcription
result; there is no background poller.

Errors propagate to the caller and leave the record untouched. The one
exception is an unrecognized provider status, which is logged and ignored.
"""

import logging

from podcast_transcribe.db.models import Episode
from podcast_transcribe.db.repository import EpisodeRepositoryInterface
from podcast_transcribe.exceptions import (
    EpisodeNotFoundError,
    MissingJobReferenceError,
    UnexpectedProviderStatusError,
)
from podcast_transcribe.speech.client import SpeechTranscriptionClient
from podcast_transcribe.workflow.states import (
    PROVIDER_STATUS_TARGETS,
    ProviderStatus,
    TranscriptionStatus,
    can_transition,
)
from podcast_transcribe.workflow.submission import save_episode, validate_episode_id

logger = logging.getLogger(__name__)


class TranscriptionStatusSynchronizer:
    """Synchronizes episode records with provider job status."""

    def __init__(
        self,
        repository: EpisodeRepositoryInterface,
        provider_client: SpeechTranscriptionClient,
    ):
        self.repository = repository
        self.provider_client = provider_client

    def _load(self, episode_id: str) -> Episode:
        episode = self.repository.get_episode(episode_id)
        if episode is None:
            raise EpisodeNotFoundError(episode_id)
        if not episode.provider_job_uri:
            raise MissingJobReferenceError(episode_id)
        return episode

    def sync(self, episode_id: str) -> str:
        """Query the provider for an episode's job and update the record.

        Args:
            episode_id: Episode to synchronize.

        Returns:
            The raw status string reported by the provider.

        Raises:
            ValidationError: If the episode id is blank.
            EpisodeNotFoundError: If the episode does not exist.
            MissingJobReferenceError: If the episode was never submitted.
            ExternalServiceError: If a provider call fails.
            MalformedProviderResponseError: If a provider payload lacks an expected field.
            ConcurrencyConflictError: If the record changed while syncing.
        """
        episode_id = validate_episode_id(episode_id)
        episode = self._load(episode_id)

        job_status = self.provider_client.get_status(episode.provider_job_uri)
        raw_status = job_status.raw_status or ""

        if job_status.status is ProviderStatus.UNKNOWN:
            logger.warning(
                f"Episode {episode_id}: {UnexpectedProviderStatusError(job_status.raw_status)}"
            )
            return raw_status

        current = TranscriptionStatus.coerce(episode.transcription_status)
        target = PROVIDER_STATUS_TARGETS[job_status.status]

        if target == current:
            logger.debug(f"Episode {episode_id} unchanged at {current.value}")
            return raw_status

        if not can_transition(current, target):
            logger.info(
                f"Ignoring provider status {raw_status} for episode {episode_id} "
                f"in state {current.value}"
            )
            return raw_status

        if target == TranscriptionStatus.SUCCEEDED:
            # Status and transcript are persisted together or not at all
            episode.transcript_text = self.provider_client.get_transcript(
                episode.provider_job_uri
            )
            episode.transcription_error = None
        elif target == TranscriptionStatus.FAILED:
            episode.transcription_error = "Provider reported transcription failure"

        episode.transcription_status = target.value
        save_episode(self.repository, episode)

        logger.info(f"Episode {episode_id} moved from {current.value} to {target.value}")
        return raw_status
