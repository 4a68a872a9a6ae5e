"""Submission orchestrator for episode transcriptions.

`submit` decides whether an episode may start a transcription and, if so,
claims it (NotStarted -> Processing) with a compare-and-swap upsert before
handing `run_pipeline` to the PipelineRunner. The pipeline then runs off the
request path:

    idempotency check -> download -> transcode -> upload -> provider submit

Any error in the pipeline marks the episode Failed with the error message
stored in `transcription_error`. Temporary files are removed on every exit
path.
"""

import logging
import os
from dataclasses import dataclass
from typing import List, Optional

from podcast_transcribe.audio.downloader import BoundedAudioDownloader
from podcast_transcribe.audio.transcoder import AudioTranscoder
from podcast_transcribe.db.models import Episode
from podcast_transcribe.db.repository import EpisodeRepositoryInterface
from podcast_transcribe.exceptions import (
    ConcurrencyConflictError,
    EpisodeNotFoundError,
    ValidationError,
)
from podcast_transcribe.speech.client import SpeechTranscriptionClient
from podcast_transcribe.storage.object_store import ObjectStoreInterface
from podcast_transcribe.workflow.runner import (
    PipelineAlreadyPendingError,
    PipelineJob,
    PipelineOutcome,
    PipelineRunner,
)
from podcast_transcribe.workflow.states import (
    TranscriptionStatus,
    accepts_submission,
    can_transition,
    check_invariants,
    is_in_flight,
    transition,
)

logger = logging.getLogger(__name__)

MESSAGE_ALREADY_GENERATED = "Transcription already generated"
MESSAGE_IN_PROGRESS = "Transcription is in progress, please check back later"
MESSAGE_STARTED = "Transcription started, please check back later"
MESSAGE_PREVIOUS_RUN_FINISHING = "Previous transcription attempt is still finishing, please retry shortly"


def processed_audio_key(episode_id: str) -> str:
    """Object-store key of an episode's processed audio."""
    return f"{episode_id}_audio"


def transcription_display_name(episode_id: str) -> str:
    """Display name sent to the provider for an episode's job."""
    return f"{episode_id}-transcription"


def validate_episode_id(episode_id: Optional[str]) -> str:
    """Return the stripped episode id, raising ValidationError if it is blank."""
    if episode_id is None or not str(episode_id).strip():
        raise ValidationError("Episode id is required")
    return str(episode_id).strip()


def save_episode(repository: EpisodeRepositoryInterface, episode: Episode) -> Episode:
    """Upsert an episode, logging any lifecycle invariant it violates."""
    for violation in check_invariants(episode):
        logger.warning(f"Episode {episode.id} invariant violated: {violation}")
    return repository.upsert_episode(episode)


@dataclass
class SubmissionResult:
    """Answer to a submission request.

    Attributes:
        accepted: False only when the episode cannot be (re)submitted.
        message: Human-readable status message.
        status: Episode status after the request was handled.
        job: Handle on the launched pipeline, if this call launched one.
    """

    accepted: bool
    message: str
    status: TranscriptionStatus
    job: Optional[PipelineJob] = None


class TranscriptionSubmissionService:
    """Accepts transcription requests and runs the detached submission pipeline."""

    def __init__(
        self,
        repository: EpisodeRepositoryInterface,
        object_store: ObjectStoreInterface,
        provider_client: SpeechTranscriptionClient,
        downloader: BoundedAudioDownloader,
        transcoder: AudioTranscoder,
        runner: PipelineRunner,
    ):
        self.repository = repository
        self.object_store = object_store
        self.provider_client = provider_client
        self.downloader = downloader
        self.transcoder = transcoder
        self.runner = runner

    def _load(self, episode_id: str) -> Episode:
        episode = self.repository.get_episode(episode_id)
        if episode is None:
            raise EpisodeNotFoundError(episode_id)
        return episode

    def submit(self, episode_id: str, retry_failed: bool = False) -> SubmissionResult:
        """Request a transcription for an episode.

        Args:
            episode_id: Episode to transcribe.
            retry_failed: Allow a Failed episode to be submitted again.

        Returns:
            SubmissionResult. The call never waits for the pipeline.

        Raises:
            ValidationError: If the episode id is blank.
            EpisodeNotFoundError: If the episode does not exist.
        """
        episode_id = validate_episode_id(episode_id)
        episode = self._load(episode_id)
        status = TranscriptionStatus.coerce(episode.transcription_status)

        if status == TranscriptionStatus.SUCCEEDED:
            if episode.has_transcript:
                logger.info(f"Episode {episode_id} already transcribed")
                return SubmissionResult(True, MESSAGE_ALREADY_GENERATED, status)
            logger.warning(f"Episode {episode_id} is Succeeded without a transcript")
            return SubmissionResult(True, MESSAGE_IN_PROGRESS, status)

        if is_in_flight(status):
            logger.info(f"Episode {episode_id} already {status.value}, not resubmitting")
            return SubmissionResult(True, MESSAGE_IN_PROGRESS, status)

        if not accepts_submission(status, retry_failed=retry_failed):
            reason = episode.transcription_error or "unknown error"
            return SubmissionResult(
                False,
                f"Previous transcription attempt failed: {reason}",
                status,
            )

        previous_error = episode.transcription_error

        # Claim the episode; losing the compare-and-swap means another caller did
        episode.transcription_status = transition(status, TranscriptionStatus.PROCESSING).value
        episode.transcription_error = None
        episode.provider_job_uri = None
        episode.transcript_text = None
        try:
            save_episode(self.repository, episode)
        except ConcurrencyConflictError:
            logger.info(f"Episode {episode_id} was claimed by a concurrent submission")
            return SubmissionResult(True, MESSAGE_IN_PROGRESS, TranscriptionStatus.PROCESSING)

        try:
            job = self.runner.submit(episode_id, self.run_pipeline)
        except PipelineAlreadyPendingError:
            # Previous run already wrote its terminal state and is cleaning up
            logger.warning(
                f"Episode {episode_id} still has a finishing pipeline, releasing claim"
            )
            episode.transcription_status = status.value
            episode.transcription_error = previous_error
            save_episode(self.repository, episode)
            return SubmissionResult(False, MESSAGE_PREVIOUS_RUN_FINISHING, status)
        except RuntimeError as e:
            self._mark_failed(episode_id, str(e))
            raise

        logger.info(f"Episode {episode_id} claimed for transcription")
        return SubmissionResult(True, MESSAGE_STARTED, TranscriptionStatus.PROCESSING, job)

    def run_pipeline(self, episode_id: str) -> PipelineOutcome:
        """Run acquisition, transcoding, upload and provider submission for an episode.

        Executed on the runner's worker threads. Errors are recorded on the
        episode and returned in the outcome, never raised.
        """
        temp_paths: List[str] = []
        try:
            episode = self._load(episode_id)
            key = processed_audio_key(episode_id)

            skipped_acquisition = self.object_store.exists(key)
            if skipped_acquisition:
                audio_url = self.object_store.url_of(key)
                logger.info(f"Processed audio for {episode_id} already stored, skipping download")
            else:
                download = self.downloader.download(episode.audio_url)
                temp_paths.append(download.path)

                transcoded = self.transcoder.transcode(download.path)
                temp_paths.append(transcoded.path)

                with open(transcoded.path, "rb") as f:
                    audio_url = self.object_store.upload(f, key)

            episode.processed_audio_uri = audio_url
            episode = save_episode(self.repository, episode)

            job_uri = self.provider_client.submit_transcription(
                audio_url, transcription_display_name(episode_id)
            )

            episode.provider_job_uri = job_uri
            episode.transcription_status = transition(
                episode.transcription_status, TranscriptionStatus.SUBMITTED
            ).value
            save_episode(self.repository, episode)

            return PipelineOutcome(
                episode_id=episode_id,
                success=True,
                message=f"Submitted to provider as {job_uri}",
                job_uri=job_uri,
                skipped_acquisition=skipped_acquisition,
            )

        except Exception as e:
            logger.exception(f"Transcription pipeline failed for episode {episode_id}")
            self._mark_failed(episode_id, str(e))
            return PipelineOutcome(episode_id=episode_id, success=False, message=str(e))

        finally:
            for path in temp_paths:
                self._remove_temp_file(path)

    def _mark_failed(self, episode_id: str, error: str) -> None:
        """Move a claimed episode to Failed and store the error."""
        try:
            episode = self.repository.get_episode(episode_id)
            if episode is None:
                return
            if not can_transition(episode.transcription_status, TranscriptionStatus.FAILED):
                logger.warning(
                    f"Not marking episode {episode_id} Failed from {episode.transcription_status}"
                )
                return
            episode.transcription_status = TranscriptionStatus.FAILED.value
            episode.transcription_error = error
            episode.transcript_text = None
            save_episode(self.repository, episode)
        except Exception:
            logger.exception(f"Could not record failure for episode {episode_id}")

    @staticmethod
    def _remove_temp_file(path: str) -> None:
        if path and os.path.exists(path):
            try:
                os.remove(path)
                logger.debug(f"Removed temporary file {path}")
            except OSError as e:
                logger.warning(f"Failed to delete temporary file {path}: {e}")
