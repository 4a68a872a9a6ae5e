"""Tests for the submission orchestrator."""

import os
import threading
from unittest.mock import Mock

import pytest

from podcast_transcribe.audio.downloader import DownloadResult
from podcast_transcribe.audio.transcoder import TranscodeResult
from podcast_transcribe.exceptions import (
    AcquisitionError,
    ConcurrencyConflictError,
    EpisodeNotFoundError,
    ExternalServiceError,
    TranscodeError,
    ValidationError,
)
from podcast_transcribe.workflow.config import PipelineConfig
from podcast_transcribe.workflow.runner import PipelineAlreadyPendingError, PipelineRunner
from podcast_transcribe.workflow.states import TranscriptionStatus, check_invariants
from podcast_transcribe.workflow.submission import (
    MESSAGE_ALREADY_GENERATED,
    MESSAGE_IN_PROGRESS,
    MESSAGE_PREVIOUS_RUN_FINISHING,
    TranscriptionSubmissionService,
    processed_audio_key,
    transcription_display_name,
)

JOB_URI = "https://speech.example.com/speechtotext/v3.2/transcriptions/job-1"
UPLOADED_URL = "https://cdn.example.com/E1_audio"


@pytest.fixture
def work_dir(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def downloader(work_dir):
    def download(url):
        path = work_dir / "podcast_download.mp3"
        path.write_bytes(b"original-audio")
        return DownloadResult(path=str(path), size_bytes=14, content_type="audio/mpeg")

    mock = Mock()
    mock.download.side_effect = download
    return mock


@pytest.fixture
def transcoder(work_dir):
    def transcode(input_path):
        path = work_dir / "processed_podcast_download.mp3"
        path.write_bytes(b"mp3")
        return TranscodeResult(path=str(path), original_size=14, processed_size=3)

    mock = Mock()
    mock.transcode.side_effect = transcode
    return mock


@pytest.fixture
def object_store():
    store = Mock()
    store.exists.return_value = False
    store.upload.return_value = UPLOADED_URL
    store.url_of.return_value = UPLOADED_URL
    return store


@pytest.fixture
def provider_client():
    client = Mock()
    client.submit_transcription.return_value = JOB_URI
    return client


@pytest.fixture
def mock_runner():
    return Mock()


def _service(repository, object_store, provider_client, downloader, transcoder, runner):
    return TranscriptionSubmissionService(
        repository=repository,
        object_store=object_store,
        provider_client=provider_client,
        downloader=downloader,
        transcoder=transcoder,
        runner=runner,
    )


@pytest.fixture
def service(repository, object_store, provider_client, downloader, transcoder, mock_runner):
    return _service(repository, object_store, provider_client, downloader, transcoder, mock_runner)


def _set_status(repository, episode_id, status, **fields):
    episode = repository.get_episode(episode_id)
    episode.transcription_status = status
    for name, value in fields.items():
        setattr(episode, name, value)
    return repository.upsert_episode(episode)


class TestNaming:
    """Tests for deterministic object and job names."""

    def test_processed_audio_key(self):
        assert processed_audio_key("E1") == "E1_audio"

    def test_display_name(self):
        assert transcription_display_name("E1") == "E1-transcription"


class TestSubmit:
    """Tests for TranscriptionSubmissionService.submit."""

    @pytest.mark.parametrize("episode_id", ["", "   ", None])
    def test_blank_id(self, service, episode_id):
        with pytest.raises(ValidationError):
            service.submit(episode_id)

    def test_unknown_episode(self, service):
        with pytest.raises(EpisodeNotFoundError):
            service.submit("missing")

    def test_not_started_claims_and_launches(self, service, repository, sample_episode, mock_runner):
        result = service.submit("E1")

        assert result.accepted is True
        assert result.status == TranscriptionStatus.PROCESSING
        assert result.job is mock_runner.submit.return_value
        mock_runner.submit.assert_called_once_with("E1", service.run_pipeline)
        assert repository.get_episode("E1").transcription_status == "Processing"

    @pytest.mark.parametrize(
        "status,fields",
        [
            ("Processing", {}),
            ("Submitted", {"provider_job_uri": JOB_URI}),
            ("Running", {"provider_job_uri": JOB_URI}),
        ],
    )
    def test_in_flight_is_not_resubmitted(
        self, service, repository, sample_episode, mock_runner, status, fields
    ):
        _set_status(repository, "E1", status, **fields)

        result = service.submit("E1")

        assert result.accepted is True
        assert result.message == MESSAGE_IN_PROGRESS
        mock_runner.submit.assert_not_called()
        assert repository.get_episode("E1").transcription_status == status

    def test_second_submit_does_not_launch_again(self, service, sample_episode, mock_runner):
        service.submit("E1")
        second = service.submit("E1")

        assert second.accepted is True
        assert second.message == MESSAGE_IN_PROGRESS
        assert mock_runner.submit.call_count == 1

    def test_already_generated(
        self, service, repository, sample_episode, mock_runner, downloader, provider_client
    ):
        _set_status(
            repository, "E1", "Succeeded", provider_job_uri=JOB_URI, transcript_text="Hello."
        )
        before = repository.get_episode("E1").version

        result = service.submit("E1")

        assert result.accepted is True
        assert result.message == MESSAGE_ALREADY_GENERATED
        mock_runner.submit.assert_not_called()
        downloader.download.assert_not_called()
        provider_client.submit_transcription.assert_not_called()
        assert repository.get_episode("E1").version == before

    def test_failed_is_rejected_without_retry(self, service, repository, sample_episode, mock_runner):
        _set_status(repository, "E1", "Processing")
        _set_status(repository, "E1", "Failed", transcription_error="download failed")

        result = service.submit("E1")

        assert result.accepted is False
        assert "download failed" in result.message
        assert result.status == TranscriptionStatus.FAILED
        mock_runner.submit.assert_not_called()

    def test_failed_is_resubmitted_with_retry(self, service, repository, sample_episode, mock_runner):
        _set_status(repository, "E1", "Processing")
        _set_status(repository, "E1", "Failed", transcription_error="download failed")

        result = service.submit("E1", retry_failed=True)

        assert result.accepted is True
        mock_runner.submit.assert_called_once()
        episode = repository.get_episode("E1")
        assert episode.transcription_status == "Processing"
        assert episode.transcription_error is None

    def test_finishing_pipeline_releases_claim(self, service, repository, sample_episode, mock_runner):
        _set_status(repository, "E1", "Processing")
        _set_status(repository, "E1", "Failed", transcription_error="download failed")
        mock_runner.submit.side_effect = PipelineAlreadyPendingError("E1")

        result = service.submit("E1", retry_failed=True)

        assert result.accepted is False
        assert result.message == MESSAGE_PREVIOUS_RUN_FINISHING
        assert result.status == TranscriptionStatus.FAILED
        episode = repository.get_episode("E1")
        assert episode.transcription_status == "Failed"
        assert episode.transcription_error == "download failed"

    def test_lost_claim_is_treated_as_in_progress(
        self, repository, sample_episode, object_store, provider_client, downloader, transcoder, mock_runner
    ):
        racing_repository = Mock(wraps=repository)
        racing_repository.upsert_episode.side_effect = ConcurrencyConflictError("E1", 1)
        service = _service(
            racing_repository, object_store, provider_client, downloader, transcoder, mock_runner
        )

        result = service.submit("E1")

        assert result.accepted is True
        assert result.message == MESSAGE_IN_PROGRESS
        mock_runner.submit.assert_not_called()

    def test_runner_not_started_marks_failed(
        self, repository, sample_episode, object_store, provider_client, downloader, transcoder
    ):
        service = _service(
            repository, object_store, provider_client, downloader, transcoder, PipelineRunner()
        )

        with pytest.raises(RuntimeError):
            service.submit("E1")

        assert repository.get_episode("E1").transcription_status == "Failed"


class TestRunPipeline:
    """Tests for the detached pipeline body."""

    def test_full_pipeline(
        self, service, repository, sample_episode, object_store, provider_client,
        downloader, transcoder, work_dir,
    ):
        _set_status(repository, "E1", "Processing")

        outcome = service.run_pipeline("E1")

        assert outcome.success is True
        assert outcome.job_uri == JOB_URI
        assert outcome.skipped_acquisition is False

        downloader.download.assert_called_once_with("https://example.com/audio/e1.mp3")
        transcoder.transcode.assert_called_once_with(str(work_dir / "podcast_download.mp3"))
        upload_args = object_store.upload.call_args[0]
        assert upload_args[1] == "E1_audio"
        provider_client.submit_transcription.assert_called_once_with(
            UPLOADED_URL, "E1-transcription"
        )

        episode = repository.get_episode("E1")
        assert episode.transcription_status == "Submitted"
        assert episode.provider_job_uri == JOB_URI
        assert episode.processed_audio_uri == UPLOADED_URL
        assert episode.transcript_text is None
        assert check_invariants(episode) == []

        assert os.listdir(work_dir) == []

    def test_stored_audio_skips_acquisition(
        self, service, repository, sample_episode, object_store, provider_client,
        downloader, transcoder,
    ):
        _set_status(repository, "E1", "Processing")
        object_store.exists.return_value = True

        outcome = service.run_pipeline("E1")

        assert outcome.success is True
        assert outcome.skipped_acquisition is True
        object_store.exists.assert_called_once_with("E1_audio")
        object_store.url_of.assert_called_once_with("E1_audio")
        downloader.download.assert_not_called()
        transcoder.transcode.assert_not_called()
        object_store.upload.assert_not_called()
        provider_client.submit_transcription.assert_called_once_with(
            UPLOADED_URL, "E1-transcription"
        )
        assert repository.get_episode("E1").transcription_status == "Submitted"

    def test_download_failure_marks_failed(self, service, repository, sample_episode, downloader, provider_client):
        _set_status(repository, "E1", "Processing")
        downloader.download.side_effect = AcquisitionError("Downloaded file is empty")

        outcome = service.run_pipeline("E1")

        assert outcome.success is False
        assert "empty" in outcome.message
        provider_client.submit_transcription.assert_not_called()
        episode = repository.get_episode("E1")
        assert episode.transcription_status == "Failed"
        assert episode.transcription_error == "Downloaded file is empty"

    def test_transcode_failure_removes_download(
        self, service, repository, sample_episode, transcoder, object_store, work_dir
    ):
        _set_status(repository, "E1", "Processing")
        transcoder.transcode.side_effect = TranscodeError("No audio stream found")

        outcome = service.run_pipeline("E1")

        assert outcome.success is False
        object_store.upload.assert_not_called()
        assert repository.get_episode("E1").transcription_status == "Failed"
        assert os.listdir(work_dir) == []

    def test_provider_failure_marks_failed(
        self, service, repository, sample_episode, provider_client, work_dir
    ):
        _set_status(repository, "E1", "Processing")
        provider_client.submit_transcription.side_effect = ExternalServiceError(
            "speech provider", "Unauthorized", status_code=401
        )

        outcome = service.run_pipeline("E1")

        assert outcome.success is False
        episode = repository.get_episode("E1")
        assert episode.transcription_status == "Failed"
        assert episode.provider_job_uri is None
        assert episode.processed_audio_uri == UPLOADED_URL
        assert "Unauthorized" in episode.transcription_error
        assert os.listdir(work_dir) == []

    def test_object_store_failure_marks_failed(self, service, repository, sample_episode, object_store):
        _set_status(repository, "E1", "Processing")
        object_store.exists.side_effect = ExternalServiceError("object store", "403")

        outcome = service.run_pipeline("E1")

        assert outcome.success is False
        assert repository.get_episode("E1").transcription_status == "Failed"


class TestEndToEnd:
    """Submission through a real runner."""

    def test_not_started_episode_becomes_submitted(
        self, repository, sample_episode, object_store, provider_client, downloader, transcoder
    ):
        runner = PipelineRunner(PipelineConfig(workers=1))
        runner.start()
        service = _service(repository, object_store, provider_client, downloader, transcoder, runner)

        try:
            result = service.submit("E1")
            outcome = runner.wait("E1", timeout=10)
        finally:
            runner.stop(wait=True)

        assert result.accepted is True
        assert outcome.success is True
        episode = repository.get_episode("E1")
        assert episode.transcription_status == "Submitted"
        assert episode.provider_job_uri == JOB_URI
        assert runner.get_stats().succeeded == 1

    def test_retry_while_previous_run_cleans_up(
        self, repository, sample_episode, object_store, provider_client, downloader, transcoder
    ):
        transcoder.transcode.side_effect = TranscodeError("No audio stream found")
        runner = PipelineRunner(PipelineConfig(workers=1))
        runner.start()
        service = _service(repository, object_store, provider_client, downloader, transcoder, runner)

        cleanup_started = threading.Event()
        release = threading.Event()

        def slow_cleanup(path):
            cleanup_started.set()
            release.wait(5)
            os.remove(path)

        service._remove_temp_file = slow_cleanup

        try:
            service.submit("E1")
            assert cleanup_started.wait(5)
            stored_error = repository.get_episode("E1").transcription_error

            retry = service.submit("E1", retry_failed=True)

            assert retry.accepted is False
            assert retry.message == MESSAGE_PREVIOUS_RUN_FINISHING
            episode = repository.get_episode("E1")
            assert episode.transcription_status == "Failed"
            assert episode.transcription_error == stored_error

            release.set()
            runner.wait("E1", timeout=10)
            for _ in range(100):
                if runner.get_pending_count() == 0:
                    break
                threading.Event().wait(0.01)

            second_retry = service.submit("E1", retry_failed=True)
            assert second_retry.accepted is True
            assert second_retry.job is not None
            runner.wait("E1", timeout=10)
        finally:
            release.set()
            runner.stop(wait=True)

        assert runner.get_stats().submitted == 2
        assert repository.get_episode("E1").transcription_status == "Failed"
