"""Tests for the status synchronizer."""

from unittest.mock import Mock, patch

import pytest

from podcast_transcribe.exceptions import (
    ConcurrencyConflictError,
    EpisodeNotFoundError,
    ExternalServiceError,
    MalformedProviderResponseError,
    MissingJobReferenceError,
    ValidationError,
)
from podcast_transcribe.speech.client import ProviderJobStatus, SpeechTranscriptionClient
from podcast_transcribe.workflow.states import ProviderStatus, check_invariants
from podcast_transcribe.workflow.sync import TranscriptionStatusSynchronizer

JOB_URI = "https://speech.example.com/speechtotext/v3.2/transcriptions/job-1"


def _status(raw):
    return ProviderJobStatus(raw_status=raw, status=ProviderStatus.parse(raw), self_uri=JOB_URI)


def _response(payload):
    response = Mock()
    response.ok = True
    response.status_code = 200
    response.reason = "OK"
    response.json = Mock(return_value=payload)
    return response


@pytest.fixture
def provider_client():
    client = Mock()
    client.get_transcript.return_value = "Welcome to the show."
    return client


@pytest.fixture
def synchronizer(repository, provider_client):
    return TranscriptionStatusSynchronizer(repository, provider_client)


@pytest.fixture
def submitted_episode(repository, sample_episode):
    episode = repository.get_episode("E1")
    episode.transcription_status = "Submitted"
    episode.provider_job_uri = JOB_URI
    return repository.upsert_episode(episode)


def _move_to(repository, status):
    episode = repository.get_episode("E1")
    episode.transcription_status = status
    return repository.upsert_episode(episode)


class TestSyncValidation:
    """Tests for sync preconditions."""

    def test_blank_id(self, synchronizer):
        with pytest.raises(ValidationError):
            synchronizer.sync(" ")

    def test_unknown_episode(self, synchronizer):
        with pytest.raises(EpisodeNotFoundError):
            synchronizer.sync("missing")

    def test_missing_job_reference(self, synchronizer, sample_episode, provider_client):
        with pytest.raises(MissingJobReferenceError):
            synchronizer.sync("E1")
        provider_client.get_status.assert_not_called()


class TestSyncTransitions:
    """Tests for folding provider status into the record."""

    def test_submitted_to_running(self, synchronizer, repository, submitted_episode, provider_client):
        provider_client.get_status.return_value = _status("Running")

        assert synchronizer.sync("E1") == "Running"

        episode = repository.get_episode("E1")
        assert episode.transcription_status == "Running"
        assert episode.transcript_text is None
        provider_client.get_status.assert_called_once_with(JOB_URI)
        provider_client.get_transcript.assert_not_called()

    def test_running_to_succeeded(self, synchronizer, repository, submitted_episode, provider_client):
        _move_to(repository, "Running")
        provider_client.get_status.return_value = _status("Succeeded")

        assert synchronizer.sync("E1") == "Succeeded"

        episode = repository.get_episode("E1")
        assert episode.transcription_status == "Succeeded"
        assert episode.transcript_text == "Welcome to the show."
        assert check_invariants(episode) == []
        provider_client.get_transcript.assert_called_once_with(JOB_URI)

    def test_submitted_straight_to_succeeded(self, synchronizer, repository, submitted_episode, provider_client):
        provider_client.get_status.return_value = _status("Succeeded")

        synchronizer.sync("E1")

        assert repository.get_episode("E1").transcription_status == "Succeeded"

    def test_missing_transcription_artifact(self, synchronizer, repository, submitted_episode, provider_client):
        _move_to(repository, "Running")
        version = repository.get_episode("E1").version
        provider_client.get_status.return_value = _status("Succeeded")
        provider_client.get_transcript.side_effect = MalformedProviderResponseError(
            "Result manifest has no Transcription artifact"
        )

        with pytest.raises(MalformedProviderResponseError):
            synchronizer.sync("E1")

        episode = repository.get_episode("E1")
        assert episode.transcription_status == "Running"
        assert episode.transcript_text is None
        assert episode.version == version

    @patch("podcast_transcribe.speech.client.requests.request")
    def test_no_recognized_speech_succeeds_with_empty_transcript(
        self, mock_request, repository, submitted_episode
    ):
        _move_to(repository, "Running")
        mock_request.side_effect = [
            _response({"status": "Succeeded", "self": JOB_URI}),
            _response({"values": [{"kind": "Transcription", "links": {"contentUrl": "https://blob/t.json"}}]}),
            _response({"combinedRecognizedPhrases": []}),
        ]
        client = SpeechTranscriptionClient(
            subscription_key="secret", base_url="https://speech.example.com/speechtotext/v3.2"
        )
        synchronizer = TranscriptionStatusSynchronizer(repository, client)

        assert synchronizer.sync("E1") == "Succeeded"

        episode = repository.get_episode("E1")
        assert episode.transcription_status == "Succeeded"
        assert episode.transcript_text == ""
        assert episode.has_transcript is True
        assert check_invariants(episode) == []

    def test_provider_failed(self, synchronizer, repository, submitted_episode, provider_client):
        provider_client.get_status.return_value = _status("Failed")

        assert synchronizer.sync("E1") == "Failed"

        episode = repository.get_episode("E1")
        assert episode.transcription_status == "Failed"
        assert episode.transcription_error

    def test_provider_not_started_keeps_record(self, synchronizer, repository, submitted_episode, provider_client):
        version = repository.get_episode("E1").version
        provider_client.get_status.return_value = _status("NotStarted")

        assert synchronizer.sync("E1") == "NotStarted"

        episode = repository.get_episode("E1")
        assert episode.transcription_status == "Submitted"
        assert episode.version == version

    def test_provider_running_does_not_regress_succeeded(
        self, synchronizer, repository, submitted_episode, provider_client
    ):
        episode = repository.get_episode("E1")
        episode.transcription_status = "Succeeded"
        episode.transcript_text = "Done."
        repository.upsert_episode(episode)
        provider_client.get_status.return_value = _status("Running")

        synchronizer.sync("E1")

        assert repository.get_episode("E1").transcription_status == "Succeeded"

    @pytest.mark.parametrize("raw", ["Paused", "", None])
    def test_unknown_status_is_ignored(self, synchronizer, repository, submitted_episode, provider_client, raw):
        version = repository.get_episode("E1").version
        provider_client.get_status.return_value = _status(raw)

        assert synchronizer.sync("E1") == (raw or "")

        episode = repository.get_episode("E1")
        assert episode.transcription_status == "Submitted"
        assert episode.version == version

    def test_same_status_is_not_written(self, synchronizer, repository, submitted_episode, provider_client):
        _move_to(repository, "Running")
        version = repository.get_episode("E1").version
        provider_client.get_status.return_value = _status("Running")

        synchronizer.sync("E1")

        assert repository.get_episode("E1").version == version


class TestSyncErrors:
    """Errors propagate and leave the record untouched."""

    def test_provider_error_propagates(self, synchronizer, repository, submitted_episode, provider_client):
        provider_client.get_status.side_effect = ExternalServiceError("speech provider", "503", 503)

        with pytest.raises(ExternalServiceError):
            synchronizer.sync("E1")

        assert repository.get_episode("E1").transcription_status == "Submitted"

    def test_concurrent_write_conflicts(self, repository, submitted_episode, provider_client):
        racing_repository = Mock(wraps=repository)
        racing_repository.upsert_episode.side_effect = ConcurrencyConflictError("E1", 2)
        synchronizer = TranscriptionStatusSynchronizer(racing_repository, provider_client)
        provider_client.get_status.return_value = _status("Running")

        with pytest.raises(ConcurrencyConflictError):
            synchronizer.sync("E1")
