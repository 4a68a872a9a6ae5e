"""Client for the batch speech-to-text provider.

Wire contract:
- Submit:   POST {base}/transcriptions           -> {"self": <jobUri>, ...}
- Status:   GET  <jobUri>                        -> {"status": ..., "self": <jobUri>}
- Manifest: GET  <jobUri>/files                  -> {"values": [{"kind": ..., "links": {"contentUrl": ...}}]}
- Content:  GET  <contentUrl>                    -> {"combinedRecognizedPhrases": [{"display": ...}]}

The client holds no per-request state. Headers are built for every call so
concurrent pipeline threads and sync requests can share one instance.
There are no retries; a failed call surfaces immediately.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from podcast_transcribe.exceptions import ExternalServiceError, MalformedProviderResponseError
from podcast_transcribe.workflow.states import ProviderStatus

logger = logging.getLogger(__name__)

_SERVICE = "speech provider"

DEFAULT_LOCALE = "en-US"
CANDIDATE_LOCALES = ["zh-CN", "en-US"]
TRANSCRIPTION_ARTIFACT_KIND = "Transcription"


@dataclass
class ProviderJobStatus:
    """Status of a provider job as reported by the status endpoint."""

    raw_status: Optional[str]
    status: ProviderStatus
    self_uri: str


def build_submission_body(audio_url: str, display_name: str) -> Dict[str, Any]:
    """Build the JSON body for a transcription submission."""
    return {
        "displayName": display_name,
        "locale": DEFAULT_LOCALE,
        "contentUrls": [audio_url],
        "properties": {
            "wordLevelTimestampsEnabled": False,
            "languageIdentification": {
                "candidateLocales": list(CANDIDATE_LOCALES),
            },
        },
    }


def find_transcription_content_url(manifest: Dict[str, Any]) -> str:
    """Return the content URL of the first Transcription artifact in a manifest.

    Raises:
        MalformedProviderResponseError: If the manifest has no such artifact.
    """
    values = manifest.get("values")
    if not isinstance(values, list):
        raise MalformedProviderResponseError("Result manifest does not contain 'values'")

    for value in values:
        if not isinstance(value, dict) or value.get("kind") != TRANSCRIPTION_ARTIFACT_KIND:
            continue
        content_url = (value.get("links") or {}).get("contentUrl")
        if not content_url:
            raise MalformedProviderResponseError(
                "Transcription artifact does not contain 'contentUrl'"
            )
        return content_url

    raise MalformedProviderResponseError("Result manifest has no Transcription artifact")


def extract_display_text(content: Dict[str, Any]) -> str:
    """Return the display text of the first combined recognized phrase.

    Audio with no recognized speech yields an empty phrase list and an
    empty transcript.

    Raises:
        MalformedProviderResponseError: If the phrase list or display field is missing.
    """
    if "combinedRecognizedPhrases" not in content:
        raise MalformedProviderResponseError(
            "Transcript content does not contain 'combinedRecognizedPhrases'"
        )
    phrases: Optional[List[Dict[str, Any]]] = content["combinedRecognizedPhrases"]
    if not phrases:
        return ""
    display = phrases[0].get("display") if isinstance(phrases[0], dict) else None
    if display is None:
        raise MalformedProviderResponseError("First recognized phrase has no 'display' text")
    return display


class SpeechTranscriptionClient:
    """Stateless HTTP client for the speech provider's batch transcription API."""

    def __init__(self, subscription_key: str, base_url: str, timeout: int = 60):
        """Initialize the client.

        Args:
            subscription_key: Value for the Ocp-Apim-Subscription-Key header.
            base_url: API root, e.g. https://<region>.api.cognitive.microsoft.com/speechtotext/v3.2
            timeout: Per-request timeout in seconds.
        """
        self.subscription_key = subscription_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_config(cls, config) -> "SpeechTranscriptionClient":
        return cls(
            subscription_key=config.SPEECH_SUBSCRIPTION_KEY,
            base_url=config.SPEECH_BASE_URL,
            timeout=config.SPEECH_REQUEST_TIMEOUT,
        )

    def _headers(self, authenticated: bool = True) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if authenticated:
            headers["Ocp-Apim-Subscription-Key"] = self.subscription_key
        return headers

    def _request_json(
        self,
        method: str,
        url: str,
        what: str,
        json_body: Optional[Dict[str, Any]] = None,
        authenticated: bool = True,
    ) -> Dict[str, Any]:
        """Perform one request and decode its JSON body.

        Raises:
            ExternalServiceError: On network failure or a non-2xx response.
            MalformedProviderResponseError: If the body is not a JSON object.
        """
        try:
            response = requests.request(
                method,
                url,
                headers=self._headers(authenticated),
                json=json_body,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Failed to {what}: {e}")
            raise ExternalServiceError(_SERVICE, f"Failed to {what}: {e}") from e

        if not response.ok:
            message = (
                f"Failed to {what}: {response.reason}, status code: {response.status_code}"
            )
            logger.error(message)
            raise ExternalServiceError(_SERVICE, message, status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedProviderResponseError(f"Response to {what} is not valid JSON") from e
        if not isinstance(payload, dict):
            raise MalformedProviderResponseError(f"Response to {what} is not a JSON object")
        return payload

    def submit_transcription(self, audio_url: str, display_name: str) -> str:
        """Submit `audio_url` for transcription.

        Returns:
            The job reference URI (`self` field of the response).
        """
        request_url = f"{self.base_url}/transcriptions"
        logger.info(f"Submitting transcription '{display_name}' to {request_url}")

        payload = self._request_json(
            "POST",
            request_url,
            "submit transcription",
            json_body=build_submission_body(audio_url, display_name),
        )
        job_uri = payload.get("self")
        if not job_uri:
            raise MalformedProviderResponseError("Submission response does not contain 'self'")

        logger.info(f"Transcription request submitted. Job URI: {job_uri}")
        return job_uri

    def get_status(self, job_uri: str) -> ProviderJobStatus:
        """Fetch the status of a submitted job."""
        payload = self._request_json("GET", job_uri, "get transcription status")
        if "status" not in payload:
            raise MalformedProviderResponseError("Response JSON does not contain 'status' field.")

        raw_status = payload.get("status")
        return ProviderJobStatus(
            raw_status=raw_status,
            status=ProviderStatus.parse(raw_status),
            self_uri=payload.get("self") or job_uri,
        )

    def get_transcript(self, job_uri: str) -> str:
        """Fetch the final transcript display text for a succeeded job.

        Raises:
            MalformedProviderResponseError: If the manifest lacks a Transcription
                artifact or the content lacks display text.
        """
        manifest = self._request_json(
            "GET", f"{job_uri.rstrip('/')}/files", "get transcription result"
        )
        content_url = find_transcription_content_url(manifest)

        # Content URLs are pre-signed; the subscription key stays with the API host
        content = self._request_json(
            "GET", content_url, "get transcription content", authenticated=False
        )
        return extract_display_text(content)
