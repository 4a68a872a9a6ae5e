"""Transcription lifecycle state machine.

States:
    NotStarted -> Processing -> Submitted -> Running -> Succeeded

Failed is reachable from Processing, Submitted and Running. A fresh
submission is accepted from NotStarted, and from Failed only when the
caller explicitly asks for a retry. Apart from the move to Failed, a
status never goes backward.
"""

import logging
from enum import Enum
from typing import List, Optional

from podcast_transcribe.exceptions import InvalidTransitionError

logger = logging.getLogger(__name__)


class TranscriptionStatus(str, Enum):
    """Persisted transcription status of an episode."""

    NOT_STARTED = "NotStarted"
    PROCESSING = "Processing"
    SUBMITTED = "Submitted"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"

    @classmethod
    def coerce(cls, value) -> "TranscriptionStatus":
        """Convert a stored string (or an existing member) to a TranscriptionStatus."""
        if isinstance(value, cls):
            return value
        return cls(value)


_TRANSITIONS = {
    TranscriptionStatus.NOT_STARTED: {TranscriptionStatus.PROCESSING},
    TranscriptionStatus.PROCESSING: {
        TranscriptionStatus.SUBMITTED,
        TranscriptionStatus.FAILED,
    },
    TranscriptionStatus.SUBMITTED: {
        TranscriptionStatus.RUNNING,
        TranscriptionStatus.SUCCEEDED,
        TranscriptionStatus.FAILED,
    },
    TranscriptionStatus.RUNNING: {
        TranscriptionStatus.SUCCEEDED,
        TranscriptionStatus.FAILED,
    },
    TranscriptionStatus.SUCCEEDED: set(),
    # Caller-driven resubmission
    TranscriptionStatus.FAILED: {TranscriptionStatus.PROCESSING},
}

IN_FLIGHT_STATUSES = frozenset(
    {
        TranscriptionStatus.PROCESSING,
        TranscriptionStatus.SUBMITTED,
        TranscriptionStatus.RUNNING,
    }
)

# Statuses that require a provider job reference on the record
JOB_REFERENCE_STATUSES = frozenset(
    {
        TranscriptionStatus.SUBMITTED,
        TranscriptionStatus.RUNNING,
        TranscriptionStatus.SUCCEEDED,
    }
)

# Statuses for which polling the provider can still change the record
SYNCABLE_STATUSES = frozenset(
    {
        TranscriptionStatus.SUBMITTED,
        TranscriptionStatus.RUNNING,
    }
)


def can_transition(source, target) -> bool:
    """Return True if moving from `source` to `target` is allowed.

    Same-state moves are always allowed (they are no-ops).
    """
    source = TranscriptionStatus.coerce(source)
    target = TranscriptionStatus.coerce(target)
    if source == target:
        return True
    return target in _TRANSITIONS[source]


def transition(source, target) -> TranscriptionStatus:
    """Validate a status change and return the new status.

    Raises:
        InvalidTransitionError: If the state machine does not allow the move.
    """
    if not can_transition(source, target):
        raise InvalidTransitionError(
            TranscriptionStatus.coerce(source).value,
            TranscriptionStatus.coerce(target).value,
        )
    return TranscriptionStatus.coerce(target)


def is_in_flight(status) -> bool:
    """True when a pipeline or provider job is already working on the episode."""
    return TranscriptionStatus.coerce(status) in IN_FLIGHT_STATUSES


def is_terminal(status) -> bool:
    return TranscriptionStatus.coerce(status) in (
        TranscriptionStatus.SUCCEEDED,
        TranscriptionStatus.FAILED,
    )


def accepts_submission(status, retry_failed: bool = False) -> bool:
    """Whether a fresh submission may claim an episode in `status`."""
    status = TranscriptionStatus.coerce(status)
    if status == TranscriptionStatus.NOT_STARTED:
        return True
    return retry_failed and status == TranscriptionStatus.FAILED


class ProviderStatus(Enum):
    """Closed set of job statuses reported by the speech provider.

    Anything the provider sends that is not one of the documented values
    becomes UNKNOWN rather than being coerced to a known state.
    """

    NOT_STARTED = "NotStarted"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "ProviderStatus":
        """Map a raw provider status string to a ProviderStatus. Never raises."""
        if raw is None:
            return cls.UNKNOWN
        for member in cls:
            if member is not cls.UNKNOWN and member.value == raw:
                return member
        return cls.UNKNOWN


# Target record status for each provider status. NOT_STARTED means the job is
# queued on the provider side; the record stays where it is.
PROVIDER_STATUS_TARGETS = {
    ProviderStatus.NOT_STARTED: TranscriptionStatus.NOT_STARTED,
    ProviderStatus.RUNNING: TranscriptionStatus.RUNNING,
    ProviderStatus.SUCCEEDED: TranscriptionStatus.SUCCEEDED,
    ProviderStatus.FAILED: TranscriptionStatus.FAILED,
}


def check_invariants(episode) -> List[str]:
    """Return a list of invariant violations for an episode record.

    An empty list means the record is consistent:
    - transcript_text is set iff status is Succeeded
    - provider_job_uri is set whenever status is Submitted, Running or Succeeded
    """
    violations = []
    status = TranscriptionStatus.coerce(episode.transcription_status)

    has_transcript = episode.transcript_text is not None
    if status == TranscriptionStatus.SUCCEEDED and not has_transcript:
        violations.append("Succeeded episode has no transcript")
    if status != TranscriptionStatus.SUCCEEDED and episode.transcript_text is not None:
        violations.append(f"{status.value} episode carries a transcript")

    if status in JOB_REFERENCE_STATUSES and not episode.provider_job_uri:
        violations.append(f"{status.value} episode has no provider job reference")

    return violations
