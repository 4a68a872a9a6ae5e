"""Transcription workflow: lifecycle states, submission pipeline and status sync.

Services live in their own modules and are imported from there:
- podcast_transcribe.workflow.submission.TranscriptionSubmissionService
- podcast_transcribe.workflow.sync.TranscriptionStatusSynchronizer
- podcast_transcribe.workflow.runner.PipelineRunner
"""

from podcast_transcribe.workflow.config import PipelineConfig
from podcast_transcribe.workflow.states import ProviderStatus, TranscriptionStatus

__all__ = [
    "PipelineConfig",
    "ProviderStatus",
    "TranscriptionStatus",
]
