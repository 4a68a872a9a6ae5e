"""Podcast episode transcription service.

Submits podcast audio to a batch speech-to-text provider and tracks each
episode through its transcription lifecycle.
"""

__version__ = "0.1.0"
