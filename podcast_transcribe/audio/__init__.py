"""Audio acquisition and transcoding.

- BoundedAudioDownloader: range-limited download of remote audio to a temp file
- AudioTranscoder: ffmpeg conversion to mono / 22.05 kHz / 16 kbps
"""

from podcast_transcribe.audio.downloader import BoundedAudioDownloader, DownloadResult
from podcast_transcribe.audio.transcoder import AudioTranscoder, TranscodeResult

__all__ = [
    "AudioTranscoder",
    "BoundedAudioDownloader",
    "DownloadResult",
    "TranscodeResult",
]
