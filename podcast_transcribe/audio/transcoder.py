"""FFmpeg-based transcoder producing speech-friendly audio.

Output is always mono, 22.05 kHz, 16 kbps MP3. The three parameters are
fixed: they shrink the payload sent to the provider and normalize input
characteristics, at the cost of fidelity.
"""

import json
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from podcast_transcribe.exceptions import TranscodeError

logger = logging.getLogger(__name__)

SAMPLE_RATE = 22050
CHANNELS = 1
BITRATE = "16k"


@dataclass
class TranscodeResult:
    """Result of a transcode operation."""

    path: str
    original_size: int
    processed_size: int

    @property
    def reduction_percent(self) -> float:
        if not self.original_size:
            return 0.0
        return (self.original_size - self.processed_size) / self.original_size * 100


def build_ffmpeg_command(ffmpeg_path: str, input_path: str, output_path: str) -> List[str]:
    """Build the ffmpeg command line for the fixed output format."""
    # -vn: drop cover art / video streams
    return [
        ffmpeg_path,
        "-y",
        "-hide_banner",
        "-loglevel",
        "error",
        "-i",
        input_path,
        "-vn",
        "-ac",
        str(CHANNELS),
        "-ar",
        str(SAMPLE_RATE),
        "-b:a",
        BITRATE,
        output_path,
    ]


class AudioTranscoder:
    """Converts downloaded audio with ffmpeg.

    The caller owns the returned file and is responsible for deleting it.
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        timeout: int = 600,
        debug_directory: Optional[str] = None,
    ):
        """Initialize the transcoder.

        Args:
            ffmpeg_path: ffmpeg executable name or path.
            ffprobe_path: ffprobe executable name or path.
            timeout: Maximum seconds for a single probe or conversion.
            debug_directory: If set, a copy of each processed file is kept here.
        """
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout
        self.debug_directory = debug_directory

        if debug_directory:
            os.makedirs(debug_directory, exist_ok=True)

        if shutil.which(ffmpeg_path) is None:
            logger.warning(
                f"FFmpeg not found at '{ffmpeg_path}'. Transcoding will fail until it is installed."
            )

    def probe_audio_stream(self, input_path: str) -> Dict[str, Any]:
        """Return the first audio stream's metadata from ffprobe.

        Raises:
            TranscodeError: If ffprobe fails or the file has no audio stream.
        """
        cmd = [
            self.ffprobe_path,
            "-v",
            "error",
            "-select_streams",
            "a",
            "-show_entries",
            "stream=codec_name,sample_rate,channels,bit_rate",
            "-of",
            "json",
            input_path,
        ]
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, timeout=self.timeout, check=True
            )
            data = json.loads(result.stdout or "{}")
        except FileNotFoundError as e:
            raise TranscodeError(f"ffprobe not available: {self.ffprobe_path}") from e
        except subprocess.TimeoutExpired as e:
            raise TranscodeError(f"ffprobe timed out after {self.timeout}s") from e
        except subprocess.CalledProcessError as e:
            raise TranscodeError(f"ffprobe failed: {(e.stderr or '').strip()}") from e
        except json.JSONDecodeError as e:
            raise TranscodeError("ffprobe returned invalid JSON") from e

        streams = data.get("streams", [])
        if not streams:
            raise TranscodeError(f"No audio stream found in {input_path}")
        return streams[0]

    def transcode(self, input_path: str, output_path: Optional[str] = None) -> TranscodeResult:
        """Convert `input_path` to mono / 22.05 kHz / 16 kbps MP3.

        Args:
            input_path: Downloaded audio file.
            output_path: Destination; defaults to `processed_<name>.mp3` next to the input.

        Returns:
            TranscodeResult describing the processed file.

        Raises:
            TranscodeError: If the input has no audio or ffmpeg fails.
        """
        if not os.path.exists(input_path):
            raise TranscodeError(f"Input file not found: {input_path}")

        if output_path is None:
            directory, name = os.path.split(input_path)
            output_path = os.path.join(
                directory, f"processed_{os.path.splitext(name)[0]}.mp3"
            )

        original_size = os.path.getsize(input_path)
        logger.info(f"Original file size: {original_size / 1024 / 1024:.2f}MB")

        self.probe_audio_stream(input_path)

        cmd = build_ffmpeg_command(self.ffmpeg_path, input_path, output_path)
        try:
            subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout, check=True)
        except FileNotFoundError as e:
            raise TranscodeError(f"ffmpeg not available: {self.ffmpeg_path}") from e
        except subprocess.TimeoutExpired as e:
            self._remove_output(output_path)
            raise TranscodeError(f"ffmpeg timed out after {self.timeout}s") from e
        except subprocess.CalledProcessError as e:
            self._remove_output(output_path)
            raise TranscodeError(
                f"ffmpeg exited with code {e.returncode}: {(e.stderr or '').strip()}"
            ) from e

        if not os.path.exists(output_path) or os.path.getsize(output_path) == 0:
            self._remove_output(output_path)
            raise TranscodeError(f"ffmpeg produced no output for {input_path}")

        result = TranscodeResult(
            path=output_path,
            original_size=original_size,
            processed_size=os.path.getsize(output_path),
        )
        logger.info(
            f"Processed file size: {result.processed_size / 1024 / 1024:.2f}MB "
            f"(reduction {result.reduction_percent:.1f}%)"
        )
        self._save_debug_copy(output_path)
        return result

    def _save_debug_copy(self, path: str) -> None:
        if not self.debug_directory:
            return
        debug_path = os.path.join(self.debug_directory, os.path.basename(path))
        try:
            shutil.copyfile(path, debug_path)
            logger.debug(f"Saved debug copy to: {debug_path}")
        except OSError as e:
            logger.warning(f"Failed to save debug copy of {path}: {e}")

    @staticmethod
    def _remove_output(path: str) -> None:
        if os.path.exists(path):
            try:
                os.remove(path)
            except OSError:
                logger.warning(f"Failed to delete partial output {path}")
