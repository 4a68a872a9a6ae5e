"""Bounded-prefix audio downloader.

Fetches only the first N bytes of a remote audio file. Speech providers need
a bounded amount of signal, so the download asks for a byte range and stops
once the cap is reached even if the server ignores the range and keeps
sending data.
"""

import logging
import os
import shutil
import tempfile
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional
from urllib.parse import urlparse

import requests

from podcast_transcribe.exceptions import AcquisitionError

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10 MiB


@dataclass
class DownloadResult:
    """Result of a bounded download."""

    path: str
    size_bytes: int
    content_type: Optional[str] = None
    truncated: bool = False
    duration_seconds: Optional[float] = None


class BoundedAudioDownloader:
    """Downloads a bounded prefix of remote audio to a temporary file.

    The caller owns the returned file and is responsible for deleting it.

    Example:
        downloader = BoundedAudioDownloader(max_bytes=10 * 1024 * 1024)
        result = downloader.download("https://example.com/episode.mp3")
    """

    # Some podcast hosts answer 403 to non-browser agents
    DEFAULT_USER_AGENT = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/113.0.0.0 Safari/537.36"
    )
    DEFAULT_CHUNK_SIZE = 8192
    DEFAULT_TIMEOUT = 1800  # 30 minutes

    def __init__(
        self,
        max_bytes: int = DEFAULT_MAX_BYTES,
        timeout: int = DEFAULT_TIMEOUT,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        user_agent: Optional[str] = None,
        temp_directory: Optional[str] = None,
        debug_directory: Optional[str] = None,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ):
        """Initialize the downloader.

        Args:
            max_bytes: Maximum number of bytes written to disk.
            timeout: Network timeout in seconds.
            chunk_size: Read buffer size for the streaming loop.
            user_agent: Custom user agent string.
            temp_directory: Where temporary files are created (system default if None).
            debug_directory: If set, a copy of each download is kept here.
            progress_callback: Called with (downloaded, max_bytes) after each chunk.
        """
        if max_bytes <= 0:
            raise ValueError(f"max_bytes must be positive, got {max_bytes}")

        self.max_bytes = max_bytes
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.user_agent = user_agent or self.DEFAULT_USER_AGENT
        self.temp_directory = temp_directory
        self.debug_directory = debug_directory
        self.progress_callback = progress_callback

        if temp_directory:
            os.makedirs(temp_directory, exist_ok=True)
        if debug_directory:
            os.makedirs(debug_directory, exist_ok=True)

    def _create_session(self) -> requests.Session:
        """Create a requests session for a single download."""
        session = requests.Session()
        session.headers.update({"User-Agent": self.user_agent})
        return session

    def _temp_path(self, url: str) -> str:
        """Build a unique temporary file path keeping the source extension."""
        extension = os.path.splitext(urlparse(url).path)[1] or ".mp3"
        if len(extension) > 6:
            extension = ".mp3"
        directory = self.temp_directory or tempfile.gettempdir()
        return os.path.join(directory, f"podcast_{uuid.uuid4().hex}{extension}")

    def download(self, url: str) -> DownloadResult:
        """Download at most `max_bytes` of `url` into a temporary file.

        Args:
            url: Remote audio location.

        Returns:
            DownloadResult describing the temporary file.

        Raises:
            AcquisitionError: If the request fails or nothing was downloaded.
        """
        if not url:
            raise AcquisitionError("No audio URL to download")

        start_time = datetime.utcnow()
        output_path = self._temp_path(url)

        try:
            downloaded, content_type, truncated = self._download_file(url, output_path)

            if downloaded == 0 or not os.path.exists(output_path):
                raise AcquisitionError(f"Downloaded file from {url} is empty")

        except AcquisitionError:
            self._remove_partial(output_path)
            raise
        except (requests.RequestException, OSError) as e:
            self._remove_partial(output_path)
            logger.error(f"Failed to download audio file from {url}: {e}")
            raise AcquisitionError(f"Failed to download audio from {url}: {e}") from e

        duration = (datetime.utcnow() - start_time).total_seconds()
        logger.info(
            f"Downloaded {downloaded / 1024 / 1024:.1f} MB from {url} "
            f"in {duration:.1f}s{' (capped)' if truncated else ''}"
        )
        self._save_debug_copy(output_path, "original")

        return DownloadResult(
            path=output_path,
            size_bytes=downloaded,
            content_type=content_type,
            truncated=truncated,
            duration_seconds=duration,
        )

    def _download_file(self, url: str, output_path: str) -> tuple[int, Optional[str], bool]:
        """Stream the first `max_bytes` of `url` into `output_path`.

        Returns:
            Tuple of (bytes_written, content_type, truncated)
        """
        downloaded = 0
        truncated = False

        with self._create_session() as session:
            response = session.get(
                url,
                headers={"Range": f"bytes=0-{self.max_bytes - 1}"},
                stream=True,
                timeout=self.timeout,
                allow_redirects=True,
            )
            try:
                response.raise_for_status()
                content_type = response.headers.get("content-type")

                total_size = None
                if "content-length" in response.headers:
                    try:
                        total_size = int(response.headers["content-length"])
                    except ValueError:
                        pass
                if total_size is not None:
                    logger.info(
                        f"Starting download of {total_size / 1024 / 1024:.1f} MB from {url}"
                    )

                with open(output_path, "wb") as f:
                    for chunk in response.iter_content(chunk_size=self.chunk_size):
                        if not chunk:
                            continue

                        remaining = self.max_bytes - downloaded
                        if len(chunk) >= remaining:
                            f.write(chunk[:remaining])
                            downloaded += remaining
                            truncated = True
                            logger.info(
                                f"Reached {self.max_bytes} byte download limit; stopping download"
                            )
                            break

                        f.write(chunk)
                        downloaded += len(chunk)

                        if self.progress_callback:
                            self.progress_callback(downloaded, self.max_bytes)
            finally:
                response.close()

        return downloaded, content_type, truncated

    def _save_debug_copy(self, path: str, prefix: str) -> None:
        """Keep a copy of `path` in the debug directory, if one is configured."""
        if not self.debug_directory:
            return
        debug_path = os.path.join(self.debug_directory, f"{prefix}_{os.path.basename(path)}")
        try:
            shutil.copyfile(path, debug_path)
            logger.debug(f"Saved debug copy to: {debug_path}")
        except OSError as e:
            logger.warning(f"Failed to save debug copy of {path}: {e}")

    @staticmethod
    def _remove_partial(path: str) -> None:
        if os.path.exists(path):
            try:
                os.remove(path)
            except OSError as e:
                logger.warning(f"Failed to delete partial download {path}: {e}")
