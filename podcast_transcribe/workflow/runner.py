"""Supervised runner for detached submission pipelines.

A pipeline accepted by the submission service runs here, off the request
path. Every run gets a PipelineJob handle whose future carries the
PipelineOutcome, and completion is reported to registered listeners and
counted in thread-safe stats.
"""

import logging
import threading
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Callable, Dict, List, Optional

from podcast_transcribe.workflow.config import PipelineConfig

logger = logging.getLogger(__name__)


@dataclass
class PipelineOutcome:
    """Result of one pipeline run for an episode.

    Attributes:
        episode_id: Episode the pipeline ran for.
        success: True when the provider accepted the job.
        message: Human-readable summary, or the error that stopped the run.
        job_uri: Provider job reference on success.
        skipped_acquisition: True when stored processed audio was reused.
    """

    episode_id: str
    success: bool
    message: str
    job_uri: Optional[str] = None
    skipped_acquisition: bool = False


@dataclass
class PipelineJob:
    """Handle on a detached pipeline run."""

    episode_id: str
    future: Optional[Future] = None
    submitted_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def done(self) -> bool:
        return self.future is not None and self.future.done()

    @property
    def outcome(self) -> Optional[PipelineOutcome]:
        """The outcome once the run finished, None while it is still running."""
        if not self.done:
            return None
        exc = self.future.exception()
        if exc is not None:
            return PipelineOutcome(
                episode_id=self.episode_id,
                success=False,
                message=str(exc),
            )
        return self.future.result()


@dataclass
class PipelineStats:
    """Thread-safe statistics for pipeline runs.

    All counter increments are protected by a lock to prevent lost
    updates under concurrent execution from multiple worker threads.
    """

    submitted: int = 0
    succeeded: int = 0
    failed: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def increment_submitted(self) -> None:
        with self._lock:
            self.submitted += 1

    def increment_succeeded(self) -> None:
        with self._lock:
            self.succeeded += 1

    def increment_failed(self) -> None:
        with self._lock:
            self.failed += 1


PipelineListener = Callable[[PipelineOutcome], None]


class PipelineAlreadyPendingError(RuntimeError):
    """Raised when a run for the episode is still pending in the runner."""

    def __init__(self, episode_id: str):
        self.episode_id = episode_id
        super().__init__(f"Pipeline for episode {episode_id} is still pending")


class PipelineRunner:
    """Runs submission pipelines in a background thread pool.

    Thread Safety:
    - Uses ThreadPoolExecutor for concurrent execution
    - At most one pending run per episode; a second submit raises PipelineAlreadyPendingError
    - Listeners are invoked from worker threads
    """

    def __init__(self, pipeline_config: Optional[PipelineConfig] = None):
        """Initialize the runner.

        Args:
            pipeline_config: Pipeline-specific configuration.
        """
        self.pipeline_config = pipeline_config or PipelineConfig()

        self._executor: Optional[ThreadPoolExecutor] = None
        self._started = False
        self._pending_jobs: Dict[str, PipelineJob] = {}
        self._completed_jobs: "OrderedDict[str, PipelineJob]" = OrderedDict()
        self._listeners: List[PipelineListener] = []
        self._lock = threading.Lock()
        self._stats = PipelineStats()

    @property
    def is_running(self) -> bool:
        return self._started

    def start(self) -> None:
        """Start the runner's thread pool. Calling start twice is a no-op."""
        if self._started:
            return
        workers = self.pipeline_config.workers
        self._executor = ThreadPoolExecutor(
            max_workers=workers,
            thread_name_prefix="pipeline",
        )
        self._started = True
        logger.info(f"PipelineRunner started with {workers} workers")

    def stop(self, wait: bool = True) -> None:
        """Stop the runner and optionally wait for in-flight pipelines.

        Pipelines are not cancelled once launched; with wait=False they
        keep running in their threads until they finish.

        Args:
            wait: If True, block until all pending runs complete.
        """
        if self._executor is not None:
            pending = self.get_pending_count()
            if pending > 0 and wait:
                logger.info(f"Waiting for {pending} transcription pipelines to complete...")
            self._executor.shutdown(wait=wait)
            self._executor = None
            logger.info("PipelineRunner stopped")
        self._started = False

    def add_listener(self, listener: PipelineListener) -> None:
        """Register a callback invoked with each PipelineOutcome."""
        with self._lock:
            self._listeners.append(listener)

    def submit(
        self, episode_id: str, pipeline: Callable[[str], PipelineOutcome]
    ) -> PipelineJob:
        """Launch `pipeline(episode_id)` in the background.

        Args:
            episode_id: Episode to process.
            pipeline: Callable running the full pipeline and returning its outcome.

        Returns:
            The job handle of the new run.

        Raises:
            RuntimeError: If start() has not been called.
            PipelineAlreadyPendingError: If a run for this episode is still
                pending. Nothing new is launched.
        """
        if not self._started or self._executor is None:
            raise RuntimeError("PipelineRunner not started")

        with self._lock:
            if episode_id in self._pending_jobs:
                logger.info(f"Pipeline for episode {episode_id} already pending")
                raise PipelineAlreadyPendingError(episode_id)

            job = PipelineJob(episode_id=episode_id)
            job.future = self._executor.submit(pipeline, episode_id)
            self._pending_jobs[episode_id] = job

        self._stats.increment_submitted()
        job.future.add_done_callback(lambda f: self._on_job_complete(job))

        logger.debug(f"Submitted transcription pipeline for episode {episode_id}")
        return job

    def get_job(self, episode_id: str) -> Optional[PipelineJob]:
        """Return the pending or most recently completed job for an episode."""
        with self._lock:
            return self._pending_jobs.get(episode_id) or self._completed_jobs.get(episode_id)

    def wait(self, episode_id: str, timeout: Optional[float] = None) -> Optional[PipelineOutcome]:
        """Block until the episode's job finishes and return its outcome.

        Returns:
            The outcome, or None if no job is known for the episode.

        Raises:
            concurrent.futures.TimeoutError: If the job is still running after `timeout`.
        """
        job = self.get_job(episode_id)
        if job is None or job.future is None:
            return None
        # Pipeline exceptions are folded into the outcome
        job.future.exception(timeout=timeout)
        return job.outcome

    def get_pending_count(self) -> int:
        """Return the number of pipelines still running or queued."""
        with self._lock:
            return len(self._pending_jobs)

    def get_stats(self) -> PipelineStats:
        """Get current pipeline statistics."""
        return self._stats

    def _on_job_complete(self, job: PipelineJob) -> None:
        """Callback when a pipeline run completes."""
        history_size = self.pipeline_config.completed_history_size
        with self._lock:
            if self._pending_jobs.get(job.episode_id) is job:
                del self._pending_jobs[job.episode_id]
            if history_size > 0:
                self._completed_jobs[job.episode_id] = job
                self._completed_jobs.move_to_end(job.episode_id)
                while len(self._completed_jobs) > history_size:
                    self._completed_jobs.popitem(last=False)
            listeners = list(self._listeners)

        outcome = job.outcome
        if job.future.exception() is not None:
            logger.error(
                f"Transcription pipeline for {job.episode_id} crashed: {job.future.exception()}"
            )

        if outcome.success:
            self._stats.increment_succeeded()
            logger.info(f"Transcription pipeline for {job.episode_id} finished: {outcome.message}")
        else:
            self._stats.increment_failed()
            logger.warning(f"Transcription pipeline for {job.episode_id} failed: {outcome.message}")

        for listener in listeners:
            try:
                listener(outcome)
            except Exception:
                logger.exception(f"Pipeline listener failed for episode {job.episode_id}")
