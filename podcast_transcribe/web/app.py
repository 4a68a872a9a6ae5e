"""
FastAPI web application for podcast episode transcription.

Wires the episode store, object store, speech provider client and the
background pipeline runner into the episode routes. The runner is started
in the lifespan and drained on shutdown.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from podcast_transcribe import __version__
from podcast_transcribe.audio.downloader import BoundedAudioDownloader
from podcast_transcribe.audio.transcoder import AudioTranscoder
from podcast_transcribe.config import Config
from podcast_transcribe.db.factory import create_repository_from_config
from podcast_transcribe.db.repository import EpisodeRepositoryInterface
from podcast_transcribe.search.episode_search import EpisodeSearchService
from podcast_transcribe.speech.client import SpeechTranscriptionClient
from podcast_transcribe.storage.object_store import ObjectStoreInterface, S3ObjectStore
from podcast_transcribe.web.episode_routes import router as episode_router
from podcast_transcribe.workflow.config import PipelineConfig
from podcast_transcribe.workflow.runner import PipelineRunner
from podcast_transcribe.workflow.submission import TranscriptionSubmissionService
from podcast_transcribe.workflow.sync import TranscriptionStatusSynchronizer

# Configure logging
log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s"
)
logger = logging.getLogger(__name__)


def create_app(
    config: Optional[Config] = None,
    repository: Optional[EpisodeRepositoryInterface] = None,
    object_store: Optional[ObjectStoreInterface] = None,
    provider_client: Optional[SpeechTranscriptionClient] = None,
    pipeline_config: Optional[PipelineConfig] = None,
) -> FastAPI:
    """
    Build the FastAPI application and its services.

    Any collaborator not passed in is built from `config`.
    """
    config = config or Config()
    repository = repository or create_repository_from_config(config)
    object_store = object_store or S3ObjectStore.from_config(config)
    provider_client = provider_client or SpeechTranscriptionClient.from_config(config)
    runner = PipelineRunner(pipeline_config or PipelineConfig.from_env())

    if not config.has_object_store_credentials:
        logger.warning("Object store credentials not configured; uploads will fail")
    if not config.SPEECH_SUBSCRIPTION_KEY:
        logger.warning("SPEECH_SUBSCRIPTION_KEY not set; provider calls will be rejected")

    downloader = BoundedAudioDownloader(
        max_bytes=config.AUDIO_DOWNLOAD_MAX_BYTES,
        timeout=config.AUDIO_DOWNLOAD_TIMEOUT,
        chunk_size=config.AUDIO_CHUNK_SIZE,
        temp_directory=config.AUDIO_TEMP_DIRECTORY,
        debug_directory=config.AUDIO_DEBUG_DIRECTORY,
    )
    transcoder = AudioTranscoder(
        ffmpeg_path=config.FFMPEG_PATH,
        ffprobe_path=config.FFPROBE_PATH,
        timeout=config.TRANSCODE_TIMEOUT,
        debug_directory=config.AUDIO_DEBUG_DIRECTORY,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        """
        FastAPI lifespan context manager.

        Starts the pipeline runner and drains it on shutdown.
        """
        runner.start()
        logger.info("Application started")

        yield

        runner.stop(wait=True)
        repository.close()
        logger.info("Application shutdown")

    app = FastAPI(
        title="Podcast Transcribe",
        description="Podcast episode transcription via a batch speech-to-text provider",
        version=__version__,
        lifespan=lifespan
    )

    # CORS middleware (configurable via environment variable)
    allowed_origins = config.WEB_ALLOWED_ORIGINS.split(",") if config.WEB_ALLOWED_ORIGINS != "*" else ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=allowed_origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Store services in app state for access in routes
    app.state.config = config
    app.state.repository = repository
    app.state.runner = runner
    app.state.submission_service = TranscriptionSubmissionService(
        repository=repository,
        object_store=object_store,
        provider_client=provider_client,
        downloader=downloader,
        transcoder=transcoder,
        runner=runner,
    )
    app.state.synchronizer = TranscriptionStatusSynchronizer(repository, provider_client)
    app.state.search_service = (
        EpisodeSearchService.from_config(config, repository)
        if config.has_search_api_key
        else None
    )

    app.include_router(episode_router)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": "podcast-transcribe",
            "pending_pipelines": runner.get_pending_count(),
        }

    return app


if __name__ == "__main__":
    import uvicorn

    _config = Config()
    uvicorn.run(create_app(_config), host="0.0.0.0", port=_config.WEB_PORT)
