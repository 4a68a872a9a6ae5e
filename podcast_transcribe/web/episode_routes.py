"""
Episode API routes: title search, episode lookup and transcription.

Blocking store and provider calls run in worker threads via asyncio.to_thread.
Domain errors become HTTP responses here; internal failures never reach the
client as tracebacks.
"""

import asyncio
import logging

import httpx
from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from podcast_transcribe.exceptions import (
    ConcurrencyConflictError,
    EpisodeNotFoundError,
    TranscriptionError,
    ValidationError,
)
from podcast_transcribe.web.models import (
    EpisodeSearchResponse,
    EpisodeSummary,
    SubmitTranscriptionResponse,
    TranscriptionResultResponse,
)
from podcast_transcribe.workflow.states import SYNCABLE_STATUSES, TranscriptionStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/episodes", tags=["episodes"])

GENERIC_FAILURE_MESSAGE = "Transcription failed, please try again later"

_RESULT_MESSAGES = {
    TranscriptionStatus.NOT_STARTED: "Transcription has not been requested",
    TranscriptionStatus.PROCESSING: "Transcription is in progress, please check back later",
    TranscriptionStatus.SUBMITTED: "Transcription is in progress, please check back later",
    TranscriptionStatus.RUNNING: "Transcription is in progress, please check back later",
    TranscriptionStatus.SUCCEEDED: "Transcription completed",
    TranscriptionStatus.FAILED: "Transcription failed",
}


async def _get_episode_or_404(request: Request, episode_id: str):
    repository = request.app.state.repository
    episode = await asyncio.to_thread(repository.get_episode, episode_id)
    if episode is None:
        raise HTTPException(status_code=404, detail=f"Episode {episode_id} not found")
    return episode


@router.get("", response_model=EpisodeSearchResponse)
async def search_episodes(
    request: Request,
    name: str = Query("", max_length=200, description="Episode title to search for"),
):
    """
    Search episodes by title.

    Uses the external catalogue when an API key is configured (imported
    matches are stored as NotStarted episodes), otherwise searches stored
    episode titles.
    """
    query = name.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Search query is required")

    search_service = getattr(request.app.state, "search_service", None)
    if search_service is None:
        repository = request.app.state.repository
        episodes = await asyncio.to_thread(repository.search_episodes_by_title, query)
        return EpisodeSearchResponse(
            query=query,
            source="local",
            episodes=[EpisodeSummary.from_episode(e) for e in episodes],
        )

    try:
        episodes = await search_service.search(query)
    except httpx.TimeoutException as e:
        raise HTTPException(
            status_code=504,
            detail="Episode search timed out. Please try again."
        ) from e
    except httpx.HTTPStatusError as e:
        logger.exception(f"Episode search API error: {e.response.status_code}")
        raise HTTPException(
            status_code=502,
            detail="Episode search service temporarily unavailable"
        ) from e
    except httpx.HTTPError as e:
        logger.exception("Episode search request failed")
        raise HTTPException(
            status_code=502,
            detail="Episode search service temporarily unavailable"
        ) from e
    except Exception as e:
        logger.exception("Error searching episodes")
        raise HTTPException(
            status_code=500,
            detail="Failed to search episodes"
        ) from e

    return EpisodeSearchResponse(
        query=query,
        source="listennotes",
        episodes=[EpisodeSummary.from_episode(e) for e in episodes],
    )


@router.get("/{episode_id}", response_model=EpisodeSummary)
async def get_episode(request: Request, episode_id: str):
    """Get an episode's catalogue data and transcription status."""
    episode = await _get_episode_or_404(request, episode_id)
    return EpisodeSummary.from_episode(episode)


@router.post(
    "/{episode_id}/transcription",
    response_model=SubmitTranscriptionResponse,
    responses={409: {"model": SubmitTranscriptionResponse}},
)
async def submit_transcription(
    request: Request,
    episode_id: str,
    retry: bool = Query(False, description="Resubmit an episode whose last attempt failed"),
):
    """
    Request a transcription for an episode.

    Returns immediately; the download, transcoding and provider submission
    run in the background. Poll GET /api/episodes/{id}/transcription for
    the result.
    """
    submission_service = request.app.state.submission_service

    try:
        result = await asyncio.to_thread(submission_service.submit, episode_id, retry)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except EpisodeNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except (TranscriptionError, RuntimeError):
        logger.exception(f"Submission failed for episode {episode_id}")
        body = SubmitTranscriptionResponse(
            episode_id=episode_id,
            accepted=False,
            status=TranscriptionStatus.FAILED.value,
            message=GENERIC_FAILURE_MESSAGE,
        )
        return JSONResponse(status_code=500, content=body.model_dump())

    body = SubmitTranscriptionResponse(
        episode_id=episode_id,
        accepted=result.accepted,
        status=result.status.value,
        message=result.message,
    )
    if not result.accepted:
        return JSONResponse(status_code=409, content=body.model_dump())
    return body


@router.get("/{episode_id}/transcription", response_model=TranscriptionResultResponse)
async def get_transcription(request: Request, episode_id: str):
    """
    Get the transcription status and, once Succeeded, the transcript.

    An episode waiting on the provider is synchronized with the provider
    before answering.
    """
    episode = await _get_episode_or_404(request, episode_id)
    status = TranscriptionStatus.coerce(episode.transcription_status)

    if episode.provider_job_uri and status in SYNCABLE_STATUSES:
        synchronizer = request.app.state.synchronizer
        try:
            await asyncio.to_thread(synchronizer.sync, episode_id)
        except EpisodeNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except ConcurrencyConflictError:
            # A concurrent poll already wrote the update; answer from the stored record
            logger.info(f"Episode {episode_id} was synchronized by a concurrent request")
        except TranscriptionError:
            logger.exception(f"Failed to synchronize transcription for episode {episode_id}")
            body = TranscriptionResultResponse(
                episode_id=episode_id,
                status=TranscriptionStatus.FAILED.value,
                transcript=None,
                message=GENERIC_FAILURE_MESSAGE,
            )
            return JSONResponse(status_code=502, content=body.model_dump())

        episode = await _get_episode_or_404(request, episode_id)
        status = TranscriptionStatus.coerce(episode.transcription_status)

    transcript = episode.transcript_text if status == TranscriptionStatus.SUCCEEDED else None
    return TranscriptionResultResponse(
        episode_id=episode_id,
        status=status.value,
        transcript=transcript,
        message=_RESULT_MESSAGES[status],
    )
