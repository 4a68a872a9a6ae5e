"""Episode title search against the ListenNotes catalogue.

Found episodes are imported into the store as NotStarted records so they
can be submitted for transcription by id. Episodes that are already stored
are returned as stored, with their current status.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from podcast_transcribe.db.models import Episode
from podcast_transcribe.db.repository import EpisodeRepositoryInterface
from podcast_transcribe.exceptions import ValidationError
from podcast_transcribe.workflow.states import TranscriptionStatus

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://listen-api.listennotes.com/api/v2"


def episode_from_result(item: Dict[str, Any]) -> Optional[Episode]:
    """Map one `search_episode_titles` result to an unsaved Episode.

    Results without an id or an audio URL cannot be transcribed and yield None.
    """
    episode_id = item.get("id")
    audio_url = item.get("audio")
    if not episode_id or not audio_url:
        return None

    podcast = item.get("podcast") or {}
    return Episode(
        id=str(episode_id),
        title=item.get("title_original") or "",
        description=item.get("description_original"),
        podcast_id=podcast.get("id"),
        audio_url=audio_url,
        transcription_status=TranscriptionStatus.NOT_STARTED.value,
    )


class EpisodeSearchService:
    """Searches episode titles and imports the matches into the store."""

    def __init__(
        self,
        api_key: str,
        repository: EpisodeRepositoryInterface,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
    ):
        self.api_key = api_key
        self.repository = repository
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_config(cls, config, repository: EpisodeRepositoryInterface) -> "EpisodeSearchService":
        return cls(
            api_key=config.LISTENNOTES_API_KEY,
            repository=repository,
            base_url=config.LISTENNOTES_BASE_URL,
            timeout=config.LISTENNOTES_TIMEOUT,
        )

    async def fetch_results(self, query: str) -> List[Dict[str, Any]]:
        """Call the title search endpoint and return its raw `results` list.

        Raises:
            httpx.TimeoutException: If the search times out.
            httpx.HTTPStatusError: On a non-2xx response.
        """
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(
                f"{self.base_url}/search_episode_titles",
                params={"q": query},
                headers={"X-ListenAPI-Key": self.api_key},
            )
            response.raise_for_status()
            data = response.json()

        results = data.get("results") or []
        logger.info(f"Title search for '{query}' returned {len(results)} results")
        return results

    async def search(self, query: str) -> List[Episode]:
        """Search episode titles and return the matching stored episodes.

        Raises:
            ValidationError: If the query is blank.
        """
        query = (query or "").strip()
        if not query:
            raise ValidationError("Search query is required")

        results = await self.fetch_results(query)
        episodes = [e for e in (episode_from_result(item) for item in results) if e is not None]
        if not episodes:
            return []

        return await asyncio.to_thread(self.repository.create_episodes, episodes)
