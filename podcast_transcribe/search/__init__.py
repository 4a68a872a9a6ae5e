"""Podcast episode title search."""

from podcast_transcribe.search.episode_search import EpisodeSearchService

__all__ = ["EpisodeSearchService"]
