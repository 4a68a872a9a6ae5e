"""
Pytest configuration and fixtures for podcast-transcribe tests.

This module runs before any test imports, setting up the test environment.
Environment variables are explicitly set to ensure deterministic test behavior
regardless of external environment configuration.
"""

import os

import pytest

# Never talk to real external services from tests
os.environ["LISTENNOTES_API_KEY"] = ""
os.environ["SPEECH_SUBSCRIPTION_KEY"] = "test-subscription-key"
os.environ["SPEECH_BASE_URL"] = "https://speech.example.com/speechtotext/v3.2"
os.environ.pop("AUDIO_DEBUG_DIRECTORY", None)
os.environ.pop("PIPELINE_WORKERS", None)

from podcast_transcribe.db.factory import create_repository  # noqa: E402


@pytest.fixture
def repository(tmp_path):
    """
    Create a temporary SQLite-backed repository for tests.

    Yields a repository instance configured to use a SQLite file under the provided
    temporary path and closes the repository when the fixture is torn down.
    """
    db_path = tmp_path / "test.db"
    repo = create_repository(f"sqlite:///{db_path}", create_tables=True)
    yield repo
    repo.close()


@pytest.fixture
def sample_episode(repository):
    """Create and persist a NotStarted episode."""
    return repository.create_episode(
        audio_url="https://example.com/audio/e1.mp3",
        title="Episode One",
        episode_id="E1",
        description="The first episode",
    )
