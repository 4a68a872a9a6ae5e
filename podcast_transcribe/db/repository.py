"""Repository pattern implementation for episode persistence.

Provides an abstract interface and SQLAlchemy implementation for database operations.
Supports both SQLite (local development) and PostgreSQL (production).

There is no partial-field update primitive: callers load an episode, mutate it
in memory and hand the whole record back to `upsert_episode`, which only
succeeds if nobody else wrote the row in between.
"""

import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Iterable, List, Optional

from sqlalchemy import create_engine, select, update
from sqlalchemy.orm import Session, sessionmaker

from ..exceptions import ConcurrencyConflictError
from .models import Base, Episode, generate_episode_id

logger = logging.getLogger(__name__)

# Columns replaced by a full-record upsert (id and version are handled separately)
_UPSERT_COLUMNS = (
    "title",
    "description",
    "podcast_id",
    "audio_url",
    "transcription_status",
    "processed_audio_uri",
    "provider_job_uri",
    "transcript_text",
    "transcription_error",
)


def _escape_like_pattern(value: str) -> str:
    """
    Escape special characters for use in SQL LIKE patterns.

    The escape order matters: backslashes must be escaped first since
    they are used as the escape character.

    Args:
        value: The raw string to escape

    Returns:
        str: Escaped string safe for use in LIKE patterns
    """
    escaped = value.replace('\\', '\\\\')
    escaped = escaped.replace('%', '\\%')
    escaped = escaped.replace('_', '\\_')
    return escaped


class EpisodeRepositoryInterface(ABC):
    """Abstract interface for episode persistence.

    Implementations must support both SQLite and PostgreSQL backends.
    """

    @abstractmethod
    def get_episode(self, episode_id: str) -> Optional[Episode]:
        """
        Retrieve an episode by its primary key.

        Returns:
            The Episode instance if found, `None` otherwise.
        """
        pass

    @abstractmethod
    def create_episode(
        self,
        audio_url: str,
        title: str = "",
        episode_id: Optional[str] = None,
        **kwargs,
    ) -> Episode:
        """
        Create and persist a new episode with status NotStarted.

        Parameters:
            audio_url (str): Remote location of the original audio.
            title (str): Episode title.
            episode_id (str, optional): Id to use; generated when omitted.
            **kwargs: Additional Episode fields (description, podcast_id).

        Returns:
            Episode: The persisted Episode instance.
        """
        pass

    @abstractmethod
    def create_episodes(self, episodes: Iterable[Episode]) -> List[Episode]:
        """
        Persist a batch of episodes, keeping already-stored records untouched.

        Returns:
            List[Episode]: One stored episode per distinct id, in input order.
        """
        pass

    @abstractmethod
    def upsert_episode(self, episode: Episode) -> Episode:
        """
        Replace the stored record with `episode`, keyed by id.

        The write only happens if the stored version still equals
        `episode.version`; the version is then incremented. A missing row is
        inserted.

        Raises:
            ConcurrencyConflictError: If the stored version moved on.
        """
        pass

    @abstractmethod
    def list_episodes(
        self, status: Optional[str] = None, limit: Optional[int] = None
    ) -> List[Episode]:
        """List episodes, newest first, optionally filtered by transcription status."""
        pass

    @abstractmethod
    def search_episodes_by_title(self, query: str, limit: int = 20) -> List[Episode]:
        """Case-insensitive substring search on episode titles."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release database connections."""
        pass


class SQLAlchemyEpisodeRepository(EpisodeRepositoryInterface):
    """SQLAlchemy-based implementation of the episode repository.

    Supports SQLite for local development and PostgreSQL for production.
    """

    def __init__(
        self,
        database_url: str,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
        create_tables: bool = False,
    ):
        """
        Initialize the repository and configure its SQLAlchemy engine and session factory.

        Parameters:
            database_url (str): SQLAlchemy-compatible database URL.
            pool_size (int): Connection pool size for non-SQLite databases.
            max_overflow (int): Maximum overflow connections for non-SQLite databases.
            echo (bool): If true, enable SQLAlchemy SQL statement logging.
            create_tables (bool): Create missing tables instead of relying on Alembic.
        """
        self.database_url = database_url

        # SQLite doesn't support connection pooling
        if database_url.startswith("sqlite"):
            self.engine = create_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
            )
        else:
            self.engine = create_engine(
                database_url,
                pool_size=pool_size,
                max_overflow=max_overflow,
                echo=echo,
            )

        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

        if create_tables:
            Base.metadata.create_all(self.engine)

        logger.info(f"Database initialized: {database_url.split('@')[-1] if '@' in database_url else database_url}")

    def _get_session(self) -> Session:
        """
        Obtain a new SQLAlchemy database session from the repository's session factory.

        Returns:
            A fresh `Session` instance bound to the repository's engine.
        """
        return self.SessionLocal()

    def get_episode(self, episode_id: str) -> Optional[Episode]:
        with self._get_session() as session:
            return session.get(Episode, episode_id)

    def create_episode(
        self,
        audio_url: str,
        title: str = "",
        episode_id: Optional[str] = None,
        **kwargs,
    ) -> Episode:
        with self._get_session() as session:
            episode = Episode(
                id=episode_id or generate_episode_id(),
                audio_url=audio_url,
                title=title,
                transcription_status="NotStarted",
                version=1,
                **kwargs,
            )
            session.add(episode)
            session.commit()
            session.refresh(episode)
            logger.info(f"Created episode: {title} ({episode.id})")
            return episode

    def create_episodes(self, episodes: Iterable[Episode]) -> List[Episode]:
        stored: dict[str, Episode] = {}
        with self._get_session() as session:
            for episode in episodes:
                if not episode.id:
                    episode.id = generate_episode_id()
                if episode.id in stored:
                    continue

                existing = session.get(Episode, episode.id)
                if existing is not None:
                    stored[episode.id] = existing
                    continue

                if not episode.transcription_status:
                    episode.transcription_status = "NotStarted"
                episode.version = 1
                session.add(episode)
                stored[episode.id] = episode

            session.commit()
            for episode in stored.values():
                session.refresh(episode)

        logger.info(f"Stored batch of {len(stored)} episodes")
        return list(stored.values())

    def upsert_episode(self, episode: Episode) -> Episode:
        expected_version = episode.version
        values = {column: getattr(episode, column) for column in _UPSERT_COLUMNS}
        now = datetime.now(UTC)

        with self._get_session() as session:
            if expected_version is not None:
                stmt = (
                    update(Episode)
                    .where(Episode.id == episode.id, Episode.version == expected_version)
                    .values(**values, version=expected_version + 1, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                result = session.execute(stmt)
                if result.rowcount == 1:
                    session.commit()
                    episode.version = expected_version + 1
                    episode.updated_at = now
                    logger.debug(
                        f"Upserted episode {episode.id} "
                        f"(status={episode.transcription_status}, version={episode.version})"
                    )
                    return episode

                if session.get(Episode, episode.id) is not None:
                    session.rollback()
                    raise ConcurrencyConflictError(episode.id, expected_version)

            # No stored row: plain insert
            new_episode = Episode(id=episode.id, version=1, **values)
            session.add(new_episode)
            session.commit()
            session.refresh(new_episode)
            episode.version = new_episode.version
            logger.info(f"Inserted episode {episode.id} via upsert")
            return new_episode

    def list_episodes(
        self, status: Optional[str] = None, limit: Optional[int] = None
    ) -> List[Episode]:
        with self._get_session() as session:
            stmt = select(Episode)
            if status:
                stmt = stmt.where(Episode.transcription_status == status)
            stmt = stmt.order_by(Episode.created_at.desc())
            if limit:
                stmt = stmt.limit(limit)
            return list(session.scalars(stmt).all())

    def search_episodes_by_title(self, query: str, limit: int = 20) -> List[Episode]:
        pattern = f"%{_escape_like_pattern(query)}%"
        with self._get_session() as session:
            stmt = (
                select(Episode)
                .where(Episode.title.ilike(pattern, escape="\\"))
                .order_by(Episode.title)
                .limit(limit)
            )
            return list(session.scalars(stmt).all())

    # --- Connection Management ---

    def close(self) -> None:
        """
        Dispose the SQLAlchemy engine and release database connections and resources.
        """
        self.engine.dispose()
        logger.info("Database connection closed")
