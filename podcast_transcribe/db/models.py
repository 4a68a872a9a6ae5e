"""SQLAlchemy ORM models for episode transcription data."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def generate_episode_id() -> str:
    """Build a new opaque episode id."""
    return f"episode-{uuid.uuid4()}"


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class Episode(Base):
    """Episode model.

    One podcast audio item tracked through the transcription lifecycle.
    The id doubles as the lookup key; audio_url never changes after creation.
    `version` is bumped on every upsert and used as a compare-and-swap token.
    """

    __tablename__ = "episodes"

    # Primary key
    id: Mapped[str] = mapped_column(
        String(128), primary_key=True, default=generate_episode_id
    )

    # Catalogue metadata
    title: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    description: Mapped[Optional[str]] = mapped_column(Text)
    podcast_id: Mapped[Optional[str]] = mapped_column(String(128))

    # Remote location of the original audio
    audio_url: Mapped[str] = mapped_column(String(2048), nullable=False)

    # Transcription lifecycle
    transcription_status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="NotStarted"
    )  # NotStarted, Processing, Submitted, Running, Succeeded, Failed
    processed_audio_uri: Mapped[Optional[str]] = mapped_column(String(2048))
    provider_job_uri: Mapped[Optional[str]] = mapped_column(String(2048))
    transcript_text: Mapped[Optional[str]] = mapped_column(Text)
    transcription_error: Mapped[Optional[str]] = mapped_column(Text)

    # Optimistic concurrency token
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        Index("ix_episodes_transcription_status", "transcription_status"),
        Index("ix_episodes_title", "title"),
    )

    def __repr__(self) -> str:
        """
        Return a concise debug-friendly representation of the Episode instance.

        Returns:
            A string in the format "<Episode(id=<id>, status=<status>)>".
        """
        return f"<Episode(id={self.id}, status={self.transcription_status})>"

    @property
    def has_transcript(self) -> bool:
        """True when a transcript is stored, even an empty one."""
        return self.transcript_text is not None
