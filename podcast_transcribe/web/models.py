"""
Pydantic models for web API request/response validation.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class EpisodeSummary(BaseModel):
    """Catalogue view of an episode."""
    id: str = Field(..., description="Episode id")
    title: str = Field(default="", description="Episode title")
    description: Optional[str] = Field(default=None, description="Episode description")
    transcription_status: str = Field(..., description="Current transcription status")

    @classmethod
    def from_episode(cls, episode) -> "EpisodeSummary":
        return cls(
            id=episode.id,
            title=episode.title or "",
            description=episode.description,
            transcription_status=episode.transcription_status,
        )


class EpisodeSearchResponse(BaseModel):
    """Response model for episode title search."""
    query: str = Field(..., description="Search query")
    source: Literal["listennotes", "local"] = Field(..., description="Where the results came from")
    episodes: List[EpisodeSummary] = Field(default_factory=list, description="Matching episodes")


class SubmitTranscriptionResponse(BaseModel):
    """Response model for a transcription submission."""
    episode_id: str = Field(..., description="Episode id")
    accepted: bool = Field(..., description="Whether the submission was accepted")
    status: str = Field(..., description="Transcription status after the request")
    message: str = Field(..., description="Human-readable status message")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "episode_id": "episode-123",
                "accepted": True,
                "status": "Processing",
                "message": "Transcription started, please check back later",
            }
        }
    )


class TranscriptionResultResponse(BaseModel):
    """Response model for the transcription result of an episode."""
    episode_id: str = Field(..., description="Episode id")
    status: str = Field(..., description="Transcription status")
    transcript: Optional[str] = Field(default=None, description="Transcript text once Succeeded")
    message: str = Field(..., description="Human-readable status message")
