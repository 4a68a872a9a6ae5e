"""Database module for episode persistence.

Provides:
- SQLAlchemy ORM model (Episode)
- Repository interface and implementation
- Factory functions for creating repositories
"""

from .factory import create_repository, create_repository_from_config
from .models import Base, Episode
from .repository import EpisodeRepositoryInterface, SQLAlchemyEpisodeRepository

__all__ = [
    "Base",
    "Episode",
    "EpisodeRepositoryInterface",
    "SQLAlchemyEpisodeRepository",
    "create_repository",
    "create_repository_from_config",
]
