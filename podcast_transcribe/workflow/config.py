"""Configuration for the transcription pipeline runner.

Provides environment-based configuration for worker counts and job
history of the detached submission pipeline.
"""

import os
from dataclasses import dataclass
from typing import Optional


def _get_int_env(
    name: str,
    default: int,
    min_val: Optional[int] = None,
    max_val: Optional[int] = None,
) -> int:
    """Parse an integer from an environment variable with validation.

    Args:
        name: Environment variable name.
        default: Default value if env var is not set.
        min_val: Minimum allowed value (inclusive), or None for no minimum.
        max_val: Maximum allowed value (inclusive), or None for no maximum.

    Returns:
        The parsed and validated integer value.

    Raises:
        ValueError: If the value cannot be parsed as an integer or is out of range.
    """
    raw = os.getenv(name)
    if raw is None:
        return default

    try:
        value = int(raw)
    except ValueError:
        raise ValueError(
            f"Invalid value for {name}: '{raw}' is not a valid integer"
        )

    if min_val is not None and value < min_val:
        raise ValueError(
            f"Invalid value for {name}: {value} must be >= {min_val}"
        )

    if max_val is not None and value > max_val:
        raise ValueError(
            f"Invalid value for {name}: {value} must be <= {max_val}"
        )

    return value


@dataclass
class PipelineConfig:
    """Configuration for the detached submission pipeline.

    All settings can be overridden via environment variables.
    """

    # Concurrent pipeline runs (download, transcode, upload, submit)
    workers: int = 4

    # Finished job handles kept for inspection
    completed_history_size: int = 100

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Create configuration from environment variables.

        Returns:
            PipelineConfig instance with values from environment or defaults.

        Raises:
            ValueError: If any environment variable has an invalid value.
        """
        return cls(
            workers=_get_int_env("PIPELINE_WORKERS", 4, min_val=1, max_val=64),
            completed_history_size=_get_int_env(
                "PIPELINE_COMPLETED_HISTORY_SIZE", 100, min_val=0
            ),
        )
