"""Binary object storage for processed audio."""

from podcast_transcribe.storage.object_store import ObjectStoreInterface, S3ObjectStore

__all__ = [
    "ObjectStoreInterface",
    "S3ObjectStore",
]
