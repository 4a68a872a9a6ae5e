"""Object storage for processed audio.

The processed audio has to live somewhere the speech provider can fetch it
from, so uploads go to an S3-compatible bucket (AWS S3, Cloudflare R2,
MinIO) and the provider is handed a public or presigned URL.
"""

import logging
from abc import ABC, abstractmethod
from typing import BinaryIO, Optional
from urllib.parse import quote

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from podcast_transcribe.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

_SERVICE = "object store"


class ObjectStoreInterface(ABC):
    """Abstract interface for binary object storage."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Return True if an object is stored under `key`."""
        pass

    @abstractmethod
    def url_of(self, key: str) -> str:
        """Return a URL from which the object under `key` can be fetched."""
        pass

    @abstractmethod
    def upload(self, stream: BinaryIO, key: str) -> str:
        """Store the bytes of `stream` under `key` (overwriting) and return its URL."""
        pass


class S3ObjectStore(ObjectStoreInterface):
    """boto3-backed object store for any S3-compatible endpoint."""

    def __init__(
        self,
        bucket_name: str,
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        region_name: str = "auto",
        public_base_url: Optional[str] = None,
        presigned_url_expiry: int = 7 * 24 * 3600,
        content_type: str = "audio/mpeg",
        client=None,
    ):
        """Initialize the object store.

        Args:
            bucket_name: Target bucket.
            endpoint_url: S3-compatible endpoint; None for AWS.
            access_key_id: Access key.
            secret_access_key: Secret key.
            region_name: Region name ("auto" for R2).
            public_base_url: If set, object URLs are `{public_base_url}/{key}`.
            presigned_url_expiry: Lifetime in seconds of presigned GET URLs.
            content_type: Content-Type stored with uploads.
            client: Pre-built boto3 S3 client (mainly for tests).
        """
        self.bucket_name = bucket_name
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self.presigned_url_expiry = presigned_url_expiry
        self.content_type = content_type
        self._client = client or boto3.client(
            "s3",
            endpoint_url=endpoint_url or None,
            aws_access_key_id=access_key_id or None,
            aws_secret_access_key=secret_access_key or None,
            region_name=region_name,
        )

    @classmethod
    def from_config(cls, config) -> "S3ObjectStore":
        """Build an S3ObjectStore from a Config object."""
        return cls(
            bucket_name=config.S3_BUCKET_NAME,
            endpoint_url=config.S3_ENDPOINT_URL,
            access_key_id=config.AWS_ACCESS_KEY_ID,
            secret_access_key=config.AWS_SECRET_ACCESS_KEY,
            region_name=config.S3_REGION,
            public_base_url=config.S3_PUBLIC_BASE_URL,
            presigned_url_expiry=config.S3_PRESIGNED_URL_EXPIRY,
        )

    def exists(self, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket_name, Key=key)
            return True
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise ExternalServiceError(_SERVICE, f"head_object failed for {key}: {code}") from e
        except BotoCoreError as e:
            raise ExternalServiceError(_SERVICE, f"head_object failed for {key}: {e}") from e

    def url_of(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{quote(key)}"
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket_name, "Key": key},
                ExpiresIn=self.presigned_url_expiry,
            )
        except (ClientError, BotoCoreError) as e:
            raise ExternalServiceError(_SERVICE, f"could not build URL for {key}: {e}") from e

    def upload(self, stream: BinaryIO, key: str) -> str:
        try:
            self._client.upload_fileobj(
                stream,
                self.bucket_name,
                key,
                ExtraArgs={"ContentType": self.content_type},
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Upload of {key} to bucket {self.bucket_name} failed: {e}")
            raise ExternalServiceError(_SERVICE, f"upload failed for {key}: {e}") from e

        logger.info(f"Uploaded file to object storage: {self.bucket_name}/{key}")
        return self.url_of(key)
