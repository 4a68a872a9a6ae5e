import os

from dotenv import load_dotenv


class Config:
    def __init__(self, env_file=None):
        """
        Initialize configuration by loading environment variables and setting default attributes.

        Loads environment variables from the provided .env file path when `env_file` is given; otherwise loads from the default environment. After loading, sets configuration attributes (database, object storage, speech provider, audio acquisition, episode search and web app settings) using environment values with sensible defaults.
        Parameters:
            env_file (str | None): Optional path to a .env file to load environment variables from. If omitted, the default environment or default .env discovery is used.
        """
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()

        # Database configuration
        self.DATABASE_URL = os.getenv(
            "DATABASE_URL", "sqlite:///./podcast_transcribe.db"
        )
        self.DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "3"))
        self.DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "2"))
        self.DB_ECHO = os.getenv("DB_ECHO", "false").lower() == "true"

        # Object storage (any S3-compatible endpoint: AWS, R2, MinIO)
        self.S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL", "")
        self.S3_REGION = os.getenv("S3_REGION", "auto")
        self.S3_BUCKET_NAME = os.getenv("S3_BUCKET_NAME", "processed-audio")
        self.AWS_ACCESS_KEY_ID = os.getenv("AWS_ACCESS_KEY_ID", "")
        self.AWS_SECRET_ACCESS_KEY = os.getenv("AWS_SECRET_ACCESS_KEY", "")
        # Public base URL for the bucket; presigned URLs are used when empty
        self.S3_PUBLIC_BASE_URL = os.getenv("S3_PUBLIC_BASE_URL", "").rstrip("/")
        self.S3_PRESIGNED_URL_EXPIRY = int(
            os.getenv("S3_PRESIGNED_URL_EXPIRY", str(7 * 24 * 3600))
        )

        # Speech-to-text provider
        self.SPEECH_SUBSCRIPTION_KEY = os.getenv("SPEECH_SUBSCRIPTION_KEY", "")
        self.SPEECH_REGION = os.getenv("SPEECH_REGION", "eastus")
        self.SPEECH_API_VERSION = os.getenv("SPEECH_API_VERSION", "v3.2")
        speech_base_url = os.getenv("SPEECH_BASE_URL", "")
        if speech_base_url and not speech_base_url.lower().startswith(("http://", "https://")):
            raise ValueError(
                f"SPEECH_BASE_URL must start with http:// or https://, got: {speech_base_url}"
            )
        self.SPEECH_BASE_URL = (
            speech_base_url.rstrip("/")
            if speech_base_url
            else f"https://{self.SPEECH_REGION}.api.cognitive.microsoft.com"
            f"/speechtotext/{self.SPEECH_API_VERSION}"
        )
        self.SPEECH_REQUEST_TIMEOUT = int(os.getenv("SPEECH_REQUEST_TIMEOUT", "60"))

        # Audio acquisition and transcoding
        self.AUDIO_DOWNLOAD_MAX_BYTES = int(
            os.getenv("AUDIO_DOWNLOAD_MAX_BYTES", str(10 * 1024 * 1024))
        )
        if self.AUDIO_DOWNLOAD_MAX_BYTES <= 0:
            raise ValueError(
                f"AUDIO_DOWNLOAD_MAX_BYTES must be positive, got {self.AUDIO_DOWNLOAD_MAX_BYTES}"
            )
        self.AUDIO_DOWNLOAD_TIMEOUT = int(os.getenv("AUDIO_DOWNLOAD_TIMEOUT", "1800"))  # 30 minutes
        self.AUDIO_CHUNK_SIZE = int(os.getenv("AUDIO_CHUNK_SIZE", "8192"))
        self.AUDIO_TEMP_DIRECTORY = os.getenv("AUDIO_TEMP_DIRECTORY", "") or None
        # Leave empty to disable debug copies of original/processed audio
        self.AUDIO_DEBUG_DIRECTORY = os.getenv("AUDIO_DEBUG_DIRECTORY", "") or None
        self.FFMPEG_PATH = os.getenv("FFMPEG_PATH", "ffmpeg")
        self.FFPROBE_PATH = os.getenv("FFPROBE_PATH", "ffprobe")
        self.TRANSCODE_TIMEOUT = int(os.getenv("TRANSCODE_TIMEOUT", "600"))

        # Episode title search (ListenNotes)
        self.LISTENNOTES_API_KEY = os.getenv("LISTENNOTES_API_KEY", "")
        self.LISTENNOTES_BASE_URL = os.getenv(
            "LISTENNOTES_BASE_URL", "https://listen-api.listennotes.com/api/v2"
        ).rstrip("/")
        self.LISTENNOTES_TIMEOUT = float(os.getenv("LISTENNOTES_TIMEOUT", "10.0"))

        # Web application configuration
        self.WEB_ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*")
        self.WEB_PORT = int(os.getenv("PORT", "8080"))

    def load_config(self):
        """
        Prints selected configuration values useful for debugging.
        """
        print(f"Database: {self.DATABASE_URL.split('@')[-1]}")
        print(f"Bucket: {self.S3_BUCKET_NAME}")
        print(f"Speech endpoint: {self.SPEECH_BASE_URL}")
        print(f"Download cap: {self.AUDIO_DOWNLOAD_MAX_BYTES} bytes")

    @property
    def has_object_store_credentials(self) -> bool:
        """Check whether enough settings exist to talk to the object store."""
        return bool(self.S3_BUCKET_NAME and self.AWS_ACCESS_KEY_ID and self.AWS_SECRET_ACCESS_KEY)

    @property
    def has_search_api_key(self) -> bool:
        '''Check if the external episode search service is configured.'''
        return bool(self.LISTENNOTES_API_KEY)
